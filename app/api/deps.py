"""Shared FastAPI dependencies: storage, email sender, tenant id validation."""

import logging
from typing import Optional

from fastapi import HTTPException, Query, Request, status

from app.core.config import Settings
from app.core.email_service import EmailSender
from app.storage.base import Storage

logger = logging.getLogger(__name__)

# The dashboard sends this literal when the Whop context hasn't loaded yet
UNDEFINED_PLACEHOLDER = "undefined"


def build_storage(settings: Settings) -> Storage:
    """SQL storage when DATABASE_URL is set, in-memory demo storage otherwise."""
    if settings.uses_database:
        from app.core.database import AsyncSessionLocal
        from app.storage.sql import SqlStorage

        logger.info("Using PostgreSQL storage")
        return SqlStorage(AsyncSessionLocal)

    from app.storage.memory import MemoryStorage

    logger.warning("DATABASE_URL not set - using in-memory storage (data is lost on restart)")
    return MemoryStorage()


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_email_sender(request: Request) -> EmailSender:
    return request.app.state.email_sender


def require_tenant_id(value: Optional[str]) -> str:
    """
    Validate a tenant id taken from a body, path or query.

    Raises:
        HTTPException: 400 when missing, blank or the 'undefined' placeholder
    """
    if value is None or not str(value).strip() or str(value).strip() == UNDEFINED_PLACEHOLDER:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Valid user ID required",
        )
    return str(value).strip()


async def tenant_id_query(
    tenantId: Optional[str] = Query(None, description="Whop user id of the tenant"),
    whopUserId: Optional[str] = Query(None, description="Alias used by the dashboard"),
) -> str:
    """Tenant id from ?tenantId= (or the legacy ?whopUserId=)."""
    return require_tenant_id(tenantId if tenantId is not None else whopUserId)
