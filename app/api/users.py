"""
Tenant account endpoints used by the dashboard on load.

GET  /api/user/{tenant_id}/verify  - plan, usage and limits (lazy reset applied)
POST /api/user/update              - partial profile update (email, name)
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_storage, require_tenant_id
from app.api.schemas import UserUpdateRequest
from app.models.accounts import TenantPatch
from app.modules.billing.plans import lookup_plan
from app.modules.billing.usage import refresh_usage, usage_snapshot, utcnow
from app.modules.subscribers.service import InvalidEmailError, normalize_email
from app.storage.base import Storage

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{tenant_id}/verify")
async def verify_user(tenant_id: str, storage: Storage = Depends(get_storage)):
    """
    Return the tenant's plan, counters and limits.

    Unknown tenants are created on the free plan, so this never 404s.
    """
    tenant_id = require_tenant_id(tenant_id)
    now = utcnow()

    async with storage.tenant_session(tenant_id) as session:
        tenant = await refresh_usage(session, now)

    plan = lookup_plan(tenant.plan)
    return {"success": True, "user": usage_snapshot(tenant, plan, now)}


@router.post("/update")
async def update_user(body: UserUpdateRequest, storage: Storage = Depends(get_storage)):
    """Update email and/or name; omitted or empty fields are left alone."""
    tenant_id = require_tenant_id(body.tenant_id)

    changes = {}
    if body.email:
        try:
            changes["email"] = normalize_email(body.email)
        except InvalidEmailError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid email address")
    if body.name:
        changes["name"] = body.name.strip()

    now = utcnow()
    async with storage.tenant_session(tenant_id) as session:
        await refresh_usage(session, now)
        tenant = await session.patch_tenant(TenantPatch(**changes))

    logger.info(
        f"Profile updated for tenant {tenant_id}",
        extra={"tenant_id": tenant_id, "fields": sorted(changes)}
    )
    return {"success": True, "user": usage_snapshot(tenant, lookup_plan(tenant.plan), now)}
