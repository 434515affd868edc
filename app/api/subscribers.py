"""
Subscriber list endpoints.

Every mutation resyncs the tenant's contacts_count from the real row count.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from app.api.deps import get_storage, require_tenant_id, tenant_id_query
from app.api.schemas import AddSubscriberRequest, BulkAddRequest, UpdateSubscriberRequest, VipRequest
from app.models.accounts import SubscriberPatch, SubscriberStatus
from app.modules.billing.plans import lookup_plan
from app.modules.subscribers.service import (
    ContactLimitError,
    InvalidEmailError,
    SubscriberNotFoundError,
    SubscriberService,
)
from app.storage.base import Storage

logger = logging.getLogger(__name__)

router = APIRouter()


def _contact_limit_response(e: ContactLimitError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={
            "success": False,
            "message": str(e),
            "reason": "contact_limit",
            "current": e.current,
            "limit": e.limit,
        },
    )


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscriber not found")


@router.get("")
async def list_subscribers(
    tenant_id: str = Depends(tenant_id_query),
    status_filter: Optional[SubscriberStatus] = Query(None, alias="status"),
    vip: bool = Query(False, description="Only VIP subscribers"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    offset: Optional[int] = Query(None, ge=0),
    storage: Storage = Depends(get_storage),
):
    """List the tenant's subscribers (newest first) with list stats."""
    async with storage.tenant_session(tenant_id) as session:
        service = SubscriberService(session)
        subscribers = await service.list_subscribers(
            status=status_filter, vip_only=vip, limit=limit, offset=offset
        )
        stats = await service.stats()
        tenant = await session.load_tenant()

    plan = lookup_plan(tenant.plan)
    return {
        "success": True,
        "subscribers": [s.to_api() for s in subscribers],
        "stats": {**stats, "limit": plan.contact_limit},
    }


@router.post("")
async def add_subscriber(body: AddSubscriberRequest, storage: Storage = Depends(get_storage)):
    """Add one subscriber; 201 when created, 200 when the email was already on the list."""
    tenant_id = require_tenant_id(body.tenant_id)

    try:
        async with storage.tenant_session(tenant_id) as session:
            record, created = await SubscriberService(session).add(body.email, body.name or "")
    except InvalidEmailError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid email address")
    except ContactLimitError as e:
        return _contact_limit_response(e)

    return JSONResponse(
        status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        content={
            "success": True,
            "message": "Subscriber added" if created else "Subscriber already exists",
            "created": created,
            "subscriber": record.to_api(),
        },
    )


@router.post("/bulk")
async def bulk_add_subscribers(body: BulkAddRequest, storage: Storage = Depends(get_storage)):
    """Import many subscribers at once; all-or-nothing against the contact limit."""
    tenant_id = require_tenant_id(body.tenant_id)
    rows = [row.model_dump() for row in body.subscribers]

    try:
        async with storage.tenant_session(tenant_id) as session:
            result = await SubscriberService(session).bulk_add(rows)
    except InvalidEmailError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ContactLimitError as e:
        return _contact_limit_response(e)

    return {
        "success": True,
        "message": f"Imported {result.added_count} subscribers",
        "added": result.added_count,
        "skipped": result.skipped,
    }


@router.put("/{subscriber_id}")
async def update_subscriber(
    subscriber_id: int,
    body: UpdateSubscriberRequest,
    storage: Storage = Depends(get_storage),
):
    """Update name and/or status (unsubscribe / resubscribe)."""
    tenant_id = require_tenant_id(body.tenant_id)

    changes = body.model_dump(include={"name", "status"}, exclude_unset=True, exclude_none=True)
    patch = SubscriberPatch(**changes)

    try:
        async with storage.tenant_session(tenant_id) as session:
            record = await SubscriberService(session).update(subscriber_id, patch)
    except SubscriberNotFoundError:
        raise _not_found()

    return {"success": True, "subscriber": record.to_api()}


@router.delete("/{subscriber_id}")
async def delete_subscriber(
    subscriber_id: int,
    tenant_id: str = Depends(tenant_id_query),
    storage: Storage = Depends(get_storage),
):
    try:
        async with storage.tenant_session(tenant_id) as session:
            await SubscriberService(session).delete(subscriber_id)
    except SubscriberNotFoundError:
        raise _not_found()

    return {"success": True, "message": "Subscriber deleted"}


@router.put("/{subscriber_id}/vip")
async def set_vip(
    subscriber_id: int,
    body: VipRequest,
    storage: Storage = Depends(get_storage),
):
    """Set the VIP flag, or toggle it when isVip is omitted."""
    tenant_id = require_tenant_id(body.tenant_id)

    try:
        async with storage.tenant_session(tenant_id) as session:
            record = await SubscriberService(session).toggle_vip(subscriber_id, body.is_vip)
    except SubscriberNotFoundError:
        raise _not_found()

    return {"success": True, "subscriber": record.to_api()}
