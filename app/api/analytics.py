"""
Analytics endpoint (Pro plan only).

GET /api/analytics?tenantId=
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_storage, tenant_id_query
from app.modules.billing.plans import EmailType, lookup_plan
from app.modules.billing.usage import next_resets, refresh_usage, utcnow
from app.modules.subscribers.service import SubscriberService
from app.storage.base import Storage

logger = logging.getLogger(__name__)

router = APIRouter()


def _percent(used: int, limit: int) -> Optional[float]:
    if limit <= 0:
        return None
    return round(used / limit * 100, 1)


@router.get("")
async def get_analytics(
    tenant_id: str = Depends(tenant_id_query),
    storage: Storage = Depends(get_storage),
):
    """Usage against limits plus subscriber list stats."""
    now = utcnow()

    async with storage.tenant_session(tenant_id) as session:
        tenant = await refresh_usage(session, now)
        plan = lookup_plan(tenant.plan)
        if not plan.analytics_enabled:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Analytics requires the Pro plan. You are on the {plan.name} plan.",
            )
        subscriber_stats = await SubscriberService(session).stats()

    usage = {}
    for email_type in EmailType:
        quota = plan.quota_for(email_type)
        daily = tenant.sent_count("daily", email_type.value)
        monthly = tenant.sent_count("monthly", email_type.value)
        usage[email_type.value] = {
            "daily_sent": daily,
            "daily_limit": quota.daily,
            "daily_percent": _percent(daily, quota.daily),
            "monthly_sent": monthly,
            "monthly_limit": quota.monthly,
            "monthly_percent": _percent(monthly, quota.monthly),
        }

    return {
        "success": True,
        "analytics": {
            "plan": plan.key.value,
            "emails_sent_today": tenant.daily_marketing_sent + tenant.daily_transactional_sent,
            "emails_sent_this_month": tenant.monthly_marketing_sent + tenant.monthly_transactional_sent,
            "usage": usage,
            "contacts": {
                "count": tenant.contacts_count,
                "limit": plan.contact_limit,
                "percent": _percent(tenant.contacts_count, plan.contact_limit),
            },
            "subscribers": subscriber_stats,
            **next_resets(now),
        },
    }
