"""
Usage ledger - per-tenant send counters and calendar resets.

There is no reset job. Resets are evaluated lazily whenever a tenant is
read for a quota decision or a usage snapshot:
- Daily counters reset once the UTC day moves past last_daily_reset
- Monthly counters reset once the UTC month moves past last_monthly_reset

check_and_reset_usage() is pure; refresh_usage() applies its patch inside
a tenant session so the reset, the quota check and the increment happen
under the same per-tenant lock.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from dateutil.relativedelta import relativedelta

from app.models.accounts import TenantAccount, TenantPatch
from app.modules.billing.plans import EmailType, Plan

logger = logging.getLogger(__name__)

DAY_FORMAT = "%Y-%m-%d"
MONTH_FORMAT = "%Y-%m"


@dataclass
class UsageReset:
    """Result of a reset check: whether anything fired, and what to write."""
    reset_applied: bool
    patch: TenantPatch = field(default_factory=TenantPatch)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def _parse_day(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return datetime.strptime(value.strip(), DAY_FORMAT).date()
    raise ValueError(f"unsupported daily reset marker: {value!r}")


def _parse_month(value: Any) -> Tuple[int, int]:
    if isinstance(value, (date, datetime)):
        return value.year, value.month
    if isinstance(value, str):
        parsed = datetime.strptime(value.strip()[:7], MONTH_FORMAT)
        return parsed.year, parsed.month
    raise ValueError(f"unsupported monthly reset marker: {value!r}")


def daily_marker(now: datetime) -> str:
    return _as_utc(now).strftime(DAY_FORMAT)


def monthly_marker(now: datetime) -> str:
    return _as_utc(now).strftime(MONTH_FORMAT)


def check_and_reset_usage(tenant: TenantAccount, now: datetime) -> UsageReset:
    """
    Work out which counters should be zeroed at `now`.

    Args:
        tenant: Current ledger state
        now: Evaluation time (naive values are treated as UTC)

    Returns:
        UsageReset with reset_applied and the patch to persist

    Absent or unparseable markers are treated as stale (the reset fires)
    and logged; this never raises.
    """
    now = _as_utc(now)
    today = now.date()
    changes: Dict[str, Any] = {}

    try:
        last_daily: Optional[date] = _parse_day(tenant.last_daily_reset)
    except (TypeError, ValueError) as e:
        logger.warning(
            f"Invalid daily reset marker for tenant {tenant.tenant_id}, resetting: {e}",
            extra={"tenant_id": tenant.tenant_id, "marker": repr(tenant.last_daily_reset)}
        )
        last_daily = None

    if last_daily is None or today > last_daily:
        changes.update(
            daily_marketing_sent=0,
            daily_transactional_sent=0,
            last_daily_reset=today.strftime(DAY_FORMAT),
        )

    try:
        last_month: Optional[Tuple[int, int]] = _parse_month(tenant.last_monthly_reset)
    except (TypeError, ValueError) as e:
        logger.warning(
            f"Invalid monthly reset marker for tenant {tenant.tenant_id}, resetting: {e}",
            extra={"tenant_id": tenant.tenant_id, "marker": repr(tenant.last_monthly_reset)}
        )
        last_month = None

    if last_month is None or (now.year, now.month) > last_month:
        changes.update(
            monthly_marketing_sent=0,
            monthly_transactional_sent=0,
            last_monthly_reset=now.strftime(MONTH_FORMAT),
        )

    return UsageReset(reset_applied=bool(changes), patch=TenantPatch(**changes))


def reset_all_usage(now: datetime) -> TenantPatch:
    """Absolute patch zeroing every counter and stamping both markers with `now`."""
    return TenantPatch(
        daily_marketing_sent=0,
        monthly_marketing_sent=0,
        daily_transactional_sent=0,
        monthly_transactional_sent=0,
        last_daily_reset=daily_marker(now),
        last_monthly_reset=monthly_marker(now),
    )


def record_send(tenant: TenantAccount, email_type: EmailType, count: int) -> TenantPatch:
    """
    Usage after a successful send of `count` emails.

    Values are absolute (computed from the locked tenant row) rather than
    relative increments. contacts_count also grows by the recipient count.
    """
    email_type = EmailType(email_type).value
    return TenantPatch(**{
        f"daily_{email_type}_sent": tenant.sent_count("daily", email_type) + count,
        f"monthly_{email_type}_sent": tenant.sent_count("monthly", email_type) + count,
        "contacts_count": tenant.contacts_count + count,
    })


async def refresh_usage(session, now: Optional[datetime] = None) -> TenantAccount:
    """
    Load the session's tenant with any pending resets applied.

    Must be called before trusting counters for a quota check or a read.
    """
    now = now or utcnow()
    tenant = await session.load_tenant()
    reset = check_and_reset_usage(tenant, now)
    if not reset.reset_applied:
        return tenant

    logger.info(
        f"Applying usage reset for tenant {tenant.tenant_id}",
        extra={"tenant_id": tenant.tenant_id, "reset": reset.patch.changes()}
    )
    return await session.patch_tenant(reset.patch)


def next_resets(now: datetime) -> Dict[str, str]:
    """When the daily and monthly counters will next roll over (UTC)."""
    now = _as_utc(now)
    tomorrow = datetime.combine(now.date() + timedelta(days=1), time.min, tzinfo=timezone.utc)
    next_month = datetime.combine(now.date().replace(day=1), time.min, tzinfo=timezone.utc) + relativedelta(months=1)
    return {
        "next_daily_reset": tomorrow.isoformat(),
        "next_monthly_reset": next_month.isoformat(),
    }


def usage_snapshot(tenant: TenantAccount, plan: Plan, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Usage + plan limits payload for the verify endpoint."""
    return {
        "whopUserId": tenant.tenant_id,
        "tenantId": tenant.tenant_id,
        "plan": plan.key.value,
        "planName": plan.name,
        "email": tenant.email or "",
        "name": tenant.name or "",

        # Usage
        "contacts_count": tenant.contacts_count,
        "daily_marketing_sent": tenant.daily_marketing_sent,
        "monthly_marketing_sent": tenant.monthly_marketing_sent,
        "daily_transactional_sent": tenant.daily_transactional_sent,
        "monthly_transactional_sent": tenant.monthly_transactional_sent,

        # Limits
        **plan.limits(),

        **next_resets(now or utcnow()),
    }
