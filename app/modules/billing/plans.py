"""
Plan catalog - static pricing tiers and their quota limits.

Source of truth for what each Whop plan allows. Lookups are total: any
missing or unknown key resolves to the free plan, so enforcement code never
has to handle "no plan".
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union

from app.core.config import settings


class PlanKey(str, Enum):
    """Known plan tiers. Add a member + a PLANS entry to introduce a tier."""
    FREE = "free"
    STARTER = "starter"
    GROWTH = "growth"
    PRO = "pro"


class EmailType(str, Enum):
    MARKETING = "marketing"
    TRANSACTIONAL = "transactional"


@dataclass(frozen=True)
class EmailQuota:
    monthly: int
    daily: int
    enabled: bool = True


@dataclass(frozen=True)
class Plan:
    key: PlanKey
    name: str
    price: int  # USD per month
    contact_limit: int
    marketing_emails: EmailQuota
    transactional_emails: EmailQuota
    analytics_enabled: bool
    whop_plan_id: str

    def quota_for(self, email_type: EmailType) -> EmailQuota:
        if EmailType(email_type) is EmailType.TRANSACTIONAL:
            return self.transactional_emails
        return self.marketing_emails

    def limits(self) -> Dict[str, object]:
        """Flat limits view used by the verify/analytics payloads."""
        return {
            "contact_limit": self.contact_limit,
            "marketing_limit_monthly": self.marketing_emails.monthly,
            "marketing_limit_daily": self.marketing_emails.daily,
            "transactional_limit_monthly": self.transactional_emails.monthly,
            "transactional_limit_daily": self.transactional_emails.daily,
            "transactional_enabled": self.transactional_emails.enabled,
            "analytics_enabled": self.analytics_enabled,
        }


PLANS: Dict[PlanKey, Plan] = {
    PlanKey.FREE: Plan(
        key=PlanKey.FREE,
        name="Free Plan",
        price=0,
        contact_limit=25,
        marketing_emails=EmailQuota(monthly=70, daily=2),
        transactional_emails=EmailQuota(monthly=0, daily=0, enabled=False),
        analytics_enabled=False,
        whop_plan_id=settings.WHOP_PLAN_ID_FREE,
    ),
    PlanKey.STARTER: Plan(
        key=PlanKey.STARTER,
        name="Starter Plan",
        price=9,
        contact_limit=100,
        marketing_emails=EmailQuota(monthly=300, daily=10),
        transactional_emails=EmailQuota(monthly=200, daily=6),
        analytics_enabled=False,
        whop_plan_id=settings.WHOP_PLAN_ID_STARTER,
    ),
    PlanKey.GROWTH: Plan(
        key=PlanKey.GROWTH,
        name="Growth Plan",
        price=19,
        contact_limit=250,
        marketing_emails=EmailQuota(monthly=750, daily=25),
        transactional_emails=EmailQuota(monthly=500, daily=16),
        analytics_enabled=False,
        whop_plan_id=settings.WHOP_PLAN_ID_GROWTH,
    ),
    PlanKey.PRO: Plan(
        key=PlanKey.PRO,
        name="Pro Plan",
        price=40,
        contact_limit=400,
        marketing_emails=EmailQuota(monthly=1200, daily=40),
        transactional_emails=EmailQuota(monthly=1000, daily=33),
        analytics_enabled=True,
        whop_plan_id=settings.WHOP_PLAN_ID_PRO,
    ),
}

FREE_PLAN = PLANS[PlanKey.FREE]


def resolve_plan_key(key: Union[PlanKey, str, None]) -> PlanKey:
    """Normalize a stored plan value to a PlanKey, falling back to free."""
    if isinstance(key, PlanKey):
        return key
    try:
        return PlanKey(key)
    except ValueError:
        return PlanKey.FREE


def lookup_plan(key: Union[PlanKey, str, None]) -> Plan:
    """Get the named plan, or the free plan for anything unknown."""
    return PLANS[resolve_plan_key(key)]


def plan_key_for_external_id(external_plan_id: Optional[str]) -> PlanKey:
    """Reverse lookup a Whop plan id to our plan key (free when unmatched)."""
    if not external_plan_id:
        return PlanKey.FREE
    for plan in PLANS.values():
        if plan.whop_plan_id == external_plan_id:
            return plan.key
    return PlanKey.FREE
