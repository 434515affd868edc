"""
Quota enforcement - decides whether a send is allowed under a tenant's plan.

Checks run in a fixed order and the first failure wins:
1. Contact limit   (contacts_count + recipients <= contact_limit)
2. Capability      (transactional sends need transactional_emails.enabled)
3. Daily limit     (daily_<type>_sent + recipients <= daily)
4. Monthly limit   (monthly_<type>_sent + recipients <= monthly)

The contact check counts *send recipients* against the contact allowance
("you may not fan out to more people than your contact capacity"), not
only newly stored contacts.

This module never sends email or writes usage; callers record usage with
usage.record_send() only after the provider accepted the send.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from app.models.accounts import TenantAccount
from app.modules.billing.plans import EmailType, Plan


class QuotaViolation(str, Enum):
    CONTACT_LIMIT = "contact_limit"
    TRANSACTIONAL_DISABLED = "transactional_disabled"
    DAILY_LIMIT = "daily_limit"
    MONTHLY_LIMIT = "monthly_limit"


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    reason: Optional[QuotaViolation] = None
    message: str = ""

    @classmethod
    def allow(cls) -> "QuotaDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: QuotaViolation, message: str) -> "QuotaDecision":
        return cls(allowed=False, reason=reason, message=message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason.value if self.reason else None,
            "message": self.message,
        }


class QuotaExceededError(Exception):
    """Raised by callers that turn a denial into a failed request."""

    def __init__(self, decision: QuotaDecision):
        super().__init__(decision.message)
        self.decision = decision


def authorize_send(
    tenant: TenantAccount,
    plan: Plan,
    email_type: EmailType,
    recipient_count: int,
) -> QuotaDecision:
    """
    Check a proposed send of `recipient_count` emails against the plan.

    `tenant` must already have lazy resets applied (usage.refresh_usage).

    Returns:
        QuotaDecision.allow() or a denial carrying the violated check
    """
    email_type = EmailType(email_type)
    if recipient_count < 0:
        raise ValueError("recipient_count must be >= 0")

    # 1. Contact limit
    if tenant.contacts_count + recipient_count > plan.contact_limit:
        return QuotaDecision.deny(
            QuotaViolation.CONTACT_LIMIT,
            f"Contact limit exceeded. You have {tenant.contacts_count}/{plan.contact_limit} contacts.",
        )

    quota = plan.quota_for(email_type)

    # 2. Transactional access
    if email_type is EmailType.TRANSACTIONAL and not quota.enabled:
        return QuotaDecision.deny(
            QuotaViolation.TRANSACTIONAL_DISABLED,
            "Transactional emails not available on your plan.",
        )

    # 3. Daily limit
    daily_sent = tenant.sent_count("daily", email_type.value)
    if daily_sent + recipient_count > quota.daily:
        return QuotaDecision.deny(
            QuotaViolation.DAILY_LIMIT,
            f"Daily {email_type.value} email limit exceeded: {daily_sent}/{quota.daily}",
        )

    # 4. Monthly limit
    monthly_sent = tenant.sent_count("monthly", email_type.value)
    if monthly_sent + recipient_count > quota.monthly:
        return QuotaDecision.deny(
            QuotaViolation.MONTHLY_LIMIT,
            f"Monthly {email_type.value} email limit exceeded: {monthly_sent}/{quota.monthly}",
        )

    return QuotaDecision.allow()
