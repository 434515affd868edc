"""
Campaign sending with plan enforcement.

One send is a single critical section inside the tenant session:
    refresh usage (lazy reset) -> resolve recipients -> authorize -> deliver -> record usage

Usage is written only after the provider accepted the send. A provider
error or timeout raises out of the session, which rolls it back, so a
failed send never costs quota.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from app.core.email_service import EmailDeliveryError, EmailSender, OutgoingEmail
from app.core.sentry import capture_business_error
from app.modules.billing.plans import EmailType, lookup_plan
from app.modules.billing.quota import QuotaExceededError, authorize_send
from app.modules.billing.usage import record_send, refresh_usage, utcnow
from app.modules.campaigns.recipients import RecipientType, resolve_recipients
from app.storage.base import Storage

logger = logging.getLogger(__name__)


@dataclass
class CampaignRequest:
    tenant_id: str
    campaign_name: str
    subject: str
    html: str
    email_type: EmailType = EmailType.MARKETING
    recipient_type: Optional[RecipientType] = None
    to: Optional[List[str]] = None
    custom_emails: Optional[List[str]] = None


@dataclass
class CampaignResult:
    email_id: str
    demo: bool
    recipient_count: int
    email_type: EmailType
    usage: Dict[str, int]


class CampaignService:

    def __init__(self, storage: Storage, sender: EmailSender):
        self.storage = storage
        self.sender = sender

    async def send(self, request: CampaignRequest, now: Optional[datetime] = None) -> CampaignResult:
        """
        Send a campaign if the tenant's plan allows it.

        Raises:
            QuotaExceededError: a plan check failed (nothing sent)
            EmailDeliveryError: provider failed (no usage recorded)
            NoRecipientsError / InvalidEmailError: bad recipient selection
        """
        now = now or utcnow()
        email_type = EmailType(request.email_type)

        async with self.storage.tenant_session(request.tenant_id) as session:
            tenant = await refresh_usage(session, now)
            plan = lookup_plan(tenant.plan)

            recipients = await resolve_recipients(
                session,
                recipient_type=request.recipient_type,
                to=request.to,
                custom_emails=request.custom_emails,
            )

            decision = authorize_send(tenant, plan, email_type, len(recipients))
            if not decision.allowed:
                logger.info(
                    f"Send denied for tenant {tenant.tenant_id}: {decision.message}",
                    extra={
                        "tenant_id": tenant.tenant_id,
                        "reason": decision.reason.value,
                        "recipients": len(recipients),
                        "plan": plan.key.value,
                    }
                )
                raise QuotaExceededError(decision)

            try:
                result = await self.sender.send(OutgoingEmail(
                    recipients=recipients,
                    subject=request.subject,
                    html=request.html,
                    campaign_name=request.campaign_name,
                    email_type=email_type.value,
                    tags={"plan": plan.key.value, "tenant": tenant.tenant_id},
                ))
            except EmailDeliveryError as e:
                capture_business_error(
                    e,
                    context={
                        "tenant_id": tenant.tenant_id,
                        "operation": "send_campaign",
                        "recipients": len(recipients),
                        "email_type": email_type.value,
                    },
                )
                raise

            tenant = await session.patch_tenant(record_send(tenant, email_type, len(recipients)))

        logger.info(
            f"Sent {email_type.value} campaign '{request.campaign_name}' to {len(recipients)} recipients",
            extra={
                "tenant_id": tenant.tenant_id,
                "email_id": result.email_id,
                "recipients": len(recipients),
                "demo": result.demo,
            }
        )

        return CampaignResult(
            email_id=result.email_id,
            demo=result.demo,
            recipient_count=len(recipients),
            email_type=email_type,
            usage={
                "daily": tenant.sent_count("daily", email_type.value),
                "monthly": tenant.sent_count("monthly", email_type.value),
                "contacts": tenant.contacts_count,
            },
        )
