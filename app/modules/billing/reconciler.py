"""
Whop webhook reconciliation - keeps tenant plans in step with Whop billing.

State changes per event:
- membership.activated / invoice.paid
    plan from plan_id (fallback free), all usage counters zeroed, reset
    markers stamped with now, profile upserted, contacts_count resynced;
    with a seller_id the buyer is also added to the seller's list
- membership.deactivated / invoice.past_due
    plan -> free; counters are kept, so existing usage now counts against
    the free limits until the next reset or upgrade
- payment.succeeded / payment.failed and anything else
    logged only

Every effect is an absolute set (or an idempotent add), so a retried
delivery leaves the tenant exactly as a single delivery would.
"""

import hashlib
import hmac
import logging
from datetime import datetime
from typing import Optional

from app.models.accounts import TenantPatch
from app.models.webhook import WhopEventData, WhopEventType, WhopWebhookEvent
from app.modules.billing.plans import PlanKey, plan_key_for_external_id
from app.modules.billing.usage import reset_all_usage, utcnow
from app.modules.subscribers.service import ContactLimitError, InvalidEmailError, SubscriberService
from app.storage.base import Storage

logger = logging.getLogger(__name__)

ACTIVATION_EVENTS = {WhopEventType.MEMBERSHIP_ACTIVATED, WhopEventType.INVOICE_PAID}
DEACTIVATION_EVENTS = {WhopEventType.MEMBERSHIP_DEACTIVATED, WhopEventType.INVOICE_PAST_DUE}
PAYMENT_EVENTS = {WhopEventType.PAYMENT_SUCCEEDED, WhopEventType.PAYMENT_FAILED}


def compute_signature(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the raw request body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    """Constant-time comparison of the whop-signature header against the body."""
    if not signature:
        return False
    expected = compute_signature(body, secret)
    return hmac.compare_digest(expected, signature.strip().lower())


class WebhookReconciler:
    """Applies Whop lifecycle events to tenant state."""

    def __init__(self, storage: Storage):
        self.storage = storage

    async def apply(self, event: WhopWebhookEvent, now: Optional[datetime] = None) -> str:
        """
        Apply one event.

        Returns:
            Short outcome label ('plan_activated', 'plan_downgraded', 'logged', 'ignored')

        Raises:
            ValueError: event has no data.user_id
        """
        if event.data is None or not event.data.user_id:
            raise ValueError("Missing user_id in webhook data")

        now = now or utcnow()
        event_type = event.event_type
        data = event.data

        if event_type in ACTIVATION_EVENTS:
            await self._activate(data, now)
            if data.seller_id and data.seller_id != data.user_id:
                await self._add_buyer_to_seller(data)
            return "plan_activated"

        if event_type in DEACTIVATION_EVENTS:
            await self._deactivate(data)
            return "plan_downgraded"

        if event_type is WhopEventType.PAYMENT_SUCCEEDED:
            logger.info(f"Payment succeeded for user: {data.user_id}", extra={"tenant_id": data.user_id})
            return "logged"

        if event_type is WhopEventType.PAYMENT_FAILED:
            logger.warning(f"Payment failed for user: {data.user_id}", extra={"tenant_id": data.user_id})
            return "logged"

        logger.info(f"Unhandled webhook type: {event.type}", extra={"event_type": event.type})
        return "ignored"

    async def _activate(self, data: WhopEventData, now: datetime) -> None:
        plan_key = plan_key_for_external_id(data.plan_id)

        profile = {}
        if data.user_email:
            profile["email"] = data.user_email.strip()
        if data.user_username:
            profile["name"] = data.user_username.strip()

        patch = TenantPatch(plan=plan_key).merged(reset_all_usage(now)).merged(TenantPatch(**profile))

        async with self.storage.tenant_session(data.user_id) as session:
            await session.patch_tenant(patch)
            await session.sync_contacts_count()

        logger.info(
            f"User {data.user_id} activated plan: {plan_key.value}",
            extra={"tenant_id": data.user_id, "plan": plan_key.value, "whop_plan_id": data.plan_id}
        )

    async def _deactivate(self, data: WhopEventData) -> None:
        async with self.storage.tenant_session(data.user_id) as session:
            await session.patch_tenant(TenantPatch(plan=PlanKey.FREE))

        logger.warning(f"User {data.user_id} downgraded to free", extra={"tenant_id": data.user_id})

    async def _add_buyer_to_seller(self, data: WhopEventData) -> None:
        """Add the buyer to the seller's list; duplicates are no-ops."""
        if not data.buyer_address:
            logger.warning(
                f"Purchase from seller {data.seller_id} has no buyer email, skipping subscriber add",
                extra={"seller_id": data.seller_id, "buyer_id": data.user_id}
            )
            return

        async with self.storage.tenant_session(data.seller_id) as session:
            try:
                record, created = await SubscriberService(session).add(
                    data.buyer_address,
                    data.buyer_display_name,
                )
            except (InvalidEmailError, ContactLimitError) as e:
                logger.warning(
                    f"Buyer not added to seller {data.seller_id}: {e}",
                    extra={"seller_id": data.seller_id, "buyer_id": data.user_id}
                )
                return

        logger.info(
            f"Buyer {'added to' if created else 'already on'} seller {data.seller_id} list",
            extra={"seller_id": data.seller_id, "buyer_id": data.user_id, "subscriber_id": record.id}
        )
