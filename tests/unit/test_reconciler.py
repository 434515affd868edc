"""
Unit tests for Whop webhook reconciliation.

Tests:
- Activation sets the plan, zeroes usage and upserts the profile
- Duplicate deliveries leave the same state
- Deactivation keeps counters but drops to free limits
- Purchases add the buyer to the seller's list exactly once
- Signature helpers
"""

from datetime import datetime, timezone

import pytest

from app.models.accounts import TenantPatch
from app.models.webhook import WhopWebhookEvent
from app.modules.billing.reconciler import WebhookReconciler, compute_signature, verify_signature

NOW = datetime(2026, 5, 10, 9, 0, tzinfo=timezone.utc)


def event(event_type, **data):
    return WhopWebhookEvent.model_validate({"type": event_type, "data": data})


async def tenant_state(storage, tenant_id):
    async with storage.tenant_session(tenant_id) as session:
        return await session.load_tenant()


class TestActivation:

    @pytest.mark.asyncio
    async def test_sets_plan_and_resets_usage(self, storage):
        async with storage.tenant_session("user_1") as session:
            await session.patch_tenant(TenantPatch(daily_marketing_sent=2, monthly_marketing_sent=50))

        outcome = await WebhookReconciler(storage).apply(
            event("membership.activated", user_id="user_1", plan_id="plan_growth",
                  user_email="owner@example.com", user_username="owner"),
            now=NOW,
        )

        tenant = await tenant_state(storage, "user_1")
        assert outcome == "plan_activated"
        assert tenant.plan == "growth"
        assert tenant.daily_marketing_sent == 0
        assert tenant.monthly_marketing_sent == 0
        assert tenant.last_daily_reset == "2026-05-10"
        assert tenant.last_monthly_reset == "2026-05"
        assert tenant.email == "owner@example.com"
        assert tenant.name == "owner"

    @pytest.mark.asyncio
    async def test_invoice_paid_activates(self, storage):
        await WebhookReconciler(storage).apply(event("invoice.paid", user_id="user_1", plan_id="plan_pro"), now=NOW)

        assert (await tenant_state(storage, "user_1")).plan == "pro"

    @pytest.mark.asyncio
    async def test_unknown_plan_id_falls_back_to_free(self, storage):
        await WebhookReconciler(storage).apply(
            event("membership.activated", user_id="user_1", plan_id="plan_mystery"), now=NOW
        )

        assert (await tenant_state(storage, "user_1")).plan == "free"

    @pytest.mark.asyncio
    async def test_missing_profile_fields_keep_existing(self, storage):
        async with storage.tenant_session("user_1") as session:
            await session.patch_tenant(TenantPatch(email="kept@example.com", name="Kept"))

        await WebhookReconciler(storage).apply(
            event("membership.activated", user_id="user_1", plan_id="plan_starter"), now=NOW
        )

        tenant = await tenant_state(storage, "user_1")
        assert tenant.email == "kept@example.com"
        assert tenant.name == "Kept"

    @pytest.mark.asyncio
    async def test_duplicate_delivery_is_idempotent(self, storage):
        purchase = event(
            "membership.activated", user_id="buyer_1", plan_id="plan_starter",
            user_email="buyer@example.com", user_username="buyer", seller_id="seller_1",
        )
        reconciler = WebhookReconciler(storage)

        await reconciler.apply(purchase, now=NOW)
        first_buyer = await tenant_state(storage, "buyer_1")
        first_seller = await tenant_state(storage, "seller_1")

        await reconciler.apply(purchase, now=NOW)
        second_buyer = await tenant_state(storage, "buyer_1")
        second_seller = await tenant_state(storage, "seller_1")

        ignore = {"updated_at"}
        assert second_buyer.model_dump(exclude=ignore) == first_buyer.model_dump(exclude=ignore)
        assert second_seller.model_dump(exclude=ignore) == first_seller.model_dump(exclude=ignore)
        async with storage.tenant_session("seller_1") as session:
            subscribers = await session.list_subscribers()
        assert [s.email for s in subscribers] == ["buyer@example.com"]
        assert second_seller.contacts_count == 1


class TestBuyerAdd:

    @pytest.mark.asyncio
    async def test_explicit_buyer_fields_win(self, storage):
        await WebhookReconciler(storage).apply(
            event("membership.activated", user_id="buyer_1", user_email="user@example.com",
                  seller_id="seller_1", buyer_email="Buyer@Example.com", buyer_name="Buyer Name"),
            now=NOW,
        )

        async with storage.tenant_session("seller_1") as session:
            record = await session.find_subscriber("buyer@example.com")
        assert record is not None
        assert record.name == "Buyer Name"

    @pytest.mark.asyncio
    async def test_seller_at_limit_skips_buyer(self, storage):
        async with storage.tenant_session("seller_1") as session:
            for i in range(25):
                await session.add_subscriber(f"fan{i}@example.com")
            await session.sync_contacts_count()

        outcome = await WebhookReconciler(storage).apply(
            event("membership.activated", user_id="buyer_1", user_email="buyer@example.com", seller_id="seller_1"),
            now=NOW,
        )

        assert outcome == "plan_activated"
        async with storage.tenant_session("seller_1") as session:
            assert await session.find_subscriber("buyer@example.com") is None

    @pytest.mark.asyncio
    async def test_self_purchase_not_added(self, storage):
        await WebhookReconciler(storage).apply(
            event("membership.activated", user_id="user_1", user_email="me@example.com", seller_id="user_1"),
            now=NOW,
        )

        async with storage.tenant_session("user_1") as session:
            assert await session.count_subscribers() == 0


class TestDeactivation:

    @pytest.mark.asyncio
    async def test_downgrade_keeps_counters(self, storage):
        reconciler = WebhookReconciler(storage)
        await reconciler.apply(event("membership.activated", user_id="user_1", plan_id="plan_growth"), now=NOW)
        async with storage.tenant_session("user_1") as session:
            await session.patch_tenant(TenantPatch(monthly_marketing_sent=100))

        outcome = await reconciler.apply(event("membership.deactivated", user_id="user_1"), now=NOW)

        tenant = await tenant_state(storage, "user_1")
        assert outcome == "plan_downgraded"
        assert tenant.plan == "free"
        assert tenant.monthly_marketing_sent == 100

    @pytest.mark.asyncio
    async def test_past_due_downgrades(self, storage):
        reconciler = WebhookReconciler(storage)
        await reconciler.apply(event("invoice.paid", user_id="user_1", plan_id="plan_pro"), now=NOW)
        await reconciler.apply(event("invoice.past_due", user_id="user_1"), now=NOW)

        assert (await tenant_state(storage, "user_1")).plan == "free"


class TestOtherEvents:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event_type,outcome", [
        ("payment.succeeded", "logged"),
        ("payment.failed", "logged"),
        ("membership.went_valid", "ignored"),
    ])
    async def test_no_state_change(self, storage, event_type, outcome):
        result = await WebhookReconciler(storage).apply(event(event_type, user_id="user_1"), now=NOW)

        assert result == outcome
        assert "user_1" not in storage.tenants

    @pytest.mark.asyncio
    async def test_missing_user_id_rejected(self, storage):
        with pytest.raises(ValueError):
            await WebhookReconciler(storage).apply(event("membership.activated", plan_id="plan_pro"), now=NOW)


class TestSignature:

    def test_round_trip(self):
        body = b'{"type": "payment.succeeded"}'
        signature = compute_signature(body, "whsec_test")

        assert verify_signature(body, signature, "whsec_test") is True
        assert verify_signature(body, signature.upper(), "whsec_test") is True

    def test_tampered_body_rejected(self):
        signature = compute_signature(b'{"a": 1}', "whsec_test")

        assert verify_signature(b'{"a": 2}', signature, "whsec_test") is False

    def test_missing_signature_rejected(self):
        assert verify_signature(b"{}", None, "whsec_test") is False
        assert verify_signature(b"{}", "", "whsec_test") is False
