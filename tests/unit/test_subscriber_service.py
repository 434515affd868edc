"""
Unit tests for the subscriber store.

Tests:
- Adds are normalized, idempotent per (tenant, email) and limit-checked
- Bulk import is all-or-nothing against the contact limit
- contacts_count is recomputed from the real row count after inserts and deletes
- Requests that change no rows leave a send-raised contacts_count alone
- A storage failure mid-import rolls back that whole batch only
- Tenants never see each other's subscribers
"""

import pytest

from app.models.accounts import SubscriberPatch, SubscriberStatus, TenantPatch
from app.modules.billing.quota import QuotaExceededError, QuotaViolation
from app.modules.campaigns.recipients import RecipientType
from app.modules.campaigns.service import CampaignRequest, CampaignService
from app.modules.subscribers.service import (
    ContactLimitError,
    InvalidEmailError,
    SubscriberNotFoundError,
    SubscriberService,
)
from app.storage.memory import MemoryTenantSession


async def seed_subscribers(storage, tenant_id, emails, plan="free"):
    async with storage.tenant_session(tenant_id) as session:
        await session.patch_tenant(TenantPatch(plan=plan))
        for email in emails:
            await session.add_subscriber(email)
        await session.sync_contacts_count()


def fail_on_insert(monkeypatch, session_cls, n):
    """Make the nth add_subscriber call on `session_cls` raise mid-batch."""
    original = session_cls.add_subscriber
    calls = {"count": 0}

    async def flaky(self, email, name="", status=SubscriberStatus.ACTIVE):
        calls["count"] += 1
        if calls["count"] == n:
            raise OSError("storage connection lost")
        return await original(self, email, name, status)

    monkeypatch.setattr(session_cls, "add_subscriber", flaky)


class TestAddSubscriber:

    @pytest.mark.asyncio
    async def test_added_subscriber_is_active_and_not_vip(self, storage):
        async with storage.tenant_session("user_1") as session:
            record, created = await SubscriberService(session).add("  Fan@Example.com ", "Fan")
            listed = await session.list_subscribers()

        assert created is True
        assert record.email == "fan@example.com"
        assert record.status is SubscriberStatus.ACTIVE
        assert record.is_vip is False
        assert [s.id for s in listed] == [record.id]
        assert storage.tenants["user_1"].contacts_count == 1

    @pytest.mark.asyncio
    async def test_duplicate_is_noop(self, storage):
        async with storage.tenant_session("user_1") as session:
            service = SubscriberService(session)
            first, _ = await service.add("fan@example.com")
            second, created = await service.add("FAN@example.com")
            total = await service.count()

        assert created is False
        assert second.id == first.id
        assert total == 1

    @pytest.mark.asyncio
    async def test_invalid_email_rejected(self, storage):
        async with storage.tenant_session("user_1") as session:
            with pytest.raises(InvalidEmailError):
                await SubscriberService(session).add("not-an-email")

    @pytest.mark.asyncio
    async def test_contact_limit_enforced(self, storage):
        await seed_subscribers(storage, "user_1", [f"fan{i}@example.com" for i in range(25)])

        with pytest.raises(ContactLimitError) as exc_info:
            async with storage.tenant_session("user_1") as session:
                await SubscriberService(session).add("one-more@example.com")

        assert exc_info.value.current == 25
        assert exc_info.value.limit == 25

    @pytest.mark.asyncio
    async def test_existing_email_allowed_at_limit(self, storage):
        await seed_subscribers(storage, "user_1", [f"fan{i}@example.com" for i in range(25)])

        async with storage.tenant_session("user_1") as session:
            _, created = await SubscriberService(session).add("fan3@example.com")

        assert created is False

    @pytest.mark.asyncio
    async def test_same_email_for_two_tenants(self, storage):
        for tenant_id in ("seller_a", "seller_b"):
            async with storage.tenant_session(tenant_id) as session:
                _, created = await SubscriberService(session).add("fan@example.com")
                assert created is True


class TestBulkAdd:

    @pytest.mark.asyncio
    async def test_skips_existing_rows(self, storage):
        await seed_subscribers(storage, "user_1", ["a@example.com", "b@example.com"])
        rows = [{"email": e, "name": ""} for e in
                ["a@example.com", "b@example.com", "c@example.com", "d@example.com", "e@example.com"]]

        async with storage.tenant_session("user_1") as session:
            result = await SubscriberService(session).bulk_add(rows)
            total = await session.count_subscribers()

        assert result.added_count == 3
        assert result.skipped == 2
        assert total == 5
        assert storage.tenants["user_1"].contacts_count == 5

    @pytest.mark.asyncio
    async def test_over_remaining_slots_rejected_whole(self, storage):
        await seed_subscribers(storage, "user_1", [f"fan{i}@example.com" for i in range(20)])
        rows = [{"email": f"new{i}@example.com"} for i in range(6)]

        with pytest.raises(ContactLimitError, match="5 contact slots remaining"):
            async with storage.tenant_session("user_1") as session:
                await SubscriberService(session).bulk_add(rows)

        async with storage.tenant_session("user_1") as session:
            assert await session.count_subscribers() == 20

    @pytest.mark.asyncio
    async def test_any_invalid_email_writes_nothing(self, storage):
        rows = [{"email": "ok@example.com"}, {"email": "broken"}]

        with pytest.raises(InvalidEmailError):
            async with storage.tenant_session("user_1") as session:
                await SubscriberService(session).bulk_add(rows)

        async with storage.tenant_session("user_1") as session:
            assert await session.count_subscribers() == 0

    @pytest.mark.asyncio
    async def test_storage_failure_rolls_back_only_that_batch(self, storage, monkeypatch):
        async with storage.tenant_session("user_1") as session:
            await SubscriberService(session).bulk_add([{"email": "a@example.com"}, {"email": "b@example.com"}])

        fail_on_insert(monkeypatch, MemoryTenantSession, 3)
        rows = [{"email": f"new{i}@example.com"} for i in range(4)]

        with pytest.raises(OSError):
            async with storage.tenant_session("user_1") as session:
                await SubscriberService(session).bulk_add(rows)

        async with storage.tenant_session("user_1") as session:
            emails = sorted(s.email for s in await session.list_subscribers())

        assert emails == ["a@example.com", "b@example.com"]
        assert storage.tenants["user_1"].contacts_count == 2


class TestUpdateDelete:

    @pytest.mark.asyncio
    async def test_unsubscribe(self, storage):
        async with storage.tenant_session("user_1") as session:
            service = SubscriberService(session)
            record, _ = await service.add("fan@example.com")
            updated = await service.update(record.id, SubscriberPatch(status=SubscriberStatus.UNSUBSCRIBED))
            stats = await service.stats()

        assert updated.status is SubscriberStatus.UNSUBSCRIBED
        assert stats == {"total": 1, "active": 0, "unsubscribed": 1, "vip": 0}

    @pytest.mark.asyncio
    async def test_toggle_vip(self, storage):
        async with storage.tenant_session("user_1") as session:
            service = SubscriberService(session)
            record, _ = await service.add("fan@example.com")
            on = await service.toggle_vip(record.id)
            off = await service.toggle_vip(record.id)
            forced = await service.toggle_vip(record.id, True)

        assert on.is_vip is True
        assert off.is_vip is False
        assert forced.is_vip is True

    @pytest.mark.asyncio
    async def test_delete_resyncs_count(self, storage):
        async with storage.tenant_session("user_1") as session:
            service = SubscriberService(session)
            record, _ = await service.add("fan@example.com")
            await service.add("other@example.com")
            await service.delete(record.id)

        assert storage.tenants["user_1"].contacts_count == 1

    @pytest.mark.asyncio
    async def test_other_tenants_subscriber_not_found(self, storage):
        async with storage.tenant_session("seller_a") as session:
            record, _ = await SubscriberService(session).add("fan@example.com")

        async with storage.tenant_session("seller_b") as session:
            service = SubscriberService(session)
            with pytest.raises(SubscriberNotFoundError):
                await service.delete(record.id)
            with pytest.raises(SubscriberNotFoundError):
                await service.update(record.id, SubscriberPatch(name="x"))
            with pytest.raises(SubscriberNotFoundError):
                await service.toggle_vip(record.id)


class TestNoOpRequestsKeepContactsCount:
    """contacts_count raised by sends must survive requests that add no rows."""

    async def _raised_tenant(self, storage):
        await seed_subscribers(storage, "user_1", ["a@example.com", "b@example.com"])
        async with storage.tenant_session("user_1") as session:
            await session.patch_tenant(TenantPatch(contacts_count=24))
            return await session.find_subscriber("a@example.com")

    @pytest.mark.asyncio
    async def test_duplicate_add(self, storage):
        await self._raised_tenant(storage)

        async with storage.tenant_session("user_1") as session:
            _, created = await SubscriberService(session).add("A@example.com")

        assert created is False
        assert storage.tenants["user_1"].contacts_count == 24

    @pytest.mark.asyncio
    async def test_vip_toggle_and_edits(self, storage):
        record = await self._raised_tenant(storage)

        async with storage.tenant_session("user_1") as session:
            service = SubscriberService(session)
            await service.toggle_vip(record.id)
            await service.update(record.id, SubscriberPatch(name="Renamed"))
            await service.update(record.id, SubscriberPatch(status=SubscriberStatus.UNSUBSCRIBED))

        assert storage.tenants["user_1"].contacts_count == 24

    @pytest.mark.asyncio
    async def test_all_skipped_bulk_import(self, storage):
        await self._raised_tenant(storage)

        async with storage.tenant_session("user_1") as session:
            result = await SubscriberService(session).bulk_add([{"email": "b@example.com"}])

        assert result.added_count == 0
        assert result.skipped == 1
        assert storage.tenants["user_1"].contacts_count == 24

    @pytest.mark.asyncio
    async def test_send_still_denied_after_duplicate_add(self, storage, sender):
        await self._raised_tenant(storage)
        request = CampaignRequest(
            tenant_id="user_1",
            campaign_name="launch",
            subject="We launched",
            html="<p>Hello</p>",
            recipient_type=RecipientType.ALL,
        )

        async with storage.tenant_session("user_1") as session:
            await SubscriberService(session).add("a@example.com")

        with pytest.raises(QuotaExceededError) as exc_info:
            await CampaignService(storage, sender).send(request)

        assert exc_info.value.decision.reason is QuotaViolation.CONTACT_LIMIT
        assert sender.sent == []

    @pytest.mark.asyncio
    async def test_new_row_resyncs(self, storage):
        await self._raised_tenant(storage)

        async with storage.tenant_session("user_1") as session:
            await SubscriberService(session).add("c@example.com")

        assert storage.tenants["user_1"].contacts_count == 3
