"""
SQL storage backend tests (SQLite via aiosqlite).

Exercises the same TenantSession contract as the in-memory store:
lazy tenant creation, (tenant, email) uniqueness, tenant isolation and
rollback when the session block raises, including a bulk import that
fails partway through.
"""

import pytest
import pytest_asyncio

from app.core.database import Base, create_engine_for, create_session_factory
from app.models.accounts import SubscriberPatch, SubscriberStatus, TenantPatch
from app.modules.subscribers.service import SubscriberService
from app.storage.sql import SqlStorage, SqlTenantSession


@pytest_asyncio.fixture
async def sql_storage(tmp_path):
    import app.models  # noqa: F401

    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield SqlStorage(create_session_factory(engine))

    await engine.dispose()


class TestSqlTenantSession:

    @pytest.mark.asyncio
    async def test_tenant_created_lazily_on_free_plan(self, sql_storage):
        async with sql_storage.tenant_session("user_1") as session:
            tenant = await session.load_tenant()

        assert tenant.tenant_id == "user_1"
        assert tenant.plan == "free"
        assert tenant.contacts_count == 0
        assert tenant.last_daily_reset is not None
        assert tenant.last_monthly_reset is not None

    @pytest.mark.asyncio
    async def test_patch_persists(self, sql_storage):
        async with sql_storage.tenant_session("user_1") as session:
            await session.patch_tenant(TenantPatch(plan="growth", daily_marketing_sent=3, last_daily_reset="2026-01-02"))

        async with sql_storage.tenant_session("user_1") as session:
            tenant = await session.load_tenant()

        assert tenant.plan == "growth"
        assert tenant.daily_marketing_sent == 3
        assert tenant.last_daily_reset == "2026-01-02"

    @pytest.mark.asyncio
    async def test_duplicate_subscriber_returns_none(self, sql_storage):
        async with sql_storage.tenant_session("user_1") as session:
            first = await session.add_subscriber("fan@example.com", "Fan")
            second = await session.add_subscriber("fan@example.com", "Fan again")
            total = await session.count_subscribers()

        assert first is not None
        assert first.status is SubscriberStatus.ACTIVE
        assert second is None
        assert total == 1

    @pytest.mark.asyncio
    async def test_exception_rolls_back(self, sql_storage):
        with pytest.raises(RuntimeError):
            async with sql_storage.tenant_session("user_1") as session:
                await session.add_subscriber("fan@example.com")
                raise RuntimeError("boom")

        async with sql_storage.tenant_session("user_1") as session:
            assert await session.count_subscribers() == 0

    @pytest.mark.asyncio
    async def test_bulk_import_failure_keeps_earlier_batch(self, sql_storage, monkeypatch):
        async with sql_storage.tenant_session("user_1") as session:
            await SubscriberService(session).bulk_add([{"email": "a@example.com"}, {"email": "b@example.com"}])

        original = SqlTenantSession.add_subscriber
        calls = {"count": 0}

        async def flaky(self, email, name="", status=SubscriberStatus.ACTIVE):
            calls["count"] += 1
            if calls["count"] == 3:
                raise OSError("storage connection lost")
            return await original(self, email, name, status)

        monkeypatch.setattr(SqlTenantSession, "add_subscriber", flaky)
        rows = [{"email": f"new{i}@example.com"} for i in range(4)]

        with pytest.raises(OSError):
            async with sql_storage.tenant_session("user_1") as session:
                await SubscriberService(session).bulk_add(rows)

        monkeypatch.undo()
        async with sql_storage.tenant_session("user_1") as session:
            emails = sorted(s.email for s in await session.list_subscribers())
            tenant = await session.load_tenant()

        assert emails == ["a@example.com", "b@example.com"]
        assert tenant.contacts_count == 2

    @pytest.mark.asyncio
    async def test_tenants_isolated(self, sql_storage):
        async with sql_storage.tenant_session("seller_a") as session:
            record = await session.add_subscriber("fan@example.com")

        async with sql_storage.tenant_session("seller_b") as session:
            assert await session.get_subscriber(record.id) is None
            assert await session.update_subscriber(record.id, SubscriberPatch(is_vip=True)) is None
            assert await session.delete_subscriber(record.id) is None
            assert await session.add_subscriber("fan@example.com") is not None

    @pytest.mark.asyncio
    async def test_service_on_sql_backend(self, sql_storage):
        async with sql_storage.tenant_session("user_1") as session:
            service = SubscriberService(session)
            result = await service.bulk_add([{"email": "a@example.com"}, {"email": "b@example.com"}])
            vip = await service.toggle_vip(result.added[0].id)
            stats = await service.stats()
            tenant = await session.load_tenant()

        assert result.added_count == 2
        assert vip.is_vip is True
        assert stats == {"total": 2, "active": 2, "unsubscribed": 0, "vip": 1}
        assert tenant.contacts_count == 2

    @pytest.mark.asyncio
    async def test_check_reports_healthy(self, sql_storage):
        result = await sql_storage.check()

        assert result["status"] == "healthy"
        assert result["backend"] == "sqlite"
        assert sql_storage.name == "sqlite"
