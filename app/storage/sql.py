"""
SQLAlchemy storage backend (PostgreSQL via asyncpg; SQLite works for local runs).

A tenant session is one database transaction:
1. INSERT ... ON CONFLICT DO NOTHING creates the tenant row lazily
2. SELECT ... FOR UPDATE locks it for the rest of the transaction
3. Commit on clean exit, rollback on any exception

Concurrent requests for the same tenant therefore queue on the row lock,
which closes the check-then-increment race on usage counters.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from sqlalchemy import func, select, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.accounts import (
    SubscriberPatch,
    SubscriberRecord,
    SubscriberStatus,
    TenantAccount,
    TenantPatch,
)
from app.models.subscriber import Subscriber
from app.models.tenant import Tenant
from app.modules.billing.plans import PlanKey
from app.modules.billing.usage import monthly_marker
from app.storage.base import Storage, TenantSession

logger = logging.getLogger(__name__)


def _insert_for(db: AsyncSession):
    """Dialect-specific insert() that supports on_conflict_do_nothing."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Unsupported database dialect: {dialect}")


def _to_account(row: Tenant) -> TenantAccount:
    last_daily = row.last_daily_reset
    return TenantAccount(
        tenant_id=row.tenant_id,
        plan=row.plan or PlanKey.FREE.value,
        email=row.email or "",
        name=row.name or "",
        contacts_count=row.contacts_count or 0,
        daily_marketing_sent=row.daily_marketing_sent or 0,
        monthly_marketing_sent=row.monthly_marketing_sent or 0,
        daily_transactional_sent=row.daily_transactional_sent or 0,
        monthly_transactional_sent=row.monthly_transactional_sent or 0,
        last_daily_reset=last_daily.isoformat() if isinstance(last_daily, date) else last_daily,
        last_monthly_reset=row.last_monthly_reset,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_record(row: Subscriber) -> SubscriberRecord:
    return SubscriberRecord(
        id=row.id,
        tenant_id=row.tenant_id,
        email=row.email,
        name=row.name or "",
        status=row.status,
        is_vip=bool(row.is_vip),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _column_value(field: str, value: Any) -> Any:
    # last_daily_reset is a DATE column; the domain keeps it as 'YYYY-MM-DD'
    if field == "last_daily_reset" and isinstance(value, str):
        return date.fromisoformat(value)
    return value


class SqlTenantSession(TenantSession):

    def __init__(self, db: AsyncSession, tenant_id: str):
        super().__init__(tenant_id)
        self.db = db
        self._row: Optional[Tenant] = None

    async def _locked_row(self) -> Tenant:
        if self._row is not None:
            return self._row

        now = datetime.utcnow()
        insert = _insert_for(self.db)
        await self.db.execute(
            insert(Tenant)
            .values(
                tenant_id=self.tenant_id,
                plan=PlanKey.FREE.value,
                email="",
                name="",
                last_daily_reset=now.date(),
                last_monthly_reset=monthly_marker(now),
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=[Tenant.tenant_id])
        )
        result = await self.db.execute(
            select(Tenant).where(Tenant.tenant_id == self.tenant_id).with_for_update()
        )
        self._row = result.scalar_one()
        return self._row

    async def load_tenant(self) -> TenantAccount:
        return _to_account(await self._locked_row())

    async def patch_tenant(self, patch: TenantPatch) -> TenantAccount:
        row = await self._locked_row()
        changes = patch.changes()
        if changes:
            for field, value in changes.items():
                setattr(row, field, _column_value(field, value))
            row.updated_at = datetime.utcnow()
            await self.db.flush()
        return _to_account(row)

    async def _owned_row(self, subscriber_id: int) -> Optional[Subscriber]:
        result = await self.db.execute(
            select(Subscriber).where(
                Subscriber.id == subscriber_id,
                Subscriber.tenant_id == self.tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def add_subscriber(
        self,
        email: str,
        name: str = "",
        status: SubscriberStatus = SubscriberStatus.ACTIVE,
    ) -> Optional[SubscriberRecord]:
        await self._locked_row()
        now = datetime.utcnow()
        insert = _insert_for(self.db)
        result = await self.db.execute(
            insert(Subscriber)
            .values(
                tenant_id=self.tenant_id,
                email=email,
                name=name or "",
                status=SubscriberStatus(status).value,
                is_vip=False,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=[Subscriber.tenant_id, Subscriber.email])
            .returning(Subscriber.id)
        )
        new_id = result.scalar_one_or_none()
        if new_id is None:
            return None
        row = await self._owned_row(new_id)
        return _to_record(row)

    async def get_subscriber(self, subscriber_id: int) -> Optional[SubscriberRecord]:
        row = await self._owned_row(subscriber_id)
        return _to_record(row) if row is not None else None

    async def find_subscriber(self, email: str) -> Optional[SubscriberRecord]:
        result = await self.db.execute(
            select(Subscriber).where(
                Subscriber.tenant_id == self.tenant_id,
                Subscriber.email == email,
            )
        )
        row = result.scalar_one_or_none()
        return _to_record(row) if row is not None else None

    def _filters(self, status: Optional[SubscriberStatus], vip_only: bool) -> list:
        clauses = [Subscriber.tenant_id == self.tenant_id]
        if status is not None:
            clauses.append(Subscriber.status == SubscriberStatus(status).value)
        if vip_only:
            clauses.append(Subscriber.is_vip.is_(True))
        return clauses

    async def list_subscribers(
        self,
        status: Optional[SubscriberStatus] = None,
        vip_only: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[SubscriberRecord]:
        query = (
            select(Subscriber)
            .where(*self._filters(status, vip_only))
            .order_by(Subscriber.created_at.desc(), Subscriber.id.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        if offset:
            query = query.offset(offset)
        result = await self.db.execute(query)
        return [_to_record(row) for row in result.scalars().all()]

    async def count_subscribers(
        self,
        status: Optional[SubscriberStatus] = None,
        vip_only: bool = False,
    ) -> int:
        result = await self.db.execute(
            select(func.count(Subscriber.id)).where(*self._filters(status, vip_only))
        )
        return int(result.scalar() or 0)

    async def update_subscriber(self, subscriber_id: int, patch: SubscriberPatch) -> Optional[SubscriberRecord]:
        row = await self._owned_row(subscriber_id)
        if row is None:
            return None
        changes = patch.changes()
        if changes:
            for field, value in changes.items():
                setattr(row, field, value)
            row.updated_at = datetime.utcnow()
            await self.db.flush()
        return _to_record(row)

    async def delete_subscriber(self, subscriber_id: int) -> Optional[SubscriberRecord]:
        row = await self._owned_row(subscriber_id)
        if row is None:
            return None
        record = _to_record(row)
        await self.db.delete(row)
        await self.db.flush()
        return record


class SqlStorage(Storage):
    """Storage backed by an async SQLAlchemy session factory."""

    name = "sql"

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory
        # Report the real backend (postgresql, sqlite) on /health
        bind = session_factory.kw.get("bind")
        if bind is not None:
            self.name = bind.dialect.name

    @asynccontextmanager
    async def tenant_session(self, tenant_id: str) -> AsyncIterator[TenantSession]:
        async with self._session_factory() as db:
            async with db.begin():
                yield SqlTenantSession(db, tenant_id)

    async def check(self) -> Dict[str, Any]:
        start_time = datetime.utcnow()
        try:
            async with self._session_factory() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Database health check failed: {e}")
            return {"status": "unhealthy", "backend": self.name, "error": str(e)}

        latency_ms = (datetime.utcnow() - start_time).total_seconds() * 1000
        return {"status": "healthy", "backend": self.name, "latency_ms": round(latency_ms, 2)}

    async def close(self) -> None:
        from app.core.database import close_db
        await close_db()
