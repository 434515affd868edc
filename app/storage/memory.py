"""
In-process storage backend.

Used when DATABASE_URL is not configured (demo mode) and by the test
suite. Data lives only as long as the process.

Each tenant gets its own asyncio.Lock while it has sessions open or waiting;
the lock is dropped with the last one. A session snapshots that tenant's
rows on entry and restores them if the block raises. Tenant and subscriber
data itself is never evicted, so this backend is for demos and tests only.
"""

import asyncio
import itertools
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional

from app.models.accounts import (
    SubscriberPatch,
    SubscriberRecord,
    SubscriberStatus,
    TenantAccount,
    TenantPatch,
)
from app.modules.billing.plans import PlanKey
from app.modules.billing.usage import daily_marker, monthly_marker
from app.storage.base import Storage, TenantSession

logger = logging.getLogger(__name__)


class MemoryTenantSession(TenantSession):

    def __init__(self, storage: "MemoryStorage", tenant_id: str):
        super().__init__(tenant_id)
        self._storage = storage

    async def load_tenant(self) -> TenantAccount:
        tenant = self._storage.tenants.get(self.tenant_id)
        if tenant is None:
            now = datetime.utcnow()
            tenant = TenantAccount(
                tenant_id=self.tenant_id,
                plan=PlanKey.FREE.value,
                last_daily_reset=daily_marker(now),
                last_monthly_reset=monthly_marker(now),
                created_at=now,
                updated_at=now,
            )
            self._storage.tenants[self.tenant_id] = tenant
            logger.info(f"Created tenant {self.tenant_id} with free plan", extra={"tenant_id": self.tenant_id})
        return tenant

    async def patch_tenant(self, patch: TenantPatch) -> TenantAccount:
        tenant = await self.load_tenant()
        changes = patch.changes()
        if not changes:
            return tenant
        updated = TenantAccount(**{**tenant.model_dump(), **changes, "updated_at": datetime.utcnow()})
        self._storage.tenants[self.tenant_id] = updated
        return updated

    def _owned(self) -> List[SubscriberRecord]:
        return [s for s in self._storage.subscribers.values() if s.tenant_id == self.tenant_id]

    async def add_subscriber(
        self,
        email: str,
        name: str = "",
        status: SubscriberStatus = SubscriberStatus.ACTIVE,
    ) -> Optional[SubscriberRecord]:
        if await self.find_subscriber(email) is not None:
            return None
        now = datetime.utcnow()
        record = SubscriberRecord(
            id=next(self._storage.ids),
            tenant_id=self.tenant_id,
            email=email,
            name=name or "",
            status=status,
            created_at=now,
            updated_at=now,
        )
        self._storage.subscribers[record.id] = record
        return record

    async def get_subscriber(self, subscriber_id: int) -> Optional[SubscriberRecord]:
        record = self._storage.subscribers.get(subscriber_id)
        if record is None or record.tenant_id != self.tenant_id:
            return None
        return record

    async def find_subscriber(self, email: str) -> Optional[SubscriberRecord]:
        for record in self._owned():
            if record.email == email:
                return record
        return None

    def _filtered(self, status: Optional[SubscriberStatus], vip_only: bool) -> List[SubscriberRecord]:
        rows = self._owned()
        if status is not None:
            rows = [s for s in rows if s.status == SubscriberStatus(status)]
        if vip_only:
            rows = [s for s in rows if s.is_vip]
        return rows

    async def list_subscribers(
        self,
        status: Optional[SubscriberStatus] = None,
        vip_only: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[SubscriberRecord]:
        rows = sorted(
            self._filtered(status, vip_only),
            key=lambda s: (s.created_at, s.id),
            reverse=True,
        )
        start = offset or 0
        end = start + limit if limit is not None else None
        return rows[start:end]

    async def count_subscribers(
        self,
        status: Optional[SubscriberStatus] = None,
        vip_only: bool = False,
    ) -> int:
        return len(self._filtered(status, vip_only))

    async def update_subscriber(self, subscriber_id: int, patch: SubscriberPatch) -> Optional[SubscriberRecord]:
        record = await self.get_subscriber(subscriber_id)
        if record is None:
            return None
        changes = patch.changes()
        if not changes:
            return record
        updated = SubscriberRecord(**{**record.model_dump(), **changes, "updated_at": datetime.utcnow()})
        self._storage.subscribers[subscriber_id] = updated
        return updated

    async def delete_subscriber(self, subscriber_id: int) -> Optional[SubscriberRecord]:
        record = await self.get_subscriber(subscriber_id)
        if record is None:
            return None
        del self._storage.subscribers[subscriber_id]
        return record


class MemoryStorage(Storage):
    """Dict-backed Storage with per-tenant locking and rollback."""

    name = "memory"

    def __init__(self):
        self.tenants: Dict[str, TenantAccount] = {}
        self.subscribers: Dict[int, SubscriberRecord] = {}
        self.ids = itertools.count(1)
        # Locks exist only while a session for that tenant is open or waiting
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def tenant_session(self, tenant_id: str) -> AsyncIterator[TenantSession]:
        lock = self._locks.setdefault(tenant_id, asyncio.Lock())
        self._lock_users[tenant_id] += 1
        try:
            async with lock:
                saved_tenant = self.tenants.get(tenant_id)
                saved_subscribers = {
                    sid: s for sid, s in self.subscribers.items() if s.tenant_id == tenant_id
                }
                try:
                    yield MemoryTenantSession(self, tenant_id)
                except BaseException:
                    self._restore(tenant_id, saved_tenant, saved_subscribers)
                    raise
        finally:
            self._lock_users[tenant_id] -= 1
            if not self._lock_users[tenant_id]:
                del self._lock_users[tenant_id]
                del self._locks[tenant_id]

    def _restore(
        self,
        tenant_id: str,
        tenant: Optional[TenantAccount],
        subscribers: Dict[int, SubscriberRecord],
    ) -> None:
        if tenant is None:
            self.tenants.pop(tenant_id, None)
        else:
            self.tenants[tenant_id] = tenant
        for sid in [sid for sid, s in self.subscribers.items() if s.tenant_id == tenant_id]:
            del self.subscribers[sid]
        self.subscribers.update(subscribers)
        logger.warning(f"Rolled back tenant session for {tenant_id}", extra={"tenant_id": tenant_id})
