"""
Storage interface used by the billing, subscriber and campaign services.

All reads and writes for a tenant happen inside `Storage.tenant_session()`:
- It is the single serialization point per tenant (row lock / asyncio lock)
- It is one transaction: an exception inside the block rolls everything back

Services only see TenantSession, so swapping the in-memory store for the
SQL one does not change any business logic.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any, Dict, List, Optional

from app.models.accounts import (
    SubscriberPatch,
    SubscriberRecord,
    SubscriberStatus,
    TenantAccount,
    TenantPatch,
)


class TenantSession(ABC):
    """Serialized, transactional view over one tenant's data."""

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id

    # Tenant

    @abstractmethod
    async def load_tenant(self) -> TenantAccount:
        """Return the tenant, creating it with free-plan defaults if missing."""

    @abstractmethod
    async def patch_tenant(self, patch: TenantPatch) -> TenantAccount:
        """Apply the explicitly set fields of `patch` and return the new state."""

    # Subscribers

    @abstractmethod
    async def add_subscriber(
        self,
        email: str,
        name: str = "",
        status: SubscriberStatus = SubscriberStatus.ACTIVE,
    ) -> Optional[SubscriberRecord]:
        """Insert a subscriber; returns None when (tenant, email) already exists."""

    @abstractmethod
    async def get_subscriber(self, subscriber_id: int) -> Optional[SubscriberRecord]:
        """Subscriber by id, only if it belongs to this tenant."""

    @abstractmethod
    async def find_subscriber(self, email: str) -> Optional[SubscriberRecord]:
        """Subscriber by email within this tenant."""

    @abstractmethod
    async def list_subscribers(
        self,
        status: Optional[SubscriberStatus] = None,
        vip_only: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[SubscriberRecord]:
        """Newest first."""

    @abstractmethod
    async def count_subscribers(
        self,
        status: Optional[SubscriberStatus] = None,
        vip_only: bool = False,
    ) -> int:
        ...

    @abstractmethod
    async def update_subscriber(self, subscriber_id: int, patch: SubscriberPatch) -> Optional[SubscriberRecord]:
        """Returns None when the subscriber is not this tenant's."""

    @abstractmethod
    async def delete_subscriber(self, subscriber_id: int) -> Optional[SubscriberRecord]:
        """Hard delete; returns the deleted row or None when not found."""

    async def sync_contacts_count(self) -> TenantAccount:
        """Set contacts_count to the true subscriber row count."""
        total = await self.count_subscribers()
        return await self.patch_tenant(TenantPatch(contacts_count=total))


class Storage(ABC):
    """Factory for tenant sessions plus lifecycle hooks."""

    name = "storage"

    @abstractmethod
    def tenant_session(self, tenant_id: str) -> AbstractAsyncContextManager[TenantSession]:
        """Open a locked, transactional scope for `tenant_id`."""

    async def check(self) -> Dict[str, Any]:
        """Health probe."""
        return {"status": "healthy", "backend": self.name}

    async def close(self) -> None:
        return None
