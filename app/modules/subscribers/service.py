"""
Subscriber store - a tenant's contact list.

All operations run inside a tenant session (see app.storage.base), so
bulk imports are all-or-nothing against storage failures and the
contact-count resync is serialized with sends and webhooks.

When rows are inserted or deleted, contacts_count is recomputed from the
real row count (never incremented/decremented). Duplicate adds, name,
status and VIP edits leave it alone, so a send-raised count stays put.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from app.core.email_service import sanitize_email_header, validate_email
from app.models.accounts import SubscriberPatch, SubscriberRecord, SubscriberStatus
from app.modules.billing.plans import Plan, lookup_plan
from app.storage.base import TenantSession

logger = logging.getLogger(__name__)


class InvalidEmailError(ValueError):
    """Address does not look like local@domain.tld."""


class ContactLimitError(Exception):
    """Adding these contacts would exceed the plan's contact limit."""

    def __init__(self, message: str, current: int, limit: int):
        super().__init__(message)
        self.current = current
        self.limit = limit


class SubscriberNotFoundError(LookupError):
    """No subscriber with that id belongs to the tenant."""


@dataclass
class BulkAddResult:
    added: List[SubscriberRecord] = field(default_factory=list)
    skipped: int = 0

    @property
    def added_count(self) -> int:
        return len(self.added)


def normalize_email(email: str) -> str:
    """Sanitize, lowercase and validate an address."""
    cleaned = sanitize_email_header(email or "").lower()
    if not validate_email(cleaned):
        raise InvalidEmailError(f"Invalid email address: {email!r}")
    return cleaned


class SubscriberService:
    """Subscriber operations for the tenant bound to `session`."""

    def __init__(self, session: TenantSession):
        self.session = session

    async def _plan(self) -> Plan:
        tenant = await self.session.load_tenant()
        return lookup_plan(tenant.plan)

    async def remaining_slots(self) -> Tuple[int, int, int]:
        """(current row count, contact limit, slots left)."""
        plan = await self._plan()
        current = await self.session.count_subscribers()
        return current, plan.contact_limit, max(0, plan.contact_limit - current)

    async def add(self, email: str, name: str = "", enforce_limit: bool = True) -> Tuple[SubscriberRecord, bool]:
        """
        Add a subscriber; a duplicate (tenant, email) is a no-op.

        Returns:
            (record, created) - created is False when the email already existed

        Raises:
            InvalidEmailError: malformed address
            ContactLimitError: tenant already at its contact limit
        """
        email = normalize_email(email)

        existing = await self.session.find_subscriber(email)
        if existing is not None:
            return existing, False

        if enforce_limit:
            current, limit, remaining = await self.remaining_slots()
            if remaining < 1:
                raise ContactLimitError(
                    f"Contact limit reached. You have {current}/{limit} contacts.",
                    current=current,
                    limit=limit,
                )

        record = await self.session.add_subscriber(email, (name or "").strip())
        if record is None:
            # Lost a race with an identical insert; keep the add idempotent
            record = await self.session.find_subscriber(email)
            created = False
        else:
            created = True
            await self.session.sync_contacts_count()

        logger.info(
            f"Subscriber {'added' if created else 'already present'} for tenant {self.session.tenant_id}",
            extra={"tenant_id": self.session.tenant_id, "subscriber_id": record.id}
        )
        return record, created

    async def bulk_add(self, rows: Iterable[Dict[str, str]]) -> BulkAddResult:
        """
        Import many subscribers at once.

        The whole submission is rejected when it is larger than the slots
        left on the plan. Rows that already exist are skipped, not errors.
        The caller's tenant session makes the batch atomic.

        Raises:
            InvalidEmailError: any row has a malformed address (nothing is written)
            ContactLimitError: more rows than remaining slots
        """
        rows = list(rows)
        normalized = [(normalize_email(row.get("email", "")), (row.get("name") or "").strip()) for row in rows]

        current, limit, remaining = await self.remaining_slots()
        if len(normalized) > remaining:
            raise ContactLimitError(
                f"Cannot import {len(normalized)} subscribers. "
                f"You have {remaining} contact slots remaining ({current}/{limit}).",
                current=current,
                limit=limit,
            )

        result = BulkAddResult()
        for email, name in normalized:
            record = await self.session.add_subscriber(email, name)
            if record is None:
                result.skipped += 1
            else:
                result.added.append(record)

        if result.added:
            await self.session.sync_contacts_count()
        logger.info(
            f"Bulk import for tenant {self.session.tenant_id}: "
            f"{result.added_count} added, {result.skipped} skipped",
            extra={
                "tenant_id": self.session.tenant_id,
                "added": result.added_count,
                "skipped": result.skipped,
            }
        )
        return result

    async def list_subscribers(
        self,
        status: Optional[SubscriberStatus] = None,
        vip_only: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[SubscriberRecord]:
        return await self.session.list_subscribers(status=status, vip_only=vip_only, limit=limit, offset=offset)

    async def count(self, status: Optional[SubscriberStatus] = None) -> int:
        return await self.session.count_subscribers(status=status)

    async def stats(self) -> Dict[str, int]:
        return {
            "total": await self.session.count_subscribers(),
            "active": await self.session.count_subscribers(status=SubscriberStatus.ACTIVE),
            "unsubscribed": await self.session.count_subscribers(status=SubscriberStatus.UNSUBSCRIBED),
            "vip": await self.session.count_subscribers(vip_only=True),
        }

    async def update(self, subscriber_id: int, patch: SubscriberPatch) -> SubscriberRecord:
        record = await self.session.update_subscriber(subscriber_id, patch)
        if record is None:
            raise SubscriberNotFoundError(subscriber_id)
        return record

    async def delete(self, subscriber_id: int) -> SubscriberRecord:
        record = await self.session.delete_subscriber(subscriber_id)
        if record is None:
            raise SubscriberNotFoundError(subscriber_id)
        await self.session.sync_contacts_count()
        logger.info(
            f"Subscriber {subscriber_id} deleted for tenant {self.session.tenant_id}",
            extra={"tenant_id": self.session.tenant_id, "subscriber_id": subscriber_id}
        )
        return record

    async def toggle_vip(self, subscriber_id: int, value: Optional[bool] = None) -> SubscriberRecord:
        """Set the VIP flag to `value`, or flip it when no value is given."""
        record = await self.session.get_subscriber(subscriber_id)
        if record is None:
            raise SubscriberNotFoundError(subscriber_id)
        is_vip = (not record.is_vip) if value is None else bool(value)
        return await self.update(subscriber_id, SubscriberPatch(is_vip=is_vip))
