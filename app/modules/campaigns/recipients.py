"""Recipient resolution for campaign sends.

Decides *who* a send goes to; the quota engine only cares how many.

- explicit `to` (string or list) wins, as the dashboard sends it
- recipientType 'all'    -> active subscribers
- recipientType 'vip'    -> active VIP subscribers
- recipientType 'custom' -> the customEmails list
"""

from enum import Enum
from typing import Iterable, List, Optional

from app.models.accounts import SubscriberStatus
from app.modules.subscribers.service import normalize_email
from app.storage.base import TenantSession


class RecipientType(str, Enum):
    ALL = "all"
    VIP = "vip"
    CUSTOM = "custom"


class NoRecipientsError(ValueError):
    """The recipient selection resolved to nobody."""


def dedupe_addresses(addresses: Iterable[str]) -> List[str]:
    """Validate and normalize addresses, keeping first-seen order."""
    seen = set()
    result = []
    for address in addresses:
        if not address or not str(address).strip():
            continue
        email = normalize_email(str(address))
        if email not in seen:
            seen.add(email)
            result.append(email)
    return result


async def resolve_recipients(
    session: TenantSession,
    recipient_type: Optional[RecipientType] = None,
    to: Optional[List[str]] = None,
    custom_emails: Optional[List[str]] = None,
) -> List[str]:
    """
    Build the recipient list for a send.

    Raises:
        InvalidEmailError: an explicit address is malformed
        NoRecipientsError: nothing to send to
    """
    if to:
        recipients = dedupe_addresses(to)
    elif recipient_type is RecipientType.CUSTOM:
        recipients = dedupe_addresses(custom_emails or [])
    elif recipient_type in (RecipientType.ALL, RecipientType.VIP):
        subscribers = await session.list_subscribers(
            status=SubscriberStatus.ACTIVE,
            vip_only=recipient_type is RecipientType.VIP,
        )
        recipients = dedupe_addresses(s.email for s in subscribers)
    else:
        raise NoRecipientsError("Specify 'to' or a recipientType of all, vip or custom")

    if not recipients:
        raise NoRecipientsError("No recipients to send to")
    return recipients

