"""Email delivery for campaign sends.

Two senders share the EmailSender interface:
- PostmarkEmailSender: real delivery through the Postmark batch API
- DemoEmailSender: logs and returns a synthetic id (EMAIL_ENABLED off or no key)

build_email_sender() picks one once at startup; routes receive it through a
FastAPI dependency instead of checking for a missing client.

Security notes:
- All email headers are sanitized to prevent injection attacks
- Postmark API key stored in environment variables only
- Email addresses validated before sending
"""

import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import html2text
from postmarker.core import PostmarkClient

from app.core.config import Settings

logger = logging.getLogger(__name__)

# Postmark accepts at most 500 messages per batch call
POSTMARK_BATCH_LIMIT = 500

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


class EmailDeliveryError(Exception):
    """The provider rejected the send, failed, or timed out."""


@dataclass
class OutgoingEmail:
    """One campaign send: same content to every recipient."""
    recipients: List[str]
    subject: str
    html: str
    campaign_name: str
    email_type: str
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class SendResult:
    email_id: str
    demo: bool = False
    message_ids: List[str] = field(default_factory=list)


def sanitize_email_header(value: str) -> str:
    """
    Sanitize email header to prevent injection attacks.

    Removes newlines, carriage returns, null bytes, and control characters
    that could be used for header injection.

    Example:
        >>> sanitize_email_header("user@example.com\\r\\nBcc: attacker@evil.com")
        'user@example.comBcc: attacker@evil.com'
    """
    # Remove newlines, carriage returns, null bytes
    sanitized = re.sub(r'[\r\n\0]', '', value)

    # Remove other control characters
    sanitized = re.sub(r'[\x00-\x1f\x7f]', '', sanitized)

    return sanitized.strip()


def validate_email(email: str) -> bool:
    """Check an address has the usual local@domain.tld shape."""
    return bool(EMAIL_PATTERN.match(email or ""))


def html_to_text(html_body: str) -> str:
    """Plain-text alternative for an HTML body."""
    h = html2text.HTML2Text()
    h.ignore_links = False
    h.ignore_images = True
    h.body_width = 78
    return h.handle(html_body)


class EmailSender(ABC):
    """Capability for delivering a campaign to its recipients."""

    demo = False

    @abstractmethod
    async def send(self, email: OutgoingEmail) -> SendResult:
        """Deliver `email`; raise EmailDeliveryError on any failure."""


class DemoEmailSender(EmailSender):
    """Pretends to send. Used when delivery is disabled."""

    demo = True

    async def send(self, email: OutgoingEmail) -> SendResult:
        logger.info(
            f"[DEMO] Would send {email.email_type} email to {len(email.recipients)} recipients",
            extra={"campaign": email.campaign_name, "recipients": len(email.recipients)}
        )
        return SendResult(email_id=f"demo_{int(time.time() * 1000)}", demo=True)


class PostmarkEmailSender(EmailSender):
    """Sends one message per recipient through Postmark's batch endpoint."""

    def __init__(
        self,
        server_token: str,
        from_email: str,
        timeout_seconds: float = 15.0,
        client: Optional[PostmarkClient] = None,
    ):
        if not server_token:
            raise ValueError("POSTMARK_API_KEY not configured in environment")
        self.from_email = sanitize_email_header(from_email)
        self.timeout_seconds = timeout_seconds
        self._client = client or PostmarkClient(server_token=server_token)

    def _build_batch(self, email: OutgoingEmail) -> List[dict]:
        subject = sanitize_email_header(email.subject)
        text_body = html_to_text(email.html)
        metadata = {"campaign": email.campaign_name, "type": email.email_type, **email.tags}

        batch = []
        for recipient in email.recipients:
            to_sanitized = sanitize_email_header(recipient)
            if not validate_email(to_sanitized):
                raise EmailDeliveryError(f"Invalid recipient address: {recipient!r}")
            batch.append({
                "From": self.from_email,
                "To": to_sanitized,
                "Subject": subject,
                "HtmlBody": email.html,
                "TextBody": text_body,
                "Tag": sanitize_email_header(email.campaign_name)[:1000],
                "Metadata": metadata,
                "TrackOpens": True,
                "TrackLinks": "HtmlOnly",
            })
        return batch

    def _send_sync(self, batch: Sequence[dict]) -> List[str]:
        message_ids: List[str] = []
        failed: List[str] = []
        for start in range(0, len(batch), POSTMARK_BATCH_LIMIT):
            chunk = batch[start:start + POSTMARK_BATCH_LIMIT]
            responses = self._client.emails.send_batch(*chunk)
            for response in responses:
                if response.get("ErrorCode", 0) == 0:
                    message_ids.append(response.get("MessageID", ""))
                else:
                    failed.append(f"{response.get('To')}: {response.get('Message')}")
        if failed:
            raise EmailDeliveryError(f"Postmark rejected {len(failed)} message(s): {failed[:5]}")
        return message_ids

    async def send(self, email: OutgoingEmail) -> SendResult:
        batch = self._build_batch(email)
        try:
            # Postmark client is synchronous - keep it off the event loop
            message_ids = await asyncio.wait_for(
                asyncio.to_thread(self._send_sync, batch),
                timeout=self.timeout_seconds,
            )
        except EmailDeliveryError:
            raise
        except asyncio.TimeoutError as e:
            raise EmailDeliveryError(f"Postmark send timed out after {self.timeout_seconds}s") from e
        except Exception as e:
            raise EmailDeliveryError(f"Postmark send failed: {e}") from e

        logger.info(
            f"Email sent via Postmark to {len(message_ids)} recipients",
            extra={"campaign": email.campaign_name, "recipients": len(message_ids)}
        )
        return SendResult(email_id=message_ids[0] if message_ids else "", message_ids=message_ids)


def build_email_sender(settings: Settings) -> EmailSender:
    """Choose the sender once at process start."""
    if settings.EMAIL_ENABLED and not settings.POSTMARK_API_KEY:
        logger.warning("EMAIL_ENABLED is true but POSTMARK_API_KEY is missing. Running in demo mode.")
    if not settings.email_live:
        logger.info("Email sending disabled (demo mode)")
        return DemoEmailSender()

    logger.info("Postmark email sender initialized")
    return PostmarkEmailSender(
        server_token=settings.POSTMARK_API_KEY,
        from_email=settings.FROM_EMAIL,
        timeout_seconds=settings.EMAIL_SEND_TIMEOUT_SECONDS,
    )
