"""
Shared test fixtures.

The environment is pinned before anything under app/ is imported: no
database (in-memory storage), no real email delivery, no rate limiting.
"""

import asyncio
import os

os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["EMAIL_ENABLED"] = "false"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("SENTRY_DSN", None)
os.environ.pop("WHOP_WEBHOOK_SECRET", None)

import pytest
from fastapi.testclient import TestClient

from app.core.email_service import EmailDeliveryError, EmailSender, OutgoingEmail, SendResult
from app.storage.memory import MemoryStorage


class RecordingEmailSender(EmailSender):
    """Test double that records sends and can be told to fail."""

    demo = True

    def __init__(self):
        self.sent = []
        self.fail_with = None

    async def send(self, email: OutgoingEmail) -> SendResult:
        # Yield so concurrent sends actually interleave
        await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(email)
        return SendResult(email_id=f"test_{len(self.sent)}", demo=True)

    def fail(self, message: str = "Postmark unavailable"):
        self.fail_with = EmailDeliveryError(message)


@pytest.fixture
def storage():
    """Fresh in-memory storage per test."""
    return MemoryStorage()


@pytest.fixture
def sender():
    return RecordingEmailSender()


@pytest.fixture
def client(storage, sender):
    """TestClient wired to the per-test storage and sender."""
    from app.api.deps import get_email_sender, get_storage
    from app.main import app

    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_email_sender] = lambda: sender
    yield TestClient(app)
    app.dependency_overrides.clear()
