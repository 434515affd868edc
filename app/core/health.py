"""
Health check utilities for monitoring application components.

Checks:
- Storage backend (PostgreSQL connectivity, or the in-memory demo store)
- Email provider mode (Postmark live vs demo)
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from app.core.config import settings
from app.core.email_service import EmailSender
from app.storage.base import Storage

logger = logging.getLogger(__name__)


async def check_storage(storage: Storage) -> Dict[str, Any]:
    """
    Check the storage backend.

    Returns:
        Dict with status, backend name, latency and error (if any)
    """
    result = await storage.check()
    if result.get("status") != "healthy":
        logger.warning(f"Storage health check failed: {result.get('error')}")
    return result


def check_email_provider(sender: EmailSender) -> Dict[str, Any]:
    """
    Report the email provider mode.

    Note: This is a lightweight check - it doesn't call Postmark, it just
    reports whether sends are real or simulated.
    """
    if sender.demo:
        return {
            "status": "healthy",
            "mode": "demo",
            "message": "Email sending simulated (EMAIL_ENABLED off or POSTMARK_API_KEY missing)",
        }
    return {"status": "healthy", "mode": "postmark"}


async def get_health_metrics(storage: Storage, sender: EmailSender) -> Dict[str, Any]:
    """
    Get comprehensive health metrics.

    Status:
    - healthy: all components operational
    - unhealthy: storage is unreachable
    """
    storage_health = await check_storage(storage)
    email_health = check_email_provider(sender)

    overall = "healthy" if storage_health.get("status") == "healthy" else "unhealthy"

    return {
        "status": overall,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.ENVIRONMENT,
        "emailEnabled": not sender.demo,
        "storage": storage_health,
        "email": email_health,
    }
