"""
Sentry error monitoring for the marketing API.

Reported:
- Unhandled exceptions surfaced through FastAPI
- ERROR-level log records
- Postmark delivery failures and webhook processing errors, with tenant context

Campaign HTML, API keys and webhook signatures are scrubbed in before_send.
"""

import logging

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from app.core.config import settings

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"

# Keys whose values never leave the process
SENSITIVE_KEYS = [
    "token",
    "password",
    "secret",
    "api_key",
    "authorization",
    "signature",
    "html",
    "body",
]


def init_sentry():
    """
    Initialize Sentry error monitoring.

    Only initializes if SENTRY_DSN is configured.
    """
    if not settings.SENTRY_DSN:
        logger.info("Sentry DSN not configured - error monitoring disabled")
        return

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        release=f"ledge-marketing-api@{settings.APP_VERSION}",

        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR,
            ),
        ],

        traces_sample_rate=0.1 if settings.is_production else 1.0,
        sample_rate=1.0,

        # Privacy Settings
        send_default_pii=False,
        max_breadcrumbs=50,

        before_send=filter_sensitive_data,
    )

    logger.info(f"Sentry initialized - environment: {settings.ENVIRONMENT}")


def _is_sensitive(key) -> bool:
    return any(sensitive in str(key).lower() for sensitive in SENSITIVE_KEYS)


def _redact(obj):
    if isinstance(obj, dict):
        for key in list(obj.keys()):
            if _is_sensitive(key):
                obj[key] = REDACTED
            else:
                _redact(obj[key])
    elif isinstance(obj, list):
        for item in obj:
            _redact(item)


def filter_sensitive_data(event, hint):
    """
    Filter sensitive data before sending to Sentry.

    Removes API keys, webhook secrets and signatures, and campaign HTML
    (subscriber-facing content) from extras, contexts and request data.

    Args:
        event: Sentry event dict
        hint: Additional context

    Returns:
        Modified event
    """
    for section in ("extra", "contexts"):
        if event.get(section):
            _redact(event[section])

    request = event.get("request")
    if isinstance(request, dict):
        if "data" in request:
            request["data"] = REDACTED
        if isinstance(request.get("headers"), dict):
            _redact(request["headers"])

    return event


def capture_business_error(error: Exception, context: dict, level: str = "error"):
    """
    Report a handled failure to Sentry and the log with tenant context.

    Callers: campaign sends when Postmark fails, and the Whop webhook route
    when reconciliation raises. Context keys matching SENSITIVE_KEYS are
    dropped before anything leaves the process.
    """
    tags = {k: v for k, v in context.items() if not _is_sensitive(k)}

    sentry_sdk.capture_exception(error, level=level, extras=tags)
    logger.error(f"{tags.get('operation', 'operation')} failed: {error}", extra=tags, exc_info=error)
