"""Security middleware for the JSON API.

Rate limiting (slowapi) and a fixed response header set. The API is embedded
in the Whop dashboard, so framing is restricted to Whop origins rather than
denied outright.
"""

from typing import Callable, Dict

from fastapi import FastAPI, Request, Response
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import settings

# JSON only; the dashboard iframe lives on whop.com
API_CSP = "; ".join([
    "default-src 'none'",
    "frame-ancestors 'self' https://whop.com https://*.whop.com",
    "base-uri 'none'",
])

API_SECURITY_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
    "Content-Security-Policy": API_CSP,
}

HSTS_VALUE = "max-age=31536000; includeSubDomains"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Stamp API_SECURITY_HEADERS (plus HSTS in production) on every response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers.update(API_SECURITY_HEADERS)
        if settings.is_production:
            # Railway terminates TLS in front of us
            response.headers["Strict-Transport-Security"] = HSTS_VALUE

        return response


def configure_rate_limiting(app: FastAPI) -> Limiter:
    """
    Attach a per-client-IP limiter to the app.

    RATE_LIMIT_DEFAULT applies to every route through SlowAPIMiddleware.
    RATE_LIMIT_ENABLED=false turns it off (tests, local dev).

    Returns:
        The Limiter, stored on app.state.limiter as slowapi expects
    """
    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[settings.RATE_LIMIT_DEFAULT],
        storage_uri=settings.RATE_LIMIT_STORAGE_URI,
        strategy="fixed-window",
        headers_enabled=True,
        enabled=settings.RATE_LIMIT_ENABLED,
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    return limiter


def add_security_headers(app: FastAPI) -> None:
    app.add_middleware(SecurityHeadersMiddleware)
