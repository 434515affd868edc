"""
Rate Limiting Tests

Tests that rate limiting is properly configured to prevent abuse.

Security Requirements:
- Default limit applies to every endpoint (RATE_LIMIT_DEFAULT)
- 429 status code returned when limit exceeded
- Limiter can be switched off (test suite, local dev)
"""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.config import settings
from app.core.middleware import configure_rate_limiting


class TestRateLimitConfiguration:
    """Test rate limiting configuration."""

    def test_rate_limiter_configured(self):
        from app.main import app

        assert app.state.limiter is not None

    def test_disabled_in_tests(self):
        from app.main import app

        assert app.state.limiter.enabled is False


class TestDefaultRateLimits:
    """Default limit enforced by SlowAPIMiddleware."""

    def _app(self, monkeypatch, limit="2/minute"):
        monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
        monkeypatch.setattr(settings, "RATE_LIMIT_DEFAULT", limit)

        app = FastAPI()
        configure_rate_limiting(app)

        @app.get("/ping")
        async def ping():
            return {"ok": True}

        return app

    def test_429_when_limit_exceeded(self, monkeypatch):
        client = TestClient(self._app(monkeypatch))

        assert client.get("/ping").status_code == 200
        assert client.get("/ping").status_code == 200
        assert client.get("/ping").status_code == 429

    def test_rate_limit_headers_present(self, monkeypatch):
        client = TestClient(self._app(monkeypatch, limit="10/minute"))

        response = client.get("/ping")

        assert response.headers["X-RateLimit-Limit"] == "10"
        assert response.headers["X-RateLimit-Remaining"] == "9"
