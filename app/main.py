"""
Ledge Marketing API - Main FastAPI Application

Entry point for the application. Mounts all module routers.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.analytics import router as analytics_router
from app.api.campaigns import router as campaigns_router
from app.api.deps import build_storage, get_email_sender, get_storage
from app.api.subscribers import router as subscribers_router
from app.api.users import router as users_router
from app.api.webhooks import router as webhook_router
from app.core.config import settings
from app.core.database import init_db
from app.core.email_service import EmailSender, build_email_sender
from app.core.errors import register_exception_handlers
from app.core.middleware import add_security_headers, configure_rate_limiting
from app.storage.base import Storage

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan events.

    Runs on startup and shutdown.
    """
    logger.info(f"Starting {settings.APP_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    from app.core.sentry import init_sentry
    init_sentry()

    # Create tables only in development - use Alembic in production
    if settings.ENVIRONMENT == "development" and settings.uses_database:
        await init_db()

    logger.info(
        f"Storage: {app.state.storage.name}, email: {'demo' if app.state.email_sender.demo else 'postmark'}"
    )

    yield

    logger.info("Shutting down...")
    await app.state.storage.close()


app = FastAPI(
    title=settings.APP_NAME,
    description="Email marketing backend for Whop creators - plan limits, subscriber lists and campaign sends",
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,  # Disable docs in production
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# Injected capabilities, chosen once per process
app.state.storage = build_storage(settings)
app.state.email_sender = build_email_sender(settings)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Rate limiting, then security headers on every response (including 429s)
limiter = configure_rate_limiting(app)
add_security_headers(app)

register_exception_handlers(app)

app.include_router(users_router, prefix="/api/user", tags=["users"])
app.include_router(campaigns_router, prefix="/api", tags=["campaigns"])
app.include_router(subscribers_router, prefix="/api/subscribers", tags=["subscribers"])
app.include_router(analytics_router, prefix="/api/analytics", tags=["analytics"])
app.include_router(webhook_router, prefix="/api/webhooks", tags=["webhooks"])


@app.get("/")
async def root():
    """Service info and endpoint index."""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "endpoints": {
            "health": "GET /health",
            "verify_user": "GET /api/user/{tenantId}/verify",
            "update_user": "POST /api/user/update",
            "send_email": "POST /api/send-email",
            "subscribers": "GET|POST /api/subscribers",
            "bulk_subscribers": "POST /api/subscribers/bulk",
            "subscriber": "PUT|DELETE /api/subscribers/{id}",
            "subscriber_vip": "PUT /api/subscribers/{id}/vip",
            "analytics": "GET /api/analytics",
            "whop_webhook": "POST /api/webhooks/whop",
        },
    }


@app.get("/health")
@app.get("/api/health")
async def health_check(
    storage: Storage = Depends(get_storage),
    sender: EmailSender = Depends(get_email_sender),
):
    """
    Health check endpoint for monitoring.

    Used by Railway, Docker, and load balancers.

    Status codes:
    - healthy: storage reachable
    - unhealthy: storage down
    """
    from app.core.health import get_health_metrics

    metrics = await get_health_metrics(storage, sender)

    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        **metrics,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=5000,
        reload=settings.DEBUG,
    )
