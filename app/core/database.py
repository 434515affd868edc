"""
Database connection and session management.

Uses SQLAlchemy with async support (asyncpg driver). When DATABASE_URL is
not configured the app runs on the in-memory store and no engine is created.
"""

from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from app.core.config import settings

# Base class for all models
Base = declarative_base()


def _connect_args(url: str) -> Dict[str, Any]:
    """Bound connect/command time for asyncpg so a stuck database can't hang a request."""
    if url.startswith("postgresql+asyncpg://"):
        return {
            "timeout": settings.DATABASE_TIMEOUT_SECONDS,
            "command_timeout": settings.DATABASE_TIMEOUT_SECONDS,
        }
    return {}


def create_engine_for(url: str) -> AsyncEngine:
    """Create an async engine with pool settings for the given URL."""
    kwargs: Dict[str, Any] = {
        "echo": settings.DEBUG and not settings.is_production,
        "pool_pre_ping": True,
        "connect_args": _connect_args(url),
    }
    if url.startswith("postgresql"):
        kwargs.update(pool_size=10, max_overflow=20)
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Async engine for main app (asyncpg)
async_engine: Optional[AsyncEngine] = (
    create_engine_for(settings.DATABASE_URL) if settings.DATABASE_URL else None
)

# Async session factory
AsyncSessionLocal: Optional[async_sessionmaker] = (
    create_session_factory(async_engine) if async_engine is not None else None
)


async def init_db():
    """
    Initialize database (create tables).

    For production, use Alembic migrations instead.
    This is useful for testing and local development.
    """
    if async_engine is None:
        return

    # Make sure models are registered on Base.metadata
    import app.models  # noqa: F401

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Close database connections gracefully."""
    if async_engine is not None:
        await async_engine.dispose()
