"""Database session management."""

from collections.abc import AsyncGenerator
from typing import Annotated

import structlog
from fastapi import Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from planboard.config import Settings, get_settings
from planboard.db.base import Base

logger = structlog.get_logger()

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine described by settings."""
    url = str(settings.database_url)
    if url.startswith("sqlite"):
        # SQLite has no server-side pool and only knows its own isolation levels
        return create_async_engine(url, echo=settings.debug)
    return create_async_engine(
        url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_pool_timeout,
        pool_pre_ping=True,
        isolation_level=settings.database_isolation_level,
        echo=settings.debug,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used for every batch and query."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings())
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the process-wide session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = build_session_factory(get_engine())
    return _session_factory


def configure(engine: AsyncEngine) -> None:
    """Point the module at an externally created engine (tests, embedding apps)."""
    global _engine, _session_factory
    _engine = engine
    _session_factory = build_session_factory(engine)


async def init_db() -> None:
    """Initialize database connection pool."""
    settings = get_settings()
    async with get_engine().begin() as conn:
        # Simple connectivity check
        await conn.execute(text("SELECT 1"))
        if settings.create_tables:
            await conn.run_sync(Base.metadata.create_all)
            logger.info("database_tables_created")


async def close_db() -> None:
    """Close database connection pool."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session for dependency injection.

    The session starts without a transaction; the ops dispatcher opens its
    own so that a batch is a single unit of work.
    """
    async with get_session_factory()() as session:
        try:
            yield session
            if session.in_transaction():
                await session.commit()
        except Exception:
            await session.rollback()
            raise


# Type alias for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db_session)]
