"""Async engine and session factory for the pricing rule store."""

from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool

from pricing_engine.core.config import settings


def build_engine(url: Optional[str] = None, pooled: bool = True) -> AsyncEngine:
    """Create an engine for *url* (``DATABASE_URL`` by default).

    One-shot scripts and tests pass ``pooled=False`` so no connection
    outlives the event loop that opened it.
    """
    url = url or settings.DATABASE_URL
    if not pooled:
        return create_async_engine(url, echo=settings.DEBUG, poolclass=NullPool)
    return create_async_engine(
        url,
        echo=settings.DEBUG,
        poolclass=AsyncAdaptedQueuePool,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_recycle=settings.DB_POOL_RECYCLE_SECONDS,
        pool_pre_ping=True,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    # Services build response schemas from records after commit
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine()
AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; services own commit and rollback."""
    async with AsyncSessionLocal() as session:
        yield session
