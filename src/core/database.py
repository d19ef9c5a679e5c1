"""Async SQLAlchemy engine and session factory singletons."""

from functools import lru_cache
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from src.core.config import get_settings


@lru_cache
def get_engine() -> AsyncEngine:
    """Get cached async engine for the configured database.

    SQLite databases use NullPool so that connections are never shared
    between event loops (the test client runs its own loop).

    Returns:
        AsyncEngine: Engine bound to settings.database_url.
    """
    settings = get_settings()
    engine_kwargs: dict[str, Any] = {"echo": settings.db_echo}
    if settings.is_sqlite:
        engine_kwargs["poolclass"] = NullPool
    else:
        engine_kwargs["pool_pre_ping"] = True
        engine_kwargs["pool_size"] = settings.db_pool_size
        engine_kwargs["max_overflow"] = settings.db_max_overflow
    return create_async_engine(settings.database_url, **engine_kwargs)


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get cached session factory.

    Sessions do not expire objects on commit so that rows loaded inside a
    reconciliation transaction can still be read after it commits.

    Returns:
        async_sessionmaker: Factory producing AsyncSession instances.
    """
    return async_sessionmaker(get_engine(), expire_on_commit=False)


async def dispose_engine() -> None:
    """Dispose the cached engine and forget it. Call at app shutdown."""
    if get_engine.cache_info().currsize:
        await get_engine().dispose()
    get_session_factory.cache_clear()
    get_engine.cache_clear()


async def check_database_connection() -> dict[str, Any]:
    """Check if database connection is healthy.

    Returns:
        dict: Connection status with 'healthy' boolean and optional 'error' message.
    """
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        return {"healthy": True}
    except Exception as e:
        return {"healthy": False, "error": str(e)}
