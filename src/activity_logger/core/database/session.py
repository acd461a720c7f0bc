"""Async database engine and session management.

The engine is built on first use so that importing the package never
opens a connection or requires a driver for an unused backend.
"""

from functools import lru_cache
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from activity_logger.config import settings


@lru_cache
def get_engine() -> AsyncEngine:
    """Create the process-wide async engine."""
    options: dict[str, Any] = {
        "echo": settings.database_echo,
        "pool_pre_ping": True,  # Verify connections before use
    }
    if not settings.async_database_url.startswith("sqlite"):
        options["pool_size"] = settings.database_pool_size
        options["max_overflow"] = settings.database_max_overflow
    return create_async_engine(settings.async_database_url, **options)


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the process-wide engine.

    Each store operation opens its own short session and commits it
    before returning, so cache invalidation always follows the commit.
    """
    return build_session_factory(get_engine())


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def dispose_engine() -> None:
    """Dispose the engine's pool. Call during application shutdown."""
    if get_engine.cache_info().currsize:
        await get_engine().dispose()
