"""Pytest configuration and shared fixtures.

Tests run against a file-backed SQLite database (aiosqlite) and an
in-process fake Redis, so no external services are needed.
"""

from collections.abc import AsyncGenerator

import fakeredis
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from activity_logger.core.cache import get_cache
from activity_logger.core.cache.redis import RedisCache
from activity_logger.core.database import Base, build_session_factory, get_session_factory
from activity_logger.main import create_app
from activity_logger.modules.activity_log.cache import ActivityLogCache, PendingInvalidations

# Import all models to ensure they're registered with Base.metadata
from activity_logger.modules.activity_log.models import LogEntry  # noqa: F401
from activity_logger.modules.activity_log.repos import EventStore
from activity_logger.modules.activity_log.services import ActivityLogService


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'activity.db'}"


@pytest.fixture
async def engine(database_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine with the activity log table in place."""
    engine = create_async_engine(database_url, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
async def redis(redis_server: fakeredis.FakeServer) -> AsyncGenerator[fakeredis.FakeAsyncRedis, None]:
    """In-process Redis double."""
    client = fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def cache(redis: fakeredis.FakeAsyncRedis) -> RedisCache:
    """Provide a RedisCache instance with test prefix."""
    PendingInvalidations.prefixes.clear()
    return RedisCache(prefix="test:", client=redis)


@pytest.fixture
def redis_down(redis_server: fakeredis.FakeServer, redis: fakeredis.FakeAsyncRedis):
    """Make every call to the fake Redis fail with a connection error."""
    redis_server.connected = False
    yield redis_server
    redis_server.connected = True


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession], cache: RedisCache) -> EventStore:
    return EventStore(session_factory, schema_cache=cache, timeout_seconds=5)


@pytest.fixture
def log_cache(cache: RedisCache) -> ActivityLogCache:
    return ActivityLogCache(cache, base_delay=0)


@pytest.fixture
def service(store: EventStore, log_cache: ActivityLogCache) -> ActivityLogService:
    return ActivityLogService(store, log_cache)


@pytest.fixture
async def app(session_factory: async_sessionmaker[AsyncSession], cache: RedisCache):
    """Create test application instance."""
    application = create_app()

    application.dependency_overrides[get_session_factory] = lambda: session_factory
    application.dependency_overrides[get_cache] = lambda: cache

    yield application

    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Provide async HTTP client for API testing."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
