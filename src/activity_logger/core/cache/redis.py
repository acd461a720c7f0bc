"""Redis client configuration and connection management.

Provides an async Redis client with connection pooling, shared by the
log cache, the schema-probe cache and the recorder option store.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from activity_logger.config import settings
from activity_logger.core.cache.serializers import deserialize, serialize


class RedisPoolHolder:
    """Holds the process-wide connection pool."""

    pool: ConnectionPool | None = None


def _get_pool() -> ConnectionPool:
    """Get or create the Redis connection pool."""
    if RedisPoolHolder.pool is None:
        RedisPoolHolder.pool = ConnectionPool.from_url(
            str(settings.redis_url),
            max_connections=50,
            decode_responses=True,
        )
    return RedisPoolHolder.pool


@asynccontextmanager
async def redis_client() -> AsyncGenerator[redis.Redis, None]:  # type: ignore[type-arg]
    """Context manager for a pooled Redis client.

    Usage:
        async with redis_client() as client:
            await client.set("key", "value")
    """
    client = redis.Redis(connection_pool=_get_pool())
    try:
        yield client
    finally:
        await client.aclose()


async def close_redis_pool() -> None:
    """Close the Redis connection pool.

    Call this during application shutdown.
    """
    if RedisPoolHolder.pool is not None:
        await RedisPoolHolder.pool.disconnect()
        RedisPoolHolder.pool = None


class RedisCache:
    """High-level Redis cache interface.

    Keys are namespaced with ``prefix``. A ready-made client may be
    injected (tests hand in a fakeredis client); otherwise every call
    borrows one from the shared pool.
    """

    def __init__(
        self,
        prefix: str = "",
        client: "redis.Redis | None" = None,  # type: ignore[type-arg]
    ) -> None:
        self.prefix = prefix
        self._client = client

    def _key(self, key: str) -> str:
        """Generate prefixed key."""
        return f"{self.prefix}{key}" if self.prefix else key

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[redis.Redis, None]:  # type: ignore[type-arg]
        """Yield the injected client, or a pooled one."""
        if self._client is not None:
            yield self._client
            return
        async with redis_client() as client:
            yield client

    async def get(self, key: str) -> str | None:
        async with self.connection() as client:
            return await client.get(self._key(key))

    async def set(
        self,
        key: str,
        value: str,
        ttl_seconds: int | None = None,
    ) -> None:
        """Set a value, with an optional TTL in seconds."""
        async with self.connection() as client:
            await client.set(self._key(key), value, ex=ttl_seconds or None)

    async def delete(self, *keys: str) -> int:
        """Delete keys.

        Returns:
            Number of keys that existed and were removed
        """
        if not keys:
            return 0
        async with self.connection() as client:
            return await client.delete(*(self._key(key) for key in keys))

    async def delete_pattern(self, pattern: str) -> int:
        """Unlink every key matching a glob ``pattern`` (relative to the prefix).

        Walks the keyspace with SCAN rather than KEYS.

        Returns:
            Number of keys removed
        """
        removed = 0
        async with self.connection() as client:
            batch: list[str] = []
            async for key in client.scan_iter(match=self._key(pattern), count=500):
                batch.append(key)
                if len(batch) >= 500:
                    removed += await client.unlink(*batch)
                    batch.clear()
            if batch:
                removed += await client.unlink(*batch)
        return removed

    async def incr(self, key: str) -> int:
        """Atomically increment an integer counter and return the new value."""
        async with self.connection() as client:
            return await client.incr(self._key(key))

    async def get_value(self, key: str) -> Any | None:
        """Get a serialized value.

        Returns:
            The decoded value, or None on a miss
        """
        data = await self.get(key)
        if data is None:
            return None
        return deserialize(data)

    async def set_value(
        self,
        key: str,
        value: Any,
        ttl_seconds: int | None = None,
    ) -> None:
        """Serialize and store a value."""
        await self.set(key, serialize(value), ttl_seconds)

    async def ttl(self, key: str) -> int:
        """Remaining time-to-live in seconds (-1 without expiry, -2 when absent)."""
        async with self.connection() as client:
            return await client.ttl(self._key(key))

    async def ping(self) -> bool:
        async with self.connection() as client:
            return bool(await client.ping())


def get_cache() -> RedisCache:
    """Namespace shared by the log cache, schema probes and recorder options."""
    return RedisCache(prefix=settings.cache_prefix)
