"""Cache module for Redis-backed caching.

Provides:
- Redis client connection management
- ``RedisCache`` key/value helper with optional TTLs
- Serialization utilities for cache values
"""

from activity_logger.core.cache.redis import (
    RedisCache,
    RedisPoolHolder,
    close_redis_pool,
    get_cache,
    redis_client,
)
from activity_logger.core.cache.serializers import deserialize, serialize


__all__ = [
    "RedisCache",
    "RedisPoolHolder",
    "close_redis_pool",
    "deserialize",
    "get_cache",
    "redis_client",
    "serialize",
]
