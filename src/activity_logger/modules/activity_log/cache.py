"""Read cache for the activity log.

Four read shapes are cached: the full listing, the distinct usernames,
search results (keyed by query digest) and the export snapshot. None of
them expire; correctness rests on invalidation after every write.

Every key embeds an epoch counter. Invalidation is one atomic ``INCR``
of that counter, which orphans all keys built under the previous epoch,
followed by deleting the previous epoch's keys of every shape. A reader
reads the epoch before touching the store, so a reader that raced a
write can only populate a key that nobody will read again.

A bump that still fails after its retries leaves the namespace marked
pending. While it is pending, reads skip the cache and retry the bump
first, so a committed write is never hidden behind a stale snapshot.
"""

import asyncio
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

import structlog
from redis.exceptions import RedisError

from activity_logger.core.cache.redis import RedisCache
from activity_logger.core.errors import CacheUnavailableError
from activity_logger.modules.activity_log.schemas import LogEntryRead


log = structlog.get_logger()

EPOCH_KEY = "epoch"

INVALIDATION_ATTEMPTS = 3
INVALIDATION_BASE_DELAY = 0.05


class CacheShape(StrEnum):
    LOGS = "logs"
    USERNAMES = "usernames"
    SEARCH = "search"
    EXPORT = "export"


FIXED_SHAPES = (CacheShape.LOGS, CacheShape.USERNAMES, CacheShape.EXPORT)


class PendingInvalidations:
    """Cache namespaces whose last invalidation did not reach Redis."""

    prefixes: set[str] = set()


class ActivityLogCache:
    """Epoch-versioned cache in front of the event store."""

    def __init__(
        self,
        cache: RedisCache,
        attempts: int = INVALIDATION_ATTEMPTS,
        base_delay: float = INVALIDATION_BASE_DELAY,
    ) -> None:
        self.cache = cache
        self.attempts = max(attempts, 1)
        self.base_delay = base_delay

    @staticmethod
    def key(shape: CacheShape, epoch: int, digest: str | None = None) -> str:
        if shape is CacheShape.SEARCH:
            if not digest:
                raise ValueError("Search cache keys need a query digest")
            return f"{shape}:{epoch}:{digest}"
        return f"{shape}:{epoch}"

    @property
    def pending(self) -> bool:
        return self.cache.prefix in PendingInvalidations.prefixes

    async def current_epoch(self) -> int:
        value = await self.cache.get(EPOCH_KEY)
        return int(value) if value is not None else 0

    async def _settle_pending(self) -> bool:
        """Retry a pending bump once. True when the cache is safe to read."""
        if not self.pending:
            return True
        try:
            await self._bump()
        except RedisError as e:
            log.warning("activity_cache_still_pending", error=str(e))
            return False
        PendingInvalidations.prefixes.discard(self.cache.prefix)
        log.info("activity_cache_pending_invalidation_settled")
        return True

    async def _get_or_load(
        self,
        shape: CacheShape,
        loader: Callable[[], Awaitable[list[Any]]],
        digest: str | None = None,
    ) -> tuple[list[Any], bool]:
        """Return ``(rows, hit)``. The cache is populated only after a complete load."""
        if not await self._settle_pending():
            return await loader(), False

        try:
            epoch = await self.current_epoch()
            key = self.key(shape, epoch, digest)
            cached = await self.cache.get_value(key)
        except RedisError as e:
            log.warning("activity_cache_bypassed", shape=str(shape), error=str(e))
            return await loader(), False

        if cached is not None:
            return cached, True

        rows = await loader()
        try:
            await self.cache.set_value(key, rows)
        except RedisError as e:
            log.warning("activity_cache_populate_failed", shape=str(shape), error=str(e))
        return rows, False

    async def entries(
        self,
        shape: CacheShape,
        loader: Callable[[], Awaitable[list[LogEntryRead]]],
        digest: str | None = None,
    ) -> tuple[LogEntryRead, ...]:
        """Cached log entries for ``shape`` as an immutable snapshot."""
        rows, hit = await self._get_or_load(shape, loader, digest)
        if hit:
            return tuple(LogEntryRead.model_validate(row) for row in rows)
        return tuple(rows)

    async def usernames(self, loader: Callable[[], Awaitable[list[str]]]) -> tuple[str, ...]:
        rows, _hit = await self._get_or_load(CacheShape.USERNAMES, loader)
        return tuple(rows)

    async def _bump(self) -> int:
        epoch = await self.cache.incr(EPOCH_KEY)
        previous = epoch - 1
        await self.cache.delete(*(self.key(shape, previous) for shape in FIXED_SHAPES))
        await self.cache.delete_pattern(f"{CacheShape.SEARCH}:{previous}:*")
        return epoch

    async def _bump_with_retry(self) -> int:
        attempt = 0
        while True:
            try:
                return await self._bump()
            except RedisError as e:
                attempt += 1
                if attempt >= self.attempts:
                    raise
                delay = self.base_delay * (2 ** (attempt - 1))
                log.debug(
                    "activity_cache_invalidation_retry",
                    attempt=attempt,
                    delay_seconds=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay)

    async def invalidate(self) -> int:
        """Invalidate every cached shape.

        Must only be called after the write it follows has committed.
        Transient Redis errors are retried with exponential backoff.

        Returns:
            The new epoch

        Raises:
            CacheUnavailableError: If Redis cannot be reached after the retries.
                The namespace then stays pending until a later read or write
                completes the bump.
        """
        try:
            epoch = await self._bump_with_retry()
        except RedisError as e:
            PendingInvalidations.prefixes.add(self.cache.prefix)
            log.error("activity_cache_invalidation_failed", error=str(e))
            raise CacheUnavailableError(
                "Activity log changed but the cache could not be invalidated"
            ) from e

        PendingInvalidations.prefixes.discard(self.cache.prefix)
        log.debug("activity_cache_invalidated", epoch=epoch)
        return epoch
