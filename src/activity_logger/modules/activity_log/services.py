"""Activity log service and deletion manager.

``ActivityLogService`` puts the cache in front of every read and
invalidates it after every committed write. ``DeletionManager`` adds the
confirmation-token and id-sanitizing rules on top of its deletes.
"""

import asyncio
from collections.abc import Iterable
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from activity_logger.config import settings
from activity_logger.core.cache.redis import RedisCache
from activity_logger.core.constants import BULK_DELETE_SCOPE
from activity_logger.core.errors import InvalidInputError, PermissionDeniedError
from activity_logger.core.security.confirmation import ConfirmationTokens, delete_scope
from activity_logger.modules.activity_log.cache import ActivityLogCache, CacheShape
from activity_logger.modules.activity_log.export import ExportArtifact, write_export
from activity_logger.modules.activity_log.query import build_search_query
from activity_logger.modules.activity_log.repos import EventStore
from activity_logger.modules.activity_log.schemas import LogEntryRead, SearchFilters


log = structlog.get_logger()


class ActivityLogService:
    """Cached reads and cache-invalidating writes over the event store."""

    def __init__(self, store: EventStore, cache: ActivityLogCache) -> None:
        self.store = store
        self.cache = cache

    # ============================================================
    # Writes
    # ============================================================

    async def append(self, username: str, action: str, log_time: datetime) -> int:
        """Store one entry and invalidate the cache after it commits."""
        entry_id = await self.store.insert(username, action, log_time)
        await self.cache.invalidate()
        return entry_id

    async def delete_one(self, log_id: int) -> int:
        deleted = await self.store.delete_by_id(log_id)
        await self.cache.invalidate()
        log.info("activity_log_deleted", log_id=log_id, deleted=deleted)
        return deleted

    async def delete_many(self, log_ids: set[int]) -> int:
        deleted = await self.store.delete_by_ids(log_ids)
        await self.cache.invalidate()
        log.info("activity_logs_deleted", log_ids=sorted(log_ids), deleted=deleted)
        return deleted

    async def uninstall(self) -> None:
        """Drop the table and orphan everything cached about it."""
        await self.store.drop_all()
        await self.cache.invalidate()

    # ============================================================
    # Reads
    # ============================================================

    async def list_logs(self) -> tuple[LogEntryRead, ...]:
        """Every entry, newest first."""
        return await self.cache.entries(CacheShape.LOGS, self.store.fetch_all)

    async def distinct_usernames(self) -> tuple[str, ...]:
        return await self.cache.usernames(self.store.fetch_usernames)

    async def search(self, filters: SearchFilters) -> tuple[LogEntryRead, ...]:
        """Entries matching ``filters``, newest first.

        An empty filter set is the full listing and shares its cache entry.
        """
        query = build_search_query(filters)
        if query.is_unfiltered:
            return await self.list_logs()
        return await self.cache.entries(
            CacheShape.SEARCH,
            lambda: self.store.fetch_matching(query),
            digest=query.cache_key,
        )

    async def export_snapshot(self) -> tuple[LogEntryRead, ...]:
        return await self.cache.entries(CacheShape.EXPORT, self.store.fetch_all)

    async def export(
        self,
        filters: SearchFilters | None = None,
        directory: str | None = None,
    ) -> ExportArtifact:
        """Write the full (or filtered) log to a temporary CSV artifact.

        Raises:
            ReadFailureError: If the entries cannot be read
            ExportFailureError: If the file cannot be written in full
        """
        if filters is None or build_search_query(filters).is_unfiltered:
            entries = await self.export_snapshot()
        else:
            entries = await self.search(filters)
        return await asyncio.to_thread(
            write_export, entries, directory or settings.export_dir
        )


def coerce_log_id(value: Any) -> int | None:
    """Integer value of a submitted id, or None if it is not numeric.

    Accepts ints and decimal-digit strings; rejects booleans, floats,
    signs and anything else.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        value = value.strip()
        if value.isascii() and value.isdigit():
            return int(value)
    return None


class DeletionManager:
    """Single and bulk deletes guarded by confirmation tokens."""

    def __init__(self, service: ActivityLogService, confirmations: ConfirmationTokens) -> None:
        self.service = service
        self.confirmations = confirmations

    async def delete(self, log_id: Any, token: str | None) -> int:
        """Delete one entry once ``token`` confirms that exact id.

        Raises:
            InvalidInputError: If ``log_id`` is not a positive integer
            PermissionDeniedError: If the token is missing, expired or for another id
        """
        parsed = coerce_log_id(log_id)
        if parsed is None or parsed <= 0:
            raise InvalidInputError(
                "Log id must be a positive integer", details={"log_id": repr(log_id)}
            )
        if not self.confirmations.verify(token, delete_scope(parsed)):
            raise PermissionDeniedError("Delete confirmation failed", error_code="invalid_confirmation")
        return await self.service.delete_one(parsed)

    async def bulk_delete(self, log_ids: Iterable[Any], token: str | None) -> set[int]:
        """Delete the numeric ids among ``log_ids``; other entries are discarded.

        Returns:
            The sanitized id set that was deleted

        Raises:
            PermissionDeniedError: If the bulk confirmation token is not valid
            InvalidInputError: If no numeric id remains, or one is not positive
        """
        if not self.confirmations.verify(token, BULK_DELETE_SCOPE):
            raise PermissionDeniedError("Bulk delete confirmation failed", error_code="invalid_confirmation")

        ids = {parsed for parsed in map(coerce_log_id, log_ids) if parsed is not None}
        if not ids:
            raise InvalidInputError("No valid log ids were selected")

        await self.service.delete_many(ids)
        return ids


def build_activity_service(
    session_factory: async_sessionmaker[AsyncSession],
    cache: RedisCache,
) -> ActivityLogService:
    """Wire a service over one session factory and one Redis namespace."""
    return ActivityLogService(
        store=EventStore(session_factory, schema_cache=cache),
        cache=ActivityLogCache(cache),
    )
