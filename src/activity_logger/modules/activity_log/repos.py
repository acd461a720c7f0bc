"""Event store: durable, append-only persistence of log entries.

Every operation runs in its own short transaction under a bounded
timeout. Database errors and timeouts surface as ``WriteFailureError``
or ``ReadFailureError``; they never hang or leak driver exceptions.
"""

import asyncio
from collections.abc import AsyncGenerator, Callable, Iterable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, TypeVar

import structlog
from redis.exceptions import RedisError
from sqlalchemy import Connection, delete, func, inspect, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from activity_logger.config import settings
from activity_logger.core.cache.redis import RedisCache
from activity_logger.core.constants import ACTIVITY_LOG_TABLE, USERNAME_MAX_LENGTH
from activity_logger.core.errors import (
    AppException,
    InvalidInputError,
    ReadFailureError,
    WriteFailureError,
)
from activity_logger.modules.activity_log.models import LogEntry
from activity_logger.modules.activity_log.query import DEFAULT_ORDER, ResolvedQuery
from activity_logger.modules.activity_log.schemas import LogEntryRead


log = structlog.get_logger()

T = TypeVar("T")

# Schema-probe cache keys
TABLE_EXISTS_KEY = "schema:table_exists"
USERNAME_COLUMN_KEY = "schema:username_column"

VARCHAR_TYPE_NAMES = frozenset({"VARCHAR", "NVARCHAR", "STRING"})


def validate_log_id(value: Any) -> int:
    """Return ``value`` if it is a positive integer id.

    Raises:
        InvalidInputError: For booleans, non-integers, zero and negatives
    """
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidInputError(
            "Log id must be a positive integer",
            details={"log_id": repr(value)},
        )
    return value


def _describe_username_column(sync_conn: Connection) -> dict[str, Any] | None:
    for column in inspect(sync_conn).get_columns(ACTIVITY_LOG_TABLE):
        if column["name"] == "username":
            column_type = column["type"]
            return {
                "type": type(column_type).__name__.upper(),
                "length": getattr(column_type, "length", None),
            }
    return None


def is_expected_username_column(column: dict[str, Any]) -> bool:
    return column["type"] in VARCHAR_TYPE_NAMES and column["length"] == USERNAME_MAX_LENGTH


def _widen_username_column(sync_conn: Connection) -> None:
    """Rewrite a legacy ``username`` column as ``VARCHAR(60) NOT NULL``."""
    table = ACTIVITY_LOG_TABLE
    width = USERNAME_MAX_LENGTH
    dialect = sync_conn.dialect.name

    if dialect == "postgresql":
        sync_conn.execute(
            text(
                f"ALTER TABLE {table} ALTER COLUMN username TYPE VARCHAR({width}) "
                f"USING substr(username, 1, {width})"
            )
        )
        sync_conn.execute(text(f"ALTER TABLE {table} ALTER COLUMN username SET NOT NULL"))
    elif dialect in ("mysql", "mariadb"):
        sync_conn.execute(text(f"ALTER TABLE {table} MODIFY username VARCHAR({width}) NOT NULL"))
    else:
        # No ALTER COLUMN: rebuild the table and copy the rows across
        legacy = f"{table}_legacy"
        sync_conn.execute(text(f"ALTER TABLE {table} RENAME TO {legacy}"))
        LogEntry.__table__.create(sync_conn)
        sync_conn.execute(
            text(
                f"INSERT INTO {table} (id, username, action, log_time) "
                f"SELECT id, substr(username, 1, {width}), action, log_time FROM {legacy}"
            )
        )
        sync_conn.execute(text(f"DROP TABLE {legacy}"))


class EventStore:
    """Repository for the activity log table.

    Owns the table's schema (creation, legacy column repair, teardown)
    and every statement that touches it.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        schema_cache: RedisCache,
        timeout_seconds: float | None = None,
        schema_cache_ttl: int | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.schema_cache = schema_cache
        self.timeout_seconds = timeout_seconds or settings.store_timeout_seconds
        self.schema_cache_ttl = schema_cache_ttl or settings.schema_cache_ttl_seconds

    @asynccontextmanager
    async def _guard(
        self, failure: type[AppException], operation: str
    ) -> AsyncGenerator[None, None]:
        """Bound an operation in time and translate store errors into ``failure``."""
        try:
            async with asyncio.timeout(self.timeout_seconds):
                yield
        except TimeoutError as e:
            log.error(
                "activity_store_timeout",
                operation=operation,
                timeout_seconds=self.timeout_seconds,
            )
            raise failure(
                f"Activity log {operation} timed out",
                details={"operation": operation},
            ) from e
        except SQLAlchemyError as e:
            log.error("activity_store_error", operation=operation, error=str(e))
            raise failure(details={"operation": operation}) from e

    async def _run_sync(self, fn: Callable[[Connection], T], *, ddl: bool = False) -> T:
        async with self.session_factory() as session:
            if ddl:
                async with session.begin():
                    conn = await session.connection()
                    return await conn.run_sync(fn)
            conn = await session.connection()
            return await conn.run_sync(fn)

    # ============================================================
    # Schema
    # ============================================================

    async def _cached_probe(self, key: str) -> Any | None:
        """Cached probe result, or None on a miss or when Redis is unreachable."""
        try:
            return await self.schema_cache.get_value(key)
        except RedisError as e:
            log.warning("schema_cache_bypassed", key=key, error=str(e))
            return None

    async def _remember_probe(self, key: str, value: Any) -> None:
        try:
            await self.schema_cache.set_value(key, value, self.schema_cache_ttl)
        except RedisError as e:
            log.warning("schema_cache_populate_failed", key=key, error=str(e))

    async def _forget_probe(self, *keys: str) -> None:
        try:
            await self.schema_cache.delete(*keys)
        except RedisError as e:
            log.warning("schema_cache_clear_failed", keys=list(keys), error=str(e))

    async def ensure_schema(self) -> None:
        """Create the table if absent and repair a legacy ``username`` column.

        Both probe results are cached for ``schema_cache_ttl`` seconds, so
        the routine is cheap enough to run on every request. Only the cache
        is refreshed; the database is introspected again after expiry or
        after a repair.
        """
        table_exists = await self._cached_probe(TABLE_EXISTS_KEY)
        if table_exists is None:
            async with self._guard(ReadFailureError, "schema_probe"):
                table_exists = await self._run_sync(
                    lambda conn: inspect(conn).has_table(ACTIVITY_LOG_TABLE)
                )
            await self._remember_probe(TABLE_EXISTS_KEY, table_exists)

        if not table_exists:
            async with self._guard(WriteFailureError, "create_table"):
                await self._run_sync(
                    lambda conn: LogEntry.__table__.create(conn, checkfirst=True), ddl=True
                )
            await self._remember_probe(TABLE_EXISTS_KEY, True)
            log.info("activity_table_created", table=ACTIVITY_LOG_TABLE)

        column = await self._cached_probe(USERNAME_COLUMN_KEY)
        if column is None:
            async with self._guard(ReadFailureError, "schema_probe"):
                column = await self._run_sync(_describe_username_column)
            await self._remember_probe(USERNAME_COLUMN_KEY, column)

        if column and not is_expected_username_column(column):
            async with self._guard(WriteFailureError, "patch_username_column"):
                await self._run_sync(_widen_username_column, ddl=True)
            await self._forget_probe(USERNAME_COLUMN_KEY)
            log.info(
                "schema_patched",
                table=ACTIVITY_LOG_TABLE,
                column="username",
                previous_type=column["type"],
                previous_length=column["length"],
            )

    async def drop_all(self) -> None:
        """Irreversibly drop the table. Uninstall only."""
        async with self._guard(WriteFailureError, "drop_table"):
            await self._run_sync(
                lambda conn: LogEntry.__table__.drop(conn, checkfirst=True), ddl=True
            )
        await self._forget_probe(TABLE_EXISTS_KEY, USERNAME_COLUMN_KEY)
        log.warning("activity_table_dropped", table=ACTIVITY_LOG_TABLE)

    # ============================================================
    # Writes
    # ============================================================

    async def insert(self, username: str, action: str, log_time: datetime) -> int:
        """Append one row.

        Returns:
            The id assigned by the store
        """
        if not username or len(username) > USERNAME_MAX_LENGTH:
            raise InvalidInputError(
                f"Username must be 1-{USERNAME_MAX_LENGTH} characters",
                details={"username": username},
            )

        entry = LogEntry(
            username=username,
            action=action,
            log_time=log_time.replace(microsecond=0),
        )
        async with self._guard(WriteFailureError, "insert"):
            async with self.session_factory() as session, session.begin():
                session.add(entry)
                await session.flush()
                entry_id = entry.id
        return entry_id

    async def delete_by_id(self, log_id: int) -> int:
        """Delete at most one row. A missing id is not an error.

        Returns:
            Number of rows removed (0 or 1)
        """
        log_id = validate_log_id(log_id)
        async with self._guard(WriteFailureError, "delete"):
            async with self.session_factory() as session, session.begin():
                result = await session.execute(delete(LogEntry).where(LogEntry.id == log_id))
        return result.rowcount

    async def delete_by_ids(self, log_ids: Iterable[int]) -> int:
        """Delete every row whose id is in ``log_ids`` with one statement.

        Raises:
            InvalidInputError: If the set is empty or holds a non-positive or non-integer id
        """
        ids = {validate_log_id(log_id) for log_id in log_ids}
        if not ids:
            raise InvalidInputError("At least one log id is required")

        async with self._guard(WriteFailureError, "bulk_delete"):
            async with self.session_factory() as session, session.begin():
                result = await session.execute(
                    delete(LogEntry).where(LogEntry.id.in_(sorted(ids)))
                )
        return result.rowcount

    # ============================================================
    # Reads
    # ============================================================

    async def fetch_all(self) -> list[LogEntryRead]:
        """All rows, newest first."""
        async with self._guard(ReadFailureError, "list"):
            async with self.session_factory() as session:
                result = await session.execute(select(LogEntry).order_by(*DEFAULT_ORDER))
                return [LogEntryRead.model_validate(row) for row in result.scalars()]

    async def fetch_matching(self, query: ResolvedQuery) -> list[LogEntryRead]:
        """Rows matching a resolved search, newest first."""
        async with self._guard(ReadFailureError, "search"):
            async with self.session_factory() as session:
                result = await session.execute(query.statement())
                return [LogEntryRead.model_validate(row) for row in result.scalars()]

    async def fetch_usernames(self) -> list[str]:
        """Distinct usernames in ascending order."""
        async with self._guard(ReadFailureError, "usernames"):
            async with self.session_factory() as session:
                result = await session.execute(
                    select(LogEntry.username).distinct().order_by(LogEntry.username.asc())
                )
                return list(result.scalars())

    async def count(self) -> int:
        async with self._guard(ReadFailureError, "count"):
            async with self.session_factory() as session:
                result = await session.execute(select(func.count()).select_from(LogEntry))
                return result.scalar_one()
