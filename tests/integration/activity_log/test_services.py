"""Integration tests for cached reads, invalidation and deletion."""

import csv
from datetime import datetime
from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError
from redis.exceptions import ConnectionError as RedisConnectionError

from activity_logger.core.errors import (
    CacheUnavailableError,
    InvalidInputError,
    PermissionDeniedError,
)
from activity_logger.core.security import ConfirmationTokens
from activity_logger.modules.activity_log.cache import ActivityLogCache, CacheShape
from activity_logger.modules.activity_log.events import (
    Actor,
    ContentItem,
    ContentSaved,
    OptionUpdated,
)
from activity_logger.modules.activity_log.policy import OptionStore
from activity_logger.modules.activity_log.query import build_search_query
from activity_logger.modules.activity_log.recorder import EventRecorder
from activity_logger.modules.activity_log.schemas import RecorderOptions, SearchFilters
from activity_logger.modules.activity_log.services import DeletionManager, coerce_log_id


NOON = datetime(2024, 5, 1, 12, 0, 0)


class TestCachedReads:
    """Tests for cache population and invalidation."""

    async def test_second_read_is_served_from_cache(self, service, store):
        await service.append("alice", "one", NOON)
        await service.list_logs()

        store.fetch_all = AsyncMock(side_effect=AssertionError("store hit"))

        (entry,) = await service.list_logs()
        assert entry.action == "one"

    async def test_every_shape_reflects_a_write(self, service):
        await service.append("alice", "Post updated: A", NOON)
        filters = SearchFilters(text="post")

        assert len(await service.list_logs()) == 1
        assert len(await service.search(filters)) == 1
        assert await service.distinct_usernames() == ("alice",)
        assert len(await service.export_snapshot()) == 1

        await service.append("bob", "Post created: B", NOON)

        assert len(await service.list_logs()) == 2
        assert len(await service.search(filters)) == 2
        assert await service.distinct_usernames() == ("alice", "bob")
        assert len(await service.export_snapshot()) == 2

    async def test_delete_invalidates(self, service):
        entry_id = await service.append("alice", "one", NOON)
        await service.list_logs()

        await service.delete_one(entry_id)

        assert await service.list_logs() == ()

    async def test_invalidation_bumps_epoch_and_clears_fixed_keys(self, service, log_cache, cache):
        await service.append("alice", "one", NOON)
        await service.list_logs()
        epoch = await log_cache.current_epoch()
        assert await cache.get(ActivityLogCache.key(CacheShape.LOGS, epoch)) is not None

        await log_cache.invalidate()

        assert await log_cache.current_epoch() == epoch + 1
        assert await cache.get(ActivityLogCache.key(CacheShape.LOGS, epoch)) is None

    async def test_search_keys_embed_epoch(self, service, log_cache, cache):
        await service.append("alice", "one", NOON)
        filters = SearchFilters(text="one")
        await service.search(filters)
        epoch = await log_cache.current_epoch()
        digest = build_search_query(filters).cache_key

        assert await cache.get(ActivityLogCache.key(CacheShape.SEARCH, epoch, digest)) is not None

    async def test_unfiltered_search_shares_listing(self, service, store):
        await service.append("alice", "one", NOON)
        await service.list_logs()
        store.fetch_matching = AsyncMock(side_effect=AssertionError("searched"))

        assert len(await service.search(SearchFilters())) == 1

    async def test_cached_snapshot_is_immutable(self, service):
        await service.append("alice", "one", NOON)

        snapshot = await service.list_logs()

        assert isinstance(snapshot, tuple)
        with pytest.raises(ValidationError):
            snapshot[0].action = "changed"

    async def test_read_survives_redis_outage(self, service, cache):
        await service.append("alice", "one", NOON)
        cache.get = AsyncMock(side_effect=RedisConnectionError("down"))

        assert len(await service.list_logs()) == 1

    async def test_invalidation_failure_is_reported(self, service, cache):
        cache.incr = AsyncMock(side_effect=RedisConnectionError("down"))

        with pytest.raises(CacheUnavailableError):
            await service.append("alice", "one", NOON)

    async def test_write_removes_previous_epoch_search_keys(self, service, redis):
        for n in range(5):
            await service.search(SearchFilters(text=f"term {n}"))
            await service.append("alice", f"entry {n}", NOON)

        leftover = [key async for key in redis.scan_iter(match="test:search:*")]

        assert leftover == []

    async def test_transient_invalidation_error_is_retried(self, service, cache):
        await service.append("alice", "first", NOON)
        await service.list_logs()
        real_incr = cache.incr
        failures = [RedisConnectionError("blip")]

        async def flaky_incr(key):
            if failures:
                raise failures.pop()
            return await real_incr(key)

        cache.incr = flaky_incr

        await service.append("bob", "second", NOON)

        assert [e.action for e in await service.list_logs()] == ["second", "first"]

    async def test_write_is_visible_after_failed_invalidation(self, service, store, cache):
        await service.append("alice", "first", NOON)
        await service.list_logs()
        real_incr = cache.incr
        cache.incr = AsyncMock(side_effect=RedisConnectionError("down"))

        with pytest.raises(CacheUnavailableError):
            await service.append("bob", "second", NOON)

        assert len(await service.list_logs()) == 2

        cache.incr = real_incr

        assert await store.count() == 2
        assert [e.action for e in await service.list_logs()] == ["second", "first"]

    async def test_pending_invalidation_is_settled_by_next_read(self, service, log_cache, cache):
        await service.append("alice", "first", NOON)
        epoch = await log_cache.current_epoch()
        real_incr = cache.incr
        cache.incr = AsyncMock(side_effect=RedisConnectionError("down"))
        with pytest.raises(CacheUnavailableError):
            await service.append("bob", "second", NOON)
        assert log_cache.pending is True

        cache.incr = real_incr
        await service.list_logs()

        assert log_cache.pending is False
        assert await log_cache.current_epoch() == epoch + 1


class TestExport:
    """Tests for export through the service."""

    async def test_full_export_matches_store(self, service, tmp_path):
        await service.append("alice", 'He said "hi"', NOON)
        await service.append("bob", "second", NOON)

        artifact = await service.export(directory=str(tmp_path))

        with artifact.path.open(newline="", encoding="utf-8") as handle:
            rows = list(csv.reader(handle))[1:]
        stored = await service.list_logs()

        assert rows == [
            [str(e.id), e.username, e.action, e.log_time.strftime("%Y-%m-%d %H:%M:%S")]
            for e in stored
        ]
        assert rows[1][2] == 'He said "hi"'

    async def test_filtered_export(self, service, tmp_path):
        await service.append("alice", "one", NOON)
        await service.append("bob", "two", NOON)

        artifact = await service.export(SearchFilters(username="bob"), directory=str(tmp_path))

        assert artifact.row_count == 1


class TestRecorderWithStore:
    """Tests for the recorder end to end."""

    @pytest.fixture
    def recorder(self, service, cache):
        return EventRecorder(service, OptionStore(cache), clock=lambda: NOON)

    async def test_content_update_scenario(self, recorder, service):
        event = ContentSaved(
            content=ContentItem(id=42, title="Draft"),
            update=True,
            actor=Actor(username="alice"),
        )

        await recorder.record(event)

        (entry,) = await service.list_logs()
        assert entry.action == "Post updated: Draft (ID: 42) by user alice"
        assert entry.username == "alice"

    async def test_discarded_event_leaves_store_and_cache_untouched(
        self, recorder, service, store, log_cache
    ):
        epoch = await log_cache.current_epoch()

        await recorder.record(ContentSaved(content=ContentItem(id=1, is_revision=True)))

        assert await store.count() == 0
        assert await log_cache.current_epoch() == epoch

    async def test_saved_options_drive_the_policy(self, recorder, cache, store):
        await OptionStore(cache).save(RecorderOptions(excluded_option_prefixes=["widget_"]))

        await recorder.record(OptionUpdated(option="widget_sidebar"))
        await recorder.record(OptionUpdated(option="blogname"))

        assert [e.action for e in await store.fetch_all()] == ["Option updated: blogname by user Guest"]


class TestDeletionManager:
    """Tests for confirmed deletes."""

    @pytest.fixture
    def tokens(self):
        return ConfirmationTokens(secret_key="k" * 40)

    @pytest.fixture
    def manager(self, service, tokens):
        return DeletionManager(service, tokens)

    async def test_single_delete_with_matching_token(self, manager, service, tokens):
        entry_id = await service.append("alice", "one", NOON)

        await manager.delete(str(entry_id), tokens.issue_delete(entry_id))

        assert await service.list_logs() == ()

    async def test_single_delete_with_token_for_other_id(self, manager, service, tokens):
        entry_id = await service.append("alice", "one", NOON)

        with pytest.raises(PermissionDeniedError):
            await manager.delete(entry_id, tokens.issue_delete(entry_id + 1))

        assert len(await service.list_logs()) == 1

    @pytest.mark.parametrize("raw", ["abc", "0", "-4", None, 1.5])
    async def test_single_delete_rejects_malformed_id(self, manager, tokens, raw):
        with pytest.raises(InvalidInputError):
            await manager.delete(raw, tokens.issue_bulk_delete())

    async def test_bulk_delete_discards_non_numeric(self, manager, service, tokens):
        ids = [await service.append("alice", f"entry {n}", NOON) for n in range(8)]
        third, seventh = ids[2], ids[6]

        deleted = await manager.bulk_delete([third, "x", str(seventh)], tokens.issue_bulk_delete())

        assert deleted == {third, seventh}
        remaining = {e.id for e in await service.list_logs()}
        assert remaining == set(ids) - {third, seventh}

    async def test_bulk_delete_with_nothing_numeric(self, manager, tokens):
        with pytest.raises(InvalidInputError):
            await manager.bulk_delete(["x", None, True], tokens.issue_bulk_delete())

    async def test_bulk_delete_requires_bulk_token(self, manager, service, tokens):
        entry_id = await service.append("alice", "one", NOON)

        with pytest.raises(PermissionDeniedError):
            await manager.bulk_delete([entry_id], tokens.issue_delete(entry_id))

    async def test_bulk_delete_invalidates_before_returning(self, manager, service, tokens):
        entry_id = await service.append("alice", "one", NOON)
        await service.list_logs()

        await manager.bulk_delete([entry_id], tokens.issue_bulk_delete())

        assert await service.list_logs() == ()


class TestCoerceLogId:
    @pytest.mark.parametrize("raw,expected", [
        (3, 3),
        ("7", 7),
        (" 12 ", 12),
        ("x", None),
        (True, None),
        (2.0, None),
        ("-1", None),
        ("٣", None),
    ])
    def test_coercion(self, raw, expected):
        assert coerce_log_id(raw) == expected
