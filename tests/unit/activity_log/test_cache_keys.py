"""Tests for cache key layout."""

import pytest

from activity_logger.modules.activity_log.cache import ActivityLogCache, CacheShape


class TestCacheKeys:
    """Tests for epoch-versioned keys."""

    def test_fixed_shapes_embed_epoch(self):
        assert ActivityLogCache.key(CacheShape.LOGS, 3) == "logs:3"
        assert ActivityLogCache.key(CacheShape.USERNAMES, 3) == "usernames:3"
        assert ActivityLogCache.key(CacheShape.EXPORT, 3) == "export:3"

    def test_search_key_embeds_epoch_and_digest(self):
        assert ActivityLogCache.key(CacheShape.SEARCH, 2, "abc") == "search:2:abc"

    def test_search_key_requires_digest(self):
        with pytest.raises(ValueError):
            ActivityLogCache.key(CacheShape.SEARCH, 2)
