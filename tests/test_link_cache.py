"""
Tests for the read-through link cache (sliding + absolute expiration).
"""

import pytest

from helpers import FakeTimer, make_dto
from urlshortener.core.setting import Settings
from urlshortener.services.link_cache import LinkCache


@pytest.fixture
def timer():
    return FakeTimer()


@pytest.fixture
def cache(timer):
    return LinkCache(absolute_seconds=1800, sliding_seconds=300, timer=timer)


class TestLinkCache:

    def test_get_after_set(self, cache):
        link = make_dto("abc123")
        cache.set("abc123", link)
        assert cache.get("abc123") == link

    def test_miss_returns_none(self, cache):
        assert cache.get("nothere") is None

    def test_sliding_expiration(self, cache, timer):
        """An entry not read for longer than the sliding window is gone."""
        cache.set("abc123", make_dto("abc123"))
        timer.advance(301)
        assert cache.get("abc123") is None

    def test_reads_extend_sliding_window(self, cache, timer):
        cache.set("abc123", make_dto("abc123"))
        for _ in range(4):
            timer.advance(250)
            assert cache.get("abc123") is not None

    def test_absolute_expiration_wins_over_reads(self, cache, timer):
        """Regular reads cannot keep an entry past its absolute lifetime."""
        cache.set("abc123", make_dto("abc123"))
        for _ in range(7):
            timer.advance(250)
            assert cache.get("abc123") is not None
        # t = 1750; the absolute deadline is 1800
        timer.advance(60)
        assert cache.get("abc123") is None

    def test_overwrite_replaces_value_and_restarts_lifetime(self, cache, timer):
        cache.set("abc123", make_dto("abc123", "https://example.com/old"))
        timer.advance(1700)
        cache.set("abc123", make_dto("abc123", "https://example.com/new"))
        timer.advance(200)

        # t = 1900: past the first entry's absolute deadline
        cached = cache.get("abc123")
        assert cached is not None
        assert cached.original_url == "https://example.com/new"

    def test_remove_is_idempotent(self, cache):
        cache.set("abc123", make_dto("abc123"))
        cache.remove("abc123")
        cache.remove("abc123")
        cache.remove("never-cached")
        assert cache.get("abc123") is None

    def test_capacity_bound(self, timer):
        cache = LinkCache(absolute_seconds=1800, sliding_seconds=300, max_entries=2, timer=timer)
        for code in ("aaa111", "bbb222", "ccc333"):
            cache.set(code, make_dto(code))
        assert len(cache) == 2
        assert cache.get("ccc333") is not None

    def test_clear(self, cache):
        cache.set("abc123", make_dto("abc123"))
        cache.clear()
        assert len(cache) == 0

    def test_from_settings(self):
        cache = LinkCache.from_settings(
            Settings(CACHE_ABSOLUTE_EXPIRATION_MINUTES=10, CACHE_SLIDING_EXPIRATION_MINUTES=2)
        )
        assert cache.absolute_seconds == 600
        assert cache.sliding_seconds == 120
