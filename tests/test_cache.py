"""Tests for the TTL + LRU query cache."""

import asyncio

import pytest

from memory.cache import QueryCache, CacheEntry
from fakes import FakeClock


class TestQueryCache:
    """Test cache expiry, eviction and maintenance."""

    def setup_method(self):
        """Set up test fixtures."""
        self.clock = FakeClock()
        self.cache = QueryCache(max_size=3, default_ttl=3600, clock=self.clock)

    def test_get_returns_stored_value(self):
        """Test that a fresh entry is returned as stored."""
        value = {"voice": "hello"}
        self.cache.set("k", value)

        assert self.cache.get("k") is value
        assert "k" in self.cache
        assert len(self.cache) == 1

    def test_missing_key_returns_default(self):
        """Test miss handling."""
        assert self.cache.get("missing") is None
        assert self.cache.get("missing", default="x") == "x"

    def test_entry_expires_at_ttl(self):
        """Test that entries are not returned once their TTL has passed."""
        self.cache.set("k", "v")

        self.clock.advance(3599)
        assert self.cache.get("k") == "v"

        self.clock.advance(1)
        assert self.cache.get("k") is None
        assert len(self.cache) == 0

    def test_per_entry_ttl(self):
        """Test that an explicit TTL overrides the default."""
        self.cache.set("short", "v", ttl=10)
        self.clock.advance(11)

        assert self.cache.get("short") is None

    def test_lru_eviction(self):
        """Test that the least recently used entry is evicted at capacity."""
        self.cache.set("a", 1)
        self.cache.set("b", 2)
        self.cache.set("c", 3)
        self.cache.get("a")

        self.cache.set("d", 4)

        assert len(self.cache) == 3
        assert self.cache.get("b") is None
        assert self.cache.get("a") == 1
        assert self.cache.get("d") == 4

    def test_expired_entries_evicted_before_lru(self):
        """Test that expired entries go first when the cache is over capacity."""
        self.cache.set("a", 1, ttl=1000)
        self.cache.set("b", 2, ttl=10)
        self.cache.set("c", 3, ttl=1000)
        self.clock.advance(20)

        self.cache.set("d", 4)

        assert self.cache.get("a") == 1
        assert self.cache.get("b") is None
        assert self.cache.get("c") == 3
        assert self.cache.get("d") == 4

    def test_namespace_prefixes_keys(self):
        """Test that namespaced caches store prefixed keys."""
        cache = QueryCache(namespace="geocode", clock=self.clock)
        cache.set("austin", {"country_code": "us"})

        assert "geocode:austin" in cache._entries
        assert cache.get("austin") == {"country_code": "us"}

    def test_corrupt_entry_treated_as_miss(self):
        """Test that a malformed entry is discarded instead of returned."""
        self.cache._entries["k"] = "not an entry"

        assert self.cache.get("k") is None
        assert "k" not in self.cache._entries

    def test_entry_with_wrong_key_treated_as_miss(self):
        """Test that an entry stored under another key is discarded."""
        self.cache._entries["k"] = CacheEntry(key="other", value=1, created_at=self.clock(), ttl=60)

        assert self.cache.get("k") is None

    def test_clear_expired_returns_count(self):
        """Test the expiry sweep."""
        self.cache.set("a", 1, ttl=10)
        self.cache.set("b", 2, ttl=10)
        self.cache.set("c", 3, ttl=1000)
        self.clock.advance(10)

        assert self.cache.clear_expired() == 2
        assert len(self.cache) == 1

    def test_stats(self):
        """Test entry counts and hit/miss counters."""
        self.cache.set("a", 1, ttl=10)
        self.cache.set("b", 2)
        self.cache.get("b")
        self.cache.get("missing")
        self.clock.advance(10)

        stats = self.cache.get_stats()

        assert stats["total"] == 2
        assert stats["valid"] == 1
        assert stats["expired"] == 1
        assert stats["max_size"] == 3
        assert stats["hits"] == 1
        assert stats["misses"] == 1

    def test_delete_and_clear(self):
        """Test explicit removal."""
        self.cache.set("a", 1)
        self.cache.set("b", 2)

        assert self.cache.delete("a") is True
        assert self.cache.delete("a") is False

        self.cache.clear()
        assert len(self.cache) == 0

    def test_invalid_max_size(self):
        """Test that a zero capacity is rejected."""
        with pytest.raises(ValueError):
            QueryCache(max_size=0)

    def test_background_cleanup(self):
        """Test that the periodic sweep removes expired entries."""
        async def run():
            self.cache.set("a", 1, ttl=5)
            self.cache.start_cleanup(interval=0.01)
            self.clock.advance(10)
            await asyncio.sleep(0.05)
            remaining = len(self.cache)
            await self.cache.destroy()
            return remaining

        assert asyncio.run(run()) == 0
        assert self.cache._cleanup_task is None
