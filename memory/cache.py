"""In-process TTL + LRU cache for responses and search results."""

import asyncio
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Optional
from pydantic import BaseModel, Field

from errors import CacheCorruption

logger = logging.getLogger(__name__)


class CacheEntry(BaseModel):
    """A cached value with its expiry metadata."""
    key: str
    value: Any = None
    created_at: float
    ttl: float = Field(gt=0)

    def is_expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl


class QueryCache:
    """
    Key/value cache with per-entry TTL and a maximum entry count.

    Entries past their TTL are never returned. When the cache grows past
    ``max_size``, expired entries are dropped first and then the least
    recently used ones. All mutations happen under one re-entrant lock so
    the background sweep and request handlers never interleave.
    """

    def __init__(
        self,
        max_size: int = 500,
        default_ttl: float = 3600.0,
        namespace: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize cache.

        Args:
            max_size: Maximum number of entries kept
            default_ttl: TTL in seconds for entries set without one
            namespace: Optional prefix applied to every key
            clock: Time source, injectable for tests
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.namespace = namespace
        self.clock = clock

        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self._cleanup_task: Optional[asyncio.Task] = None
        self.hits = 0
        self.misses = 0

    def _full_key(self, key: str) -> str:
        return f"{self.namespace}:{key}" if self.namespace else key

    def _check_entry(self, full_key: str, entry: Any) -> CacheEntry:
        if not isinstance(entry, CacheEntry) or entry.key != full_key:
            raise CacheCorruption(f"Malformed cache entry for {full_key!r}")
        return entry

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or ``default`` on miss or expiry."""
        full_key = self._full_key(key)
        with self._lock:
            raw = self._entries.get(full_key)
            if raw is None:
                self.misses += 1
                return default

            try:
                entry = self._check_entry(full_key, raw)
            except CacheCorruption as e:
                logger.warning(f"Discarding cache entry: {e}")
                del self._entries[full_key]
                self.misses += 1
                return default

            if entry.is_expired(self.clock()):
                del self._entries[full_key]
                self.misses += 1
                return default

            self._entries.move_to_end(full_key)
            self.hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value, evicting old entries if over capacity."""
        full_key = self._full_key(key)
        entry = CacheEntry(
            key=full_key,
            value=value,
            created_at=self.clock(),
            ttl=ttl if ttl is not None else self.default_ttl,
        )
        with self._lock:
            self._entries.pop(full_key, None)
            self._entries[full_key] = entry
            self._evict()

    def _evict(self) -> None:
        if len(self._entries) <= self.max_size:
            return
        self.clear_expired()
        while len(self._entries) > self.max_size:
            evicted_key, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted LRU cache entry: {evicted_key}")

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(self._full_key(key), None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def clear_expired(self) -> int:
        """Remove expired or malformed entries. Returns how many were removed."""
        now = self.clock()
        removed = 0
        with self._lock:
            for full_key, entry in list(self._entries.items()):
                try:
                    expired = self._check_entry(full_key, entry).is_expired(now)
                except CacheCorruption:
                    expired = True
                if expired:
                    del self._entries[full_key]
                    removed += 1
        if removed:
            logger.debug(f"Cleared {removed} expired cache entries")
        return removed

    def get_stats(self) -> dict:
        """Entry counts plus hit/miss counters."""
        now = self.clock()
        with self._lock:
            entries = list(self._entries.values())
        expired = sum(
            1 for entry in entries
            if not isinstance(entry, CacheEntry) or entry.is_expired(now)
        )
        return {
            "total": len(entries),
            "valid": len(entries) - expired,
            "expired": expired,
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key, default=_MISSING) is not _MISSING

    def start_cleanup(self, interval: float = 300.0) -> asyncio.Task:
        """Start the periodic expiry sweep on the running event loop."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.get_running_loop().create_task(
                self._cleanup_loop(interval)
            )
        return self._cleanup_task

    async def _cleanup_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.clear_expired()

    async def stop_cleanup(self) -> None:
        if self._cleanup_task is None:
            return
        self._cleanup_task.cancel()
        try:
            await self._cleanup_task
        except asyncio.CancelledError:
            pass
        self._cleanup_task = None

    async def destroy(self) -> None:
        """Stop the sweep and drop every entry."""
        await self.stop_cleanup()
        self.clear()


_MISSING = object()
