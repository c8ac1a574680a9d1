"""
KV Cache — Memory Cache Backend

In-process cache bounded by size and time, built on cachetools.TTLCache.
Suitable for single-process deployments and tests.

Notes:
- LRU eviction at capacity is delegated to TTLCache.
- Per-key TTL is tracked on each entry and checked on every read, on top of
  TTLCache's global TTL (lazy expiration).
- Hash groups live in their own slots (keyed by ("hash", key)), so a string
  can be a scalar key and a hash key at the same time. Both kinds of slot
  count toward max_size.
- Hash fields have no TTL of their own.
"""

import copy
import logging
import time
from collections.abc import Callable, Hashable
from fnmatch import fnmatchcase
from typing import Any

from cachetools import Cache, TTLCache

from ..expiry import CacheEntry, compute_expires_at, is_expired
from ..interface import CacheInterface, require_key

logger = logging.getLogger(__name__)

_HASH_SLOT = "hash"


class _BoundedStore(TTLCache):  # type: ignore[type-arg]
    """TTLCache that reports capacity evictions."""

    def __init__(self, maxsize: int, ttl: float, timer: Callable[[], float], on_evict: Callable[[Hashable], None]):
        super().__init__(maxsize=maxsize, ttl=ttl, timer=timer)
        self._on_evict = on_evict

    def popitem(self) -> tuple[Hashable, Any]:
        key, value = super().popitem()
        self._on_evict(key)
        return key, value

    def peek(self, key: Hashable) -> Any:
        """Read a slot without refreshing its LRU position."""
        return Cache.__getitem__(self, key)


class MemoryCacheBackend(CacheInterface):
    """
    In-memory cache backend with LRU eviction.

    Features:
    - LRU eviction when max_size is reached
    - Per-key TTL with lazy expiration on read
    - Hash groups in a key-space separate from scalar keys
    - Injectable clock for simulated time
    """

    backend_name = "memory"

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: int = 4 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize memory cache backend.

        Args:
            max_size: Maximum number of entries (LRU eviction when exceeded)
            default_ttl: Upper bound in seconds on any entry's lifetime
            clock: Time source in seconds, shared with the underlying TTLCache
        """
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock

        self._cache = _BoundedStore(
            maxsize=max_size,
            ttl=default_ttl,
            timer=clock,
            on_evict=self._record_eviction,
        )

        # Stats
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0
        self._evictions = 0

    def _record_eviction(self, slot: Hashable) -> None:
        self._evictions += 1
        logger.debug(f"Evicted slot from memory cache: {slot}")

    def _load(self, key: str) -> CacheEntry | None:
        """Return the live entry for key, dropping it if its own TTL has passed."""
        entry = self._cache.get(key)
        if entry is None:
            return None

        if is_expired(entry.expires_at, self._clock()):
            self._cache.pop(key, None)
            logger.debug(f"Reclaimed expired key from memory cache: {key}")
            return None

        return entry

    def _store(self, key: str, value: Any, ttl: int) -> None:
        self._cache[key] = CacheEntry(value, compute_expires_at(ttl, self._clock()))
        self._sets += 1

    async def has(self, key: str) -> bool:
        """Check if key exists and is not expired."""
        require_key(key)
        return self._load(key) is not None

    async def get(self, key: str) -> Any | None:
        """Retrieve value from cache."""
        require_key(key)
        entry = self._load(key)
        if entry is None:
            self._misses += 1
            return None

        self._hits += 1
        return entry.value

    async def hash_get(self, key: str, field: str) -> Any | None:
        require_key(key)
        require_key(field, "field")
        fields = self._cache.get((_HASH_SLOT, key))
        value = fields.get(field) if fields is not None else None

        if value is None:
            self._misses += 1
        else:
            self._hits += 1
        return value

    async def get_object(self, key: str) -> Any | None:
        """Retrieve a copy of a structured value."""
        return copy.deepcopy(await self.get(key))

    async def set(self, key: str, value: Any, ttl: int = 0) -> None:
        """Store value in cache."""
        require_key(key)
        self._store(key, value, ttl)

    async def set_object(self, key: str, value: Any, ttl: int = 0) -> None:
        """Store a copy of a structured value so later caller mutations don't leak in."""
        require_key(key)
        self._store(key, copy.deepcopy(value), ttl)

    async def hash_set(self, key: str, field: str, value: Any | None) -> None:
        require_key(key)
        require_key(field, "field")
        slot = (_HASH_SLOT, key)
        fields = dict(self._cache.get(slot) or {})

        if value is None:
            fields.pop(field, None)
        else:
            fields[field] = value

        if not fields:
            self._cache.pop(slot, None)
            return

        self._cache[slot] = fields
        self._sets += 1

    async def delete(self, *keys: str) -> int:
        """Delete scalar keys, counting only those that were present."""
        count = 0
        for key in keys:
            if self._load(key) is not None:
                del self._cache[key]
                count += 1

        self._deletes += count
        return count

    async def keys(self, pattern: str | None = None) -> list[str]:
        self._cache.expire()
        now = self._clock()

        result = []
        for slot in list(self._cache):
            if not isinstance(slot, str):
                continue
            entry = self._cache.peek(slot)
            if is_expired(entry.expires_at, now):
                self._cache.pop(slot, None)
                continue
            if pattern is None or fnmatchcase(slot, pattern):
                result.append(slot)
        return result

    async def size(self, pattern: str | None = None) -> int:
        return len(await self.keys(pattern))

    async def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        total_requests = self._hits + self._misses
        hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0.0

        return {
            "backend": self.backend_name,
            "size": await self.size(),
            "max_size": self.max_size,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(hit_rate, 2),
            "sets": self._sets,
            "deletes": self._deletes,
            "evictions": self._evictions,
        }

    async def close(self) -> None:
        """Close cache and release resources."""
        # Nothing to release; data lives in-process
        logger.debug("Memory cache backend closed")
