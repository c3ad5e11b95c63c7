"""
PoolPal Cache - In-memory TTL cache.

LRU ordering via OrderedDict with O(1) access/eviction, per-entry TTL
and a namespace index for group invalidation.

Safe for concurrent coroutines via asyncio.Lock.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict, defaultdict
from typing import Any, Dict, Optional, Set

from .core import CacheEntry, CacheStats

logger = logging.getLogger("poolpal.cache.memory")


class MemoryCache:
    """
    In-memory cache with LRU eviction and time-based expiry.

    Entries are evicted least-recently-used first once ``max_size`` is
    reached. Expired entries are dropped lazily on access.
    """

    def __init__(self, max_size: int = 1000, default_ttl: Optional[float] = 120):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self._max_size = max_size
        self._default_ttl = default_ttl

        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()
        self._stats = CacheStats(max_size=max_size)

        # Inverted index: namespace → set of keys
        self._namespace_index: Dict[str, Set[str]] = defaultdict(set)

    @property
    def default_ttl(self) -> Optional[float]:
        return self._default_ttl

    def __len__(self) -> int:
        return len(self._store)

    async def get(self, key: str) -> Optional[CacheEntry]:
        """O(1) lookup with LRU promotion."""
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._stats.misses += 1
                return None

            if entry.is_expired:
                self._evict_key(key)
                self._stats.expirations += 1
                self._stats.misses += 1
                return None

            entry.touch()
            self._stats.hits += 1
            self._store.move_to_end(key)
            return entry

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[float] = None,
        namespace: str = "default",
    ) -> None:
        """O(1) insert, evicting the least recently used entry at capacity."""
        ttl = self._default_ttl if ttl is None else ttl
        async with self._lock:
            if key in self._store:
                self._evict_key(key)

            while len(self._store) >= self._max_size:
                self._evict_one()

            expires_at = None
            if ttl is not None and ttl > 0:
                expires_at = time.monotonic() + ttl

            self._store[key] = CacheEntry(
                key=key,
                value=value,
                expires_at=expires_at,
                namespace=namespace,
            )
            self._namespace_index[namespace].add(key)

            self._stats.sets += 1
            self._stats.size = len(self._store)

    async def delete(self, key: str) -> bool:
        """O(1) deletion."""
        async with self._lock:
            if key in self._store:
                self._evict_key(key)
                self._stats.deletes += 1
                return True
            return False

    async def clear(self, namespace: Optional[str] = None) -> int:
        """Clear all or namespaced entries. Returns the number removed."""
        async with self._lock:
            if namespace is None:
                count = len(self._store)
                self._store.clear()
                self._namespace_index.clear()
                self._stats.size = 0
                return count

            keys_to_remove = list(self._namespace_index.get(namespace, set()))
            for key in keys_to_remove:
                self._evict_key(key)
            return len(keys_to_remove)

    async def stats(self) -> CacheStats:
        """Return current statistics."""
        self._stats.size = len(self._store)
        return self._stats

    # ── Private helpers ──────────────────────────────────────────────

    def _evict_key(self, key: str) -> None:
        """Remove a key and clean up indices. Caller must hold lock."""
        entry = self._store.pop(key, None)
        if entry is None:
            return
        keys = self._namespace_index.get(entry.namespace)
        if keys is not None:
            keys.discard(key)
            if not keys:
                del self._namespace_index[entry.namespace]
        self._stats.size = len(self._store)

    def _evict_one(self) -> None:
        """Evict the least recently used entry. Caller must hold lock."""
        if not self._store:
            return
        key = next(iter(self._store))
        self._evict_key(key)
        self._stats.evictions += 1
        logger.debug(f"Evicted cache key {key!r} (capacity {self._max_size})")
