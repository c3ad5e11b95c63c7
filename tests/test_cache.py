"""
Tests for the PoolPal cache subsystem.

Covers:
- MemoryCache: get/set/delete, LRU eviction, TTL expiry, namespace clearing
- CacheStats: counters and derived metrics
- CacheEntry: expiry and access bookkeeping
"""

import asyncio

import pytest

from poolpal.cache import CacheEntry, CacheStats, MemoryCache


# ============================================================================
# MemoryCache
# ============================================================================


class TestMemoryCache:

    @pytest.mark.asyncio
    async def test_set_and_get(self):
        cache = MemoryCache()
        await cache.set("orders:order_1", {"id": "order_1"})
        entry = await cache.get("orders:order_1")
        assert entry is not None
        assert entry.value == {"id": "order_1"}

    @pytest.mark.asyncio
    async def test_missing_key(self):
        cache = MemoryCache()
        assert await cache.get("nope") is None
        stats = await cache.stats()
        assert stats.misses == 1

    @pytest.mark.asyncio
    async def test_delete(self):
        cache = MemoryCache()
        await cache.set("k", 1)
        assert await cache.delete("k") is True
        assert await cache.delete("k") is False
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_lru_eviction(self):
        cache = MemoryCache(max_size=2)
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.get("a")            # a becomes most recent
        await cache.set("c", 3)         # evicts b
        assert await cache.get("b") is None
        assert (await cache.get("a")).value == 1
        assert (await cache.get("c")).value == 3
        assert (await cache.stats()).evictions == 1

    @pytest.mark.asyncio
    async def test_ttl_expiry(self):
        cache = MemoryCache(default_ttl=0.05)
        await cache.set("k", "v")
        await asyncio.sleep(0.1)
        assert await cache.get("k") is None
        stats = await cache.stats()
        assert stats.expirations == 1
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_explicit_ttl_overrides_default(self):
        cache = MemoryCache(default_ttl=0.05)
        await cache.set("k", "v", ttl=60)
        await asyncio.sleep(0.1)
        assert (await cache.get("k")).value == "v"

    @pytest.mark.asyncio
    async def test_clear_namespace(self):
        cache = MemoryCache()
        await cache.set("orders:1", 1, namespace="orders")
        await cache.set("orders:2", 2, namespace="orders")
        await cache.set("payments:1", 3, namespace="payments")
        removed = await cache.clear(namespace="orders")
        assert removed == 2
        assert await cache.get("orders:1") is None
        assert (await cache.get("payments:1")).value == 3

    @pytest.mark.asyncio
    async def test_clear_all(self):
        cache = MemoryCache()
        await cache.set("a", 1)
        await cache.set("b", 2, namespace="other")
        assert await cache.clear() == 2
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_overwrite_keeps_single_entry(self):
        cache = MemoryCache()
        await cache.set("k", 1)
        await cache.set("k", 2)
        assert len(cache) == 1
        assert (await cache.get("k")).value == 2

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            MemoryCache(max_size=0)

    def test_default_ttl_property(self):
        assert MemoryCache().default_ttl == 120


# ============================================================================
# Stats & Entries
# ============================================================================


class TestCacheStats:

    def test_hit_rate(self):
        stats = CacheStats(hits=3, misses=1)
        assert stats.hit_rate == 75.0

    def test_hit_rate_empty(self):
        assert CacheStats().hit_rate == 0.0

    def test_to_dict(self):
        data = CacheStats(hits=1, sets=2, max_size=10).to_dict()
        assert data["total_operations"] == 3
        assert data["max_size"] == 10

    @pytest.mark.asyncio
    async def test_counts_hits(self):
        cache = MemoryCache()
        await cache.set("k", 1)
        await cache.get("k")
        await cache.get("k")
        stats = await cache.stats()
        assert stats.hits == 2
        assert stats.sets == 1
        assert stats.size == 1


class TestCacheEntry:

    def test_no_expiry(self):
        entry = CacheEntry(key="k", value=1)
        assert entry.is_expired is False
        assert entry.ttl_remaining is None

    def test_expired(self):
        entry = CacheEntry(key="k", value=1, expires_at=0.0)
        assert entry.is_expired is True

    def test_touch(self):
        entry = CacheEntry(key="k", value=1)
        entry.touch()
        entry.touch()
        assert entry.access_count == 2
