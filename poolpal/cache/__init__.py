"""
PoolPal Cache - async in-memory caching.

Usage::

    from poolpal.cache import MemoryCache

    cache = MemoryCache(max_size=500, default_ttl=120)
    await cache.set("orders:order_1", doc, namespace="orders")
    entry = await cache.get("orders:order_1")
"""

from .core import CacheEntry, CacheStats
from .memory import MemoryCache

__all__ = [
    "CacheEntry",
    "CacheStats",
    "MemoryCache",
]
