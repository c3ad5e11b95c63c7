"""
PoolPal Cache - Core types and data structures.

Defines the cache entry, statistics and configuration used by the
read-through cache that sits in front of the document store.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


# ============================================================================
# Cache Entry
# ============================================================================

@dataclass(slots=True)
class CacheEntry:
    """
    Single cache entry with metadata.

    Expiry is tracked on the monotonic clock.
    """
    key: str
    value: Any
    created_at: float = field(default_factory=time.monotonic)
    expires_at: Optional[float] = None
    last_accessed: float = field(default_factory=time.monotonic)
    access_count: int = 0
    namespace: str = "default"

    @property
    def is_expired(self) -> bool:
        """Check if entry has expired."""
        if self.expires_at is None:
            return False
        return time.monotonic() >= self.expires_at

    @property
    def ttl_remaining(self) -> Optional[float]:
        """Remaining TTL in seconds, or None if no expiry."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.monotonic())

    def touch(self) -> None:
        """Update access metadata."""
        self.last_accessed = time.monotonic()
        self.access_count += 1

    def __repr__(self) -> str:
        ttl = f", ttl={self.ttl_remaining:.1f}s" if self.ttl_remaining else ""
        return f"<CacheEntry key={self.key!r} ns={self.namespace!r} hits={self.access_count}{ttl}>"


# ============================================================================
# Cache Stats
# ============================================================================

@dataclass
class CacheStats:
    """Aggregate cache statistics for observability."""
    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    evictions: int = 0
    expirations: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Cache hit rate as a percentage."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return (self.hits / total) * 100.0

    @property
    def total_operations(self) -> int:
        return self.hits + self.misses + self.sets + self.deletes

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for diagnostics."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "deletes": self.deletes,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "hit_rate": round(self.hit_rate, 2),
            "size": self.size,
            "max_size": self.max_size,
            "total_operations": self.total_operations,
        }
