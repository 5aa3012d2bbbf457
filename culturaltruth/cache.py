"""
Bounded Cache

In-memory cache with a size cap and TTL expiry, used for Qloo entity
lookups and demographic insights.

Eviction is by insertion order: when full, the oldest-inserted entry goes
first. A hit moves the entry to the end of the map and bumps its access
count, but eviction never consults that order. Access counts feed
statistics only.

All operations are synchronous. Callers run on a single event loop and
never await while holding cache state, so no lock is taken.

Usage:
    from culturaltruth.cache import BoundedCache, make_key
    cache = BoundedCache(max_size=1000, ttl_seconds=300)
    key = make_key("search", "Stranger Things")
    hit = cache.get(key)
    if hit is None:
        cache.set(key, await fetch())
"""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


def make_key(*parts: Any) -> str:
    """Join request-signature parts into one cache key."""
    return "|".join(str(p) for p in parts)


@dataclass
class CacheEntry(Generic[T]):
    key: str
    value: T
    inserted_at: float
    access_count: int = 0


class BoundedCache(Generic[T]):
    """Size- and TTL-bounded cache with insertion-order eviction."""

    def __init__(
        self,
        max_size: int = 1000,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._entries: OrderedDict[str, CacheEntry[T]] = OrderedDict()
        # Insertion sequence, independent of the read reordering above
        self._insertion_order: OrderedDict[str, None] = OrderedDict()
        self._max_size = max_size
        self._ttl = ttl_seconds
        self._clock = clock
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[T]:
        """Return the cached value, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        if self._clock() - entry.inserted_at > self._ttl:
            self._delete(key)
            self._misses += 1
            return None

        entry.access_count += 1
        self._entries.move_to_end(key)
        self._hits += 1
        return entry.value

    def set(self, key: str, value: T) -> None:
        """Store value. Evicts oldest-inserted entries while at capacity."""
        if key in self._entries:
            self._delete(key)

        while len(self._entries) >= self._max_size:
            oldest_key = next(iter(self._insertion_order))
            self._delete(oldest_key)

        self._entries[key] = CacheEntry(
            key=key, value=value, inserted_at=self._clock(),
        )
        self._insertion_order[key] = None

    def invalidate(self, key: str) -> None:
        """Remove a specific entry."""
        if key in self._entries:
            self._delete(key)

    def clear(self) -> None:
        self._entries.clear()
        self._insertion_order.clear()

    def _delete(self, key: str) -> None:
        del self._entries[key]
        del self._insertion_order[key]

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def stats(self) -> dict:
        """Cache hit/miss statistics."""
        total = self._hits + self._misses
        return {
            "entries": len(self._entries),
            "max_size": self._max_size,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total, 3) if total > 0 else 0.0,
            "total_accesses": sum(e.access_count for e in self._entries.values()),
        }
