"""In-memory TTL cache for upstream lookups.

Losing the cache only costs latency; nothing in the reconciliation depends on it.
"""

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional


DEFAULT_TTL_SECONDS = 5 * 60
DEFAULT_MAX_SIZE = 100


def student_key(identifier: str) -> str:
    return f"student:{identifier}"


def students_key(course_id: str) -> str:
    return f"students:{course_id}"


def assignments_key(course_id: str) -> str:
    return f"assignments:{course_id}"


@dataclass
class CacheItem:
    data: Any
    timestamp: float
    ttl: float
    hits: int = 0

    def expired(self, now: float) -> bool:
        return now > self.timestamp + self.ttl


class TTLCache:
    """
    TTL map with hit-count eviction.

    When the cache is full, the entry with the fewest hits is evicted, the
    oldest one first on ties.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        max_size: int = DEFAULT_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic
    ):
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        self._items: Dict[str, CacheItem] = {}
        self._stats = {'hits': 0, 'misses': 0, 'sets': 0, 'evictions': 0}

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: str) -> bool:
        item = self._items.get(key)
        return item is not None and not item.expired(self._clock())

    def get(self, key: str) -> Optional[Any]:
        item = self._items.get(key)
        if item is None:
            self._stats['misses'] += 1
            return None

        if item.expired(self._clock()):
            del self._items[key]
            self._stats['misses'] += 1
            return None

        item.hits += 1
        self._stats['hits'] += 1
        return item.data

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        if key not in self._items and len(self._items) >= self.max_size:
            self._evict()
        self._items[key] = CacheItem(
            data=data,
            timestamp=self._clock(),
            ttl=ttl if ttl is not None else self.default_ttl,
        )
        self._stats['sets'] += 1

    def delete(self, key: str) -> bool:
        return self._items.pop(key, None) is not None

    def clear(self) -> None:
        self._items.clear()
        self._stats = {'hits': 0, 'misses': 0, 'sets': 0, 'evictions': 0}

    def clean_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self._clock()
        expired = [key for key, item in self._items.items() if item.expired(now)]
        for key in expired:
            del self._items[key]
        return len(expired)

    async def get_or_set(
        self,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None
    ) -> Any:
        cached = self.get(key)
        if cached is not None:
            return cached
        data = await fetch()
        self.set(key, data, ttl)
        return data

    def stats(self) -> Dict[str, Any]:
        total = self._stats['hits'] + self._stats['misses']
        hit_rate = (self._stats['hits'] / total) * 100 if total > 0 else 0.0
        return {
            **self._stats,
            'hit_rate': round(hit_rate, 2),
            'total_requests': total,
            'cache_size': len(self._items),
            'max_size': self.max_size,
        }

    def _evict(self) -> None:
        if not self._items:
            return
        victim = min(self._items, key=lambda k: (self._items[k].hits, self._items[k].timestamp))
        del self._items[victim]
        self._stats['evictions'] += 1
        print(f"DEBUG: Cache evicted '{victim}'")
