"""In-memory caching utilities.

Each store is owned by the component that writes it (the feed client owns the
pool cache, the engine owns the vault yield cache). Writers replace a whole
immutable ``CacheEntry``; readers get either the previous entry or the new one,
never a partially updated value.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, TypeVar

V = TypeVar("V")

Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """A cached value and the wall-clock time it was stored."""
    value: V
    stored_at: float

    def age(self, now: float) -> float:
        return max(0.0, now - self.stored_at)

    def is_fresh(self, ttl_seconds: float, now: float) -> bool:
        return self.age(now) < ttl_seconds


class MemoryCache(Generic[V]):
    """Keyed single-writer cache with a freshness window.

    Entries are kept past their TTL so callers can fall back to the last good
    value; ``get_fresh`` is the only read that honours the window.
    """

    def __init__(
        self,
        ttl_seconds: float,
        namespace: str = "default",
        clock: Clock = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self.namespace = namespace
        self._clock = clock
        self._entries: Dict[str, CacheEntry[V]] = {}

    def now(self) -> float:
        return self._clock()

    def get_entry(self, key: str) -> Optional[CacheEntry[V]]:
        """Last stored entry for a key, fresh or not."""
        return self._entries.get(key)

    def get_fresh(self, key: str) -> Optional[V]:
        """Value for a key only while it is inside the freshness window."""
        entry = self._entries.get(key)
        if entry is not None and entry.is_fresh(self.ttl_seconds, self.now()):
            return entry.value
        return None

    def get_stale(self, key: str) -> Optional[V]:
        """Value for a key regardless of age."""
        entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def set(self, key: str, value: V) -> CacheEntry[V]:
        entry = CacheEntry(value=value, stored_at=self.now())
        self._entries[key] = entry
        return entry

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
