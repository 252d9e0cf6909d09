"""Refresh cache for upstream transit payloads."""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .clock import Clock
from .models import CacheKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    key: CacheKey
    value: Any
    fetched_at: float  # Unix timestamp

    def age(self, now: float) -> float:
        return max(0.0, now - self.fetched_at)


class CacheStore:
    """
    Keyed store of (payload, fetch timestamp).

    Entries are immutable and replaced in place under a lock, so readers
    observe either the old or the new entry. Nothing is evicted; the store
    is bounded by the key space.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or Clock()
        self._lock = threading.Lock()
        self._store: Dict[CacheKey, CacheEntry] = {}

    def get(self, key: CacheKey) -> Optional[Tuple[Any, float]]:
        """
        Get a cached value regardless of freshness.

        Args:
            key: Cache key.

        Returns:
            (value, age in seconds), or None if the key was never set.
        """
        entry = self.entry(key)
        if entry is None:
            return None
        return entry.value, self.age_of(entry)

    def entry(self, key: CacheKey) -> Optional[CacheEntry]:
        """Snapshot of the current entry; value and timestamp always belong together."""
        with self._lock:
            return self._store.get(key)

    def age_of(self, entry: CacheEntry) -> float:
        return entry.age(self._clock.timestamp())

    def set(self, key: CacheKey, value: Any) -> CacheEntry:
        entry = CacheEntry(key=key, value=value, fetched_at=self._clock.timestamp())
        with self._lock:
            self._store[key] = entry
        logger.debug(f"Cached {key}")
        return entry

    @staticmethod
    def is_fresh(age: float, ttl: float) -> bool:
        return 0 <= age < ttl

    def keys(self):
        with self._lock:
            return list(self._store.keys())

    def clear(self) -> None:
        """Manually clear the cache."""
        with self._lock:
            self._store.clear()
