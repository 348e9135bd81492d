"""
Process-wide TTL result cache.
- Keyed by normalized query text (trimmed, lower-cased)
- Lazy expiry on lookup; FIFO eviction (insertion order, not LRU) past capacity
- Thread-safe: a single lock guards the entry map and its size
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, List, Optional

from sap_table_search.services.ranking import MergedRecord

logger = logging.getLogger("cache")

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_CAPACITY = 100


def normalize_key(query: str) -> str:
    return (query or "").strip().lower()


@dataclass
class CacheEntry:
    key: str
    results: List[MergedRecord]
    inserted_at: float


class ResultCache:
    """Bounded, time-expiring store of ranked results."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        capacity: int = DEFAULT_CAPACITY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.capacity = capacity
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def get(self, key: str) -> Optional[List[MergedRecord]]:
        key = normalize_key(key)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.inserted_at > self.ttl_seconds:
                del self._entries[key]
                logger.info("Cache entry expired: '%s'", key)
                return None
            return [item.copy() for item in entry.results]

    def put(self, key: str, results: List[MergedRecord]) -> None:
        key = normalize_key(key)
        entry = CacheEntry(
            key=key,
            results=[item.copy() for item in results],
            inserted_at=self._clock(),
        )
        with self._lock:
            # Overwrite keeps the key's original FIFO position
            self._entries[key] = entry
            while len(self._entries) > self.capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.info("Cache full; evicted oldest entry '%s'", evicted)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return normalize_key(key) in self._entries
