"""Bounded TTL cache for assessment results.

Expiry is lazy: an entry past its TTL is treated as absent when read and
there is no background sweep. When full, the oldest-inserted entry is
evicted (insertion order, not access order).
"""
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from riskwatch.shared.models import AssessmentResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    value: AssessmentResult
    inserted_at: float


class AnalysisCache:
    """Thread-safe TTL + capacity bounded map.

    A single lock serializes every operation; request threads served by
    separate event loops share one instance.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        capacity: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity < 1:
            raise ValueError(f"Cache capacity must be positive, got {capacity}")
        if ttl_seconds <= 0:
            raise ValueError(f"Cache TTL must be positive, got {ttl_seconds}")

        self.ttl_seconds = ttl_seconds
        self.capacity = capacity
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[AssessmentResult]:
        """Return the cached value if it was inserted less than TTL ago."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.inserted_at >= self.ttl_seconds:
                del self._entries[key]
                return None
            return entry.value

    def put(self, key: str, value: AssessmentResult) -> None:
        """Insert or replace a value, evicting the oldest entry when full."""
        with self._lock:
            if key in self._entries:
                # Re-insertion counts as a fresh insert
                del self._entries[key]
            elif len(self._entries) >= self.capacity:
                evicted_key, _ = self._entries.popitem(last=False)
                logger.debug("ANALYSIS_CACHE_EVICTED", extra={"key": evicted_key})
            self._entries[key] = CacheEntry(value=value, inserted_at=self._clock())

    def clear(self) -> int:
        """Drop every entry and return how many were removed."""
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()

        logger.info("ANALYSIS_CACHE_CLEARED", extra={"entries_removed": removed})
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, float]:
        return {
            "size": len(self),
            "capacity": self.capacity,
            "ttl_seconds": self.ttl_seconds,
        }
