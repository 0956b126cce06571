"""
cache.py

In-memory key/value cache with a per-entry time-to-live.

One instance is shared by every build in the process. Writes are
last-write-wins; expired entries are dropped lazily on read.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional, Tuple

from nodemap.config import CACHE_TTL_SECONDS


class TTLCache:
    def __init__(
        self,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = float(ttl_seconds)
        self._max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            self.misses += 1
            return None

        self.hits += 1
        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        if key not in self._entries and len(self._entries) >= self._max_entries:
            self._evict_oldest()
        ttl = self._ttl if ttl is None else float(ttl)
        self._entries[key] = (self._clock() + ttl, value)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def _evict_oldest(self) -> None:
        # Oldest = soonest to expire when every entry shares one TTL
        if not self._entries:
            return
        oldest_key = min(self._entries, key=lambda k: self._entries[k][0])
        del self._entries[oldest_key]
