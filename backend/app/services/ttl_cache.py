"""
backend/app/services/ttl_cache.py

Purpose:
    Small in-process TTL cache used by the enrichment layer (team identities,
    stat payloads) and the unified result cache. Entries are served only while
    strictly younger than their TTL; expired entries are evicted on read.

Dependencies:
    - time (monotonic clock, injectable for tests)
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Generic, TypeVar

V = TypeVar("V")

_MISSING = object()


class TTLCache(Generic[V]):
    def __init__(
        self,
        ttl_seconds: float,
        *,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = float(ttl_seconds)
        self.max_entries = max_entries
        self._clock = clock
        self._data: dict[str, tuple[float, V]] = {}  # key -> (expires_at, value)
        self._lock = threading.Lock()

    def get(self, key: str, default: V | None = None) -> V | None:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return default
            if entry[0] <= self._clock():
                del self._data[key]
                return default
            return entry[1]

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING  # type: ignore[arg-type]

    def set(self, key: str, value: V, ttl_seconds: float | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else float(ttl_seconds)
        with self._lock:
            # Re-insert so a refreshed key moves to the back of the eviction order
            self._data.pop(key, None)
            self._data[key] = (self._clock() + ttl, value)
            if self.max_entries is not None and len(self._data) > self.max_entries:
                self._purge_locked()
                while len(self._data) > self.max_entries:
                    # Oldest insertion first
                    self._data.pop(next(iter(self._data)))

    def pop(self, key: str) -> V | None:
        with self._lock:
            entry = self._data.pop(key, None)
            return entry[1] if entry else None

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked()

    def _purge_locked(self) -> int:
        now = self._clock()
        expired = [k for k, (expires_at, _) in self._data.items() if expires_at <= now]
        for k in expired:
            del self._data[k]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
