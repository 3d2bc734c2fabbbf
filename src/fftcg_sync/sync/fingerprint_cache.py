"""Bounded, time-to-live in-process cache for stored fingerprints."""

import threading
import time
from collections import OrderedDict
from typing import Callable


class FingerprintCache:
    """LRU cache with per-entry expiry. Safe to share between concurrent lookups."""

    def __init__(
        self,
        max_size: int = 500,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._max_size = max_size
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[str, float]] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None

            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                self.misses += 1
                return None

            self._entries.move_to_end(key)
            self.hits += 1
            return value

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + self._ttl)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_size:
                self._entries.popitem(last=False)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
