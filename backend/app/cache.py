from __future__ import annotations

import copy
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass
class CacheEntry:
    value: Any
    fetched_at: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.fetched_at < self.ttl


class TTLCache:
    """Single-slot cache for one provider's last successful payload."""

    def __init__(
        self,
        name: str,
        ttl_seconds: float,
        lock: threading.Lock,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.ttl_seconds = ttl_seconds
        self._lock = lock
        self._clock = clock
        self._entry: CacheEntry | None = None

    def get(self) -> Any | None:
        with self._lock:
            entry = self._entry
            if entry is None or not entry.value:
                return None
            if not entry.is_valid(self._clock()):
                return None
            return copy.deepcopy(entry.value)

    def put(self, value: Any) -> None:
        stored = copy.deepcopy(value)
        with self._lock:
            self._entry = CacheEntry(value=stored, fetched_at=self._clock(), ttl=self.ttl_seconds)
