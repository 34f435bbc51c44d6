from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable

from app.engine.cancel import sleep_or_cancel
from app.errors import Canceled

logger = logging.getLogger(__name__)


class TokenBucket:
    """Token bucket gating outbound calls to one provider.

    ``acquire`` waits for a token; it never refuses, it only delays. A wait that
    is interrupted by the cancel signal raises Canceled.
    """

    def __init__(
        self,
        name: str,
        rate_per_second: float,
        capacity: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.rate_per_second = rate_per_second
        self.capacity = capacity
        self._clock = clock
        self._tokens = float(capacity)
        self._last_refill = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(now - self._last_refill, 0.0)
        self._tokens = min(float(self.capacity), self._tokens + elapsed * self.rate_per_second)
        self._last_refill = now

    def try_take(self) -> float:
        """Take a token if one is available. Returns 0.0, or the seconds until one is."""
        with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return 0.0
            return (1.0 - self._tokens) / self.rate_per_second

    async def acquire(self, cancel: asyncio.Event) -> None:
        while True:
            if cancel.is_set():
                raise Canceled("rate limiter wait canceled", source=self.name)
            wait = self.try_take()
            if wait <= 0.0:
                return
            logger.debug("rate limiter %s waiting %.2fs for a token", self.name, wait)
            if await sleep_or_cancel(wait, cancel):
                raise Canceled("rate limiter wait canceled", source=self.name)
