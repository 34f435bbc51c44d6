from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass

from app.errors import FetchError


def next_delay(
    attempt: int,
    error: BaseException,
    *,
    base_delay: float,
    max_retries: int,
    max_jitter: float = 1.0,
    jitter: Callable[[float, float], float] = random.uniform,
) -> float | None:
    """Delay before retrying after the failed ``attempt`` (0-indexed), or None to stop."""
    if not isinstance(error, FetchError) or not error.retryable:
        return None
    if attempt >= max_retries:
        return None
    return base_delay * (2**attempt) + jitter(0.0, max_jitter)


@dataclass(frozen=True)
class BackoffPolicy:
    base_delay: float = 1.0
    max_retries: int = 3
    max_jitter: float = 1.0

    def next_delay(
        self,
        attempt: int,
        error: BaseException,
        jitter: Callable[[float, float], float] = random.uniform,
    ) -> float | None:
        return next_delay(
            attempt,
            error,
            base_delay=self.base_delay,
            max_retries=self.max_retries,
            max_jitter=self.max_jitter,
            jitter=jitter,
        )
