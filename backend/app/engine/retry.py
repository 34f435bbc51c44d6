from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from app.engine.backoff import BackoffPolicy
from app.engine.cancel import sleep_or_cancel
from app.errors import Canceled, ErrorKind, FetchError

logger = logging.getLogger(__name__)

FetchFunction = Callable[[asyncio.Event], Awaitable[Any]]


@dataclass(frozen=True)
class FetchTask:
    name: str
    interval: float
    fetch: FetchFunction
    policy: BackoffPolicy = field(default_factory=BackoffPolicy)


@dataclass
class RetryState:
    attempt: int = 0
    last_error: FetchError | None = None
    delay: float | None = None


async def run_with_retry(
    task: FetchTask,
    cancel: asyncio.Event,
    *,
    deadline_seconds: float,
    sleep: Callable[[float, asyncio.Event], Awaitable[bool]] = sleep_or_cancel,
) -> Any:
    """Call ``task.fetch`` until it succeeds or the backoff policy says stop.

    Raises the last FetchError on stop, or Canceled when the cancel signal fires
    or the deadline runs out.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + deadline_seconds
    state = RetryState()

    while True:
        if cancel.is_set():
            raise Canceled(source=task.name)
        remaining = deadline - loop.time()
        if remaining <= 0:
            raise Canceled("deadline exceeded", source=task.name)

        try:
            return await asyncio.wait_for(task.fetch(cancel), timeout=remaining)
        except FetchError as exc:
            state.last_error = exc
        except TimeoutError:
            state.last_error = FetchError(
                ErrorKind.CANCELED, "deadline exceeded", source=task.name
            )

        state.delay = task.policy.next_delay(state.attempt, state.last_error)
        if state.delay is None:
            raise state.last_error
        if loop.time() + state.delay >= deadline:
            logger.warning(
                "task=%s attempt=%d retry would pass the deadline, giving up",
                task.name,
                state.attempt + 1,
            )
            raise state.last_error

        logger.warning(
            "task=%s attempt=%d failed kind=%s: %s; retrying in %.1fs",
            task.name,
            state.attempt + 1,
            state.last_error.kind.value,
            state.last_error.message,
            state.delay,
        )
        if await sleep(state.delay, cancel):
            raise Canceled(source=task.name)
        state.attempt += 1
