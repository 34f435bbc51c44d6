from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from app.errors import Canceled

T = TypeVar("T")


async def sleep_or_cancel(delay: float, cancel: asyncio.Event) -> bool:
    """Sleep for ``delay`` seconds. Returns True when ``cancel`` fired first."""
    if cancel.is_set():
        return True
    try:
        await asyncio.wait_for(cancel.wait(), timeout=max(delay, 0.0))
    except TimeoutError:
        return False
    return True


async def race_cancel(
    awaitable: Awaitable[T], cancel: asyncio.Event, *, source: str | None = None
) -> T:
    """Await ``awaitable`` unless ``cancel`` fires first, then raise Canceled."""
    work = asyncio.ensure_future(awaitable)
    if cancel.is_set():
        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        raise Canceled(source=source)

    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not work.done():
            work.cancel()

    if work in done:
        return work.result()

    await asyncio.gather(work, return_exceptions=True)
    raise Canceled(source=source)
