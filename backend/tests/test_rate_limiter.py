import asyncio

import pytest

from app.engine.rate_limiter import TokenBucket
from app.errors import Canceled, ErrorKind


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_burst_then_wait_for_refill() -> None:
    clock = FakeClock()
    bucket = TokenBucket("ranking", rate_per_second=2.0, capacity=2, clock=clock)

    assert bucket.try_take() == 0.0
    assert bucket.try_take() == 0.0
    assert bucket.try_take() == pytest.approx(0.5)

    clock.now += 0.5
    assert bucket.try_take() == 0.0


def test_refill_is_capped_at_capacity() -> None:
    clock = FakeClock()
    bucket = TokenBucket("ranking", rate_per_second=1.0, capacity=2, clock=clock)
    clock.now += 3600

    assert bucket.try_take() == 0.0
    assert bucket.try_take() == 0.0
    assert bucket.try_take() > 0.0


def test_acquire_returns_immediately_with_tokens() -> None:
    bucket = TokenBucket("ranking", rate_per_second=1.0, capacity=1)

    async def run() -> None:
        await asyncio.wait_for(bucket.acquire(asyncio.Event()), timeout=1.0)

    asyncio.run(run())


def test_acquire_waits_for_a_token() -> None:
    bucket = TokenBucket("ranking", rate_per_second=50.0, capacity=1)

    async def run() -> float:
        cancel = asyncio.Event()
        await bucket.acquire(cancel)
        loop = asyncio.get_running_loop()
        started = loop.time()
        await bucket.acquire(cancel)
        return loop.time() - started

    waited = asyncio.run(run())
    assert waited >= 0.01


def test_acquire_is_interrupted_by_cancel() -> None:
    bucket = TokenBucket("ranking", rate_per_second=0.001, capacity=1)

    async def run() -> None:
        cancel = asyncio.Event()
        await bucket.acquire(cancel)
        asyncio.get_running_loop().call_later(0.05, cancel.set)
        await asyncio.wait_for(bucket.acquire(cancel), timeout=2.0)

    with pytest.raises(Canceled) as excinfo:
        asyncio.run(run())

    assert excinfo.value.kind is ErrorKind.CANCELED
    assert excinfo.value.retryable is False


def test_acquire_after_cancel_fails_fast() -> None:
    bucket = TokenBucket("ranking", rate_per_second=1.0, capacity=5)

    async def run() -> None:
        cancel = asyncio.Event()
        cancel.set()
        await bucket.acquire(cancel)

    with pytest.raises(Canceled):
        asyncio.run(run())
