"""Tests for the ConcurrencyLimiter slot counter."""

import asyncio

import pytest

from cadence.domain.exceptions import SyncCancelledError
from cadence.infrastructure.concurrency_limiter import ConcurrencyLimiter


async def _settle() -> None:
    """Give every ready task a chance to run."""
    for _ in range(5):
        await asyncio.sleep(0)


class TestConcurrencyLimiterBounds:
    """Test that the slot count never exceeds max_active."""

    def test_rejects_zero_slots(self) -> None:
        with pytest.raises(ValueError):
            ConcurrencyLimiter(max_active=0)

    async def test_acquire_up_to_max_does_not_block(self) -> None:
        limiter = ConcurrencyLimiter(max_active=3)
        for _ in range(3):
            await limiter.acquire()
        assert limiter.active == 3

    async def test_acquire_beyond_max_blocks_until_release(self) -> None:
        limiter = ConcurrencyLimiter(max_active=2)
        await limiter.acquire()
        await limiter.acquire()

        waiter = asyncio.create_task(limiter.acquire())
        await _settle()
        assert not waiter.done()

        await limiter.release()
        await asyncio.wait_for(waiter, timeout=1)
        assert limiter.active == 2

    async def test_release_wakes_waiters_in_arrival_order(self) -> None:
        limiter = ConcurrencyLimiter(max_active=1)
        await limiter.acquire()
        order: list[str] = []

        async def take(name: str) -> None:
            await limiter.acquire()
            order.append(name)

        first = asyncio.create_task(take("first"))
        await _settle()
        second = asyncio.create_task(take("second"))
        await _settle()

        await limiter.release()
        await _settle()
        assert order == ["first"]

        await limiter.release()
        await asyncio.wait_for(asyncio.gather(first, second), timeout=1)
        assert order == ["first", "second"]

    async def test_release_without_acquire_is_ignored(self) -> None:
        limiter = ConcurrencyLimiter(max_active=2)
        await limiter.release()
        assert limiter.active == 0

    async def test_slot_context_manager_releases_on_error(self) -> None:
        limiter = ConcurrencyLimiter(max_active=1)
        with pytest.raises(RuntimeError):
            async with limiter.slot():
                assert limiter.active == 1
                raise RuntimeError("boom")
        assert limiter.active == 0

    async def test_many_tasks_never_exceed_bound(self) -> None:
        limiter = ConcurrencyLimiter(max_active=3)
        running = 0
        peak = 0

        async def work() -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.001)
            running -= 1
            await limiter.release()

        tasks = []
        for _ in range(20):
            await limiter.acquire()
            tasks.append(asyncio.create_task(work()))
        await limiter.wait_all()
        await asyncio.gather(*tasks)

        assert peak <= 3
        assert limiter.active == 0


class TestConcurrencyLimiterBarrier:
    """Test wait_all() as the barrier between phases."""

    async def test_wait_all_returns_immediately_when_idle(self) -> None:
        limiter = ConcurrencyLimiter()
        await asyncio.wait_for(limiter.wait_all(), timeout=1)

    async def test_wait_all_waits_for_last_release(self) -> None:
        limiter = ConcurrencyLimiter(max_active=2)
        await limiter.acquire()
        await limiter.acquire()

        barrier = asyncio.create_task(limiter.wait_all())
        await limiter.release()
        await _settle()
        assert not barrier.done()

        await limiter.release()
        await asyncio.wait_for(barrier, timeout=1)

    async def test_wait_all_does_not_steal_slot_wakeups(self) -> None:
        limiter = ConcurrencyLimiter(max_active=1)
        await limiter.acquire()
        barrier = asyncio.create_task(limiter.wait_all())
        await _settle()
        waiter = asyncio.create_task(limiter.acquire())
        await _settle()

        await limiter.release()
        await asyncio.wait_for(waiter, timeout=1)
        assert limiter.active == 1
        assert not barrier.done()

        await limiter.release()
        await asyncio.wait_for(barrier, timeout=1)


class TestConcurrencyLimiterCancel:
    """Test cancel_all()."""

    async def test_cancel_wakes_waiters_with_error(self) -> None:
        limiter = ConcurrencyLimiter(max_active=1)
        await limiter.acquire()
        waiter = asyncio.create_task(limiter.acquire())
        await _settle()

        await limiter.cancel_all()

        with pytest.raises(SyncCancelledError):
            await asyncio.wait_for(waiter, timeout=1)
        assert limiter.cancelled

    async def test_no_acquire_after_cancel(self) -> None:
        limiter = ConcurrencyLimiter(max_active=5)
        await limiter.cancel_all()
        with pytest.raises(SyncCancelledError):
            await limiter.acquire()

    async def test_in_flight_slots_still_drain_after_cancel(self) -> None:
        limiter = ConcurrencyLimiter(max_active=2)
        await limiter.acquire()
        await limiter.cancel_all()

        barrier = asyncio.create_task(limiter.wait_all())
        await _settle()
        assert not barrier.done()

        await limiter.release()
        await asyncio.wait_for(barrier, timeout=1)
