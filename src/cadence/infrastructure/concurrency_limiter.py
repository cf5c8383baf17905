"""
Bounded slot counter for concurrent page fetches.

Hey future me - this is what keeps a full sync from firing 200 page requests at the
media server at once! The orchestrator acquires one slot per page before it spawns the
page task, the task gives the slot back when it is done, and wait_all() is the barrier
between phases.

RULES:
- Every acquire() needs exactly one release(), on EVERY exit path of the page task.
  A lost release means the next phase waits forever. Use `async with limiter.slot()`
  or a try/finally.
- cancel_all() wakes everyone waiting in acquire() with SyncCancelledError and refuses
  new acquisitions. Pages already running are left alone and still release normally,
  so wait_all() keeps working after a cancel.

USAGE:
    limiter = ConcurrencyLimiter(max_active=5)

    await limiter.acquire()
    task = asyncio.create_task(run_page())   # run_page releases in a finally

    await limiter.wait_all()                 # barrier
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from cadence.domain.exceptions import SyncCancelledError

logger = logging.getLogger(__name__)


class ConcurrencyLimiter:
    """Counter of outstanding batch slots with condition-wait semantics.

    Attributes:
        max_active: Maximum number of slots held at the same time
    """

    DEFAULT_MAX_ACTIVE = 5

    def __init__(self, max_active: int = DEFAULT_MAX_ACTIVE, name: str = "sync") -> None:
        if max_active < 1:
            raise ValueError("max_active must be at least 1")
        self._max_active = max_active
        self._name = name
        self._active = 0
        self._cancelled = False
        # Two conditions on one lock: release() wakes a single slot waiter, which must
        # never be "used up" by a wait_all() caller that cannot take the slot.
        self._lock = asyncio.Lock()
        self._slot_free = asyncio.Condition(self._lock)
        self._drained = asyncio.Condition(self._lock)

    @property
    def max_active(self) -> int:
        return self._max_active

    @property
    def active(self) -> int:
        """Slots currently held."""
        return self._active

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def acquire(self) -> None:
        """Wait until fewer than max_active slots are held, then take one.

        Raises:
            SyncCancelledError: If the limiter is (or gets) cancelled while waiting
        """
        async with self._lock:
            await self._slot_free.wait_for(
                lambda: self._cancelled or self._active < self._max_active
            )
            if self._cancelled:
                raise SyncCancelledError()
            self._active += 1
            logger.debug(
                "Limiter[%s]: slot acquired (%d/%d)",
                self._name,
                self._active,
                self._max_active,
            )

    async def release(self) -> None:
        """Give one slot back and wake at most one waiter."""
        async with self._lock:
            if self._active == 0:
                logger.warning(
                    "Limiter[%s]: release() without matching acquire()", self._name
                )
                return
            self._active -= 1
            self._slot_free.notify(1)
            if self._active == 0:
                self._drained.notify_all()

    async def wait_all(self) -> None:
        """Wait until no slot is held."""
        async with self._lock:
            await self._drained.wait_for(lambda: self._active == 0)

    async def cancel_all(self) -> None:
        """Release every acquire() waiter with SyncCancelledError, grant no more slots."""
        async with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            self._slot_free.notify_all()
            logger.info(
                "Limiter[%s]: cancelled with %d slot(s) still in flight",
                self._name,
                self._active,
            )

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one slot for the duration of the block.

        Usage:
            async with limiter.slot():
                await fetch_and_reconcile()
        """
        await self.acquire()
        try:
            yield
        finally:
            await self.release()


__all__ = ["ConcurrencyLimiter"]
