"""Background runner for full library syncs."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from datetime import UTC, datetime
from typing import Any

from cadence.application.services.library_sync_service import LibrarySyncService
from cadence.domain.entities import SyncEvent, SyncOutcome, SyncReport
from cadence.domain.exceptions import InvalidStateException, PersistenceError

logger = logging.getLogger(__name__)


# Hey future me - the HTTP handler must not wait for a sync that can take minutes, so
# POST /api/sync only calls trigger_full_sync() and returns. The worker owns the task,
# keeps the last N progress events and the last report for GET /api/sync/status, and
# optionally re-runs the sync every auto_sync_interval_hours. Only ONE full sync runs
# at a time, a second trigger is rejected with InvalidStateException (-> 409).
class LibrarySyncWorker:
    """Runs full syncs in the background and remembers how they went."""

    def __init__(
        self,
        sync_service: LibrarySyncService,
        interval_hours: int = 0,
        history_size: int = 200,
    ) -> None:
        """
        Args:
            sync_service: Orchestrator the runs are delegated to
            interval_hours: Automatic full sync period, 0 disables the schedule
            history_size: Number of progress events kept for status queries
        """
        self._service = sync_service
        self.interval_seconds = interval_hours * 3600
        self._events: deque[SyncEvent] = deque(maxlen=history_size)
        self._sync_task: asyncio.Task[None] | None = None
        self._schedule_task: asyncio.Task[None] | None = None
        self._last_report: SyncReport | None = None
        self._last_error: str | None = None
        self._started_at: datetime | None = None

    @property
    def is_syncing(self) -> bool:
        return self._sync_task is not None and not self._sync_task.done()

    async def start(self) -> None:
        """Start the periodic schedule (no-op when the interval is 0)."""
        if self.interval_seconds <= 0 or self._schedule_task is not None:
            return
        self._schedule_task = asyncio.create_task(self._run_loop(), name="library-sync-schedule")
        logger.info("LibrarySyncWorker started (interval: %ds)", self.interval_seconds)

    async def stop(self) -> None:
        """Cancel the schedule and any running sync."""
        if self._schedule_task is not None:
            self._schedule_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._schedule_task
            self._schedule_task = None
        if self.is_syncing:
            await self._service.cancel()
            assert self._sync_task is not None
            await self._sync_task
        logger.info("LibrarySyncWorker stopped")

    async def trigger_full_sync(self) -> None:
        """Start a full sync in the background.

        Raises:
            InvalidStateException: If a full sync is already running
        """
        if self.is_syncing:
            raise InvalidStateException("A full sync is already running")
        self._events.clear()
        self._last_error = None
        self._started_at = datetime.now(UTC)
        self._sync_task = asyncio.create_task(self._run_sync(), name="library-full-sync")

    async def cancel(self) -> bool:
        """Ask the running full sync to stop; False if none is running."""
        if not self.is_syncing:
            return False
        return await self._service.cancel()

    async def wait(self) -> SyncReport | None:
        """Wait for the running sync (if any) and return the last report."""
        if self._sync_task is not None:
            await self._sync_task
        return self._last_report

    def get_status(self) -> dict[str, Any]:
        """Worker status for the status endpoint."""
        report = self._last_report
        if self.is_syncing:
            outcome = SyncOutcome.RUNNING.value
        elif self._last_error is not None:
            outcome = SyncOutcome.ABORTED.value
        else:
            outcome = report.outcome.value if report else None
        return {
            "running": self.is_syncing,
            "outcome": outcome,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "error": self._last_error,
            "interval_seconds": self.interval_seconds,
            "last_report": report.to_dict() if report else None,
            "events": [event.to_dict() for event in self._events],
        }

    def _record(self, event: SyncEvent) -> None:
        self._events.append(event)

    async def _run_sync(self) -> None:
        try:
            self._last_report = await self._service.run_full_sync(self._record)
        except PersistenceError as e:
            # The service already emitted ABORTED; keep the reason for status queries.
            self._last_error = e.message
            logger.error("Full sync failed to persist: %s", e.message)
        except Exception as e:
            self._last_error = str(e)
            logger.exception("Full sync crashed")

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            if self.is_syncing:
                logger.info("Scheduled full sync skipped, one is already running")
                continue
            await self.trigger_full_sync()
            await self.wait()
