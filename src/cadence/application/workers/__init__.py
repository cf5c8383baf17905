"""Background workers."""

from cadence.application.workers.library_sync_worker import LibrarySyncWorker

__all__ = ["LibrarySyncWorker"]
