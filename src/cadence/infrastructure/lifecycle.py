"""Application lifecycle management for startup and shutdown tasks."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from cadence.application.services.library_sync_service import LibrarySyncService
from cadence.application.services.playlist_upload_service import (
    PlaylistUploadService,
)
from cadence.application.workers.library_sync_worker import LibrarySyncWorker
from cadence.config import Settings, get_settings
from cadence.domain.exceptions import ConfigurationError
from cadence.infrastructure.integrations import create_server_api
from cadence.infrastructure.observability import configure_logging
from cadence.infrastructure.persistence import Database

logger = logging.getLogger(__name__)


def _validate_sqlite_path(settings: Settings) -> None:
    """Make sure the SQLite file's directory exists and is writable.

    SQLite creates -journal/-wal files next to the database, so the directory
    must accept new files, not just the database file itself.

    Raises:
        ConfigurationError: If the directory cannot be created or written
    """
    db_path = settings.sqlite_db_path()
    if db_path is None:
        return
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        test_file = db_path.parent / f".{db_path.stem}_write_test"
        test_file.write_bytes(b"test")
        test_file.unlink()
    except OSError as exc:
        raise ConfigurationError(
            f"Database directory '{db_path.parent}' is not writable: {exc}. "
            "Update DATABASE_URL or adjust directory permissions."
        ) from exc


# Listen future me, everything before `yield` is startup, everything after is shutdown.
# A server that is not configured yet (no SERVER_URL/SERVER_USERNAME) must not stop the
# app from starting: the sync pieces are simply left off app.state and their endpoints
# answer 503 until the settings are fixed and the app restarted.
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Wire logging, database, media server client, services and worker."""
    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    logger.info("Starting application: %s", settings.app_name)

    _validate_sqlite_path(settings)
    db = Database(settings.database)
    app.state.db = db
    app.state.settings = settings
    if settings.database.create_schema:
        await db.create_tables()
    logger.info("Database initialized: %s", settings.database.url)

    server = None
    worker = None
    try:
        server = create_server_api(settings.server)
    except ConfigurationError as e:
        logger.error("Media server not configured, sync endpoints disabled: %s", e.message)
    else:
        playlist_service = PlaylistUploadService(server, db.session_factory)
        sync_service = LibrarySyncService(
            server, db.session_factory, settings.sync, playlist_uploads=playlist_service
        )
        worker = LibrarySyncWorker(
            sync_service,
            interval_hours=settings.sync.auto_sync_interval_hours,
            history_size=settings.sync.event_history_size,
        )
        app.state.server = server
        app.state.playlist_service = playlist_service
        app.state.sync_service = sync_service
        app.state.sync_worker = worker
        await worker.start()
        logger.info("Connected to %s server at %s", server.dialect, settings.server.url)

    try:
        yield
    finally:
        logger.info("Shutting down application")
        if worker is not None:
            await worker.stop()
        if server is not None:
            await server.close()
        await db.close()
        logger.info("Database connection closed")
