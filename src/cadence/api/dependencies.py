"""Dependency injection for API endpoints."""

from collections.abc import AsyncGenerator
from typing import cast

from fastapi import HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from cadence.application.services.library_sync_service import LibrarySyncService
from cadence.application.services.playlist_upload_service import (
    PlaylistUploadService,
)
from cadence.application.workers.library_sync_worker import LibrarySyncWorker
from cadence.infrastructure.persistence.database import Database


# Hey future me - everything here comes from app.state, wired by lifecycle.lifespan().
# When the server settings were incomplete at startup the sync pieces are missing and
# the endpoints answer 503 instead of crashing with AttributeError.
def _from_state(request: Request, name: str, what: str) -> object:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=503, detail=f"{what} not initialized")
    return value


def get_database(request: Request) -> Database:
    return cast(Database, _from_state(request, "db", "Database"))


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session that commits on success and rolls back on error."""
    db = get_database(request)
    async with db.session_scope() as session:
        yield session


def get_sync_service(request: Request) -> LibrarySyncService:
    return cast(
        LibrarySyncService, _from_state(request, "sync_service", "Library sync service")
    )


def get_sync_worker(request: Request) -> LibrarySyncWorker:
    return cast(LibrarySyncWorker, _from_state(request, "sync_worker", "Library sync worker"))


def get_playlist_service(request: Request) -> PlaylistUploadService:
    return cast(
        PlaylistUploadService,
        _from_state(request, "playlist_service", "Playlist service"),
    )
