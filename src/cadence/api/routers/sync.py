"""Library synchronization endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, status

from cadence.api.dependencies import get_sync_service, get_sync_worker
from cadence.application.services.library_sync_service import LibrarySyncService
from cadence.application.workers.library_sync_worker import LibrarySyncWorker

router = APIRouter()


# Hey future me - the full sync runs in the worker's task, this only starts it.
# Poll GET /api/sync/status for progress. A second POST while one runs is a 409.
@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def start_full_sync(
    worker: LibrarySyncWorker = Depends(get_sync_worker),
) -> dict[str, Any]:
    """Start a full library sync in the background."""
    await worker.trigger_full_sync()
    return {"status": "started"}


@router.get("/status")
async def get_sync_status(
    worker: LibrarySyncWorker = Depends(get_sync_worker),
) -> dict[str, Any]:
    """Progress events and last report of the full sync."""
    return worker.get_status()


@router.post("/cancel")
async def cancel_full_sync(
    worker: LibrarySyncWorker = Depends(get_sync_worker),
) -> dict[str, Any]:
    """Stop dispatching pages; pages in flight still finish."""
    return {"cancelled": await worker.cancel()}


@router.post("/artists/{artist_id}")
async def sync_artist(
    artist_id: str, service: LibrarySyncService = Depends(get_sync_service)
) -> dict[str, int]:
    return (await service.sync_artist(artist_id)).to_dict()


@router.post("/albums/{album_id}")
async def sync_album(
    album_id: str, service: LibrarySyncService = Depends(get_sync_service)
) -> dict[str, int]:
    return (await service.sync_album(album_id)).to_dict()


@router.post("/playlists")
async def sync_playlists(
    service: LibrarySyncService = Depends(get_sync_service),
) -> dict[str, int]:
    """Refresh the playlist list without their songs."""
    return (await service.sync_playlists_without_songs()).to_dict()


@router.post("/playlists/{playlist_id}")
async def sync_playlist(
    playlist_id: str, service: LibrarySyncService = Depends(get_sync_service)
) -> dict[str, int]:
    """Pull one playlist's songs; playlist_id is the LOCAL id."""
    return (await service.sync_playlist(playlist_id)).to_dict()


@router.post("/podcasts")
async def sync_podcasts(
    service: LibrarySyncService = Depends(get_sync_service),
) -> dict[str, int]:
    """Refresh the podcast list without their episodes."""
    return (await service.sync_podcasts_without_episodes()).to_dict()


@router.post("/podcasts/{podcast_id}")
async def sync_podcast(
    podcast_id: str, service: LibrarySyncService = Depends(get_sync_service)
) -> dict[str, int]:
    return (await service.sync_podcast(podcast_id)).to_dict()


@router.post("/music-folders")
async def sync_music_folders(
    service: LibrarySyncService = Depends(get_sync_service),
) -> dict[str, int]:
    return (await service.sync_music_folders()).to_dict()


@router.post("/music-folders/{music_folder_id}/indexes")
async def sync_indexes(
    music_folder_id: str, service: LibrarySyncService = Depends(get_sync_service)
) -> dict[str, int]:
    """Refresh the top-level directories of a music folder."""
    return (await service.sync_indexes(music_folder_id)).to_dict()


@router.post("/directories/{directory_id}")
async def sync_directory(
    directory_id: str, service: LibrarySyncService = Depends(get_sync_service)
) -> dict[str, int]:
    return (await service.sync_directory(directory_id)).to_dict()
