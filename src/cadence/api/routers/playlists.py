"""Playlist editing endpoints.

Edits land in the local library first and are then mirrored on the server. The
"uploaded" flag in the answers says whether the server got the edit; when it is
False the next edit (or a playlist sync) tries again.
"""

from typing import Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cadence.api.dependencies import get_db_session, get_playlist_service
from cadence.application.services.playlist_upload_service import (
    PlaylistUploadService,
)
from cadence.infrastructure.persistence import LibraryStorage
from cadence.infrastructure.persistence.models import PlaylistModel

router = APIRouter()


class PlaylistCreateRequest(BaseModel):
    name: str = Field(min_length=1, description="Playlist name")


class AddSongsRequest(BaseModel):
    song_ids: list[str] = Field(min_length=1, description="Remote song ids, in order")


class MoveItemRequest(BaseModel):
    from_index: int = Field(ge=0)
    to_index: int = Field(ge=0)


def _playlist_to_dict(playlist: PlaylistModel) -> dict[str, Any]:
    return {
        "id": playlist.id,
        "remote_id": playlist.remote_id,
        "name": playlist.name,
        "owner": playlist.owner,
        "song_count": playlist.song_count,
        "is_smart": playlist.is_smart_playlist,
        "changed_at": playlist.changed_at.isoformat() if playlist.changed_at else None,
    }


@router.get("")
async def list_playlists(
    session: AsyncSession = Depends(get_db_session),
) -> dict[str, Any]:
    playlists = await LibraryStorage(session).list_playlists()
    return {
        "playlists": [_playlist_to_dict(p) for p in playlists if not p.is_smart_playlist],
        "smart_playlists": [_playlist_to_dict(p) for p in playlists if p.is_smart_playlist],
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_playlist(
    body: PlaylistCreateRequest,
    service: PlaylistUploadService = Depends(get_playlist_service),
) -> dict[str, Any]:
    playlist = await service.create_playlist(body.name)
    return {**_playlist_to_dict(playlist), "uploaded": bool(playlist.remote_id)}


@router.post("/{playlist_id}/songs")
async def add_songs(
    playlist_id: str,
    body: AddSongsRequest,
    service: PlaylistUploadService = Depends(get_playlist_service),
) -> dict[str, bool]:
    return {"uploaded": await service.add_songs(playlist_id, body.song_ids)}


@router.delete("/{playlist_id}/items/{index}")
async def remove_item(
    playlist_id: str,
    index: int,
    service: PlaylistUploadService = Depends(get_playlist_service),
) -> dict[str, bool]:
    return {"uploaded": await service.remove_item(playlist_id, index)}


@router.post("/{playlist_id}/move")
async def move_item(
    playlist_id: str,
    body: MoveItemRequest,
    service: PlaylistUploadService = Depends(get_playlist_service),
) -> dict[str, bool]:
    return {"uploaded": await service.move_item(playlist_id, body.from_index, body.to_index)}


@router.post("/{playlist_id}/shuffle")
async def shuffle(
    playlist_id: str,
    service: PlaylistUploadService = Depends(get_playlist_service),
) -> dict[str, bool]:
    return {"uploaded": await service.shuffle(playlist_id)}


@router.delete("/{playlist_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_playlist(
    playlist_id: str,
    service: PlaylistUploadService = Depends(get_playlist_service),
) -> None:
    await service.delete_playlist(playlist_id)
