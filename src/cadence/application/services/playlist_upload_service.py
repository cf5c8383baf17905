"""Local playlist edits and their upload to the media server."""

from __future__ import annotations

import logging
import random
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cadence.application.services.playlist_order import PlaylistOrderReconciler
from cadence.domain.entities import EntityClass
from cadence.domain.exceptions import TransportError, ValidationException
from cadence.domain.ports import ILibraryServerApi
from cadence.infrastructure.persistence import LibraryStorage
from cadence.infrastructure.persistence.models import PlaylistModel

logger = logging.getLogger(__name__)


class RemotePlaylistState(str, Enum):
    """Where the remote copy stands after remote-id validation."""

    MISSING = "missing"
    EXISTING = "existing"
    # Brand new on the server and already filled with every local item
    RECREATED = "recreated"


# Hey future me - every write to a remote playlist goes through ensure_remote()
# first. An empty remote id means "never made it to the server" (creation failed, or the
# user created it offline), and a stale id means someone deleted it server-side. In both
# cases we (re)create it and store the new id. A freshly created remote playlist is
# EMPTY, so it gets the whole local item list and the incremental edit is skipped.
# If creation fails the id stays empty and the upload is skipped; the next edit tries
# again. Local edits are committed before any network call, so a flaky server never
# loses them.
class PlaylistUploadService:
    """Edit playlists locally and mirror the edit on the server."""

    def __init__(
        self,
        server: ILibraryServerApi,
        session_factory: async_sessionmaker[AsyncSession],
        rng: random.Random | None = None,
    ) -> None:
        self._server = server
        self._session_factory = session_factory
        self._rng = rng

    async def validate_remote_id(
        self, storage: LibraryStorage, playlist: PlaylistModel
    ) -> bool:
        """Make sure the playlist exists on the server, creating it if needed.

        Returns:
            True if the playlist now has a valid remote id
        """
        if playlist.remote_id:
            try:
                if await self._server.fetch_playlist(playlist.remote_id) is not None:
                    return True
            except TransportError as e:
                logger.warning(
                    "Could not validate playlist %s (%s): %s",
                    playlist.name,
                    playlist.remote_id,
                    e.message,
                )
                return False
            logger.info(
                "Playlist %s (%s) is gone on the server, re-creating it",
                playlist.name,
                playlist.remote_id,
            )
            playlist.remote_id = ""

        try:
            remote_id = await self._server.create_playlist(playlist.name)
        except TransportError as e:
            logger.warning("Creating playlist %s on the server failed: %s", playlist.name, e.message)
            await storage.commit()
            return False
        playlist.remote_id = remote_id
        await storage.commit()
        logger.info("Created playlist %s on the server as %s", playlist.name, remote_id)
        return True

    async def ensure_remote(
        self, storage: LibraryStorage, playlist: PlaylistModel
    ) -> RemotePlaylistState:
        """Validate the remote id and fill a freshly (re)created remote playlist."""
        previous_id = playlist.remote_id
        if not await self.validate_remote_id(storage, playlist):
            return RemotePlaylistState.MISSING
        if playlist.remote_id == previous_id:
            return RemotePlaylistState.EXISTING
        song_ids = self._song_ids(PlaylistOrderReconciler(playlist))
        for song_id in song_ids:
            await self._server.add_song_to_playlist(playlist.remote_id, song_id)
        logger.info(
            "Uploaded %d item(s) to re-created playlist %s (%s)",
            len(song_ids),
            playlist.name,
            playlist.remote_id,
        )
        return RemotePlaylistState.RECREATED

    async def create_playlist(self, name: str) -> PlaylistModel:
        """Create a playlist locally and try to create it remotely right away."""
        if not name.strip():
            raise ValidationException("Playlist name must not be empty")
        async with self._session_factory() as session:
            storage = LibraryStorage(session)
            playlist: PlaylistModel = storage.create(
                EntityClass.PLAYLIST, remote_id="", name=name.strip(), song_count=0
            )
            await storage.commit()
            await self.validate_remote_id(storage, playlist)
            return playlist

    async def add_songs(self, playlist_id: str, song_ids: list[str]) -> bool:
        """Append songs (by remote id) and upload them one by one.

        Returns:
            True if the server got every song
        """
        async with self._session_factory() as session:
            storage = LibraryStorage(session)
            playlist = await self._load(storage, playlist_id)
            songs = await storage.songs_by_remote_ids(song_ids)
            if len(songs) != len(song_ids):
                missing = set(song_ids) - {song.remote_id for song in songs}
                raise ValidationException(f"Unknown songs: {', '.join(sorted(missing))}")
            PlaylistOrderReconciler(playlist).append_many(songs)
            await storage.commit()
            state = await self.ensure_remote(storage, playlist)
            if state == RemotePlaylistState.MISSING:
                return False
            if state == RemotePlaylistState.EXISTING:
                for song in songs:
                    await self._server.add_song_to_playlist(playlist.remote_id, song.remote_id)
        return True

    async def remove_item(self, playlist_id: str, index: int) -> bool:
        async with self._session_factory() as session:
            storage = LibraryStorage(session)
            playlist = await self._load(storage, playlist_id)
            if PlaylistOrderReconciler(playlist).remove(index) is None:
                raise ValidationException(
                    f"Index {index} out of range for playlist of {playlist.song_count}"
                )
            await storage.commit()
            state = await self.ensure_remote(storage, playlist)
            if state == RemotePlaylistState.MISSING:
                return False
            if state == RemotePlaylistState.EXISTING:
                await self._server.remove_playlist_item(playlist.remote_id, index)
        return True

    async def move_item(self, playlist_id: str, from_index: int, to_index: int) -> bool:
        async with self._session_factory() as session:
            storage = LibraryStorage(session)
            playlist = await self._load(storage, playlist_id)
            order = PlaylistOrderReconciler(playlist)
            if not order.move(from_index, to_index):
                return False
            await storage.commit()
            return await self._upload_order(storage, playlist, order)

    async def shuffle(self, playlist_id: str) -> bool:
        async with self._session_factory() as session:
            storage = LibraryStorage(session)
            playlist = await self._load(storage, playlist_id)
            order = PlaylistOrderReconciler(playlist, rng=self._rng)
            order.shuffle()
            await storage.commit()
            return await self._upload_order(storage, playlist, order)

    async def delete_playlist(self, playlist_id: str) -> None:
        """Delete the playlist on the server (if it ever got there) and locally."""
        async with self._session_factory() as session:
            storage = LibraryStorage(session)
            playlist = await self._load(storage, playlist_id)
            if playlist.remote_id:
                await self._server.delete_playlist(playlist.remote_id)
            await storage.delete(playlist)
            await storage.commit()
        logger.info("Deleted playlist %s", playlist.name)

    async def _upload_order(
        self,
        storage: LibraryStorage,
        playlist: PlaylistModel,
        order: PlaylistOrderReconciler,
    ) -> bool:
        state = await self.ensure_remote(storage, playlist)
        if state == RemotePlaylistState.MISSING:
            return False
        if state == RemotePlaylistState.EXISTING:
            await self._server.reorder_playlist(playlist.remote_id, self._song_ids(order))
        return True

    @staticmethod
    def _song_ids(order: PlaylistOrderReconciler) -> list[str]:
        return [song.remote_id for song in order.songs() if song is not None]

    async def _load(self, storage: LibraryStorage, playlist_id: str) -> PlaylistModel:
        playlist: PlaylistModel = await storage.get_by_local_id(
            EntityClass.PLAYLIST, playlist_id
        )
        if playlist.is_smart_playlist:
            raise ValidationException(f"Smart playlist {playlist.name} is read-only")
        return playlist
