"""Tests for PlaylistUploadService."""

import random
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cadence.application.services.playlist_upload_service import PlaylistUploadService
from cadence.domain.entities import EntityClass
from cadence.domain.exceptions import (
    EntityNotFoundException,
    TransportError,
    ValidationException,
)
from cadence.infrastructure.persistence import LibraryStorage
from conftest import FakeLibraryServer


@pytest.fixture
def uploads(
    fake_server: FakeLibraryServer, session_factory: async_sessionmaker[AsyncSession]
) -> PlaylistUploadService:
    return PlaylistUploadService(fake_server, session_factory, rng=random.Random(7))


@pytest.fixture
async def songs(session_factory: async_sessionmaker[AsyncSession]) -> list[str]:
    remote_ids = ["so-1", "so-2", "so-3"]
    async with session_factory() as session:
        storage = LibraryStorage(session)
        for remote_id in remote_ids:
            storage.create(EntityClass.SONG, remote_id=remote_id, title=remote_id)
        await storage.commit()
    return remote_ids


async def load_playlist(
    session_factory: async_sessionmaker[AsyncSession], local_id: str
) -> Any:
    async with session_factory() as session:
        return await LibraryStorage(session).get_by_local_id(EntityClass.PLAYLIST, local_id)


def remote_order(playlist: Any) -> list[str]:
    return [item.song.remote_id for item in sorted(playlist.items, key=lambda i: i.order)]


class TestCreatePlaylist:
    """Test create_playlist() and validate_remote_id()."""

    async def test_creates_locally_and_remotely(
        self, uploads: PlaylistUploadService, fake_server: FakeLibraryServer
    ) -> None:
        playlist = await uploads.create_playlist("  Road Trip ")

        assert playlist.name == "Road Trip"
        assert playlist.remote_id == "pl-1"
        assert fake_server.playlists == {"pl-1": []}

    async def test_remote_failure_keeps_local_playlist(
        self,
        uploads: PlaylistUploadService,
        fake_server: FakeLibraryServer,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        fake_server.create_error = TransportError("server down")

        playlist = await uploads.create_playlist("Offline")

        stored = await load_playlist(session_factory, playlist.id)
        assert stored.remote_id == ""
        assert stored.song_count == 0

    async def test_empty_name_is_rejected(self, uploads: PlaylistUploadService) -> None:
        with pytest.raises(ValidationException):
            await uploads.create_playlist("   ")

    async def test_stale_remote_id_is_recreated(
        self,
        uploads: PlaylistUploadService,
        fake_server: FakeLibraryServer,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        playlist = await uploads.create_playlist("Mix")
        fake_server.playlists.clear()

        async with session_factory() as session:
            storage = LibraryStorage(session)
            stored = await storage.get_by_local_id(EntityClass.PLAYLIST, playlist.id)
            assert await uploads.validate_remote_id(storage, stored)

        stored = await load_playlist(session_factory, playlist.id)
        assert stored.remote_id == "pl-2"


class TestEditPlaylist:
    """Test the local edits and their uploads."""

    async def test_add_songs_uploads_each_song(
        self,
        uploads: PlaylistUploadService,
        fake_server: FakeLibraryServer,
        session_factory: async_sessionmaker[AsyncSession],
        songs: list[str],
    ) -> None:
        playlist = await uploads.create_playlist("Mix")

        assert await uploads.add_songs(playlist.id, ["so-2", "so-1"])

        stored = await load_playlist(session_factory, playlist.id)
        assert remote_order(stored) == ["so-2", "so-1"]
        assert stored.song_count == 2
        assert fake_server.playlists["pl-1"] == ["so-2", "so-1"]

    async def test_add_unknown_song_is_rejected(
        self,
        uploads: PlaylistUploadService,
        songs: list[str],
    ) -> None:
        playlist = await uploads.create_playlist("Mix")

        with pytest.raises(ValidationException, match="so-404"):
            await uploads.add_songs(playlist.id, ["so-1", "so-404"])

    async def test_add_songs_offline_keeps_local_edit(
        self,
        uploads: PlaylistUploadService,
        fake_server: FakeLibraryServer,
        session_factory: async_sessionmaker[AsyncSession],
        songs: list[str],
    ) -> None:
        fake_server.create_error = TransportError("server down")
        playlist = await uploads.create_playlist("Offline")

        assert not await uploads.add_songs(playlist.id, ["so-1"])

        stored = await load_playlist(session_factory, playlist.id)
        assert remote_order(stored) == ["so-1"]
        assert not any(call[0] == "add_song" for call in fake_server.calls)

    async def test_remove_item(
        self,
        uploads: PlaylistUploadService,
        fake_server: FakeLibraryServer,
        session_factory: async_sessionmaker[AsyncSession],
        songs: list[str],
    ) -> None:
        playlist = await uploads.create_playlist("Mix")
        await uploads.add_songs(playlist.id, songs)

        assert await uploads.remove_item(playlist.id, 1)

        stored = await load_playlist(session_factory, playlist.id)
        assert remote_order(stored) == ["so-1", "so-3"]
        assert [item.order for item in stored.items] == [0, 1]
        assert fake_server.playlists["pl-1"] == ["so-1", "so-3"]

    async def test_remove_item_after_offline_edits_uploads_whole_list(
        self,
        uploads: PlaylistUploadService,
        fake_server: FakeLibraryServer,
        songs: list[str],
    ) -> None:
        fake_server.create_error = TransportError("server down")
        playlist = await uploads.create_playlist("Offline")
        assert not await uploads.add_songs(playlist.id, songs)
        fake_server.create_error = None

        assert await uploads.remove_item(playlist.id, 0)

        assert fake_server.playlists == {"pl-1": ["so-2", "so-3"]}
        assert not any(call[0] == "remove_item" for call in fake_server.calls)

    async def test_add_songs_to_playlist_gone_remotely_uploads_all_items(
        self,
        uploads: PlaylistUploadService,
        fake_server: FakeLibraryServer,
        session_factory: async_sessionmaker[AsyncSession],
        songs: list[str],
    ) -> None:
        playlist = await uploads.create_playlist("Mix")
        await uploads.add_songs(playlist.id, ["so-1"])
        fake_server.playlists.clear()

        assert await uploads.add_songs(playlist.id, ["so-2"])

        stored = await load_playlist(session_factory, playlist.id)
        assert stored.remote_id == "pl-2"
        assert fake_server.playlists == {"pl-2": ["so-1", "so-2"]}

    async def test_shuffle_of_recreated_playlist_uploads_local_order(
        self,
        uploads: PlaylistUploadService,
        fake_server: FakeLibraryServer,
        session_factory: async_sessionmaker[AsyncSession],
        songs: list[str],
    ) -> None:
        playlist = await uploads.create_playlist("Mix")
        await uploads.add_songs(playlist.id, songs)
        fake_server.playlists.clear()

        assert await uploads.shuffle(playlist.id)

        stored = await load_playlist(session_factory, playlist.id)
        assert fake_server.playlists == {"pl-2": remote_order(stored)}
        assert not any(call[0] == "reorder" for call in fake_server.calls)

    async def test_remove_out_of_range(
        self, uploads: PlaylistUploadService, songs: list[str]
    ) -> None:
        playlist = await uploads.create_playlist("Mix")
        await uploads.add_songs(playlist.id, songs)

        with pytest.raises(ValidationException):
            await uploads.remove_item(playlist.id, 3)

    async def test_move_item_reorders_remote(
        self,
        uploads: PlaylistUploadService,
        fake_server: FakeLibraryServer,
        songs: list[str],
    ) -> None:
        playlist = await uploads.create_playlist("Mix")
        await uploads.add_songs(playlist.id, songs)

        assert await uploads.move_item(playlist.id, 0, 2)

        assert fake_server.playlists["pl-1"] == ["so-2", "so-3", "so-1"]

    async def test_move_to_same_index_does_nothing(
        self,
        uploads: PlaylistUploadService,
        fake_server: FakeLibraryServer,
        songs: list[str],
    ) -> None:
        playlist = await uploads.create_playlist("Mix")
        await uploads.add_songs(playlist.id, songs)

        assert not await uploads.move_item(playlist.id, 1, 1)
        assert not any(call[0] == "reorder" for call in fake_server.calls)

    async def test_shuffle_uploads_permutation(
        self,
        uploads: PlaylistUploadService,
        fake_server: FakeLibraryServer,
        session_factory: async_sessionmaker[AsyncSession],
        songs: list[str],
    ) -> None:
        playlist = await uploads.create_playlist("Mix")
        await uploads.add_songs(playlist.id, songs)

        assert await uploads.shuffle(playlist.id)

        stored = await load_playlist(session_factory, playlist.id)
        assert sorted(fake_server.playlists["pl-1"]) == songs
        assert fake_server.playlists["pl-1"] == remote_order(stored)

    async def test_smart_playlist_is_read_only(
        self,
        uploads: PlaylistUploadService,
        session_factory: async_sessionmaker[AsyncSession],
        songs: list[str],
    ) -> None:
        async with session_factory() as session:
            storage = LibraryStorage(session)
            smart = storage.create(EntityClass.PLAYLIST, remote_id="smart_12", name="Top")
            await storage.commit()

        with pytest.raises(ValidationException):
            await uploads.add_songs(smart.id, ["so-1"])

    async def test_delete_playlist(
        self,
        uploads: PlaylistUploadService,
        fake_server: FakeLibraryServer,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        playlist = await uploads.create_playlist("Mix")

        await uploads.delete_playlist(playlist.id)

        assert "pl-1" not in fake_server.playlists
        with pytest.raises(EntityNotFoundException):
            await load_playlist(session_factory, playlist.id)

    async def test_unknown_playlist(self, uploads: PlaylistUploadService) -> None:
        with pytest.raises(EntityNotFoundException):
            await uploads.shuffle("missing")
