"""Tests for LibraryStorage."""

import pytest

from cadence.domain.entities import EntityClass, SyncState
from cadence.domain.exceptions import EntityNotFoundException
from cadence.infrastructure.persistence import LibraryStorage


class TestLibraryStorageEntities:
    """Test entity lookups and deletes."""

    async def test_find_by_remote_id(self, storage: LibraryStorage) -> None:
        created = storage.create(EntityClass.ARTIST, remote_id="ar-1", name="Low")
        await storage.commit()

        found = await storage.find_by_id(EntityClass.ARTIST, "ar-1")

        assert found is created
        assert await storage.find_by_id(EntityClass.ARTIST, "ar-2") is None

    async def test_empty_remote_id_never_matches(self, storage: LibraryStorage) -> None:
        storage.create(EntityClass.PLAYLIST, remote_id="", name="Offline")
        await storage.commit()

        assert await storage.find_by_id(EntityClass.PLAYLIST, "") is None

    async def test_create_assigns_primary_key(self, storage: LibraryStorage) -> None:
        artist = storage.create(EntityClass.ARTIST, remote_id="ar-1", name="Low")

        assert artist.id

    async def test_get_by_local_id_missing(self, storage: LibraryStorage) -> None:
        with pytest.raises(EntityNotFoundException):
            await storage.get_by_local_id(EntityClass.ALBUM, "nope")

    async def test_children_of(self, storage: LibraryStorage) -> None:
        artist = storage.create(EntityClass.ARTIST, remote_id="ar-1", name="Low")
        storage.create(EntityClass.ALBUM, remote_id="al-1", name="A", artist_id=artist.id)
        storage.create(EntityClass.ALBUM, remote_id="al-2", name="B")
        await storage.commit()

        children = await storage.children_of(EntityClass.ALBUM, "artist_id", artist.id)

        assert [album.remote_id for album in children] == ["al-1"]

    async def test_songs_by_remote_ids_keeps_request_order(self, storage: LibraryStorage) -> None:
        for remote_id in ("so-1", "so-2", "so-3"):
            storage.create(EntityClass.SONG, remote_id=remote_id, title=remote_id)
        await storage.commit()

        songs = await storage.songs_by_remote_ids(["so-3", "so-x", "so-1"])

        assert [song.remote_id for song in songs] == ["so-3", "so-1"]

    async def test_list_playlists_by_name(self, storage: LibraryStorage) -> None:
        storage.create(EntityClass.PLAYLIST, remote_id="p2", name="Zebra")
        storage.create(EntityClass.PLAYLIST, remote_id="p1", name="Alpha")
        await storage.commit()

        assert [p.name for p in await storage.list_playlists()] == ["Alpha", "Zebra"]


class TestLibraryStorageEpochs:
    """Test sync epochs and stale pruning."""

    async def test_epochs_are_numbered_by_count(self, storage: LibraryStorage) -> None:
        first = await storage.create_epoch({"update": None})
        await storage.commit()
        second = await storage.create_epoch({})
        await storage.commit()

        assert (first.id, second.id) == (0, 1)
        assert second.state == SyncState.PENDING.value
        assert (await storage.latest_epoch()).id == 1

    async def test_mark_epoch_done(self, storage: LibraryStorage) -> None:
        epoch = await storage.create_epoch({})
        await storage.commit()

        storage.mark_epoch_done(await storage.get_epoch(epoch.id))
        await storage.commit()

        assert (await storage.get_epoch(epoch.id)).is_done

    async def test_missing_epoch(self, storage: LibraryStorage) -> None:
        with pytest.raises(EntityNotFoundException):
            await storage.get_epoch(7)

    async def test_delete_stale_spares_local_playlists(self, storage: LibraryStorage) -> None:
        old = await storage.create_epoch({})
        await storage.commit()
        current = await storage.create_epoch({})
        await storage.commit()
        storage.create(EntityClass.PLAYLIST, remote_id="p1", name="Seen", sync_epoch_id=current.id)
        storage.create(EntityClass.PLAYLIST, remote_id="p2", name="Stale", sync_epoch_id=old.id)
        storage.create(EntityClass.PLAYLIST, remote_id="", name="Offline")
        await storage.commit()

        removed = await storage.delete_stale(EntityClass.PLAYLIST, current.id)
        await storage.commit()

        assert removed == 1
        assert [p.name for p in await storage.list_playlists()] == ["Offline", "Seen"]

    async def test_delete_unseen(self, storage: LibraryStorage) -> None:
        for remote_id in ("g1", "g2", "g3"):
            storage.create(EntityClass.GENRE, remote_id=remote_id, name=remote_id)
        await storage.commit()

        removed = await storage.delete_unseen(EntityClass.GENRE, {"g2"})
        await storage.commit()

        assert removed == 2
        assert await storage.count(EntityClass.GENRE) == 1
