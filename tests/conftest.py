"""Shared fixtures: a file-backed SQLite database and a scriptable media server."""

import asyncio
from collections.abc import AsyncGenerator, AsyncIterator, Sequence
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cadence.config import DatabaseSettings
from cadence.domain.entities import EntityClass, LibraryMetadata, ParentScope, RawRecord
from cadence.domain.exceptions import TransportError
from cadence.domain.ports import ILibraryServerApi
from cadence.infrastructure.persistence import Database, LibraryStorage


# Hey future me - aiosqlite's ":memory:" database lives per connection, and page workers
# each open their own session. A throwaway file in tmp_path is shared by all of them.
@pytest.fixture
async def db(tmp_path: Path) -> AsyncGenerator[Database, None]:
    database = Database(DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"))
    await database.create_tables()
    yield database
    await database.close()


@pytest.fixture
def session_factory(db: Database) -> async_sessionmaker[AsyncSession]:
    return db.session_factory


@pytest.fixture
async def storage(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[LibraryStorage, None]:
    async with session_factory() as session:
        yield LibraryStorage(session)


class FakeLibraryServer(ILibraryServerApi):
    """In-memory media server with knobs for failures and latency."""

    dialect = "fake"

    def __init__(self) -> None:
        self.records: dict[tuple[EntityClass, ParentScope | None], list[dict[str, Any]]] = {}
        self.counts: dict[EntityClass, int | None] = {}
        self.unsupported: set[EntityClass] = set()
        self.failing_pages: set[tuple[EntityClass, int]] = set()
        self.metadata_error: TransportError | None = None
        self.page_delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self.page_requests: list[tuple[EntityClass, ParentScope | None, int, int | None]] = []
        # ("start" or "end", class, start index) in the order fetches began and finished
        self.fetch_log: list[tuple[str, EntityClass, int]] = []
        # playlist id -> song ids
        self.playlists: dict[str, list[str]] = {}
        self.create_error: TransportError | None = None
        self.calls: list[tuple[Any, ...]] = []
        self._next_playlist = 1

    def set_records(
        self,
        entity_class: EntityClass,
        records: Sequence[dict[str, Any]],
        parent: ParentScope | None = None,
        counted: bool = True,
    ) -> None:
        self.records[(entity_class, parent)] = list(records)
        if parent is None and counted:
            self.counts[entity_class] = len(records)

    async def fetch_library_metadata(self) -> LibraryMetadata:
        if self.metadata_error is not None:
            raise self.metadata_error
        return LibraryMetadata(
            counts=dict(self.counts),
            change_dates={},
            supports_podcasts=EntityClass.PODCAST not in self.unsupported,
            server_version="1.0",
        )

    async def fetch_page(
        self,
        entity_class: EntityClass,
        parent: ParentScope | None = None,
        start_index: int = 0,
        page_size: int | None = None,
    ) -> AsyncIterator[RawRecord]:
        self.page_requests.append((entity_class, parent, start_index, page_size))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.fetch_log.append(("start", entity_class, start_index))
        try:
            await asyncio.sleep(self.page_delay)
            if (entity_class, start_index) in self.failing_pages:
                raise TransportError(f"page {entity_class.value}@{start_index} unavailable")
            records = self.records.get((entity_class, parent), [])
            end = None if page_size is None else start_index + page_size
            for record in records[start_index:end]:
                yield record
        finally:
            self.in_flight -= 1
            self.fetch_log.append(("end", entity_class, start_index))

    def is_entity_class_supported(self, entity_class: EntityClass) -> bool:
        return entity_class not in self.unsupported

    async def search(
        self, entity_class: EntityClass, text: str, limit: int = 50
    ) -> AsyncIterator[RawRecord]:
        self.calls.append(("search", entity_class, text))
        for record in self.records.get((entity_class, None), []):
            label = record.get("name") or record.get("title") or ""
            if text.lower() in label.lower():
                yield record

    async def fetch_playlist(self, playlist_id: str) -> RawRecord | None:
        self.calls.append(("fetch_playlist", playlist_id))
        if playlist_id not in self.playlists:
            return None
        return {"id": playlist_id, "name": playlist_id}

    async def create_playlist(self, name: str) -> str:
        self.calls.append(("create_playlist", name))
        if self.create_error is not None:
            raise self.create_error
        playlist_id = f"pl-{self._next_playlist}"
        self._next_playlist += 1
        self.playlists[playlist_id] = []
        return playlist_id

    async def add_song_to_playlist(self, playlist_id: str, song_id: str) -> None:
        self.calls.append(("add_song", playlist_id, song_id))
        self.playlists[playlist_id].append(song_id)

    async def remove_playlist_item(self, playlist_id: str, index: int) -> None:
        self.calls.append(("remove_item", playlist_id, index))
        del self.playlists[playlist_id][index]

    async def reorder_playlist(self, playlist_id: str, song_ids: Sequence[str]) -> None:
        self.calls.append(("reorder", playlist_id, list(song_ids)))
        self.playlists[playlist_id] = list(song_ids)

    async def delete_playlist(self, playlist_id: str) -> None:
        self.calls.append(("delete_playlist", playlist_id))
        self.playlists.pop(playlist_id, None)

    async def close(self) -> None:
        self.calls.append(("close",))


@pytest.fixture
def fake_server() -> FakeLibraryServer:
    return FakeLibraryServer()
