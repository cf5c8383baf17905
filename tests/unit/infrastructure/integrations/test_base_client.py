"""Tests for the shared media server client plumbing."""

from collections.abc import Sequence

from cadence.config import ServerSettings
from cadence.domain.entities import RawRecord
from cadence.infrastructure.integrations.base_client import as_list, window
from cadence.infrastructure.integrations.subsonic_client import SubsonicClient


class TestHelpers:
    """Test window() and as_list()."""

    def test_window(self) -> None:
        records = [{"id": str(i)} for i in range(5)]

        assert window(records, 1, 2) == [{"id": "1"}, {"id": "2"}]
        assert window(records, 3, None) == [{"id": "3"}, {"id": "4"}]
        assert window(records, 9, 2) == []

    def test_as_list(self) -> None:
        assert as_list(None) == []
        assert as_list({"id": "1"}) == [{"id": "1"}]
        assert as_list([1, 2]) == [1, 2]


class TestStream:
    """Test batch streaming in _stream()."""

    async def _collect(
        self, client: SubsonicClient, total: int, start: int, page_size: int | None
    ) -> tuple[list[RawRecord], list[tuple[int, int]]]:
        requested: list[tuple[int, int]] = []

        async def fetch_batch(offset: int, limit: int) -> Sequence[RawRecord]:
            requested.append((offset, limit))
            return [{"id": str(i)} for i in range(offset, min(offset + limit, total))]

        records = [r async for r in client._stream(fetch_batch, start, page_size)]
        return records, requested

    async def test_page_is_split_into_batches(self) -> None:
        client = SubsonicClient(ServerSettings())
        client.max_batch_size = 4

        records, requested = await self._collect(client, total=100, start=10, page_size=10)

        assert [r["id"] for r in records] == [str(i) for i in range(10, 20)]
        assert requested == [(10, 4), (14, 4), (18, 2)]

    async def test_unbounded_stream_stops_on_short_batch(self) -> None:
        client = SubsonicClient(ServerSettings())
        client.max_batch_size = 4

        records, requested = await self._collect(client, total=9, start=0, page_size=None)

        assert len(records) == 9
        assert requested == [(0, 4), (4, 4), (8, 4)]

    async def test_empty_result(self) -> None:
        client = SubsonicClient(ServerSettings())

        records, requested = await self._collect(client, total=0, start=0, page_size=None)

        assert records == []
        assert len(requested) == 1
