"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Sequence

from cadence.domain.entities import (
    EntityClass,
    LibraryMetadata,
    ParentScope,
    RawRecord,
    SyncEvent,
)

# Receives phase start/finish events and exactly one terminal event per full sync.
SyncProgressListener = Callable[[SyncEvent], None]


# Hey future me - this is the ONLY thing the sync engine knows about the remote server.
# Ampache and Subsonic adapters live in infrastructure/integrations and normalize their
# payloads to canonical RawRecord keys before yielding. Every method raises
# TransportError when the server is unreachable or answers with an error, after the
# adapter did its own retrying.
class ILibraryServerApi(ABC):
    """Port for a remote media server catalog."""

    dialect: str = "unknown"

    @abstractmethod
    async def fetch_library_metadata(self) -> LibraryMetadata:
        """
        Fetch catalog counts and change timestamps.

        Returns:
            Library metadata (counts are None where the dialect reports none)
        """
        pass

    @abstractmethod
    def fetch_page(
        self,
        entity_class: EntityClass,
        parent: ParentScope | None = None,
        start_index: int = 0,
        page_size: int | None = None,
    ) -> AsyncIterator[RawRecord]:
        """
        Lazily stream one page of records.

        Args:
            entity_class: Kind of records to fetch
            parent: Parent whose children to fetch, None for the whole library
            start_index: Offset of the first record
            page_size: Maximum records to yield, None streams everything from
                start_index on

        Returns:
            Async iterator of normalized records
        """
        pass

    @abstractmethod
    def is_entity_class_supported(self, entity_class: EntityClass) -> bool:
        """Tell whether the dialect offers the given entity class."""
        pass

    @abstractmethod
    def search(
        self, entity_class: EntityClass, text: str, limit: int = 50
    ) -> AsyncIterator[RawRecord]:
        """
        Search the remote catalog.

        Args:
            entity_class: ARTIST, ALBUM or SONG
            text: Search text
            limit: Maximum number of results

        Returns:
            Async iterator of normalized records
        """
        pass

    @abstractmethod
    async def fetch_playlist(self, playlist_id: str) -> RawRecord | None:
        """
        Fetch a playlist header.

        Returns:
            Normalized playlist record or None if the server does not know the id
        """
        pass

    @abstractmethod
    async def create_playlist(self, name: str) -> str:
        """
        Create an empty playlist on the server.

        Returns:
            The remote id assigned by the server
        """
        pass

    @abstractmethod
    async def add_song_to_playlist(self, playlist_id: str, song_id: str) -> None:
        """Append one song to a remote playlist."""
        pass

    @abstractmethod
    async def remove_playlist_item(self, playlist_id: str, index: int) -> None:
        """Remove the entry at a zero-based index from a remote playlist."""
        pass

    @abstractmethod
    async def reorder_playlist(
        self, playlist_id: str, song_ids: Sequence[str]
    ) -> None:
        """Replace the remote playlist's entries with song_ids in that order."""
        pass

    @abstractmethod
    async def delete_playlist(self, playlist_id: str) -> None:
        """Delete a remote playlist."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""
        pass


__all__ = ["ILibraryServerApi", "SyncProgressListener"]
