"""Dense ordering of playlist items.

Hey future me - a playlist with N items must have orders {0 .. N-1}, each exactly once.
Every mutation here keeps that true and keeps song_count == len(items). If something
ever breaks it anyway (crash mid-sync, old data), ensure_consistent_item_order() sorts
by the current order and renumbers, and the index-based queries call it first.

All methods work on the ORM objects in memory; the caller's session flushes them.
"""

import logging
import random
from collections.abc import Iterable, Sequence

from cadence.infrastructure.persistence.models import (
    PlaylistItemModel,
    PlaylistModel,
    SongModel,
    utc_now,
)

logger = logging.getLogger(__name__)


class PlaylistOrderReconciler:
    """Insert, remove, move, shuffle and repair playlist items."""

    def __init__(self, playlist: PlaylistModel, rng: random.Random | None = None) -> None:
        self._playlist = playlist
        self._rng = rng or random.Random()

    @property
    def playlist(self) -> PlaylistModel:
        return self._playlist

    @property
    def items(self) -> list[PlaylistItemModel]:
        """Items sorted by their current order."""
        return sorted(self._playlist.items, key=lambda item: item.order)

    @property
    def count(self) -> int:
        return len(self._playlist.items)

    def songs(self) -> list[SongModel | None]:
        return [item.song for item in self.items]

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def append(self, song: SongModel) -> PlaylistItemModel:
        item = PlaylistItemModel(order=self.count, song=song)
        self._playlist.items.append(item)
        self._sync_song_count()
        return item

    def append_many(self, songs: Iterable[SongModel]) -> list[PlaylistItemModel]:
        return [self.append(song) for song in songs]

    def remove(self, index: int) -> PlaylistItemModel | None:
        """Delete the item at index and close the gap; out of range is a no-op."""
        items = self.items
        if not 0 <= index < len(items):
            return None
        removed = items[index]
        for item in items:
            if item.order > removed.order:
                item.order -= 1
        self._playlist.items.remove(removed)
        self._sync_song_count()
        return removed

    def remove_first_occurrence(self, song: SongModel) -> PlaylistItemModel | None:
        index = self.first_index_of(song)
        if index is None:
            return None
        return self.remove(index)

    def remove_all(self) -> None:
        self._playlist.items.clear()
        self._sync_song_count()

    def move(self, from_index: int, to_index: int) -> bool:
        """Move one item, shifting everything in between by one toward the gap.

        Returns:
            False (and changes nothing) if the indexes are equal or out of range
        """
        items = self.items
        count = len(items)
        if from_index == to_index:
            return False
        if not (0 <= from_index < count and 0 <= to_index < count):
            return False
        target_order = items[to_index].order
        if from_index < to_index:
            for item in items[from_index + 1 : to_index + 1]:
                item.order -= 1
        else:
            for item in items[to_index:from_index]:
                item.order += 1
        items[from_index].order = target_order
        return True

    def shuffle(self) -> None:
        """Assign a uniformly random permutation of {0 .. N-1} to the items."""
        items = self.items
        orders = list(range(len(items)))
        self._rng.shuffle(orders)
        for item, order in zip(items, orders, strict=True):
            item.order = order

    def reconcile_from_remote(self, songs: Sequence[SongModel]) -> bool:
        """Make the items mirror the server's ordered song list.

        Position i reuses the local item at position i when there is one and only
        swaps its song when the remote song differs. Local items past the end of the
        remote list are deleted.

        Returns:
            True if the playlist content changed (changed_at is stamped then)
        """
        items = self.items
        dirty = False
        for index, song in enumerate(songs):
            if index < len(items):
                item = items[index]
                item.order = index
                current = item.song
                if current is None or current.remote_id != song.remote_id:
                    item.song = song
                    dirty = True
            else:
                self._playlist.items.append(PlaylistItemModel(order=index, song=song))
                dirty = True
        for item in items[len(songs) :]:
            self._playlist.items.remove(item)
            dirty = True
        if dirty:
            self._playlist.changed_at = utc_now()
        self._sync_song_count()
        return dirty

    def ensure_consistent_item_order(self) -> bool:
        """Renumber items 0..N-1 in their current order; idempotent.

        Returns:
            True if anything had to be repaired
        """
        repaired = False
        for position, item in enumerate(self.items):
            if item.order != position:
                item.order = position
                repaired = True
        if repaired:
            logger.info(
                "Playlist %s (%s): inconsistent item order detected and repaired",
                self._playlist.name,
                self._playlist.remote_id or "local",
            )
        self._sync_song_count()
        return repaired

    # =========================================================================
    # QUERIES
    # =========================================================================

    def first_index_of(self, song: SongModel) -> int | None:
        for item in self.items:
            if item.song is not None and item.song.remote_id == song.remote_id:
                return item.order
        return None

    def previous_cached_index(self, downwards_from: int) -> int | None:
        """Order of the nearest locally cached item strictly below downwards_from."""
        self.ensure_consistent_item_order()
        if downwards_from > self.count:
            return None
        for item in reversed(self.items):
            if item.order < downwards_from and item.is_cached:
                return item.order
        return None

    def previous_cached_index_beginning_at(self, index: int) -> int | None:
        """Like previous_cached_index but index itself may be returned."""
        return self.previous_cached_index(index + 1)

    def next_cached_index(self, upwards_from: int) -> int | None:
        """Order of the nearest locally cached item strictly above upwards_from."""
        self.ensure_consistent_item_order()
        if upwards_from >= self.count:
            return None
        for item in self.items:
            if item.order > upwards_from and item.is_cached:
                return item.order
        return None

    def next_cached_index_beginning_at(self, index: int) -> int | None:
        """Like next_cached_index but index itself may be returned."""
        return self.next_cached_index(index - 1)

    def _sync_song_count(self) -> None:
        self._playlist.song_count = len(self._playlist.items)
