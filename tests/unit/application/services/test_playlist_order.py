"""Tests for PlaylistOrderReconciler."""

import random

import pytest

from cadence.application.services.playlist_order import PlaylistOrderReconciler
from cadence.infrastructure.persistence.models import (
    PlaylistItemModel,
    PlaylistModel,
    SongModel,
)


def make_song(remote_id: str, cached: bool = False) -> SongModel:
    return SongModel(
        remote_id=remote_id,
        title=f"Song {remote_id}",
        cached_file_path=f"/cache/{remote_id}.mp3" if cached else None,
    )


def make_playlist(*remote_ids: str) -> PlaylistModel:
    playlist = PlaylistModel(remote_id="pl-1", name="Mix", song_count=0)
    for index, remote_id in enumerate(remote_ids):
        playlist.items.append(PlaylistItemModel(order=index, song=make_song(remote_id)))
    playlist.song_count = len(remote_ids)
    return playlist


def order_of(reconciler: PlaylistOrderReconciler) -> list[str]:
    return [song.remote_id for song in reconciler.songs() if song is not None]


def assert_dense(playlist: PlaylistModel) -> None:
    orders = sorted(item.order for item in playlist.items)
    assert orders == list(range(len(playlist.items)))
    assert playlist.song_count == len(playlist.items)


class TestPlaylistOrderMutations:
    """Test append, remove and move."""

    def test_append_uses_next_order(self) -> None:
        playlist = make_playlist("a", "b")
        reconciler = PlaylistOrderReconciler(playlist)

        item = reconciler.append(make_song("c"))

        assert item.order == 2
        assert order_of(reconciler) == ["a", "b", "c"]
        assert_dense(playlist)

    def test_append_many_updates_song_count(self) -> None:
        playlist = make_playlist()
        reconciler = PlaylistOrderReconciler(playlist)

        reconciler.append_many([make_song("x"), make_song("y"), make_song("z")])

        assert playlist.song_count == 3
        assert order_of(reconciler) == ["x", "y", "z"]

    def test_remove_closes_gap(self) -> None:
        playlist = make_playlist("a", "b", "c", "d")
        reconciler = PlaylistOrderReconciler(playlist)

        removed = reconciler.remove(1)

        assert removed is not None
        assert removed.song.remote_id == "b"
        assert order_of(reconciler) == ["a", "c", "d"]
        assert_dense(playlist)

    @pytest.mark.parametrize("index", [-1, 4, 100])
    def test_remove_out_of_range_is_noop(self, index: int) -> None:
        playlist = make_playlist("a", "b", "c", "d")
        reconciler = PlaylistOrderReconciler(playlist)

        assert reconciler.remove(index) is None
        assert order_of(reconciler) == ["a", "b", "c", "d"]

    def test_remove_first_occurrence_only(self) -> None:
        playlist = make_playlist("a", "b", "a", "c")
        reconciler = PlaylistOrderReconciler(playlist)

        reconciler.remove_first_occurrence(make_song("a"))

        assert order_of(reconciler) == ["b", "a", "c"]
        assert_dense(playlist)

    def test_remove_all(self) -> None:
        playlist = make_playlist("a", "b")
        reconciler = PlaylistOrderReconciler(playlist)

        reconciler.remove_all()

        assert reconciler.count == 0
        assert playlist.song_count == 0

    def test_move_forward(self) -> None:
        playlist = make_playlist("a", "b", "c", "d")
        reconciler = PlaylistOrderReconciler(playlist)

        assert reconciler.move(0, 3)

        assert order_of(reconciler) == ["b", "c", "d", "a"]
        assert_dense(playlist)

    def test_move_backward(self) -> None:
        playlist = make_playlist("a", "b", "c", "d")
        reconciler = PlaylistOrderReconciler(playlist)

        assert reconciler.move(3, 1)

        assert order_of(reconciler) == ["a", "d", "b", "c"]
        assert_dense(playlist)

    @pytest.mark.parametrize(("from_index", "to_index"), [(1, 1), (0, 4), (-1, 2), (5, 0)])
    def test_move_rejects_noop_and_out_of_range(self, from_index: int, to_index: int) -> None:
        playlist = make_playlist("a", "b", "c", "d")
        reconciler = PlaylistOrderReconciler(playlist)

        assert not reconciler.move(from_index, to_index)
        assert order_of(reconciler) == ["a", "b", "c", "d"]

    def test_shuffle_is_a_permutation(self) -> None:
        playlist = make_playlist(*"abcdefgh")
        reconciler = PlaylistOrderReconciler(playlist, rng=random.Random(42))

        reconciler.shuffle()

        assert sorted(order_of(reconciler)) == list("abcdefgh")
        assert_dense(playlist)

    def test_shuffle_empty_playlist(self) -> None:
        playlist = make_playlist()
        PlaylistOrderReconciler(playlist).shuffle()
        assert playlist.items == []


class TestPlaylistOrderRemoteReconcile:
    """Test reconcile_from_remote()."""

    def test_shorter_remote_list_truncates(self) -> None:
        playlist = make_playlist("a", "b", "c", "d", "e")
        reconciler = PlaylistOrderReconciler(playlist)

        changed = reconciler.reconcile_from_remote([make_song("a"), make_song("x")])

        assert changed
        assert order_of(reconciler) == ["a", "x"]
        assert_dense(playlist)
        assert playlist.changed_at is not None

    def test_longer_remote_list_appends(self) -> None:
        playlist = make_playlist("a")
        reconciler = PlaylistOrderReconciler(playlist)

        reconciler.reconcile_from_remote([make_song("a"), make_song("b"), make_song("c")])

        assert order_of(reconciler) == ["a", "b", "c"]
        assert playlist.song_count == 3

    def test_identical_remote_list_reports_no_change(self) -> None:
        playlist = make_playlist("a", "b")
        reconciler = PlaylistOrderReconciler(playlist)
        items_before = list(reconciler.items)

        changed = reconciler.reconcile_from_remote([make_song("a"), make_song("b")])

        assert not changed
        assert playlist.changed_at is None
        assert reconciler.items == items_before

    def test_position_reuses_local_item(self) -> None:
        playlist = make_playlist("a", "b")
        reconciler = PlaylistOrderReconciler(playlist)
        second = reconciler.items[1]

        reconciler.reconcile_from_remote([make_song("a"), make_song("z")])

        assert reconciler.items[1] is second
        assert second.song.remote_id == "z"


class TestPlaylistOrderConsistency:
    """Test repair and cached-index queries."""

    def test_repairs_gaps_and_duplicates(self) -> None:
        playlist = PlaylistModel(remote_id="pl-1", name="Broken", song_count=0)
        playlist.items.extend(
            [
                PlaylistItemModel(order=7, song=make_song("c")),
                PlaylistItemModel(order=2, song=make_song("a")),
                PlaylistItemModel(order=5, song=make_song("b")),
            ]
        )
        reconciler = PlaylistOrderReconciler(playlist)

        assert reconciler.ensure_consistent_item_order()
        assert order_of(reconciler) == ["a", "b", "c"]
        assert_dense(playlist)
        assert not reconciler.ensure_consistent_item_order()

    def test_cached_index_queries(self) -> None:
        playlist = PlaylistModel(remote_id="pl-1", name="Cached", song_count=0)
        for index, cached in enumerate([True, False, False, True, False]):
            playlist.items.append(
                PlaylistItemModel(order=index, song=make_song(str(index), cached=cached))
            )
        reconciler = PlaylistOrderReconciler(playlist)

        assert reconciler.next_cached_index(0) == 3
        assert reconciler.next_cached_index(3) is None
        assert reconciler.next_cached_index_beginning_at(3) == 3
        assert reconciler.previous_cached_index(3) == 0
        assert reconciler.previous_cached_index_beginning_at(3) == 3
        assert reconciler.previous_cached_index(0) is None

    def test_cached_index_bounds(self) -> None:
        playlist = make_playlist("a", "b")
        reconciler = PlaylistOrderReconciler(playlist)

        assert reconciler.next_cached_index(2) is None
        assert reconciler.previous_cached_index(3) is None

    def test_first_index_of(self) -> None:
        playlist = make_playlist("a", "b", "b")
        reconciler = PlaylistOrderReconciler(playlist)

        assert reconciler.first_index_of(make_song("b")) == 1
        assert reconciler.first_index_of(make_song("nope")) is None
