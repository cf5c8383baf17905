"""Tests for sync result and report types."""

from datetime import UTC, datetime

from cadence.domain.entities import (
    EntityClass,
    LibraryMetadata,
    PhaseReport,
    ReconcileResult,
    SyncEventKind,
    SyncOutcome,
    SyncReport,
)


class TestReconcileResult:
    """Test merging results."""

    def test_merge(self) -> None:
        first = ReconcileResult(added=1, updated=2, seen_ids={"a"})
        second = ReconcileResult(added=3, removed=1, skipped=1, seen_ids={"b"})

        merged = first.merge(second)

        assert merged is first
        assert merged.to_dict() == {
            "added": 4,
            "updated": 2,
            "unchanged": 0,
            "moved": 0,
            "removed": 1,
            "skipped": 1,
        }
        assert merged.seen_ids == {"a", "b"}
        assert merged.processed == 6


class TestSyncReport:
    """Test report aggregation."""

    def test_failed_pages_sum_over_phases(self) -> None:
        report = SyncReport(
            phases=[
                PhaseReport(EntityClass.ARTIST, pages_dispatched=3, pages_failed=1),
                PhaseReport(EntityClass.SONG, pages_dispatched=4, pages_failed=2),
            ]
        )

        assert report.failed_pages == 3
        assert report.phase(EntityClass.SONG).pages_dispatched == 4
        assert report.phase(EntityClass.PODCAST) is None
        assert report.to_dict()["outcome"] == SyncOutcome.RUNNING.value

    def test_terminal_event_kinds(self) -> None:
        assert SyncEventKind.ABORTED.is_terminal
        assert not SyncEventKind.PHASE_FINISHED.is_terminal

    def test_metadata_change_dates_serialize(self) -> None:
        metadata = LibraryMetadata(
            change_dates={"update": datetime(2024, 1, 1, tzinfo=UTC), "clean": None}
        )

        assert metadata.serialized_change_dates() == {
            "update": "2024-01-01T00:00:00+00:00",
            "clean": None,
        }
        assert metadata.count_for(EntityClass.SONG) is None
