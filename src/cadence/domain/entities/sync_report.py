"""Results and progress events produced by a synchronization run."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from cadence.domain.entities.library import EntityClass


@dataclass
class ReconcileResult:
    """Delta applied by one reconciliation pass (or a merge of several)."""

    added: int = 0
    updated: int = 0
    unchanged: int = 0
    moved: int = 0
    removed: int = 0
    skipped: int = 0
    seen_ids: set[str] = field(default_factory=set, repr=False)

    @property
    def processed(self) -> int:
        return self.added + self.updated + self.unchanged + self.moved

    def merge(self, other: "ReconcileResult") -> "ReconcileResult":
        """Fold another result into this one and return self."""
        self.added += other.added
        self.updated += other.updated
        self.unchanged += other.unchanged
        self.moved += other.moved
        self.removed += other.removed
        self.skipped += other.skipped
        self.seen_ids |= other.seen_ids
        return self

    def to_dict(self) -> dict[str, int]:
        return {
            "added": self.added,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "moved": self.moved,
            "removed": self.removed,
            "skipped": self.skipped,
        }


class SyncEventKind(str, Enum):
    """Progress notifications sent to a sync listener."""

    PHASE_STARTED = "phase_started"
    PHASE_FINISHED = "phase_finished"
    PHASE_SKIPPED = "phase_skipped"
    FINISHED = "finished"
    FINISHED_WITH_ERRORS = "finished_with_errors"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (
            SyncEventKind.FINISHED,
            SyncEventKind.FINISHED_WITH_ERRORS,
            SyncEventKind.ABORTED,
        )


class SyncOutcome(str, Enum):
    """How a full sync ended."""

    RUNNING = "running"
    FINISHED = "finished"
    FINISHED_WITH_ERRORS = "finished_with_errors"
    ABORTED = "aborted"


@dataclass(frozen=True)
class SyncEvent:
    """One progress notification."""

    kind: SyncEventKind
    entity_class: EntityClass | None = None
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "entity_class": self.entity_class.value if self.entity_class else None,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class PhaseReport:
    """Outcome of one entity-class phase of a full sync."""

    entity_class: EntityClass
    pages_dispatched: int = 0
    pages_failed: int = 0
    skipped_reason: str | None = None
    result: ReconcileResult = field(default_factory=ReconcileResult)

    @property
    def succeeded(self) -> bool:
        return self.pages_failed == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_class": self.entity_class.value,
            "pages_dispatched": self.pages_dispatched,
            "pages_failed": self.pages_failed,
            "skipped_reason": self.skipped_reason,
            **self.result.to_dict(),
        }


@dataclass
class SyncReport:
    """Summary of a full sync run."""

    epoch_id: int | None = None
    outcome: SyncOutcome = SyncOutcome.RUNNING
    error: str | None = None
    phases: list[PhaseReport] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    @property
    def failed_pages(self) -> int:
        return sum(phase.pages_failed for phase in self.phases)

    def phase(self, entity_class: EntityClass) -> PhaseReport | None:
        for phase in self.phases:
            if phase.entity_class == entity_class:
                return phase
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "epoch_id": self.epoch_id,
            "outcome": self.outcome.value,
            "error": self.error,
            "failed_pages": self.failed_pages,
            "phases": [phase.to_dict() for phase in self.phases],
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }
