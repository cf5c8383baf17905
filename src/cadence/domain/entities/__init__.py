"""Domain entities."""

from cadence.domain.entities.library import (
    FULL_SYNC_PHASES,
    OPTIONAL_PHASES,
    SEARCHABLE_CLASSES,
    EntityClass,
    LibraryMetadata,
    ParentScope,
    RawRecord,
    SyncState,
)
from cadence.domain.entities.sync_report import (
    PhaseReport,
    ReconcileResult,
    SyncEvent,
    SyncEventKind,
    SyncOutcome,
    SyncReport,
)

__all__ = [
    "FULL_SYNC_PHASES",
    "OPTIONAL_PHASES",
    "SEARCHABLE_CLASSES",
    "EntityClass",
    "LibraryMetadata",
    "ParentScope",
    "PhaseReport",
    "RawRecord",
    "ReconcileResult",
    "SyncEvent",
    "SyncEventKind",
    "SyncOutcome",
    "SyncReport",
    "SyncState",
]
