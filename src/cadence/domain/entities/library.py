"""Library-level value types shared by the sync engine."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

# A remote record after the transport layer normalized it to canonical keys
# ("id", "name"/"title", "albumId", ...). Values are whatever JSON gave us.
RawRecord = Mapping[str, Any]


# Hey future me - the values double as the keys the server reports counts and change
# dates under, and as the capability names in "unsupported" errors. Keep them stable,
# they also end up in the sync_epochs.change_dates JSON column.
class EntityClass(str, Enum):
    """Kinds of library entities the engine synchronizes."""

    GENRE = "genre"
    ARTIST = "artist"
    ALBUM = "album"
    SONG = "song"
    PLAYLIST = "playlist"
    PODCAST = "podcast"
    PODCAST_EPISODE = "podcast_episode"
    DIRECTORY = "directory"
    MUSIC_FOLDER = "music_folder"


class SyncState(str, Enum):
    """Completion state of a sync epoch."""

    PENDING = "pending"
    DONE = "done"


# Order matters: later phases resolve parents created by earlier ones.
FULL_SYNC_PHASES: tuple[EntityClass, ...] = (
    EntityClass.GENRE,
    EntityClass.ARTIST,
    EntityClass.ALBUM,
    EntityClass.SONG,
    EntityClass.PLAYLIST,
    EntityClass.PODCAST,
)

# Phases a run may skip when the server does not offer them.
OPTIONAL_PHASES: frozenset[EntityClass] = frozenset({EntityClass.PODCAST})

SEARCHABLE_CLASSES: frozenset[EntityClass] = frozenset(
    {EntityClass.ARTIST, EntityClass.ALBUM, EntityClass.SONG}
)


@dataclass(frozen=True)
class ParentScope:
    """Serializable reference to the parent whose children a fetch covers.

    Workers receive this instead of a live ORM object and resolve it in their own
    session.
    """

    entity_class: EntityClass
    remote_id: str


@dataclass
class LibraryMetadata:
    """What the server told us about its catalog before a sync.

    counts: number of entities per class, or None when the dialect does not report
        one (the phase then runs as a single unpaged stream).
    change_dates: server-side "last changed" timestamps per class, stored on the epoch.
    """

    counts: dict[EntityClass, int | None] = field(default_factory=dict)
    change_dates: dict[str, datetime | None] = field(default_factory=dict)
    supports_podcasts: bool = False
    server_version: str | None = None

    def count_for(self, entity_class: EntityClass) -> int | None:
        return self.counts.get(entity_class)

    def serialized_change_dates(self) -> dict[str, str | None]:
        """Change dates as ISO strings for JSON storage."""
        return {
            key: value.isoformat() if value is not None else None
            for key, value in self.change_dates.items()
        }


