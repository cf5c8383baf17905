"""Per-entity-class reconciliation descriptors."""

# Hey future me - this table is what makes ONE reconciler work for every entity class.
# Each descriptor says which record key is the display name, which column links a child
# to its parent scope, what happens to children the server stopped listing, and how to
# copy a record's fields onto the ORM object. Adding a new scope (say "songs of a
# genre") is a new row here, not a new reconciler subclass.

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from cadence.domain.entities import EntityClass, RawRecord
from cadence.infrastructure.persistence import LibraryStorage
from cadence.infrastructure.persistence.models import ensure_utc_aware

logger = logging.getLogger(__name__)


class RemovalPolicy(str, Enum):
    """What to do with a child the server no longer lists under its parent."""

    DELETE = "delete"
    DETACH = "detach"


@dataclass
class ApplyContext:
    """What a field applier may touch besides the entity itself."""

    storage: LibraryStorage
    epoch_id: int | None


FieldApplier = Callable[[ApplyContext, Any, RawRecord], Awaitable[bool]]


@dataclass(frozen=True)
class EntityDescriptor:
    """How to reconcile one entity class within one kind of parent scope.

    Attributes:
        entity_class: Class of the children being reconciled
        name_key: Mandatory record key holding the display name
        name_attr: ORM attribute the name is stored in
        apply_fields: Copies the remaining record fields, returns True if anything changed
        parent_class: Class of the parent scope, None for the whole library
        parent_attr: Foreign key column linking a child to the parent
        on_removed: Policy for children missing from the remote listing
        exclusive_attrs: Other parent columns cleared when a child is attached here
    """

    entity_class: EntityClass
    name_key: str
    name_attr: str
    apply_fields: FieldApplier
    parent_class: EntityClass | None = None
    parent_attr: str | None = None
    on_removed: RemovalPolicy = RemovalPolicy.DELETE
    exclusive_attrs: tuple[str, ...] = ()

    @property
    def is_library_scoped(self) -> bool:
        return self.parent_class is None


# =============================================================================
# VALUE COERCION
# =============================================================================


def text_value(value: Any) -> str | None:
    """Stripped string or None for missing/blank values."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def int_value(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def datetime_value(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    text = text_value(value)
    if text is None:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable timestamp %r ignored", text)
        return None


def assign(entity: Any, attr: str, value: Any) -> bool:
    """Set an attribute only when the value differs; report whether it did."""
    current = getattr(entity, attr)
    if isinstance(current, datetime) and isinstance(value, datetime):
        # SQLite hands datetimes back naive
        if ensure_utc_aware(current) == ensure_utc_aware(value):
            return False
    elif current == value:
        return False
    setattr(entity, attr, value)
    return True


def assign_many(entity: Any, values: dict[str, Any]) -> bool:
    changed = False
    for attr, value in values.items():
        changed |= assign(entity, attr, value)
    return changed


async def resolve_reference(
    ctx: ApplyContext,
    entity_class: EntityClass,
    remote_id: Any,
    name: Any,
) -> str | None:
    """Local primary key for a referenced entity, creating a stub if it is unknown.

    A song may mention an artist the artist phase never listed (or a partial sync may
    run before any full sync). The stub carries id and name so a later pass fills it in
    instead of duplicating it.
    """
    rid = text_value(remote_id)
    if rid is None:
        return None
    entity = await ctx.storage.find_by_id(entity_class, rid)
    if entity is None:
        entity = ctx.storage.create(
            entity_class,
            remote_id=rid,
            name=text_value(name) or rid,
            sync_epoch_id=ctx.epoch_id,
        )
        logger.debug("Created %s stub for remote id %s", entity_class.value, rid)
    return str(entity.id)


# =============================================================================
# FIELD APPLIERS
# =============================================================================


async def _apply_nothing(ctx: ApplyContext, entity: Any, record: RawRecord) -> bool:
    return False


async def _apply_artist(ctx: ApplyContext, entity: Any, record: RawRecord) -> bool:
    return assign(entity, "album_count", int_value(record.get("albumCount")))


async def _apply_references(
    ctx: ApplyContext,
    record: RawRecord,
    references: dict[str, tuple[EntityClass, str, str]],
) -> dict[str, str | None]:
    """Resolve reference columns whose remote id the record actually carries.

    A listing that omits a reference (directory children often have no album id)
    keeps the edge an earlier pass made instead of clearing it.
    """
    values: dict[str, str | None] = {}
    for attr, (entity_class, id_key, name_key) in references.items():
        if text_value(record.get(id_key)) is None:
            continue
        values[attr] = await resolve_reference(
            ctx, entity_class, record.get(id_key), record.get(name_key)
        )
    return values


async def _apply_album(ctx: ApplyContext, entity: Any, record: RawRecord) -> bool:
    values: dict[str, Any] = await _apply_references(
        ctx,
        record,
        {
            "artist_id": (EntityClass.ARTIST, "artistId", "artist"),
            "genre_id": (EntityClass.GENRE, "genreId", "genre"),
        },
    )
    values.update(
        {
            "year": int_value(record.get("year")),
            "song_count": int_value(record.get("songCount")),
            "duration": int_value(record.get("duration")),
            "cover_art_id": text_value(record.get("coverArt")),
        }
    )
    return assign_many(entity, values)


async def _apply_song(ctx: ApplyContext, entity: Any, record: RawRecord) -> bool:
    values: dict[str, Any] = await _apply_references(
        ctx,
        record,
        {
            "album_id": (EntityClass.ALBUM, "albumId", "album"),
            "artist_id": (EntityClass.ARTIST, "artistId", "artist"),
            "genre_id": (EntityClass.GENRE, "genreId", "genre"),
        },
    )
    values.update(
        {
            "track": int_value(record.get("track")),
            "disc": int_value(record.get("disc")),
            "year": int_value(record.get("year")),
            "duration": int_value(record.get("duration")),
            "size": int_value(record.get("size")),
            "content_type": text_value(record.get("contentType")),
            "bit_rate": int_value(record.get("bitRate")),
            "cover_art_id": text_value(record.get("coverArt")),
        }
    )
    return assign_many(entity, values)


async def _apply_playlist(ctx: ApplyContext, entity: Any, record: RawRecord) -> bool:
    values: dict[str, Any] = {
        "owner": text_value(record.get("owner")),
        "duration": int_value(record.get("duration")),
    }
    # song_count mirrors the local items once they are synced; before that the
    # server's number is all we have.
    if not entity.items:
        values["song_count"] = int_value(record.get("songCount")) or 0
    return assign_many(entity, values)


async def _apply_podcast(ctx: ApplyContext, entity: Any, record: RawRecord) -> bool:
    return assign_many(
        entity,
        {
            "description": text_value(record.get("description")),
            "cover_art_id": text_value(record.get("coverArt")),
        },
    )


async def _apply_episode(ctx: ApplyContext, entity: Any, record: RawRecord) -> bool:
    return assign_many(
        entity,
        {
            "description": text_value(record.get("description")),
            "publish_date": datetime_value(record.get("publishDate")),
            "status": text_value(record.get("status")),
            "duration": int_value(record.get("duration")),
            "stream_id": text_value(record.get("streamId")),
        },
    )


# =============================================================================
# REGISTRY
# =============================================================================


def _library(
    entity_class: EntityClass,
    apply_fields: FieldApplier,
    name_key: str = "name",
    name_attr: str = "name",
) -> EntityDescriptor:
    return EntityDescriptor(
        entity_class=entity_class,
        name_key=name_key,
        name_attr=name_attr,
        apply_fields=apply_fields,
    )


DESCRIPTORS: dict[tuple[EntityClass, EntityClass | None], EntityDescriptor] = {
    (EntityClass.GENRE, None): _library(EntityClass.GENRE, _apply_nothing),
    (EntityClass.ARTIST, None): _library(EntityClass.ARTIST, _apply_artist),
    (EntityClass.ALBUM, None): _library(EntityClass.ALBUM, _apply_album),
    (EntityClass.SONG, None): _library(
        EntityClass.SONG, _apply_song, name_key="title", name_attr="title"
    ),
    (EntityClass.PLAYLIST, None): _library(EntityClass.PLAYLIST, _apply_playlist),
    (EntityClass.PODCAST, None): _library(EntityClass.PODCAST, _apply_podcast),
    (EntityClass.MUSIC_FOLDER, None): _library(EntityClass.MUSIC_FOLDER, _apply_nothing),
    (EntityClass.ALBUM, EntityClass.ARTIST): EntityDescriptor(
        entity_class=EntityClass.ALBUM,
        name_key="name",
        name_attr="name",
        apply_fields=_apply_album,
        parent_class=EntityClass.ARTIST,
        parent_attr="artist_id",
        on_removed=RemovalPolicy.DELETE,
    ),
    (EntityClass.SONG, EntityClass.ARTIST): EntityDescriptor(
        entity_class=EntityClass.SONG,
        name_key="title",
        name_attr="title",
        apply_fields=_apply_song,
        parent_class=EntityClass.ARTIST,
        parent_attr="artist_id",
        on_removed=RemovalPolicy.DETACH,
    ),
    (EntityClass.SONG, EntityClass.ALBUM): EntityDescriptor(
        entity_class=EntityClass.SONG,
        name_key="title",
        name_attr="title",
        apply_fields=_apply_song,
        parent_class=EntityClass.ALBUM,
        parent_attr="album_id",
        on_removed=RemovalPolicy.DETACH,
    ),
    (EntityClass.SONG, EntityClass.DIRECTORY): EntityDescriptor(
        entity_class=EntityClass.SONG,
        name_key="title",
        name_attr="title",
        apply_fields=_apply_song,
        parent_class=EntityClass.DIRECTORY,
        parent_attr="directory_id",
        on_removed=RemovalPolicy.DETACH,
    ),
    (EntityClass.PODCAST_EPISODE, EntityClass.PODCAST): EntityDescriptor(
        entity_class=EntityClass.PODCAST_EPISODE,
        name_key="title",
        name_attr="title",
        apply_fields=_apply_episode,
        parent_class=EntityClass.PODCAST,
        parent_attr="podcast_id",
        on_removed=RemovalPolicy.DELETE,
    ),
    (EntityClass.DIRECTORY, EntityClass.MUSIC_FOLDER): EntityDescriptor(
        entity_class=EntityClass.DIRECTORY,
        name_key="name",
        name_attr="name",
        apply_fields=_apply_nothing,
        parent_class=EntityClass.MUSIC_FOLDER,
        parent_attr="music_folder_id",
        on_removed=RemovalPolicy.DELETE,
        exclusive_attrs=("parent_id",),
    ),
    (EntityClass.DIRECTORY, EntityClass.DIRECTORY): EntityDescriptor(
        entity_class=EntityClass.DIRECTORY,
        name_key="name",
        name_attr="name",
        apply_fields=_apply_nothing,
        parent_class=EntityClass.DIRECTORY,
        parent_attr="parent_id",
        on_removed=RemovalPolicy.DELETE,
        exclusive_attrs=("music_folder_id",),
    ),
}


def descriptor_for(
    entity_class: EntityClass, parent_class: EntityClass | None = None
) -> EntityDescriptor:
    """Look up the descriptor for children of entity_class under parent_class.

    Raises:
        KeyError: If that combination is not something the engine reconciles
    """
    try:
        return DESCRIPTORS[(entity_class, parent_class)]
    except KeyError:
        scope = parent_class.value if parent_class else "library"
        raise KeyError(
            f"No reconciliation descriptor for {entity_class.value} under {scope}"
        ) from None
