"""SQLAlchemy ORM models for the local library mirror."""

import uuid
from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from cadence.domain.entities import EntityClass, SyncState

SMART_PLAYLIST_ID_PREFIX = "smart_"


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite drops tzinfo on the way back, so compare DB datetimes only
# after passing them through here.
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def new_uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Listen up, the epoch id is NOT autoincrement. It is "number of epochs that existed
# before this one", assigned by LibraryStorage.create_epoch(). Entities point at the
# epoch that last touched them, which is how a finished full sync finds the stale rows
# it did not see again.
class SyncEpochModel(Base):
    """One full synchronization run."""

    __tablename__ = "sync_epochs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SyncState.PENDING.value
    )
    # {"artist": "2025-01-03T10:00:00+00:00", ...} as reported by the server
    change_dates: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    @property
    def is_done(self) -> bool:
        return self.state == SyncState.DONE.value


class GenreModel(Base):
    """Genre known to the remote server."""

    __tablename__ = "genres"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    remote_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sync_epoch_id: Mapped[int | None] = mapped_column(
        ForeignKey("sync_epochs.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )


class ArtistModel(Base):
    """Artist known to the remote server."""

    __tablename__ = "artists"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    remote_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    album_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sync_epoch_id: Mapped[int | None] = mapped_column(
        ForeignKey("sync_epochs.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (Index("ix_artists_name_lower", sa.func.lower(name)),)


class AlbumModel(Base):
    """Album known to the remote server."""

    __tablename__ = "albums"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    remote_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    artist_id: Mapped[str | None] = mapped_column(
        ForeignKey("artists.id", ondelete="SET NULL"), nullable=True, index=True
    )
    genre_id: Mapped[str | None] = mapped_column(
        ForeignKey("genres.id", ondelete="SET NULL"), nullable=True
    )
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    song_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cover_art_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sync_epoch_id: Mapped[int | None] = mapped_column(
        ForeignKey("sync_epochs.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    # Hey future me - artist_id and genre_id are set as plain columns and these
    # relationships are never read. They only tell the unit of work that a new stub
    # artist must be INSERTed before the album row pointing at it.
    artist: Mapped["ArtistModel | None"] = relationship("ArtistModel")
    genre: Mapped["GenreModel | None"] = relationship("GenreModel")


# Hey future me - directory_id is only filled by the Subsonic directory browse. A song
# can sit in an album AND a directory at the same time, removing it from one scope
# detaches it there and leaves the other edge alone.
class SongModel(Base):
    """Song known to the remote server."""

    __tablename__ = "songs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    remote_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    album_id: Mapped[str | None] = mapped_column(
        ForeignKey("albums.id", ondelete="SET NULL"), nullable=True, index=True
    )
    artist_id: Mapped[str | None] = mapped_column(
        ForeignKey("artists.id", ondelete="SET NULL"), nullable=True, index=True
    )
    genre_id: Mapped[str | None] = mapped_column(
        ForeignKey("genres.id", ondelete="SET NULL"), nullable=True
    )
    directory_id: Mapped[str | None] = mapped_column(
        ForeignKey("directories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    track: Mapped[int | None] = mapped_column(Integer, nullable=True)
    disc: Mapped[int | None] = mapped_column(Integer, nullable=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    content_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bit_rate: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cover_art_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Local file of a downloaded copy; set by the playback side, never by sync.
    cached_file_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    sync_epoch_id: Mapped[int | None] = mapped_column(
        ForeignKey("sync_epochs.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    # Never read. Only orders the flush: a new stub album, artist or genre is
    # inserted before the song row that points at it.
    album: Mapped["AlbumModel | None"] = relationship("AlbumModel")
    artist: Mapped["ArtistModel | None"] = relationship("ArtistModel")
    genre: Mapped["GenreModel | None"] = relationship("GenreModel")
    directory: Mapped["DirectoryModel | None"] = relationship("DirectoryModel")

    @property
    def is_cached(self) -> bool:
        return bool(self.cached_file_path)


# Yo, remote_id is NOT unique here: "" means "not created on the server yet" and
# several local playlists can be in that state at once.
class PlaylistModel(Base):
    """Playlist with an ordered list of items."""

    __tablename__ = "playlists"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    remote_id: Mapped[str] = mapped_column(
        String(255), nullable=False, default="", index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner: Mapped[str | None] = mapped_column(String(255), nullable=True)
    song_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Set whenever a remote sync changed which songs sit at which position.
    changed_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    sync_epoch_id: Mapped[int | None] = mapped_column(
        ForeignKey("sync_epochs.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    items: Mapped[list["PlaylistItemModel"]] = relationship(
        "PlaylistItemModel",
        back_populates="playlist",
        cascade="all, delete-orphan",
        order_by="PlaylistItemModel.order",
        lazy="selectin",
    )

    @property
    def is_smart_playlist(self) -> bool:
        return self.remote_id.startswith(SMART_PLAYLIST_ID_PREFIX)


class PlaylistItemModel(Base):
    """One position in a playlist."""

    __tablename__ = "playlist_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    playlist_id: Mapped[str] = mapped_column(
        ForeignKey("playlists.id", ondelete="CASCADE"), nullable=False
    )
    # "order" is a reserved word in SQL, hence the column name.
    order: Mapped[int] = mapped_column("item_order", Integer, nullable=False)
    song_id: Mapped[str | None] = mapped_column(
        ForeignKey("songs.id", ondelete="SET NULL"), nullable=True
    )

    playlist: Mapped["PlaylistModel"] = relationship(
        "PlaylistModel", back_populates="items"
    )
    song: Mapped["SongModel | None"] = relationship("SongModel", lazy="selectin")

    __table_args__ = (Index("ix_playlist_items_playlist_order", "playlist_id", "item_order"),)

    @property
    def is_cached(self) -> bool:
        return self.song is not None and self.song.is_cached


class PodcastModel(Base):
    """Podcast channel."""

    __tablename__ = "podcasts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    remote_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    cover_art_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sync_epoch_id: Mapped[int | None] = mapped_column(
        ForeignKey("sync_epochs.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )


class PodcastEpisodeModel(Base):
    """Podcast episode."""

    __tablename__ = "podcast_episodes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    remote_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    podcast_id: Mapped[str | None] = mapped_column(
        ForeignKey("podcasts.id", ondelete="CASCADE"), nullable=True, index=True
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    publish_date: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    stream_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sync_epoch_id: Mapped[int | None] = mapped_column(
        ForeignKey("sync_epochs.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    podcast: Mapped["PodcastModel | None"] = relationship("PodcastModel")


class MusicFolderModel(Base):
    """Top-level media folder exposed by the server."""

    __tablename__ = "music_folders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    remote_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sync_epoch_id: Mapped[int | None] = mapped_column(
        ForeignKey("sync_epochs.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )


# Hey future me - top-level index entries carry music_folder_id, nested ones carry
# parent_id. Never both, otherwise the music folder's snapshot would contain the whole
# subtree and a reconcile of the index would wipe nested directories.
class DirectoryModel(Base):
    """Browsable server directory."""

    __tablename__ = "directories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    remote_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    parent_id: Mapped[str | None] = mapped_column(
        ForeignKey("directories.id", ondelete="CASCADE"), nullable=True, index=True
    )
    music_folder_id: Mapped[str | None] = mapped_column(
        ForeignKey("music_folders.id", ondelete="CASCADE"), nullable=True, index=True
    )
    sync_epoch_id: Mapped[int | None] = mapped_column(
        ForeignKey("sync_epochs.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    # Never read. Only orders the flush: a new parent row is inserted first.
    parent: Mapped["DirectoryModel | None"] = relationship(
        "DirectoryModel", remote_side="DirectoryModel.id"
    )
    music_folder: Mapped["MusicFolderModel | None"] = relationship("MusicFolderModel")


MODEL_BY_ENTITY_CLASS: dict[EntityClass, type[Base]] = {
    EntityClass.GENRE: GenreModel,
    EntityClass.ARTIST: ArtistModel,
    EntityClass.ALBUM: AlbumModel,
    EntityClass.SONG: SongModel,
    EntityClass.PLAYLIST: PlaylistModel,
    EntityClass.PODCAST: PodcastModel,
    EntityClass.PODCAST_EPISODE: PodcastEpisodeModel,
    EntityClass.DIRECTORY: DirectoryModel,
    EntityClass.MUSIC_FOLDER: MusicFolderModel,
}
