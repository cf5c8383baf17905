"""initial library schema

Revision ID: aa10001bbc01
Revises:
Create Date: 2026-10-19 09:00:00.000000

Hey future me - this is the whole library mirror in one go:
- sync_epochs: one row per full sync, id assigned by the app (NOT autoincrement)
- genres/artists/albums/songs/playlists/podcasts/...: every row carries remote_id
  (the server's id) and sync_epoch_id (the epoch that last saw it)
- playlist_items.item_order: dense 0..N-1 per playlist
- directories: music_folder_id for index entries, parent_id for nested ones
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "aa10001bbc01"
down_revision = None
branch_labels = None
depends_on = None


def _entity_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("remote_id", sa.String(255), nullable=False),
    ]


def _bookkeeping_columns() -> list[sa.Column]:
    return [
        sa.Column(
            "sync_epoch_id",
            sa.Integer(),
            sa.ForeignKey("sync_epochs.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def _index_entity(table: str, unique_remote_id: bool = True) -> None:
    op.create_index(f"ix_{table}_remote_id", table, ["remote_id"], unique=unique_remote_id)
    op.create_index(f"ix_{table}_sync_epoch_id", table, ["sync_epoch_id"])


def upgrade() -> None:
    op.create_table(
        "sync_epochs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("state", sa.String(20), nullable=False),
        sa.Column("change_dates", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "genres",
        *_entity_columns(),
        sa.Column("name", sa.String(255), nullable=False),
        *_bookkeeping_columns(),
    )
    _index_entity("genres")

    op.create_table(
        "artists",
        *_entity_columns(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("album_count", sa.Integer(), nullable=True),
        *_bookkeeping_columns(),
    )
    _index_entity("artists")
    op.create_index("ix_artists_name_lower", "artists", [sa.text("lower(name)")])

    op.create_table(
        "albums",
        *_entity_columns(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "artist_id",
            sa.String(36),
            sa.ForeignKey("artists.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "genre_id",
            sa.String(36),
            sa.ForeignKey("genres.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("song_count", sa.Integer(), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("cover_art_id", sa.String(255), nullable=True),
        *_bookkeeping_columns(),
    )
    _index_entity("albums")
    op.create_index("ix_albums_artist_id", "albums", ["artist_id"])

    op.create_table(
        "music_folders",
        *_entity_columns(),
        sa.Column("name", sa.String(255), nullable=False),
        *_bookkeeping_columns(),
    )
    _index_entity("music_folders")

    op.create_table(
        "directories",
        *_entity_columns(),
        sa.Column("name", sa.String(512), nullable=False),
        sa.Column(
            "parent_id",
            sa.String(36),
            sa.ForeignKey("directories.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "music_folder_id",
            sa.String(36),
            sa.ForeignKey("music_folders.id", ondelete="CASCADE"),
            nullable=True,
        ),
        *_bookkeeping_columns(),
    )
    _index_entity("directories")
    op.create_index("ix_directories_parent_id", "directories", ["parent_id"])
    op.create_index("ix_directories_music_folder_id", "directories", ["music_folder_id"])

    op.create_table(
        "songs",
        *_entity_columns(),
        sa.Column("title", sa.String(512), nullable=False),
        sa.Column(
            "album_id",
            sa.String(36),
            sa.ForeignKey("albums.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "artist_id",
            sa.String(36),
            sa.ForeignKey("artists.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "genre_id",
            sa.String(36),
            sa.ForeignKey("genres.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "directory_id",
            sa.String(36),
            sa.ForeignKey("directories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("track", sa.Integer(), nullable=True),
        sa.Column("disc", sa.Integer(), nullable=True),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("size", sa.Integer(), nullable=True),
        sa.Column("content_type", sa.String(100), nullable=True),
        sa.Column("bit_rate", sa.Integer(), nullable=True),
        sa.Column("cover_art_id", sa.String(255), nullable=True),
        sa.Column("cached_file_path", sa.String(1024), nullable=True),
        *_bookkeeping_columns(),
    )
    _index_entity("songs")
    op.create_index("ix_songs_album_id", "songs", ["album_id"])
    op.create_index("ix_songs_artist_id", "songs", ["artist_id"])
    op.create_index("ix_songs_directory_id", "songs", ["directory_id"])

    op.create_table(
        "playlists",
        *_entity_columns(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("owner", sa.String(255), nullable=True),
        sa.Column("song_count", sa.Integer(), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=True),
        *_bookkeeping_columns(),
    )
    # "" marks playlists not created on the server yet, several may share it
    _index_entity("playlists", unique_remote_id=False)

    op.create_table(
        "playlist_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "playlist_id",
            sa.String(36),
            sa.ForeignKey("playlists.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("item_order", sa.Integer(), nullable=False),
        sa.Column(
            "song_id",
            sa.String(36),
            sa.ForeignKey("songs.id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    op.create_index(
        "ix_playlist_items_playlist_order", "playlist_items", ["playlist_id", "item_order"]
    )

    op.create_table(
        "podcasts",
        *_entity_columns(),
        sa.Column("name", sa.String(512), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("cover_art_id", sa.String(255), nullable=True),
        *_bookkeeping_columns(),
    )
    _index_entity("podcasts")

    op.create_table(
        "podcast_episodes",
        *_entity_columns(),
        sa.Column("title", sa.String(512), nullable=False),
        sa.Column(
            "podcast_id",
            sa.String(36),
            sa.ForeignKey("podcasts.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("publish_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(50), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("stream_id", sa.String(255), nullable=True),
        *_bookkeeping_columns(),
    )
    _index_entity("podcast_episodes")
    op.create_index("ix_podcast_episodes_podcast_id", "podcast_episodes", ["podcast_id"])


def downgrade() -> None:
    for table in (
        "podcast_episodes",
        "podcasts",
        "playlist_items",
        "playlists",
        "songs",
        "directories",
        "music_folders",
        "albums",
        "artists",
        "genres",
        "sync_epochs",
    ):
        op.drop_table(table)
