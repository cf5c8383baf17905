"""Ampache JSON API adapter.

Hey future me - Ampache is the "counts up front" dialect. The handshake tells us how
many artists, albums, songs... exist and when the catalog last changed (update, add,
clean), so the orchestrator can split every phase into exact offset/limit pages.

Auth is a session token from the handshake:
    passphrase = sha256(timestamp + sha256(password))
Sessions expire. An error 4701 makes us handshake again and repeat the call once.

Ampache reports errors inside a 200 response, in two shapes depending on the version:
    {"error": {"errorCode": "4704", "errorMessage": "Not Found"}}      (API 5+)
    {"error": {"code": "404", "message": "Not Found"}}                  (API 4)
Both become TransportError with error_code set.
"""

import hashlib
import logging
import time
from collections.abc import AsyncIterator, Sequence
from datetime import UTC, datetime
from typing import Any

from cadence.config import ServerSettings
from cadence.domain.entities import EntityClass, LibraryMetadata, ParentScope, RawRecord
from cadence.domain.exceptions import TransportError
from cadence.infrastructure.integrations.base_client import MediaServerClient, as_list

logger = logging.getLogger(__name__)

API_PATH = "/server/json.server.php"
DEFAULT_API_VERSION = "6.0.0"
SESSION_EXPIRED = "4701"
NOT_FOUND = "4704"

# action, JSON list key, handshake count key
_LIBRARY_ACTIONS: dict[EntityClass, tuple[str, str, str]] = {
    EntityClass.GENRE: ("genres", "genre", "genres"),
    EntityClass.ARTIST: ("artists", "artist", "artists"),
    EntityClass.ALBUM: ("albums", "album", "albums"),
    EntityClass.SONG: ("songs", "song", "songs"),
    EntityClass.PLAYLIST: ("playlists", "playlist", "playlists"),
    EntityClass.PODCAST: ("podcasts", "podcast", "podcasts"),
}

_CHILD_ACTIONS: dict[tuple[EntityClass, EntityClass], tuple[str, str]] = {
    (EntityClass.ALBUM, EntityClass.ARTIST): ("artist_albums", "album"),
    (EntityClass.SONG, EntityClass.ARTIST): ("artist_songs", "song"),
    (EntityClass.SONG, EntityClass.ALBUM): ("album_songs", "song"),
    (EntityClass.SONG, EntityClass.PLAYLIST): ("playlist_songs", "song"),
    (EntityClass.PODCAST_EPISODE, EntityClass.PODCAST): ("podcast_episodes", "podcast_episode"),
}

_SEARCH_ACTIONS: dict[EntityClass, tuple[str, str]] = {
    EntityClass.ARTIST: ("artists", "artist"),
    EntityClass.ALBUM: ("albums", "album"),
    EntityClass.SONG: ("search_songs", "song"),
}

_UNSUPPORTED = frozenset({EntityClass.DIRECTORY, EntityClass.MUSIC_FOLDER})


def _ref(value: Any) -> tuple[Any, Any]:
    """(id, name) of a nested {"id": .., "name": ..} reference."""
    if isinstance(value, dict):
        return value.get("id"), value.get("name")
    return None, value


def _first_genre(record: dict[str, Any]) -> tuple[Any, Any]:
    genres = as_list(record.get("genre"))
    return _ref(genres[0]) if genres else (None, None)


def _timestamp(value: Any) -> datetime | None:
    """Ampache dates come as ISO strings or unix seconds."""
    if value in (None, ""):
        return None
    if isinstance(value, int | float) or str(value).isdigit():
        return datetime.fromtimestamp(int(value), tz=UTC)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable Ampache date %r ignored", value)
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def normalize_record(entity_class: EntityClass, record: dict[str, Any]) -> RawRecord:
    """Map an Ampache object to canonical record keys."""
    if entity_class == EntityClass.GENRE:
        return {"id": record.get("id"), "name": record.get("name")}
    if entity_class == EntityClass.ARTIST:
        return {
            "id": record.get("id"),
            "name": record.get("name"),
            "albumCount": record.get("albumcount"),
        }
    if entity_class == EntityClass.ALBUM:
        artist_id, artist = _ref(record.get("artist"))
        genre_id, genre = _first_genre(record)
        return {
            "id": record.get("id"),
            "name": record.get("name"),
            "artistId": artist_id,
            "artist": artist,
            "genreId": genre_id,
            "genre": genre,
            "year": record.get("year"),
            "songCount": record.get("songcount"),
            "duration": record.get("time"),
            "coverArt": record.get("art"),
        }
    if entity_class == EntityClass.SONG:
        artist_id, artist = _ref(record.get("artist"))
        album_id, album = _ref(record.get("album"))
        genre_id, genre = _first_genre(record)
        return {
            "id": record.get("id"),
            "title": record.get("title"),
            "artistId": artist_id,
            "artist": artist,
            "albumId": album_id,
            "album": album,
            "genreId": genre_id,
            "genre": genre,
            "track": record.get("track"),
            "disc": record.get("disk"),
            "year": record.get("year"),
            "duration": record.get("time"),
            "size": record.get("size"),
            "contentType": record.get("mime"),
            "bitRate": record.get("bitrate"),
            "coverArt": record.get("art"),
        }
    if entity_class == EntityClass.PLAYLIST:
        return {
            "id": record.get("id"),
            "name": record.get("name"),
            "owner": record.get("owner"),
            "songCount": record.get("items"),
        }
    if entity_class == EntityClass.PODCAST:
        return {
            "id": record.get("id"),
            "name": record.get("name"),
            "description": record.get("description"),
            "coverArt": record.get("art"),
        }
    if entity_class == EntityClass.PODCAST_EPISODE:
        return {
            "id": record.get("id"),
            "title": record.get("title"),
            "description": record.get("description"),
            "publishDate": _timestamp(record.get("pubdate")),
            "status": record.get("state"),
            "duration": record.get("time"),
            "streamId": None,
        }
    raise ValueError(f"Ampache has no {entity_class.value} records")


class AmpacheClient(MediaServerClient):
    """ILibraryServerApi over the Ampache JSON API.

    Usage:
        client = AmpacheClient(settings.server)
        metadata = await client.fetch_library_metadata()
        async for record in client.fetch_page(EntityClass.ARTIST, None, 0, 500):
            ...
        await client.close()
    """

    dialect = "ampache"
    service_name = "ampache"
    max_batch_size = 5000

    def __init__(self, settings: ServerSettings) -> None:
        super().__init__(settings)
        self._auth: str | None = None
        self._supports_podcasts = False

    # =========================================================================
    # SESSION
    # =========================================================================

    async def _handshake(self) -> dict[str, Any]:
        timestamp = str(int(time.time()))
        key = hashlib.sha256(self._settings.password.encode()).hexdigest()
        passphrase = hashlib.sha256((timestamp + key).encode()).hexdigest()
        payload = await self._get_json(
            API_PATH,
            {
                "action": "handshake",
                "auth": passphrase,
                "timestamp": timestamp,
                "version": self._settings.api_version or DEFAULT_API_VERSION,
                "user": self._settings.username,
            },
        )
        auth = payload.get("auth")
        if not auth:
            raise TransportError("Ampache handshake returned no session", service=self.service_name)
        self._auth = str(auth)
        self._supports_podcasts = payload.get("podcasts") is not None
        return payload

    async def _call(self, action: str, **params: Any) -> dict[str, Any]:
        """Run an authenticated action, renewing an expired session once."""
        if self._auth is None:
            await self._handshake()
        query = {"action": action, **{k: v for k, v in params.items() if v is not None}}
        try:
            return await self._get_json(API_PATH, {**query, "auth": self._auth})
        except TransportError as e:
            if e.error_code != SESSION_EXPIRED:
                raise
            logger.info("Ampache session expired, handshaking again")
            await self._handshake()
            return await self._get_json(API_PATH, {**query, "auth": self._auth})

    def _check_payload(self, payload: dict[str, Any]) -> dict[str, Any]:
        error = payload.get("error")
        if not isinstance(error, dict):
            return payload
        code = error.get("errorCode", error.get("code"))
        message = error.get("errorMessage", error.get("message", "unknown error"))
        raise TransportError(
            f"Ampache error {code}: {message}",
            service=self.service_name,
            error_code=str(code) if code is not None else None,
        )

    # =========================================================================
    # CATALOG
    # =========================================================================

    async def fetch_library_metadata(self) -> LibraryMetadata:
        payload = await self._handshake()
        counts: dict[EntityClass, int | None] = {}
        for entity_class, (_, _, count_key) in _LIBRARY_ACTIONS.items():
            value = payload.get(count_key)
            counts[entity_class] = int(value) if value not in (None, "") else None
        return LibraryMetadata(
            counts=counts,
            change_dates={
                key: _timestamp(payload.get(key)) for key in ("update", "add", "clean")
            },
            supports_podcasts=self._supports_podcasts,
            server_version=payload.get("api"),
        )

    def is_entity_class_supported(self, entity_class: EntityClass) -> bool:
        if entity_class in _UNSUPPORTED:
            return False
        if entity_class in (EntityClass.PODCAST, EntityClass.PODCAST_EPISODE):
            return self._supports_podcasts
        return True

    async def fetch_page(
        self,
        entity_class: EntityClass,
        parent: ParentScope | None = None,
        start_index: int = 0,
        page_size: int | None = None,
    ) -> AsyncIterator[RawRecord]:
        if parent is None:
            if entity_class not in _LIBRARY_ACTIONS:
                raise ValueError(f"Ampache cannot list {entity_class.value}")
            action, key, _ = _LIBRARY_ACTIONS[entity_class]
            filter_id = None
        else:
            scope = (entity_class, parent.entity_class)
            if scope not in _CHILD_ACTIONS:
                raise ValueError(
                    f"Ampache cannot list {entity_class.value} of {parent.entity_class.value}"
                )
            action, key = _CHILD_ACTIONS[scope]
            filter_id = parent.remote_id

        async def fetch_batch(offset: int, limit: int) -> Sequence[RawRecord]:
            payload = await self._call(action, filter=filter_id, offset=offset, limit=limit)
            return [normalize_record(entity_class, item) for item in as_list(payload.get(key))]

        async for record in self._stream(fetch_batch, start_index, page_size):
            yield record

    async def search(
        self, entity_class: EntityClass, text: str, limit: int = 50
    ) -> AsyncIterator[RawRecord]:
        if entity_class not in _SEARCH_ACTIONS:
            raise ValueError(f"Ampache cannot search {entity_class.value}")
        action, key = _SEARCH_ACTIONS[entity_class]
        payload = await self._call(action, filter=text, limit=limit)
        for item in as_list(payload.get(key)):
            yield normalize_record(entity_class, item)

    # =========================================================================
    # PLAYLISTS
    # =========================================================================

    async def fetch_playlist(self, playlist_id: str) -> RawRecord | None:
        try:
            payload = await self._call("playlist", filter=playlist_id)
        except TransportError as e:
            if e.error_code == NOT_FOUND:
                return None
            raise
        items = as_list(payload.get("playlist")) if "playlist" in payload else [payload]
        if not items or not items[0].get("id"):
            return None
        return normalize_record(EntityClass.PLAYLIST, items[0])

    async def create_playlist(self, name: str) -> str:
        payload = await self._call("playlist_create", name=name, type="private")
        items = as_list(payload.get("playlist")) if "playlist" in payload else [payload]
        if not items or not items[0].get("id"):
            raise TransportError(
                f"Ampache did not return an id for new playlist {name}",
                service=self.service_name,
            )
        return str(items[0]["id"])

    async def add_song_to_playlist(self, playlist_id: str, song_id: str) -> None:
        await self._call("playlist_add_song", filter=playlist_id, song=song_id)

    async def remove_playlist_item(self, playlist_id: str, index: int) -> None:
        # Ampache tracks are 1-based
        await self._call("playlist_remove_song", filter=playlist_id, track=index + 1)

    async def reorder_playlist(self, playlist_id: str, song_ids: Sequence[str]) -> None:
        await self._call(
            "playlist_edit",
            filter=playlist_id,
            items=",".join(song_ids),
            tracks=",".join(str(i) for i in range(1, len(song_ids) + 1)),
        )

    async def delete_playlist(self, playlist_id: str) -> None:
        await self._call("playlist_delete", filter=playlist_id)
