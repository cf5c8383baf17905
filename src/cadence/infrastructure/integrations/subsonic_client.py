"""Subsonic REST API adapter (JSON flavour, also spoken by Navidrome and friends).

Hey future me - Subsonic is the "no counts" dialect. ping() tells us nothing about
the catalog size, so every phase of a full sync is ONE lazy stream: we keep asking
for the next batch until the server returns a short one. Endpoints that are not
paged at all (getArtists, getGenres, getPlaylists...) are fetched whole and sliced.

Auth is per request, no session:
    u=<user>  s=<random salt>  t=md5(password + salt)  v=<api version>  c=<client>  f=json

Errors arrive as HTTP 200 with
    {"subsonic-response": {"status": "failed", "error": {"code": 70, "message": "..."}}}
and become TransportError with error_code set.
"""

import hashlib
import logging
import secrets
from collections.abc import AsyncIterator, Sequence
from typing import Any

from cadence.domain.entities import EntityClass, LibraryMetadata, ParentScope, RawRecord
from cadence.domain.exceptions import TransportError
from cadence.infrastructure.integrations.base_client import (
    MediaServerClient,
    as_list,
    window,
)

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "1.16.1"
NOT_FOUND = "70"


def _song(record: dict[str, Any]) -> dict[str, Any]:
    genre = record.get("genre")
    return {
        "id": record.get("id"),
        "title": record.get("title"),
        "albumId": record.get("albumId"),
        "album": record.get("album"),
        "artistId": record.get("artistId"),
        "artist": record.get("artist"),
        # Subsonic genres have no ids, the name is the id
        "genreId": genre,
        "genre": genre,
        "track": record.get("track"),
        "disc": record.get("discNumber"),
        "year": record.get("year"),
        "duration": record.get("duration"),
        "size": record.get("size"),
        "contentType": record.get("contentType"),
        "bitRate": record.get("bitRate"),
        "coverArt": record.get("coverArt"),
    }


def normalize_record(entity_class: EntityClass, record: dict[str, Any]) -> RawRecord:
    """Map a Subsonic object to canonical record keys; ids always become strings."""
    if entity_class == EntityClass.GENRE:
        normalized: dict[str, Any] = {"id": record.get("value"), "name": record.get("value")}
    elif entity_class == EntityClass.ARTIST:
        normalized = {
            "id": record.get("id"),
            "name": record.get("name"),
            "albumCount": record.get("albumCount"),
        }
    elif entity_class == EntityClass.ALBUM:
        genre = record.get("genre")
        normalized = {
            "id": record.get("id"),
            "name": record.get("name") or record.get("title"),
            "artistId": record.get("artistId"),
            "artist": record.get("artist"),
            "genreId": genre,
            "genre": genre,
            "year": record.get("year"),
            "songCount": record.get("songCount"),
            "duration": record.get("duration"),
            "coverArt": record.get("coverArt"),
        }
    elif entity_class == EntityClass.SONG:
        normalized = _song(record)
    elif entity_class == EntityClass.PLAYLIST:
        normalized = {
            "id": record.get("id"),
            "name": record.get("name"),
            "owner": record.get("owner"),
            "songCount": record.get("songCount"),
            "duration": record.get("duration"),
        }
    elif entity_class == EntityClass.PODCAST:
        normalized = {
            "id": record.get("id"),
            "name": record.get("title"),
            "description": record.get("description"),
            "coverArt": record.get("coverArt"),
        }
    elif entity_class == EntityClass.PODCAST_EPISODE:
        normalized = {
            "id": record.get("id"),
            "title": record.get("title"),
            "description": record.get("description"),
            "publishDate": record.get("publishDate"),
            "status": record.get("status"),
            "duration": record.get("duration"),
            "streamId": record.get("streamId"),
        }
    elif entity_class in (EntityClass.MUSIC_FOLDER, EntityClass.DIRECTORY):
        if record.get("isDir") is False:
            normalized = {**_song(record), "isDir": False}
        else:
            normalized = {
                "id": record.get("id"),
                "name": record.get("name") or record.get("title"),
                "isDir": True,
            }
    else:
        raise ValueError(f"Subsonic has no {entity_class.value} records")

    if normalized.get("id") is not None:
        normalized["id"] = str(normalized["id"])
    return normalized


class SubsonicClient(MediaServerClient):
    """ILibraryServerApi over the Subsonic REST API.

    Usage:
        client = SubsonicClient(settings.server)
        await client.fetch_library_metadata()
        async for record in client.fetch_page(EntityClass.SONG):
            ...
        await client.close()
    """

    dialect = "subsonic"
    service_name = "subsonic"
    max_batch_size = 500

    def _auth_params(self) -> list[tuple[str, str]]:
        salt = secrets.token_hex(8)
        token = hashlib.md5((self._settings.password + salt).encode()).hexdigest()
        return [
            ("u", self._settings.username),
            ("t", token),
            ("s", salt),
            ("v", self._settings.api_version or DEFAULT_API_VERSION),
            ("c", self._settings.client_name),
            ("f", "json"),
        ]

    async def _call(self, method: str, *params: tuple[str, Any]) -> dict[str, Any]:
        query = self._auth_params() + [(k, v) for k, v in params if v is not None]
        return await self._get_json(f"/rest/{method}", query)

    def _check_payload(self, payload: dict[str, Any]) -> dict[str, Any]:
        body = payload.get("subsonic-response")
        if not isinstance(body, dict):
            raise TransportError("Missing subsonic-response envelope", service=self.service_name)
        if body.get("status") != "ok":
            error = body.get("error") or {}
            code = error.get("code")
            raise TransportError(
                f"Subsonic error {code}: {error.get('message', 'unknown error')}",
                service=self.service_name,
                error_code=str(code) if code is not None else None,
            )
        return body

    # =========================================================================
    # CATALOG
    # =========================================================================

    async def fetch_library_metadata(self) -> LibraryMetadata:
        body = await self._call("ping")
        return LibraryMetadata(
            counts={},
            change_dates={},
            supports_podcasts=True,
            server_version=body.get("version"),
        )

    def is_entity_class_supported(self, entity_class: EntityClass) -> bool:
        return True

    async def fetch_page(
        self,
        entity_class: EntityClass,
        parent: ParentScope | None = None,
        start_index: int = 0,
        page_size: int | None = None,
    ) -> AsyncIterator[RawRecord]:
        if parent is None:
            records = self._library_records(entity_class, start_index, page_size)
        else:
            records = self._child_records(entity_class, parent, start_index, page_size)
        async for record in records:
            yield record

    async def _library_records(
        self, entity_class: EntityClass, start_index: int, page_size: int | None
    ) -> AsyncIterator[RawRecord]:
        if entity_class == EntityClass.ALBUM:
            async def fetch_albums(offset: int, limit: int) -> Sequence[RawRecord]:
                body = await self._call(
                    "getAlbumList2",
                    ("type", "alphabeticalByName"),
                    ("size", limit),
                    ("offset", offset),
                )
                albums = as_list((body.get("albumList2") or {}).get("album"))
                return [normalize_record(EntityClass.ALBUM, a) for a in albums]

            async for record in self._stream(fetch_albums, start_index, page_size):
                yield record
            return

        if entity_class == EntityClass.SONG:
            # search3 with an empty query lists every song, in pages
            async def fetch_songs(offset: int, limit: int) -> Sequence[RawRecord]:
                body = await self._call(
                    "search3",
                    ("query", ""),
                    ("artistCount", 0),
                    ("albumCount", 0),
                    ("songCount", limit),
                    ("songOffset", offset),
                )
                songs = as_list((body.get("searchResult3") or {}).get("song"))
                return [normalize_record(EntityClass.SONG, s) for s in songs]

            async for record in self._stream(fetch_songs, start_index, page_size):
                yield record
            return

        for record in window(await self._unpaged(entity_class), start_index, page_size):
            yield record

    async def _unpaged(self, entity_class: EntityClass) -> list[RawRecord]:
        if entity_class == EntityClass.GENRE:
            body = await self._call("getGenres")
            items = as_list((body.get("genres") or {}).get("genre"))
        elif entity_class == EntityClass.ARTIST:
            body = await self._call("getArtists")
            items = [
                artist
                for index in as_list((body.get("artists") or {}).get("index"))
                for artist in as_list(index.get("artist"))
            ]
        elif entity_class == EntityClass.PLAYLIST:
            body = await self._call("getPlaylists")
            items = as_list((body.get("playlists") or {}).get("playlist"))
        elif entity_class == EntityClass.PODCAST:
            body = await self._call("getPodcasts", ("includeEpisodes", "false"))
            items = as_list((body.get("podcasts") or {}).get("channel"))
        elif entity_class == EntityClass.MUSIC_FOLDER:
            body = await self._call("getMusicFolders")
            items = as_list((body.get("musicFolders") or {}).get("musicFolder"))
        else:
            raise ValueError(f"Subsonic cannot list {entity_class.value}")
        return [normalize_record(entity_class, item) for item in items]

    async def _child_records(
        self,
        entity_class: EntityClass,
        parent: ParentScope,
        start_index: int,
        page_size: int | None,
    ) -> AsyncIterator[RawRecord]:
        scope = (entity_class, parent.entity_class)
        if scope == (EntityClass.ALBUM, EntityClass.ARTIST):
            records = await self._artist_albums(parent.remote_id)
        elif scope == (EntityClass.SONG, EntityClass.ARTIST):
            # No artist->songs call in Subsonic, walk the artist's albums
            records = []
            for album in await self._artist_albums(parent.remote_id):
                records.extend(await self._album_songs(str(album["id"])))
        elif scope == (EntityClass.SONG, EntityClass.ALBUM):
            records = await self._album_songs(parent.remote_id)
        elif scope == (EntityClass.SONG, EntityClass.PLAYLIST):
            body = await self._call("getPlaylist", ("id", parent.remote_id))
            entries = as_list((body.get("playlist") or {}).get("entry"))
            records = [normalize_record(EntityClass.SONG, e) for e in entries]
        elif scope == (EntityClass.PODCAST_EPISODE, EntityClass.PODCAST):
            body = await self._call(
                "getPodcasts", ("id", parent.remote_id), ("includeEpisodes", "true")
            )
            channels = as_list((body.get("podcasts") or {}).get("channel"))
            episodes = as_list(channels[0].get("episode")) if channels else []
            records = [normalize_record(EntityClass.PODCAST_EPISODE, e) for e in episodes]
        elif scope == (EntityClass.DIRECTORY, EntityClass.MUSIC_FOLDER):
            body = await self._call("getIndexes", ("musicFolderId", parent.remote_id))
            records = [
                normalize_record(EntityClass.DIRECTORY, {**artist, "isDir": True})
                for index in as_list((body.get("indexes") or {}).get("index"))
                for artist in as_list(index.get("artist"))
            ]
        elif scope == (EntityClass.DIRECTORY, EntityClass.DIRECTORY):
            body = await self._call("getMusicDirectory", ("id", parent.remote_id))
            children = as_list((body.get("directory") or {}).get("child"))
            records = [normalize_record(EntityClass.DIRECTORY, c) for c in children]
        else:
            raise ValueError(
                f"Subsonic cannot list {entity_class.value} of {parent.entity_class.value}"
            )
        for record in window(records, start_index, page_size):
            yield record

    async def _artist_albums(self, artist_id: str) -> list[RawRecord]:
        body = await self._call("getArtist", ("id", artist_id))
        albums = as_list((body.get("artist") or {}).get("album"))
        return [normalize_record(EntityClass.ALBUM, a) for a in albums]

    async def _album_songs(self, album_id: str) -> list[RawRecord]:
        body = await self._call("getAlbum", ("id", album_id))
        songs = as_list((body.get("album") or {}).get("song"))
        return [normalize_record(EntityClass.SONG, s) for s in songs]

    async def search(
        self, entity_class: EntityClass, text: str, limit: int = 50
    ) -> AsyncIterator[RawRecord]:
        keys = {
            EntityClass.ARTIST: ("artistCount", "artist"),
            EntityClass.ALBUM: ("albumCount", "album"),
            EntityClass.SONG: ("songCount", "song"),
        }
        if entity_class not in keys:
            raise ValueError(f"Subsonic cannot search {entity_class.value}")
        count_param, result_key = keys[entity_class]
        counts = {"artistCount": 0, "albumCount": 0, "songCount": 0, count_param: limit}
        body = await self._call("search3", ("query", text), *counts.items())
        for item in as_list((body.get("searchResult3") or {}).get(result_key)):
            yield normalize_record(entity_class, item)

    # =========================================================================
    # PLAYLISTS
    # =========================================================================

    async def fetch_playlist(self, playlist_id: str) -> RawRecord | None:
        try:
            body = await self._call("getPlaylist", ("id", playlist_id))
        except TransportError as e:
            if e.error_code == NOT_FOUND:
                return None
            raise
        playlist = body.get("playlist")
        if not playlist:
            return None
        return normalize_record(EntityClass.PLAYLIST, playlist)

    async def create_playlist(self, name: str) -> str:
        body = await self._call("createPlaylist", ("name", name))
        playlist = body.get("playlist") or {}
        if playlist.get("id") is None:
            raise TransportError(
                f"Subsonic did not return an id for new playlist {name}",
                service=self.service_name,
            )
        return str(playlist["id"])

    async def add_song_to_playlist(self, playlist_id: str, song_id: str) -> None:
        await self._call(
            "updatePlaylist", ("playlistId", playlist_id), ("songIdToAdd", song_id)
        )

    async def remove_playlist_item(self, playlist_id: str, index: int) -> None:
        await self._call(
            "updatePlaylist", ("playlistId", playlist_id), ("songIndexToRemove", index)
        )

    async def reorder_playlist(self, playlist_id: str, song_ids: Sequence[str]) -> None:
        # createPlaylist with an existing id replaces the entries
        await self._call(
            "createPlaylist",
            ("playlistId", playlist_id),
            *(("songId", song_id) for song_id in song_ids),
        )

    async def delete_playlist(self, playlist_id: str) -> None:
        await self._call("deletePlaylist", ("id", playlist_id))
