"""Library synchronization orchestrator."""

# Hey future me - this is the ORCHESTRATOR of a full library sync!
#
# Full sync:
#   metadata (abort here on failure, nothing persisted) -> open epoch ->
#   genres -> artists -> albums -> songs -> playlists -> podcasts -> epoch DONE
#
# Phases run strictly one after another (albums need their artists). Pages WITHIN a
# phase run concurrently, at most max_concurrent_batches at a time, gated by the
# ConcurrencyLimiter. Every page task opens its own session (isolated unit of work)
# and only gets the epoch id and page bounds, never live ORM objects.
#
# Failure rules:
# - TransportError on a page: logged, counted, slot released, siblings keep going.
# - PersistenceError on a page: fatal. The run stops after the current barrier and the
#   error goes to the caller. The epoch stays PENDING.
# - Podcasts unsupported: phase skipped, run still finishes.
#
# Partial syncs (one artist / album / playlist / podcast, directories, search) skip
# paging and epoch creation and stamp entities with the latest existing epoch.

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cadence.application.services.entity_descriptors import descriptor_for
from cadence.application.services.entity_reconciler import EntityReconciler
from cadence.application.services.playlist_order import PlaylistOrderReconciler
from cadence.application.services.playlist_upload_service import (
    PlaylistUploadService,
    RemotePlaylistState,
)
from cadence.config import SyncSettings
from cadence.domain.entities import (
    FULL_SYNC_PHASES,
    OPTIONAL_PHASES,
    SEARCHABLE_CLASSES,
    EntityClass,
    LibraryMetadata,
    ParentScope,
    PhaseReport,
    ReconcileResult,
    SyncEvent,
    SyncEventKind,
    SyncOutcome,
    SyncReport,
)
from cadence.domain.exceptions import (
    EntityNotFoundException,
    PersistenceError,
    SyncCancelledError,
    TransportError,
    UnsupportedCapabilityError,
    ValidationException,
)
from cadence.domain.ports import ILibraryServerApi, SyncProgressListener
from cadence.infrastructure.concurrency_limiter import ConcurrencyLimiter
from cadence.infrastructure.observability.logging import set_correlation_id
from cadence.infrastructure.persistence import LibraryStorage
from cadence.infrastructure.persistence.models import PlaylistModel, utc_now
from cadence.infrastructure.persistence.retry import with_db_retry

logger = logging.getLogger(__name__)


def page_count(total: int | None, page_size: int) -> int:
    """Number of pages needed to cover total records.

    Ceiling division: 12 records at 5 per page -> 3 pages, 10 -> 2, 0 -> 0.
    None (count unknown) means one unpaged stream.
    """
    if total is None:
        return 1
    if total <= 0:
        return 0
    return -(-total // page_size)


@dataclass
class _PageOutcome:
    result: ReconcileResult = field(default_factory=ReconcileResult)
    failed: bool = False
    fatal: PersistenceError | None = None


class LibrarySyncService:
    """Synchronize the local library with the remote media server."""

    def __init__(
        self,
        server: ILibraryServerApi,
        session_factory: async_sessionmaker[AsyncSession],
        settings: SyncSettings,
        playlist_uploads: PlaylistUploadService | None = None,
    ) -> None:
        self._server = server
        self._session_factory = session_factory
        self._settings = settings
        self._playlist_uploads = playlist_uploads or PlaylistUploadService(
            server, session_factory
        )
        self._metadata: LibraryMetadata | None = None
        self._limiter: ConcurrencyLimiter | None = None

    @property
    def is_running(self) -> bool:
        return self._limiter is not None

    # =========================================================================
    # FULL SYNC
    # =========================================================================

    async def run_full_sync(
        self, progress: SyncProgressListener | None = None
    ) -> SyncReport:
        """Run every phase against a freshly opened sync epoch.

        Args:
            progress: Receives phase events and one terminal event

        Returns:
            Report with per-phase counts and the outcome

        Raises:
            PersistenceError: If a commit fails; the epoch stays pending
        """
        set_correlation_id()
        report = SyncReport()
        emit = _Emitter(progress)

        try:
            metadata = await self._server.fetch_library_metadata()
        except TransportError as e:
            logger.error("Full sync aborted, library metadata unavailable: %s", e.message)
            return self._abort(report, emit, f"Metadata request failed: {e.message}")
        self._metadata = metadata

        limiter = ConcurrencyLimiter(self._settings.max_concurrent_batches)
        self._limiter = limiter
        try:
            report.epoch_id = await self._open_epoch(metadata)
            logger.info(
                "Full sync started (epoch %d, %s server %s)",
                report.epoch_id,
                self._server.dialect,
                metadata.server_version or "unknown version",
            )
            for entity_class in FULL_SYNC_PHASES:
                phase = await self._run_phase(
                    entity_class, metadata, report.epoch_id, limiter, emit
                )
                report.phases.append(phase)
            await self._close_epoch(report.epoch_id)
        except SyncCancelledError:
            logger.warning("Full sync cancelled (epoch %s left pending)", report.epoch_id)
            return self._abort(report, emit, "Synchronization was cancelled")
        except PersistenceError as e:
            self._abort(report, emit, e.message)
            raise
        finally:
            self._limiter = None

        report.finished_at = utc_now()
        if report.failed_pages:
            report.outcome = SyncOutcome.FINISHED_WITH_ERRORS
            emit(
                SyncEvent(
                    SyncEventKind.FINISHED_WITH_ERRORS,
                    message=f"{report.failed_pages} page(s) failed",
                    details=report.to_dict(),
                )
            )
        else:
            report.outcome = SyncOutcome.FINISHED
            emit(SyncEvent(SyncEventKind.FINISHED, details=report.to_dict()))
        logger.info(
            "Full sync finished (epoch %d, outcome %s)",
            report.epoch_id,
            report.outcome.value,
        )
        return report

    async def cancel(self) -> bool:
        """Stop dispatching pages of the running full sync.

        Pages already in flight finish on their own.

        Returns:
            False if no full sync is running
        """
        limiter = self._limiter
        if limiter is None:
            return False
        await limiter.cancel_all()
        return True

    async def _run_phase(
        self,
        entity_class: EntityClass,
        metadata: LibraryMetadata,
        epoch_id: int,
        limiter: ConcurrencyLimiter,
        emit: _Emitter,
    ) -> PhaseReport:
        phase = PhaseReport(entity_class=entity_class)
        if not self._server.is_entity_class_supported(entity_class):
            phase.skipped_reason = (
                f"{self._server.dialect} server does not support {entity_class.value}"
            )
            if entity_class not in OPTIONAL_PHASES:
                logger.warning("Phase %s skipped: %s", entity_class.value, phase.skipped_reason)
            else:
                logger.info("Phase %s skipped: %s", entity_class.value, phase.skipped_reason)
            emit(
                SyncEvent(
                    SyncEventKind.PHASE_SKIPPED,
                    entity_class=entity_class,
                    message=phase.skipped_reason,
                )
            )
            return phase

        emit(SyncEvent(SyncEventKind.PHASE_STARTED, entity_class=entity_class))
        total = metadata.count_for(entity_class)
        page_size = self._settings.page_size
        pages = page_count(total, page_size)
        tasks: list[asyncio.Task[_PageOutcome]] = []
        try:
            for page in range(pages):
                await limiter.acquire()
                start = page * page_size
                size = page_size if total is not None else None
                tasks.append(
                    asyncio.create_task(
                        self._run_page(entity_class, epoch_id, start, size, limiter),
                        name=f"sync-{entity_class.value}-page-{page}",
                    )
                )
        finally:
            # Barrier: also reached on cancel, in-flight pages finish first.
            await limiter.wait_all()
            outcomes = await asyncio.gather(*tasks)

        phase.pages_dispatched = len(tasks)
        for outcome in outcomes:
            phase.result.merge(outcome.result)
            if outcome.failed:
                phase.pages_failed += 1
        fatal = next((o.fatal for o in outcomes if o.fatal is not None), None)
        if fatal is not None:
            raise fatal

        if phase.succeeded and self._settings.prune_stale_entities:
            phase.result.removed += await self._prune_stale(entity_class, epoch_id)

        logger.info(
            "Phase %s finished: %d page(s), %d failed, %s",
            entity_class.value,
            phase.pages_dispatched,
            phase.pages_failed,
            phase.result.to_dict(),
        )
        emit(
            SyncEvent(
                SyncEventKind.PHASE_FINISHED,
                entity_class=entity_class,
                details=phase.to_dict(),
            )
        )
        return phase

    async def _run_page(
        self,
        entity_class: EntityClass,
        epoch_id: int,
        start: int,
        size: int | None,
        limiter: ConcurrencyLimiter,
    ) -> _PageOutcome:
        """Fetch and reconcile one page in its own session; always releases the slot."""
        try:
            result = await self._reconcile_page(entity_class, epoch_id, start, size)
            return _PageOutcome(result=result)
        except TransportError as e:
            logger.warning(
                "Page %s@%d failed: %s", entity_class.value, start, e.message
            )
            return _PageOutcome(failed=True)
        except PersistenceError as e:
            logger.error("Page %s@%d could not be stored: %s", entity_class.value, start, e.message)
            return _PageOutcome(failed=True, fatal=e)
        except SQLAlchemyError as e:
            logger.error("Page %s@%d: database error: %s", entity_class.value, start, e)
            return _PageOutcome(
                failed=True,
                fatal=PersistenceError(f"Database error while storing {entity_class.value}: {e}"),
            )
        except Exception:
            logger.exception("Page %s@%d failed unexpectedly", entity_class.value, start)
            return _PageOutcome(failed=True)
        finally:
            await limiter.release()

    @with_db_retry()
    async def _reconcile_page(
        self,
        entity_class: EntityClass,
        epoch_id: int,
        start: int,
        size: int | None,
    ) -> ReconcileResult:
        async with self._session_factory() as session:
            storage = LibraryStorage(session)
            reconciler = EntityReconciler(storage, descriptor_for(entity_class), epoch_id)
            records = self._server.fetch_page(entity_class, None, start, size)
            result = await reconciler.reconcile(records)
            await storage.commit()
            return result

    @with_db_retry()
    async def _prune_stale(self, entity_class: EntityClass, epoch_id: int) -> int:
        async with self._session_factory() as session:
            storage = LibraryStorage(session)
            removed = await storage.delete_stale(entity_class, epoch_id)
            await storage.commit()
        if removed:
            logger.info("Pruned %d stale %s entities", removed, entity_class.value)
        return removed

    @with_db_retry()
    async def _open_epoch(self, metadata: LibraryMetadata) -> int:
        async with self._session_factory() as session:
            storage = LibraryStorage(session)
            epoch = await storage.create_epoch(metadata.serialized_change_dates())
            await storage.commit()
            return epoch.id

    @with_db_retry()
    async def _close_epoch(self, epoch_id: int) -> None:
        async with self._session_factory() as session:
            storage = LibraryStorage(session)
            storage.mark_epoch_done(await storage.get_epoch(epoch_id))
            await storage.commit()

    def _abort(self, report: SyncReport, emit: _Emitter, reason: str) -> SyncReport:
        report.outcome = SyncOutcome.ABORTED
        report.error = reason
        report.finished_at = utc_now()
        emit(SyncEvent(SyncEventKind.ABORTED, message=reason, details=report.to_dict()))
        return report

    # =========================================================================
    # PARTIAL SYNCS
    # =========================================================================

    async def sync_artist(self, artist_id: str) -> ReconcileResult:
        """Refresh one artist's albums and songs."""
        async with self._session_factory() as session:
            storage = LibraryStorage(session)
            epoch_id = await self._latest_epoch_id(storage)
            if epoch_id is None:
                return ReconcileResult()
            artist = await self._require(storage, EntityClass.ARTIST, artist_id)
            scope = ParentScope(EntityClass.ARTIST, artist_id)
            result = await EntityReconciler(
                storage, descriptor_for(EntityClass.ALBUM, EntityClass.ARTIST), epoch_id, artist
            ).reconcile(self._server.fetch_page(EntityClass.ALBUM, scope))
            result.merge(
                await EntityReconciler(
                    storage, descriptor_for(EntityClass.SONG, EntityClass.ARTIST), epoch_id, artist
                ).reconcile(self._server.fetch_page(EntityClass.SONG, scope))
            )
            await storage.commit()
        logger.info("Synced artist %s: %s", artist_id, result.to_dict())
        return result

    async def sync_album(self, album_id: str) -> ReconcileResult:
        """Refresh one album's songs."""
        return await self._sync_children(
            EntityClass.SONG, EntityClass.ALBUM, album_id
        )

    async def sync_podcast(self, podcast_id: str) -> ReconcileResult:
        """Refresh one podcast's episodes."""
        await self._require_supported(EntityClass.PODCAST)
        return await self._sync_children(
            EntityClass.PODCAST_EPISODE, EntityClass.PODCAST, podcast_id
        )

    async def sync_playlist(self, playlist_id: str) -> ReconcileResult:
        """Pull one playlist's songs into its items.

        Args:
            playlist_id: Local playlist id

        Returns:
            Song-level result; the playlist items follow the remote order
        """
        async with self._session_factory() as session:
            storage = LibraryStorage(session)
            epoch_id = await self._latest_epoch_id(storage)
            if epoch_id is None:
                return ReconcileResult()
            playlist: PlaylistModel = await storage.get_by_local_id(
                EntityClass.PLAYLIST, playlist_id
            )
            if not playlist.remote_id:
                logger.info(
                    "Playlist %s was never uploaded, nothing to pull", playlist.name
                )
                return ReconcileResult()
            # A re-created remote copy was just filled from the local items, pulling
            # it back would change nothing.
            state = await self._playlist_uploads.ensure_remote(storage, playlist)
            if state != RemotePlaylistState.EXISTING:
                return ReconcileResult()

            songs_reconciler = EntityReconciler(
                storage, descriptor_for(EntityClass.SONG), epoch_id, prune=False
            )
            songs = []
            records = self._server.fetch_page(
                EntityClass.SONG, ParentScope(EntityClass.PLAYLIST, playlist.remote_id)
            )
            async for record in records:
                song = await songs_reconciler.apply(record)
                if song is not None:
                    songs.append(song)
            order = PlaylistOrderReconciler(playlist)
            changed = order.reconcile_from_remote(songs)
            order.ensure_consistent_item_order()
            await storage.commit()
        logger.info(
            "Synced playlist %s: %d item(s)%s",
            playlist.name,
            playlist.song_count,
            ", content changed" if changed else "",
        )
        return songs_reconciler.result

    async def sync_playlists_without_songs(self) -> ReconcileResult:
        """Refresh playlist headers; remote playlists the server dropped are deleted."""
        return await self._sync_top_level(EntityClass.PLAYLIST)

    async def sync_podcasts_without_episodes(self) -> ReconcileResult:
        """Refresh podcast channels without touching their episodes."""
        await self._require_supported(EntityClass.PODCAST)
        return await self._sync_top_level(EntityClass.PODCAST)

    async def sync_music_folders(self) -> ReconcileResult:
        await self._require_supported(EntityClass.MUSIC_FOLDER)
        return await self._sync_top_level(EntityClass.MUSIC_FOLDER)

    async def sync_indexes(self, music_folder_id: str) -> ReconcileResult:
        """Refresh the top-level directories of one music folder."""
        await self._require_supported(EntityClass.DIRECTORY)
        return await self._sync_children(
            EntityClass.DIRECTORY, EntityClass.MUSIC_FOLDER, music_folder_id
        )

    async def sync_directory(self, directory_id: str) -> ReconcileResult:
        """Refresh one directory's subdirectories and songs."""
        await self._require_supported(EntityClass.DIRECTORY)
        async with self._session_factory() as session:
            storage = LibraryStorage(session)
            epoch_id = await self._latest_epoch_id(storage)
            if epoch_id is None:
                return ReconcileResult()
            directory = await self._require(storage, EntityClass.DIRECTORY, directory_id)
            subdirectories = EntityReconciler(
                storage,
                descriptor_for(EntityClass.DIRECTORY, EntityClass.DIRECTORY),
                epoch_id,
                directory,
            )
            songs = EntityReconciler(
                storage,
                descriptor_for(EntityClass.SONG, EntityClass.DIRECTORY),
                epoch_id,
                directory,
            )
            records = self._server.fetch_page(
                EntityClass.DIRECTORY, ParentScope(EntityClass.DIRECTORY, directory_id)
            )
            async for record in records:
                if record.get("isDir"):
                    await subdirectories.apply(record)
                else:
                    await songs.apply(record)
            result = (await subdirectories.finish()).merge(await songs.finish())
            await storage.commit()
        logger.info("Synced directory %s: %s", directory_id, result.to_dict())
        return result

    async def search_remote(self, kind: EntityClass, text: str) -> ReconcileResult:
        """Search the server and merge the hits into the library.

        Empty search text is a no-op.
        """
        if kind not in SEARCHABLE_CLASSES:
            raise ValidationException(f"Cannot search for {kind.value}")
        if not text.strip():
            return ReconcileResult()
        async with self._session_factory() as session:
            storage = LibraryStorage(session)
            epoch_id = await self._latest_epoch_id(storage)
            if epoch_id is None:
                return ReconcileResult()
            result = await EntityReconciler(
                storage, descriptor_for(kind), epoch_id, prune=False
            ).reconcile(self._server.search(kind, text.strip()))
            await storage.commit()
        logger.info("Search %s %r merged: %s", kind.value, text, result.to_dict())
        return result

    async def _sync_children(
        self, entity_class: EntityClass, parent_class: EntityClass, parent_id: str
    ) -> ReconcileResult:
        async with self._session_factory() as session:
            storage = LibraryStorage(session)
            epoch_id = await self._latest_epoch_id(storage)
            if epoch_id is None:
                return ReconcileResult()
            parent = await self._require(storage, parent_class, parent_id)
            result = await EntityReconciler(
                storage, descriptor_for(entity_class, parent_class), epoch_id, parent
            ).reconcile(
                self._server.fetch_page(entity_class, ParentScope(parent_class, parent_id))
            )
            await storage.commit()
        logger.info(
            "Synced %s of %s %s: %s",
            entity_class.value,
            parent_class.value,
            parent_id,
            result.to_dict(),
        )
        return result

    async def _sync_top_level(self, entity_class: EntityClass) -> ReconcileResult:
        """Unpaged library-scope sync of a small class, deleting what the server dropped."""
        async with self._session_factory() as session:
            storage = LibraryStorage(session)
            epoch_id = await self._latest_epoch_id(storage)
            if epoch_id is None:
                return ReconcileResult()
            result = await EntityReconciler(
                storage, descriptor_for(entity_class), epoch_id
            ).reconcile(self._server.fetch_page(entity_class))
            result.removed += await storage.delete_unseen(entity_class, result.seen_ids)
            await storage.commit()
        logger.info("Synced %s list: %s", entity_class.value, result.to_dict())
        return result

    async def _latest_epoch_id(self, storage: LibraryStorage) -> int | None:
        epoch = await storage.latest_epoch()
        if epoch is None:
            logger.info("No sync epoch yet, run a full sync first")
            return None
        return epoch.id

    async def _require(
        self, storage: LibraryStorage, entity_class: EntityClass, remote_id: str
    ) -> Any:
        entity = await storage.find_by_id(entity_class, remote_id)
        if entity is None:
            raise EntityNotFoundException(entity_class.value, remote_id)
        return entity

    async def _require_supported(self, entity_class: EntityClass) -> None:
        if entity_class == EntityClass.PODCAST and self._metadata is None:
            # Podcast support is only known after the server described itself.
            self._metadata = await self._server.fetch_library_metadata()
        if not self._server.is_entity_class_supported(entity_class):
            raise UnsupportedCapabilityError(entity_class.value, self._server.dialect)


class _Emitter:
    """Calls the progress listener without letting its exceptions break the sync."""

    def __init__(self, listener: SyncProgressListener | None) -> None:
        self._listener = listener

    def __call__(self, event: SyncEvent) -> None:
        if self._listener is None:
            return
        try:
            self._listener(event)
        except Exception:
            logger.exception("Sync progress listener failed on %s", event.kind.value)

