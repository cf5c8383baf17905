"""Library storage on top of one SQLAlchemy AsyncSession."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cadence.domain.entities import EntityClass, SyncState
from cadence.domain.exceptions import EntityNotFoundException, PersistenceError
from cadence.infrastructure.persistence.models import (
    MODEL_BY_ENTITY_CLASS,
    Base,
    PlaylistModel,
    SongModel,
    SyncEpochModel,
    new_uuid,
    utc_now,
)
from cadence.infrastructure.persistence.retry import is_retryable_error

logger = logging.getLogger(__name__)


def model_for(entity_class: EntityClass) -> Any:
    """ORM model class backing an entity class."""
    return MODEL_BY_ENTITY_CLASS[entity_class]


# Hey future me - one LibraryStorage == one session == one isolated unit of work.
# Page workers each build their own from the shared session factory and never pass
# ORM objects to each other. Anything crossing a worker boundary is a remote id or
# an epoch id. The session's unit of work only writes columns that actually changed,
# so two workers touching different fields of the same row both win.
class LibraryStorage:
    """Create, look up and delete library entities and sync epochs."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # =========================================================================
    # ENTITIES
    # =========================================================================

    async def find_by_id(self, entity_class: EntityClass, remote_id: str) -> Any | None:
        """Find an entity by its remote id.

        Playlists are the only class without a unique remote id (empty means "not
        created remotely"), so an empty id never matches anything.
        """
        if not remote_id:
            return None
        model = model_for(entity_class)
        stmt = select(model).where(model.remote_id == remote_id).limit(1)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_by_local_id(self, entity_class: EntityClass, local_id: str) -> Any:
        """Load an entity by primary key or raise EntityNotFoundException."""
        entity = await self.session.get(model_for(entity_class), local_id)
        if entity is None:
            raise EntityNotFoundException(entity_class.value, local_id)
        return entity

    def create(self, entity_class: EntityClass, **fields: Any) -> Any:
        """Create a new entity and add it to the session.

        The primary key is assigned right away so other entities can point at it
        before the next flush.
        """
        model = model_for(entity_class)
        fields.setdefault("id", new_uuid())
        entity = model(**fields)
        self.session.add(entity)
        return entity

    async def delete(self, entity: Base) -> None:
        await self.session.delete(entity)

    async def children_of(
        self,
        entity_class: EntityClass,
        parent_attr: str,
        parent_id: str,
        extra_filters: Iterable[Any] = (),
    ) -> list[Any]:
        """All entities of a class whose parent_attr points at parent_id."""
        model = model_for(entity_class)
        stmt = select(model).where(getattr(model, parent_attr) == parent_id)
        for criterion in extra_filters:
            stmt = stmt.where(criterion)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def stale_entities(self, entity_class: EntityClass, epoch_id: int) -> list[Any]:
        """Entities not touched by the given epoch.

        Local-only playlists (empty remote id) never count as stale.
        """
        model = model_for(entity_class)
        stmt = select(model).where(
            (model.sync_epoch_id.is_(None)) | (model.sync_epoch_id != epoch_id)
        )
        if entity_class == EntityClass.PLAYLIST:
            stmt = stmt.where(model.remote_id != "")
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def delete_stale(self, entity_class: EntityClass, epoch_id: int) -> int:
        """Delete entities the given epoch did not see; returns how many."""
        stale = await self.stale_entities(entity_class, epoch_id)
        for entity in stale:
            await self.session.delete(entity)
        return len(stale)

    async def delete_unseen(
        self, entity_class: EntityClass, seen_ids: set[str]
    ) -> int:
        """Delete remotely-known entities of a class whose remote id is not in seen_ids."""
        model = model_for(entity_class)
        stmt = select(model).where(model.remote_id != "")
        if seen_ids:
            stmt = stmt.where(model.remote_id.not_in(seen_ids))
        result = await self.session.execute(stmt)
        unseen = list(result.scalars().all())
        for entity in unseen:
            await self.session.delete(entity)
        return len(unseen)

    async def count(self, entity_class: EntityClass) -> int:
        model = model_for(entity_class)
        result = await self.session.execute(select(func.count()).select_from(model))
        return int(result.scalar_one())

    # =========================================================================
    # PLAYLISTS
    # =========================================================================

    async def list_playlists(self) -> list[PlaylistModel]:
        result = await self.session.execute(
            select(PlaylistModel).order_by(PlaylistModel.name)
        )
        return list(result.scalars().all())

    async def songs_by_remote_ids(self, remote_ids: Iterable[str]) -> list[SongModel]:
        """Songs for the given remote ids, in the order requested; unknown ids are dropped."""
        wanted = list(remote_ids)
        if not wanted:
            return []
        result = await self.session.execute(
            select(SongModel).where(SongModel.remote_id.in_(set(wanted)))
        )
        by_remote_id = {song.remote_id: song for song in result.scalars().all()}
        return [by_remote_id[rid] for rid in wanted if rid in by_remote_id]

    # =========================================================================
    # SYNC EPOCHS
    # =========================================================================

    async def latest_epoch(self) -> SyncEpochModel | None:
        result = await self.session.execute(
            select(SyncEpochModel).order_by(SyncEpochModel.id.desc()).limit(1)
        )
        return result.scalars().first()

    async def get_epoch(self, epoch_id: int) -> SyncEpochModel:
        epoch = await self.session.get(SyncEpochModel, epoch_id)
        if epoch is None:
            raise EntityNotFoundException("sync_epoch", epoch_id)
        return epoch

    async def create_epoch(self, change_dates: dict[str, Any]) -> SyncEpochModel:
        """Open a new epoch numbered after the count of existing epochs."""
        result = await self.session.execute(
            select(func.count()).select_from(SyncEpochModel)
        )
        epoch = SyncEpochModel(
            id=int(result.scalar_one()),
            state=SyncState.PENDING.value,
            change_dates=change_dates,
        )
        self.session.add(epoch)
        return epoch

    def mark_epoch_done(self, epoch: SyncEpochModel) -> None:
        epoch.state = SyncState.DONE.value
        epoch.finished_at = utc_now()

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def commit(self) -> None:
        """Commit the unit of work.

        Lock errors and unique-constraint races are re-raised untouched so a with_db_retry-wrapped caller can
        re-run its whole unit of work in a fresh session. A failed flush poisons the
        session, so retrying just the commit would never succeed.

        Raises:
            OperationalError, IntegrityError: On a lock or a unique-constraint race
            PersistenceError: On any other database failure
        """
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            if is_retryable_error(e):
                raise
            logger.error("Commit failed: %s", e)
            raise PersistenceError(f"Could not commit library changes: {e}") from e

    async def flush(self) -> None:
        await self.session.flush()
