"""Streaming add/update/remove reconciliation of one parent's children."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable, Iterable
from typing import Any

from cadence.application.services.entity_descriptors import (
    ApplyContext,
    EntityDescriptor,
    RemovalPolicy,
    assign,
    text_value,
)
from cadence.domain.entities import RawRecord, ReconcileResult
from cadence.domain.exceptions import MalformedRecordError
from cadence.infrastructure.persistence import LibraryStorage

logger = logging.getLogger(__name__)


# Hey future me - this is the heart of the sync. It walks the remote records ONCE,
# as they stream in, and never holds more than one parent's children in memory:
#
#   snapshot = children attached to the parent BEFORE the fetch
#   for each record: find (snapshot -> global by id) -> create or update -> attach
#   removed  = snapshot - seen ids  -> delete or detach per descriptor
#
# The global lookup is what stops duplicates: a record whose id already exists under
# a DIFFERENT parent gets moved here instead of being created a second time.
# Library-scoped passes (parent=None) never remove anything, a single page only
# sees a slice of the catalog. The orchestrator prunes those per epoch instead.
class EntityReconciler:
    """Apply a stream of remote records to the children of one parent."""

    def __init__(
        self,
        storage: LibraryStorage,
        descriptor: EntityDescriptor,
        epoch_id: int | None,
        parent: Any | None = None,
        prune: bool = True,
    ) -> None:
        """
        Args:
            storage: Store bound to this worker's session
            descriptor: How to reconcile the entity class in this scope
            epoch_id: Epoch stamped on every entity touched
            parent: Parent ORM entity (None for the whole library)
            prune: Remove snapshot children missing from the remote listing
        """
        if parent is None and not descriptor.is_library_scoped:
            raise ValueError(
                f"{descriptor.entity_class.value} reconciliation needs a parent entity"
            )
        self._storage = storage
        self._descriptor = descriptor
        self._epoch_id = epoch_id
        self._parent = parent
        self._prune = prune and parent is not None
        self._ctx = ApplyContext(storage=storage, epoch_id=epoch_id)
        self._snapshot: dict[str, Any] | None = None
        self._touched: dict[str, Any] = {}
        self._result = ReconcileResult()

    @property
    def result(self) -> ReconcileResult:
        return self._result

    async def reconcile(
        self, records: AsyncIterable[RawRecord] | Iterable[RawRecord]
    ) -> ReconcileResult:
        """Consume the records and apply the delta.

        Args:
            records: Remote records for this parent, lazily produced

        Returns:
            Counts of what was added, updated, moved, removed and skipped
        """
        await self._take_snapshot()
        if isinstance(records, AsyncIterable):
            async for record in records:
                await self.apply(record)
        else:
            for record in records:
                await self.apply(record)
        await self.finish()
        return self._result

    async def apply(self, record: RawRecord) -> Any | None:
        """Apply one record; returns the entity or None if the record was malformed."""
        await self._take_snapshot()
        try:
            remote_id, name = self._validate(record)
        except MalformedRecordError as e:
            self._result.skipped += 1
            logger.warning("%s, skipping record: %r", e.message, e.record)
            return None

        descriptor = self._descriptor
        entity = self._touched.get(remote_id)
        seen_before = entity is not None
        if entity is None and self._snapshot is not None:
            entity = self._snapshot.get(remote_id)
        previous_parent: str | None = None
        created = False
        if entity is None:
            entity = await self._storage.find_by_id(descriptor.entity_class, remote_id)
            if entity is not None and descriptor.parent_attr:
                previous_parent = getattr(entity, descriptor.parent_attr)
        if entity is None:
            entity = self._storage.create(
                descriptor.entity_class,
                remote_id=remote_id,
                **{descriptor.name_attr: name},
            )
            created = True

        changed = assign(entity, descriptor.name_attr, name)
        changed |= await descriptor.apply_fields(self._ctx, entity, record)
        if self._parent is not None and descriptor.parent_attr:
            changed |= assign(entity, descriptor.parent_attr, self._parent.id)
            for attr in descriptor.exclusive_attrs:
                changed |= assign(entity, attr, None)
        if self._epoch_id is not None:
            entity.sync_epoch_id = self._epoch_id

        self._touched[remote_id] = entity
        self._result.seen_ids.add(remote_id)
        if not seen_before:
            self._count(remote_id, created, previous_parent, changed)
        return entity

    def _count(
        self,
        remote_id: str,
        created: bool,
        previous_parent: str | None,
        changed: bool,
    ) -> None:
        if created:
            self._result.added += 1
        elif self._parent is not None and previous_parent not in (None, self._parent.id):
            self._result.moved += 1
            logger.debug(
                "Moved %s %s to parent %s",
                self._descriptor.entity_class.value,
                remote_id,
                self._parent.id,
            )
        elif changed:
            self._result.updated += 1
        else:
            self._result.unchanged += 1

    async def finish(self) -> ReconcileResult:
        """Remove snapshot children the remote listing did not contain."""
        if not self._prune or self._snapshot is None:
            return self._result
        descriptor = self._descriptor
        for remote_id, entity in self._snapshot.items():
            if remote_id in self._result.seen_ids:
                continue
            if descriptor.on_removed == RemovalPolicy.DELETE:
                await self._storage.delete(entity)
            elif descriptor.parent_attr:
                setattr(entity, descriptor.parent_attr, None)
            self._result.removed += 1
        # A second finish() must not count the same removals again.
        self._snapshot = {}
        return self._result

    async def _take_snapshot(self) -> None:
        if self._snapshot is not None:
            return
        if self._parent is None or not self._descriptor.parent_attr:
            self._snapshot = {}
            return
        children = await self._storage.children_of(
            self._descriptor.entity_class,
            self._descriptor.parent_attr,
            self._parent.id,
        )
        self._snapshot = {child.remote_id: child for child in children}

    def _validate(self, record: RawRecord) -> tuple[str, str]:
        entity_class = self._descriptor.entity_class.value
        remote_id = text_value(record.get("id"))
        if remote_id is None:
            raise MalformedRecordError(entity_class, record, "missing id")
        name = text_value(record.get(self._descriptor.name_key))
        if name is None:
            raise MalformedRecordError(
                entity_class, record, f"missing {self._descriptor.name_key}"
            )
        return remote_id, name
