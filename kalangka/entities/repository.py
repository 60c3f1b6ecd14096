"""Generic local-first repository for every entity kind."""

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel
from sqlalchemy import case, delete, func

from kalangka.db.database import LocalStore
from kalangka.db.models import PendingDeletion, generate_uuid, utcnow
from kalangka.entities.kinds import EntityKind
from kalangka.entities.schemas import EntityStats
from kalangka.entities.serializers import deserialize_date
from kalangka.errors import NotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)

# Columns managed by the repository, never taken from caller input
BOOKKEEPING_FIELDS = frozenset({"id", "is_synced", "created_at", "updated_at", "deleted_at"})

SyncNotifier = Callable[[str, str | None], None]


class EntityRepository:
    """Local CRUD for one entity kind.

    Every write lands in the local store first with ``is_synced = False`` and
    then notifies the sync outbox. Sync failures never reach the caller.

    Attributes:
        kind: Entity kind descriptor.
        store: Shared local store.
    """

    def __init__(self, kind: EntityKind, store: LocalStore, notify: SyncNotifier | None = None):
        """Initialize the repository.

        Args:
            kind: Entity kind descriptor.
            store: Shared local store.
            notify: Called with (kind name, record id) after each local write.
        """
        self.kind = kind
        self.store = store
        self._notify = notify

    @property
    def model(self):
        return self.kind.model

    def _to_record(self, row) -> BaseModel | None:
        if row is None:
            return None
        return self.kind.record_schema.model_validate(row)

    def _coerce(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """Convert loosely typed input (ISO date strings, enum values) to column types."""
        coerced = dict(values)
        try:
            for name in self.kind.date_fields:
                if isinstance(coerced.get(name), str):
                    coerced[name] = deserialize_date(coerced[name])
            for name, enum_cls in self.kind.enum_fields.items():
                if isinstance(coerced.get(name), str):
                    coerced[name] = enum_cls(coerced[name])
        except ValueError as e:
            raise ValidationError(f"Invalid {self.kind.name} data: {e}") from e
        return coerced

    def _enqueue_sync(self, record_id: str) -> None:
        if self._notify is None:
            return
        self._notify(self.kind.name, record_id)
        logger.debug(f"Queued sync for {self.kind.name} {record_id}")

    async def create(self, data: BaseModel | Mapping[str, Any]) -> str:
        """Persist a new record locally and queue it for sync.

        Args:
            data: Create schema or mapping of column values.

        Returns:
            str: The generated record id.

        Raises:
            DuplicateKeyError: If a unique column already holds the value.
            StorageError: If the row cannot be written.
        """
        raw = data.model_dump() if isinstance(data, BaseModel) else dict(data)
        values = {
            k: v for k, v in raw.items() if k in self.kind.columns and k not in BOOKKEEPING_FIELDS
        }
        values = self._coerce(values)

        record_id = generate_uuid()
        now = utcnow()
        values.update(id=record_id, created_at=now, updated_at=now, is_synced=False)

        await self.store.insert_row(self.model, values)
        logger.info(f"Created {self.kind.name} {record_id}")
        self._enqueue_sync(record_id)
        return record_id

    async def get(self, record_id: str, include_deleted: bool = False) -> BaseModel | None:
        """Get a record by id, or None if missing (or soft-deleted)."""
        row = await self.store.get_by_id(self.model, record_id, include_deleted=include_deleted)
        return self._to_record(row)

    async def list_all(self, include_deleted: bool = False) -> list[BaseModel]:
        """List records, newest first."""
        rows = await self.store.get_all(
            self.model, include_deleted=include_deleted, order_by="created_at"
        )
        return [self._to_record(row) for row in rows]

    async def get_by_parent(
        self,
        parent_id: str,
        include_deleted: bool = False,
        parent_field: str | None = None,
    ) -> list[BaseModel]:
        """List records referencing a parent, most recent domain date first.

        Args:
            parent_id: Id of the parent record.
            include_deleted: Include soft-deleted rows.
            parent_field: Reference column to match; defaults to the kind's
                primary parent (tree_id for flowers, flower_id for fruits).

        Returns:
            list[BaseModel]: Matching records.

        Raises:
            ValidationError: If the kind has no such parent reference.
        """
        field = parent_field or (self.kind.parent_fields[0] if self.kind.parent_fields else None)
        if field is None or field not in self.kind.parent_fields:
            raise ValidationError(f"{self.kind.name} records have no parent field {field!r}")

        rows = await self.store.get_all(
            self.model,
            filters={field: parent_id},
            include_deleted=include_deleted,
            order_by=self.kind.order_by,
        )
        return [self._to_record(row) for row in rows]

    async def update(self, record_id: str, fields: BaseModel | Mapping[str, Any]) -> bool:
        """Patch mutable fields of a visible record and queue it for sync.

        Args:
            record_id: Record id.
            fields: Update schema or mapping; unknown keys are ignored.

        Returns:
            bool: True on success.

        Raises:
            NotFoundError: If the record is missing or soft-deleted.
            ValidationError: If no updatable field was provided.
            StorageError: If the write fails.
        """
        existing = await self.store.get_by_id(self.model, record_id)
        if existing is None:
            raise NotFoundError(self.kind.name, record_id)

        raw = fields.model_dump(exclude_unset=True) if isinstance(fields, BaseModel) else fields
        values = {k: v for k, v in raw.items() if k in self.kind.mutable_fields}
        if not values:
            raise ValidationError("No valid fields to update")

        values = self._coerce(values)
        values.update(updated_at=utcnow(), is_synced=False)

        try:
            updated = await self.store.update_fields(
                self.model, record_id, values, visible_only=True
            )
        except StorageError:
            await self._mark_unsynced_after_failure(record_id)
            raise

        if not updated:
            raise NotFoundError(self.kind.name, record_id)

        logger.info(f"Updated {self.kind.name} {record_id}")
        self._enqueue_sync(record_id)
        return True

    async def _mark_unsynced_after_failure(self, record_id: str) -> None:
        try:
            await self.mark_unsynced(record_id)
        except StorageError as e:
            logger.error(f"Could not flag {self.kind.name} {record_id} as unsynced: {e}")

    def _require_soft_delete(self) -> None:
        if not self.kind.soft_delete:
            raise ValidationError(f"{self.kind.name} records do not support soft delete")

    async def soft_delete(self, record_id: str) -> bool:
        """Mark a record deleted and queue the remote deletion.

        Raises:
            ValidationError: If the kind does not support soft delete.
            NotFoundError: If the record is missing or already deleted.
        """
        self._require_soft_delete()
        now = utcnow()
        updated = await self.store.update_fields(
            self.model,
            record_id,
            {"deleted_at": now, "updated_at": now, "is_synced": False},
            visible_only=True,
        )
        if not updated:
            raise NotFoundError(self.kind.name, record_id)

        logger.info(f"Soft-deleted {self.kind.name} {record_id}")
        self._enqueue_sync(record_id)
        return True

    async def restore(self, record_id: str) -> bool:
        """Undo a soft delete.

        Raises:
            ValidationError: If the kind does not support soft delete.
            NotFoundError: If the record does not exist.
        """
        self._require_soft_delete()
        updated = await self.store.update_fields(
            self.model,
            record_id,
            {"deleted_at": None, "updated_at": utcnow(), "is_synced": False},
        )
        if not updated:
            raise NotFoundError(self.kind.name, record_id)

        logger.info(f"Restored {self.kind.name} {record_id}")
        self._enqueue_sync(record_id)
        return True

    async def hard_delete(
        self,
        record_id: str,
        propagate: bool = True,
        expected_updated_at: datetime | None = None,
    ) -> bool:
        """Physically remove a record.

        Args:
            record_id: Record id.
            propagate: Record a tombstone so the remote copy gets deleted on
                the next sync. False when the remote already confirmed.
            expected_updated_at: Only remove a soft-deleted row that was not
                modified since this timestamp (a restore in between wins).

        Returns:
            bool: True if a row was removed.
        """
        query = delete(self.model).where(self.model.id == record_id)
        if expected_updated_at is not None:
            query = query.where(self.model.updated_at == expected_updated_at)
            if self.kind.soft_delete:
                query = query.where(self.model.deleted_at.is_not(None))

        async with self.store.session() as session:
            result = await session.execute(query)
            removed = result.rowcount > 0
            if removed and propagate:
                await session.merge(PendingDeletion(kind=self.kind.name, record_id=record_id))

        if removed:
            logger.info(f"Deleted {self.kind.name} {record_id}")
            if propagate:
                self._enqueue_sync(record_id)
        return removed

    async def count(self) -> int:
        """Count visible records."""
        if self.kind.soft_delete:
            expr = func.sum(case((self.model.deleted_at.is_(None), 1), else_=0))
        else:
            expr = func.count(self.model.id)
        result = await self.store.aggregate(self.model, {"count": expr})
        return result["count"]

    async def stats(self) -> EntityStats:
        """Aggregate sync and category counts in a single query."""
        model = self.model
        expressions = {
            "total": func.count(model.id),
            "synced": func.sum(case((model.is_synced.is_(True), 1), else_=0)),
            "unsynced": func.sum(case((model.is_synced.is_(False), 1), else_=0)),
        }
        if self.kind.soft_delete:
            expressions["deleted"] = func.sum(case((model.deleted_at.is_not(None), 1), else_=0))

        category_column = getattr(model, self.kind.category_field) if self.kind.category_field else None
        if category_column is not None:
            for category in self.kind.categories:
                expressions[f"category_{category}"] = func.sum(
                    case((category_column == category, 1), else_=0)
                )
            if self.kind.count_other:
                expressions["category_other"] = func.sum(
                    case((category_column.not_in(self.kind.categories), 1), else_=0)
                )

        counts = await self.store.aggregate(model, expressions)
        pending = await self.store.aggregate(
            PendingDeletion,
            {"pending": func.sum(case((PendingDeletion.kind == self.kind.name, 1), else_=0))},
        )

        return EntityStats(
            kind=self.kind.name,
            total=counts["total"],
            synced=counts["synced"],
            unsynced=counts["unsynced"],
            deleted=counts.get("deleted", 0),
            pending_deletions=pending["pending"],
            categories={
                name.removeprefix("category_"): value
                for name, value in counts.items()
                if name.startswith("category_")
            },
        )

    # --- Sync bookkeeping ---

    async def find_unsynced(self) -> list[BaseModel]:
        """Unsynced records, soft-deleted included, oldest first."""
        rows = await self.store.get_all(
            self.model,
            filters={"is_synced": False},
            include_deleted=True,
            order_by="created_at",
            descending=False,
        )
        return [self._to_record(row) for row in rows]

    async def mark_synced(self, record_id: str, expected_updated_at: datetime | None = None) -> bool:
        """Flag a record as matching the remote.

        Args:
            record_id: Record id.
            expected_updated_at: Only flag the row if it was not modified
                since this timestamp (the one the sync payload was built from).

        Returns:
            bool: True if the row was flagged.
        """
        conditions = {"updated_at": expected_updated_at} if expected_updated_at else None
        updated = await self.store.update_fields(
            self.model, record_id, {"is_synced": True}, conditions=conditions
        )
        if not updated:
            logger.info(f"{self.kind.name} {record_id} changed during sync, keeping it unsynced")
        return bool(updated)

    async def mark_unsynced(self, record_id: str) -> bool:
        updated = await self.store.update_fields(self.model, record_id, {"is_synced": False})
        return bool(updated)

    async def import_remote(self, values: Mapping[str, Any]) -> str:
        """Insert a record received from the remote, already synced.

        Raises:
            ValidationError: If the remote record carries no id.
            StorageError: If the row cannot be written.
        """
        if not values.get("id"):
            raise ValidationError(f"Remote {self.kind.name} record has no id")
        row = {k: v for k, v in values.items() if k in self.kind.columns}
        row["is_synced"] = True
        await self.store.insert_row(self.model, self._coerce(row))
        return row["id"]

    async def overwrite_from_remote(self, record_id: str, values: Mapping[str, Any]) -> bool:
        """Replace local fields with the remote copy and flag the row synced."""
        row = {k: v for k, v in values.items() if k in self.kind.columns and k != "id"}
        row["is_synced"] = True
        updated = await self.store.update_fields(self.model, record_id, self._coerce(row))
        return bool(updated)

    # --- Tombstones ---

    async def pending_deletions(self) -> list[str]:
        """Ids hard-deleted locally whose remote deletion is not confirmed."""
        rows = await self.store.get_all(
            PendingDeletion,
            filters={"kind": self.kind.name},
            include_deleted=True,
            order_by="deleted_at",
            descending=False,
        )
        return [row.record_id for row in rows]

    async def has_pending_deletion(self, record_id: str) -> bool:
        rows = await self.store.get_all(
            PendingDeletion,
            filters={"kind": self.kind.name, "record_id": record_id},
            include_deleted=True,
        )
        return bool(rows)

    async def clear_pending_deletion(self, record_id: str) -> bool:
        removed = await self.store.delete_rows(
            PendingDeletion, {"kind": self.kind.name, "record_id": record_id}
        )
        return removed > 0

    async def clear(self) -> int:
        """Remove every record of this kind and its tombstones."""
        await self.store.delete_rows(PendingDeletion, {"kind": self.kind.name})
        removed = await self.store.clear(self.model)
        logger.warning(f"Cleared {removed} {self.kind.name} records")
        return removed
