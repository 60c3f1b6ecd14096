"""Local database engine, schema lifecycle and typed CRUD primitives."""

import asyncio
import enum
import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import ColumnElement, delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from kalangka.db.models import Base
from kalangka.errors import DuplicateKeyError, StorageError

logger = logging.getLogger(__name__)


class StoreState(str, enum.Enum):
    """Lifecycle of the local store handle."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


def _translate_integrity_error(exc: IntegrityError) -> StorageError:
    """Map a constraint violation to DuplicateKeyError when it is a uniqueness one."""
    message = str(exc.orig) if exc.orig is not None else str(exc)
    marker = "UNIQUE constraint failed:"
    if marker in message:
        column = message.split(marker, 1)[1].strip().split(",")[0]
        field = column.split(".")[-1] or None
        return DuplicateKeyError(f"Duplicate value for {column}", field=field)
    if "unique" in message.lower() or "duplicate" in message.lower():
        return DuplicateKeyError(message)
    return StorageError(message)


class LocalStore:
    """Durable local storage with an idempotent, once-only schema setup.

    One instance is created per database file and shared by every repository
    and sync coordinator. The engine is opened lazily on first use; concurrent
    callers of ``open()`` all wait for the same initialization.

    Attributes:
        database_url: SQLAlchemy async database URL.
        echo: Echo SQL statements.
        state: Current lifecycle state.
    """

    def __init__(self, database_url: str, echo: bool = False):
        """Initialize the store without touching the database.

        Args:
            database_url: SQLAlchemy async URL (e.g. sqlite+aiosqlite:///kalangka.db).
            echo: Echo SQL statements.
        """
        self.database_url = database_url
        self.echo = echo
        self.state = StoreState.UNINITIALIZED
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None
        self._lock = asyncio.Lock()

    @property
    def is_ready(self) -> bool:
        """Whether the schema has been created and the engine is usable."""
        return self.state is StoreState.READY

    def _create_engine(self) -> AsyncEngine:
        engine_kwargs: dict[str, Any] = {"echo": self.echo}
        if self.database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in self.database_url or self.database_url.endswith("://"):
                # In-memory databases live in a single connection
                engine_kwargs["poolclass"] = StaticPool
        return create_async_engine(self.database_url, **engine_kwargs)

    async def _create_schema(self, engine: AsyncEngine) -> None:
        """Create tables and indexes that do not exist yet."""
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all, checkfirst=True)

    async def open(self) -> AsyncEngine:
        """Open the database, creating the schema if needed.

        Returns:
            AsyncEngine: The ready engine.

        Raises:
            StorageError: If the database cannot be opened or the schema created.
        """
        if self.state is StoreState.READY and self._engine is not None:
            return self._engine

        async with self._lock:
            # Another caller may have finished initialization while we waited
            if self.state is StoreState.READY and self._engine is not None:
                return self._engine

            self.state = StoreState.INITIALIZING
            logger.info(f"Initializing local database {self.database_url}")
            engine = self._create_engine()
            try:
                await self._create_schema(engine)
            except (SQLAlchemyError, OSError) as e:
                self.state = StoreState.UNINITIALIZED
                await engine.dispose()
                logger.error(f"Failed to initialize local database: {e}")
                raise StorageError(
                    "Database initialization failed. Please restart the app."
                ) from e

            self._engine = engine
            self._sessionmaker = async_sessionmaker(engine, expire_on_commit=False)
            self.state = StoreState.READY
            logger.info("Local database initialized successfully")
            return engine

    async def close(self) -> None:
        """Dispose the engine; the store can be reopened afterwards."""
        async with self._lock:
            if self._engine is not None:
                await self._engine.dispose()
            self._engine = None
            self._sessionmaker = None
            self.state = StoreState.UNINITIALIZED

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield a session that commits on success.

        Yields:
            AsyncSession: Session bound to the shared engine.

        Raises:
            DuplicateKeyError: On a uniqueness violation.
            StorageError: On any other database failure.
        """
        await self.open()
        sessionmaker = self._sessionmaker
        if sessionmaker is None:
            raise StorageError("Local store is closed")
        async with sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise _translate_integrity_error(e) from e
            except SQLAlchemyError as e:
                await session.rollback()
                raise StorageError(str(e)) from e

    @staticmethod
    def _visible(model: type[Base], include_deleted: bool) -> list[ColumnElement]:
        if include_deleted or not hasattr(model, "deleted_at"):
            return []
        return [model.deleted_at.is_(None)]

    @staticmethod
    def _conditions(model: type[Base], conditions: Mapping[str, Any] | None) -> list:
        return [getattr(model, name) == value for name, value in (conditions or {}).items()]

    async def insert_row(self, model: type[Base], values: Mapping[str, Any]) -> Base:
        """Insert a row.

        Args:
            model: Model class of the target table.
            values: Column values.

        Returns:
            Base: The persisted instance.
        """
        row = model(**values)
        async with self.session() as session:
            session.add(row)
        return row

    async def get_by_id(
        self, model: type[Base], record_id: str, include_deleted: bool = False
    ) -> Base | None:
        """Get a row by primary key.

        Args:
            model: Model class of the target table.
            record_id: Primary key.
            include_deleted: Return soft-deleted rows too.

        Returns:
            Base | None: The row or None if missing or invisible.
        """
        query = select(model).where(model.id == record_id, *self._visible(model, include_deleted))
        async with self.session() as session:
            result = await session.execute(query)
            return result.scalar_one_or_none()

    async def get_all(
        self,
        model: type[Base],
        filters: Mapping[str, Any] | None = None,
        include_deleted: bool = False,
        order_by: str | None = None,
        descending: bool = True,
    ) -> list[Base]:
        """Get all rows matching equality filters.

        Args:
            model: Model class of the target table.
            filters: Column name to value equality filters.
            include_deleted: Return soft-deleted rows too.
            order_by: Column name to sort by.
            descending: Sort direction.

        Returns:
            list[Base]: Matching rows.
        """
        query = select(model).where(
            *self._conditions(model, filters), *self._visible(model, include_deleted)
        )
        if order_by:
            column = getattr(model, order_by)
            query = query.order_by(column.desc() if descending else column.asc())
        async with self.session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def update_fields(
        self,
        model: type[Base],
        record_id: str,
        values: Mapping[str, Any],
        visible_only: bool = False,
        conditions: Mapping[str, Any] | None = None,
    ) -> int:
        """Partially update one row.

        Args:
            model: Model class of the target table.
            record_id: Primary key.
            values: Columns to set.
            visible_only: Skip soft-deleted rows.
            conditions: Extra equality conditions (e.g. optimistic updated_at check).

        Returns:
            int: Number of rows updated (0 or 1).
        """
        query = (
            update(model)
            .where(
                model.id == record_id,
                *self._conditions(model, conditions),
                *self._visible(model, not visible_only),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self.session() as session:
            result = await session.execute(query)
            return result.rowcount

    async def delete_row(self, model: type[Base], record_id: str) -> int:
        """Physically remove a row by primary key.

        Returns:
            int: Number of rows removed.
        """
        return await self.delete_rows(model, {"id": record_id})

    async def delete_rows(self, model: type[Base], conditions: Mapping[str, Any]) -> int:
        """Physically remove every row matching equality conditions.

        Returns:
            int: Number of rows removed.
        """
        query = delete(model).where(*self._conditions(model, conditions))
        async with self.session() as session:
            result = await session.execute(query)
            return result.rowcount

    async def aggregate(
        self, model: type[Base], expressions: Mapping[str, ColumnElement]
    ) -> dict[str, int]:
        """Evaluate aggregate expressions in a single query.

        Args:
            model: Model class of the target table.
            expressions: Result name to aggregate expression.

        Returns:
            dict[str, int]: Result name to value (NULL sums become 0).
        """
        query = select(*[expr.label(name) for name, expr in expressions.items()]).select_from(
            model
        )
        async with self.session() as session:
            row = (await session.execute(query)).one()
        return {name: int(row._mapping[name] or 0) for name in expressions}

    async def clear(self, model: type[Base]) -> int:
        """Remove every row of a table.

        Returns:
            int: Number of rows removed.
        """
        async with self.session() as session:
            result = await session.execute(delete(model))
            return result.rowcount
