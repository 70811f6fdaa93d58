"""Generic record store used by the submission pipeline.

The core talks to persistence only through :class:`RecordStore`: a few
operations over named collections that return plain mappings. Callers decode
those mappings with :func:`replied.schemas.records.decode_record`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from sqlalchemy import inspect, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from replied.core.errors import RecordStoreError
from replied.models import Message, Profile, Reply

__all__ = ["COLLECTIONS", "RecordStore", "SqlRecordStore"]

logger = logging.getLogger(__name__)

COLLECTIONS: dict[str, type[DeclarativeBase]] = {
    "profiles": Profile,
    "messages": Message,
    "replies": Reply,
}

Record = dict[str, Any]


class RecordStore(Protocol):
    """Operations the core needs from its backing store.

    Every method may raise :class:`RecordStoreError` on transport or server
    failures.
    """

    def insert(self, collection: str, record: Mapping[str, Any]) -> str: ...

    def get(self, collection: str, filters: Mapping[str, Any]) -> Record | None: ...

    def update(self, collection: str, record_id: str, patch: Mapping[str, Any]) -> None: ...

    def insert_and_update(
        self,
        collection: str,
        record: Mapping[str, Any],
        target_collection: str,
        target_id: str,
        patch: Mapping[str, Any],
    ) -> str: ...

    def query(
        self,
        collection: str,
        filters: Mapping[str, Any],
        order: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[Record]: ...


class SqlRecordStore:
    """Record store backed by SQLAlchemy.

    Filters are equality matches keyed by column name. A ``__ne`` or ``__in``
    suffix on the key selects inequality or membership. Order entries are
    column names, prefixed with ``-`` for descending.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _model(collection: str) -> type[DeclarativeBase]:
        try:
            return COLLECTIONS[collection]
        except KeyError as err:
            raise ValueError(f"Unknown collection {collection!r}") from err

    @staticmethod
    def _column(model: type[DeclarativeBase], name: str) -> Any:
        column = getattr(model, name, None)
        if column is None:
            raise ValueError(f"{model.__name__} has no column {name!r}")
        return column

    @classmethod
    def _where(cls, model: type[DeclarativeBase], filters: Mapping[str, Any]) -> list[Any]:
        clauses = []
        for key, value in filters.items():
            name, _, op = key.partition("__")
            column = cls._column(model, name)
            if op == "":
                clauses.append(column.is_(None) if value is None else column == value)
            elif op == "ne":
                clauses.append(column.is_not(None) if value is None else column != value)
            elif op == "in":
                clauses.append(column.in_(list(value)))
            else:
                raise ValueError(f"Unsupported filter operator {op!r}")
        return clauses

    @staticmethod
    def _to_record(obj: DeclarativeBase) -> Record:
        mapper = inspect(type(obj))
        return {attr.key: getattr(obj, attr.key) for attr in mapper.column_attrs}

    def insert(self, collection: str, record: Mapping[str, Any]) -> str:
        """Insert ``record`` in its own transaction and return its id."""
        model = self._model(collection)
        try:
            with self._session_factory() as session, session.begin():
                obj = model(**record)
                session.add(obj)
                session.flush()
                return str(obj.id)  # type: ignore[attr-defined]
        except SQLAlchemyError as exc:
            logger.error("Insert into %s failed: %s", collection, exc.__class__.__name__)
            raise RecordStoreError(f"Insert into {collection} failed") from exc

    def get(self, collection: str, filters: Mapping[str, Any]) -> Record | None:
        """Return the first row matching ``filters``, or None."""
        rows = self.query(collection, filters, limit=1)
        return rows[0] if rows else None

    def _apply_patch(
        self,
        session: Session,
        collection: str,
        record_id: str,
        patch: Mapping[str, Any],
    ) -> int:
        model = self._model(collection)
        id_column = self._column(model, "id")
        result = session.execute(update(model).where(id_column == record_id).values(**patch))
        return result.rowcount

    def update(self, collection: str, record_id: str, patch: Mapping[str, Any]) -> None:
        """Apply ``patch`` to the row with ``record_id``.

        Raises:
            RecordStoreError: If the row does not exist or the update fails.
        """
        try:
            with self._session_factory() as session, session.begin():
                matched = self._apply_patch(session, collection, record_id, patch)
        except SQLAlchemyError as exc:
            logger.error("Update of %s failed: %s", collection, exc.__class__.__name__)
            raise RecordStoreError(f"Update of {collection} failed") from exc
        if not matched:
            raise RecordStoreError(f"No {collection} row with id {record_id!r}")

    def insert_and_update(
        self,
        collection: str,
        record: Mapping[str, Any],
        target_collection: str,
        target_id: str,
        patch: Mapping[str, Any],
    ) -> str:
        """Insert ``record`` and patch another row in a single transaction.

        Either both writes are committed or neither is.

        Raises:
            RecordStoreError: If the target row does not exist or either
                write fails.
        """
        model = self._model(collection)
        try:
            with self._session_factory() as session, session.begin():
                obj = model(**record)
                session.add(obj)
                session.flush()
                if not self._apply_patch(session, target_collection, target_id, patch):
                    raise RecordStoreError(f"No {target_collection} row with id {target_id!r}")
                return str(obj.id)  # type: ignore[attr-defined]
        except SQLAlchemyError as exc:
            logger.error(
                "Insert into %s with update of %s failed: %s",
                collection,
                target_collection,
                exc.__class__.__name__,
            )
            raise RecordStoreError(f"Insert into {collection} failed") from exc

    def query(
        self,
        collection: str,
        filters: Mapping[str, Any],
        order: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[Record]:
        """Return rows matching ``filters`` in the requested order."""
        model = self._model(collection)
        stmt = select(model).where(*self._where(model, filters))
        for entry in order:
            descending = entry.startswith("-")
            column = self._column(model, entry.lstrip("-"))
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            with self._session_factory() as session:
                return [self._to_record(obj) for obj in session.scalars(stmt)]
        except SQLAlchemyError as exc:
            logger.error("Query on %s failed: %s", collection, exc.__class__.__name__)
            raise RecordStoreError(f"Query on {collection} failed") from exc
