"""Generic repository over the SQLAlchemy session.

Reads compose their clauses through :func:`build_query`. Writes are either
staged on the session (``add``/``update``/``remove``) and committed by
``save_changes``, or executed straight against the database as bulk
statements (``bulk_add_range``/``bulk_update``/``bulk_remove``).

Sessions handed to the repository must use ``expire_on_commit=False``: the
identity map is cleared after each commit and rows stay readable afterwards.
"""

from __future__ import annotations

import hashlib
import re
import threading
import uuid
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any, TypeVar

from sqlalchemy import Connection, Engine, MetaData, delete, func, insert, inspect, update
from sqlalchemy import select as sa_select
from sqlalchemy.exc import NoResultFound
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from timetracking.db.base import Base
from timetracking.repositories.query_builder import Clause, as_clauses, build_query

EntityT = TypeVar("EntityT")

# The session's unit of work is not safe for concurrent flushes.
_SAVE_CHANGES_LOCK = threading.Lock()

_LINE_ENDINGS = re.compile(r"\r\n|\r|\n")

_BULK_OPTIONS = {"synchronize_session": False}


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, the storage format of audit columns."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def describe_metadata(metadata: MetaData) -> str:
    """Deterministic textual description of every table in ``metadata``."""

    lines: list[str] = []
    for table in sorted(metadata.tables.values(), key=lambda item: item.name):
        lines.append(f"Table: {table.name}")
        for column in table.columns:
            lines.append(
                f"  Column: {column.name} {column.type!r}"
                f" primary_key={column.primary_key} nullable={column.nullable}"
            )
        for foreign_key in sorted(table.foreign_keys, key=lambda item: item.parent.name):
            lines.append(
                f"  ForeignKey: {foreign_key.parent.name} -> {foreign_key.target_fullname}"
                f" ondelete={foreign_key.ondelete}"
            )
        for index in sorted(table.indexes, key=lambda item: item.name or ""):
            columns = ", ".join(column.name for column in index.columns)
            lines.append(f"  Index: {index.name} ({columns}) unique={index.unique}")
    return "\n".join(lines)


def compute_model_hash(metadata: MetaData) -> str:
    description = _LINE_ENDINGS.sub("\n", describe_metadata(metadata))
    return hashlib.sha256(description.encode("utf-8")).hexdigest()


class TransactionAbortedError(RuntimeError):
    """Raised when a completed scope is rolled back because an inner scope was not completed."""


class TransactionScope:
    """Atomic unit for every repository call made while the scope is open.

    Use as a context manager and call :meth:`complete` before leaving; a scope
    left without completion rolls back. A scope opened while another one is
    active joins it: leaving the inner scope incomplete dooms the outer one.
    """

    def __init__(self, repository: DbRepository) -> None:
        self._repository = repository
        self._parent: TransactionScope | None = None
        self._completed = False
        self._doomed = False
        self._transaction = None
        self.connection: Connection | None = None
        self.session: Session | None = None

    def __enter__(self) -> TransactionScope:
        self._parent = self._repository._scope
        if self._parent is not None:
            self.connection = self._parent.connection
            self.session = self._parent.session
        else:
            self.connection = self._repository.engine.connect()
            self._transaction = self.connection.begin()
            # The session joins the outer transaction and never commits it itself.
            self.session = Session(
                bind=self.connection,
                autoflush=False,
                expire_on_commit=False,
                join_transaction_mode="rollback_only",
            )
        self._repository._scope = self
        return self

    def complete(self) -> None:
        self._completed = True

    def __exit__(self, exc_type, exc, tb) -> None:
        self._repository._scope = self._parent

        if self._parent is not None:
            if exc_type is not None or not self._completed:
                self._parent._doomed = True
            return

        commit = self._completed and not self._doomed and exc_type is None
        try:
            self.session.close()
            if commit:
                self._transaction.commit()
            else:
                self._transaction.rollback()
        finally:
            self.connection.close()

        if self._completed and self._doomed and exc_type is None:
            raise TransactionAbortedError("Transaction rolled back because an inner scope was not completed.")


class DbRepository:
    """Typed data access shared by application services."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self._scope: TransactionScope | None = None

    @property
    def engine(self) -> Engine:
        bind = self.db.get_bind()
        return bind.engine if isinstance(bind, Connection) else bind

    @property
    def _session(self) -> Session:
        return self._scope.session if self._scope is not None else self.db

    # ---------- Reads ----------
    def get(
        self,
        entity: type[EntityT],
        *,
        select: Clause | Sequence[Clause] | None = None,
        where: Clause | Sequence[Clause] | None = None,
        order_by: Clause | Sequence[Clause] | None = None,
        includes: Sequence[str] | None = None,
        distinct: bool = False,
        skip: int | None = None,
        take: int | None = None,
        tracked: bool = False,
    ) -> list[Any]:
        """Rows of ``entity`` or, with ``select``, projected values.

        A single ``select`` expression yields plain values, a list or tuple of
        expressions yields row tuples. Untracked entity rows are detached
        snapshots; changing them has no effect until passed to ``update``.
        """

        query = build_query(
            entity,
            select=select,
            where=where,
            order_by=order_by,
            includes=includes,
            distinct=distinct,
            skip=skip,
            take=take,
        )
        return self._fetch(query, select=select, tracked=tracked)

    def get_grouped(
        self,
        entity: type,
        *,
        group_by: Clause | Sequence[Clause],
        select: Clause | Sequence[Clause],
        where: Clause | Sequence[Clause] | None = None,
        order_by: Clause | Sequence[Clause] | None = None,
        distinct: bool = False,
        skip: int | None = None,
        take: int | None = None,
    ) -> list[Any]:
        """Grouped projection; ``order_by`` applies to the projected rows."""

        query = build_query(
            entity,
            select=select,
            where=where,
            group_by=group_by,
            result_order_by=order_by,
            distinct=distinct,
            skip=skip,
            take=take,
        )
        return self._fetch(query, select=select, tracked=False)

    def first_or_default(
        self,
        entity: type[EntityT],
        *,
        select: Clause | Sequence[Clause] | None = None,
        where: Clause | Sequence[Clause] | None = None,
        order_by: Clause | Sequence[Clause] | None = None,
        includes: Sequence[str] | None = None,
        skip: int | None = None,
        tracked: bool = False,
    ) -> Any | None:
        rows = self.get(
            entity,
            select=select,
            where=where,
            order_by=order_by,
            includes=includes,
            skip=skip,
            take=1,
            tracked=tracked,
        )
        return rows[0] if rows else None

    def count(
        self,
        entity: type,
        *,
        select: Clause | Sequence[Clause] | None = None,
        where: Clause | Sequence[Clause] | None = None,
        distinct: bool = False,
    ) -> int:
        inner = build_query(entity, select=select, where=where, distinct=distinct).subquery()
        return self._session.scalar(sa_select(func.count()).select_from(inner)) or 0

    def sum(self, entity: type, select: Clause, *, where: Clause | Sequence[Clause] | None = None) -> Any:
        return self._session.scalar(build_query(entity, select=func.coalesce(func.sum(select), 0), where=where))

    def min(self, entity: type, select: Clause, *, where: Clause | Sequence[Clause] | None = None) -> Any | None:
        return self._session.scalar(build_query(entity, select=func.min(select), where=where))

    def max(self, entity: type, select: Clause, *, where: Clause | Sequence[Clause] | None = None) -> Any | None:
        return self._session.scalar(build_query(entity, select=func.max(select), where=where))

    def exists(self, entity: type, *, where: Clause | Sequence[Clause] | None = None) -> bool:
        return bool(self._session.scalar(sa_select(build_query(entity, where=where).exists())))

    # ---------- Staged writes ----------
    def add(self, entity: EntityT) -> EntityT:
        return self.add_range([entity])[0]

    def add_range(self, entities: list[EntityT]) -> list[EntityT]:
        now = utc_now()
        for entity in entities:
            if hasattr(entity, "id") and entity.id is None:
                entity.id = uuid.uuid4()
            entity.created = now
            entity.modified = now

        self._session.add_all(entities)
        return entities

    def update(self, entity: EntityT) -> EntityT:
        """Stage an update of every column except ``created``.

        The stored row is replaced as a whole: columns left unset on a
        transient ``entity`` are written as NULL.
        """

        session = self._session
        mapper = inspect(type(entity))
        identity = tuple(mapper.primary_key_from_instance(entity))
        stored = None if None in identity else session.get(type(entity), identity)
        if stored is None:
            raise NoResultFound(f"{type(entity).__name__} to update does not exist.")

        if stored is not entity:
            for attribute in mapper.column_attrs:
                if attribute.key != "created":
                    setattr(stored, attribute.key, getattr(entity, attribute.key))
        stored.modified = utc_now()

        created = inspect(stored).attrs.created.history
        if created.deleted:
            set_committed_value(stored, "created", created.deleted[0])
        return stored

    def remove(self, entity: EntityT) -> EntityT:
        session = self._session
        attached = entity if entity in session else session.merge(entity)
        session.delete(attached)
        return attached

    def remove_range(self, entities: list[EntityT]) -> list[EntityT]:
        return [self.remove(entity) for entity in entities]

    def save_changes(self) -> int:
        """Commit staged changes; commits are serialized process-wide."""

        session = self._session
        with _SAVE_CHANGES_LOCK:
            changed = len(session.new) + len(session.dirty) + len(session.deleted)
            session.commit()
            session.expunge_all()
        return changed

    # ---------- Bulk statements ----------
    def bulk_add_range(self, entities: list[EntityT]) -> list[EntityT]:
        """Insert rows as given, keeping identifiers and audit columns."""

        if not entities:
            return entities

        rows_by_type: dict[type, list[dict[str, Any]]] = {}
        for entity in entities:
            rows_by_type.setdefault(type(entity), []).append(_column_values(entity))

        with self.create_transaction_scope() as scope:
            for entity_type, rows in rows_by_type.items():
                scope.session.execute(insert(entity_type), rows)
            scope.complete()
        return entities

    def bulk_update(
        self,
        entity: type,
        where: Clause | Sequence[Clause] | None,
        values: Mapping[str, Any] | Callable[[Any], Mapping[str, Any]],
    ) -> int:
        """Update matching rows directly in the database.

        ``values`` is either a mapping of new column values (literals or SQL
        expressions) or a function returning that mapping for each row.
        """

        if callable(values):
            rows = self.get(entity, where=where)
            if not rows:
                return 0
            key_names = [column.key for column in inspect(entity).primary_key]
            parameters = [
                {**{name: getattr(row, name) for name in key_names}, **values(row)}
                for row in rows
            ]
            self._execute_bulk(update(entity), parameters)
            return len(parameters)

        statement = update(entity).values(dict(values))
        for clause in as_clauses(where):
            statement = statement.where(clause)
        return self._execute_bulk(statement)

    def bulk_remove(self, entity: type, where: Clause | Sequence[Clause] | None = None) -> int:
        statement = delete(entity)
        for clause in as_clauses(where):
            statement = statement.where(clause)
        return self._execute_bulk(statement)

    # ---------- Transactions and schema ----------
    def create_transaction_scope(self) -> TransactionScope:
        return TransactionScope(self)

    def get_database_model_hash(self) -> str:
        return compute_model_hash(Base.metadata)

    def _execute_bulk(self, statement: Any, parameters: list[dict[str, Any]] | None = None) -> int:
        with self.create_transaction_scope() as scope:
            result = scope.session.execute(statement, parameters, execution_options=_BULK_OPTIONS)
            affected = len(parameters) if parameters is not None else result.rowcount
            scope.complete()
        return affected

    def _fetch(self, query: Any, *, select: Any, tracked: bool) -> list[Any]:
        session = self._session
        if select is not None:
            if isinstance(select, (list, tuple)):
                return list(session.execute(query).all())
            return list(session.scalars(query).all())

        attached_before = set(session.identity_map.keys())
        rows = list(session.scalars(query).all())
        if not tracked:
            for key, instance in list(session.identity_map.items()):
                if key not in attached_before:
                    session.expunge(instance)
        return rows


def _column_values(entity: Any) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for attribute in inspect(type(entity)).column_attrs:
        value = getattr(entity, attribute.key)
        column = attribute.columns[0]
        if value is None and column.default is not None:
            continue
        values[attribute.key] = value
    return values
