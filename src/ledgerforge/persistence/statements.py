"""Unexecuted write statements.

Services and hooks build statements, combine them into one list, and hand
the list to ``Store.transaction`` which runs them on a single connection
inside one transaction. Nothing here commits.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import ColumnElement, Connection, Table, delete, insert, select, text, update

from ledgerforge.core.errors import EntityNotFoundError
from ledgerforge.persistence.schema import coerce_row, coerce_value


@runtime_checkable
class Statement(Protocol):
    """Anything that can run on an open transactional connection."""

    def execute(self, conn: Connection) -> Any: ...


def _fetch(conn: Connection, table: Table, primary_key: str, id: Any) -> dict[str, Any] | None:
    pk = table.c[primary_key]
    row = conn.execute(select(table).where(pk == coerce_value(pk, id))).first()
    return dict(row._mapping) if row else None


def _dialect_insert(conn: Connection, table: Table) -> Any:
    """Return a dialect insert() supporting ON CONFLICT, or None."""
    if conn.dialect.name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as sqlite_insert

        return sqlite_insert(table)
    if conn.dialect.name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as pg_insert

        return pg_insert(table)
    return None


@dataclass
class InsertStatement:
    """INSERT one row; returns the stored row."""

    table: Table
    primary_key: str
    data: dict[str, Any]

    def execute(self, conn: Connection) -> dict[str, Any] | None:
        result = conn.execute(insert(self.table).values(**coerce_row(self.table, self.data)))
        return _fetch(conn, self.table, self.primary_key, result.inserted_primary_key[0])


@dataclass
class InsertManyStatement:
    """INSERT rows one by one, skipping conflicts when asked; returns the count."""

    table: Table
    rows: list[dict[str, Any]]
    skip_duplicates: bool = True

    def execute(self, conn: Connection) -> int:
        count = 0
        for row in self.rows:
            values = coerce_row(self.table, row)
            stmt = _dialect_insert(conn, self.table) if self.skip_duplicates else None
            if stmt is not None:
                stmt = stmt.values(**values).on_conflict_do_nothing()
            else:
                stmt = insert(self.table).values(**values)
            count += conn.execute(stmt).rowcount
        return count


@dataclass
class UpdateStatement:
    """UPDATE one row by primary key; returns the stored row."""

    table: Table
    primary_key: str
    id: Any
    data: dict[str, Any]

    def execute(self, conn: Connection) -> dict[str, Any] | None:
        values = coerce_row(self.table, self.data)
        values.pop(self.primary_key, None)
        pk = self.table.c[self.primary_key]
        if values:
            result = conn.execute(
                update(self.table).where(pk == coerce_value(pk, self.id)).values(**values)
            )
            if result.rowcount == 0:
                raise EntityNotFoundError(self.table.name, {"id": self.id})
        row = _fetch(conn, self.table, self.primary_key, self.id)
        if row is None:
            raise EntityNotFoundError(self.table.name, {"id": self.id})
        return row


@dataclass
class UpsertStatement:
    """Insert create_data or update with update_data, keyed by primary key."""

    table: Table
    primary_key: str
    id: Any
    create_data: dict[str, Any]
    update_data: dict[str, Any]

    def execute(self, conn: Connection) -> dict[str, Any] | None:
        create_values = coerce_row(self.table, self.create_data)
        if self.id is None:
            result = conn.execute(insert(self.table).values(**create_values))
            return _fetch(conn, self.table, self.primary_key, result.inserted_primary_key[0])

        create_values[self.primary_key] = coerce_value(self.table.c[self.primary_key], self.id)
        update_values = coerce_row(self.table, self.update_data)
        update_values.pop(self.primary_key, None)

        stmt = _dialect_insert(conn, self.table)
        if stmt is not None:
            stmt = stmt.values(**create_values)
            if update_values:
                stmt = stmt.on_conflict_do_update(
                    index_elements=[self.primary_key], set_=update_values
                )
            else:
                stmt = stmt.on_conflict_do_nothing(index_elements=[self.primary_key])
            conn.execute(stmt)
        elif _fetch(conn, self.table, self.primary_key, self.id) is None:
            conn.execute(insert(self.table).values(**create_values))
        elif update_values:
            pk = self.table.c[self.primary_key]
            conn.execute(
                update(self.table)
                .where(pk == create_values[self.primary_key])
                .values(**update_values)
            )

        return _fetch(conn, self.table, self.primary_key, self.id)


@dataclass
class DeleteStatement:
    """DELETE one row by primary key; returns the deleted row."""

    table: Table
    primary_key: str
    id: Any

    def execute(self, conn: Connection) -> dict[str, Any]:
        row = _fetch(conn, self.table, self.primary_key, self.id)
        if row is None:
            raise EntityNotFoundError(self.table.name, {"id": self.id})
        pk = self.table.c[self.primary_key]
        conn.execute(delete(self.table).where(pk == coerce_value(pk, self.id)))
        return row


@dataclass
class DeleteManyStatement:
    """DELETE every row matching where; returns the count."""

    table: Table
    where: ColumnElement[bool]

    def execute(self, conn: Connection) -> int:
        return conn.execute(delete(self.table).where(self.where)).rowcount


@dataclass
class RawStatement:
    """Arbitrary SQL with bound parameters, for hooks that need it."""

    sql: str
    params: dict[str, Any] = field(default_factory=dict)

    def execute(self, conn: Connection) -> int:
        return conn.execute(text(self.sql), self.params).rowcount
