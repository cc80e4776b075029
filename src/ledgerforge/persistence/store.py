"""SQLAlchemy Core store and per-table delegates.

The engine is dialect-neutral (SQLite and PostgreSQL). Reads run on a
short-lived connection; ``transaction`` runs a statement list inside
``engine.begin()`` so it commits or rolls back as a whole.
"""

import logging
from typing import Any, Sequence

from sqlalchemy import ColumnElement, Engine, MetaData, Table, func, select
from sqlalchemy.exc import IntegrityError

from ledgerforge.persistence.errors import translate_integrity_error
from ledgerforge.persistence.statements import (
    DeleteManyStatement,
    DeleteStatement,
    InsertManyStatement,
    InsertStatement,
    Statement,
    UpdateStatement,
    UpsertStatement,
)

logger = logging.getLogger(__name__)


class TableDelegate:
    """PersistenceDelegate over one SQLAlchemy table."""

    def __init__(self, engine: Engine, table: Table, primary_key: str = "id"):
        self.engine = engine
        self.table = table
        self.primary_key = primary_key

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_many(
        self,
        where: ColumnElement[bool] | None = None,
        order_by: list[Any] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        stmt = select(self.table)
        if where is not None:
            stmt = stmt.where(where)
        stmt = stmt.order_by(*(order_by or [self.table.c[self.primary_key].asc()]))
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)

        with self.engine.connect() as conn:
            return [dict(row._mapping) for row in conn.execute(stmt)]

    def find_first(
        self,
        where: ColumnElement[bool] | None = None,
        order_by: list[Any] | None = None,
    ) -> dict[str, Any] | None:
        rows = self.find_many(where=where, order_by=order_by, limit=1)
        return rows[0] if rows else None

    def count(self, where: ColumnElement[bool] | None = None) -> int:
        stmt = select(func.count()).select_from(self.table)
        if where is not None:
            stmt = stmt.where(where)
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar_one()

    def group_by(
        self,
        by: list[str],
        sum_fields: list[str],
        where: ColumnElement[bool] | None = None,
    ) -> list[dict[str, Any]]:
        """Sum fields per group; rows look like {dim..., "_sum": {field: total}}."""
        group_cols = [self.table.c[name] for name in by]
        sums = [func.sum(self.table.c[name]).label(name) for name in sum_fields]
        stmt = select(*group_cols, *sums)
        if where is not None:
            stmt = stmt.where(where)
        stmt = stmt.group_by(*group_cols).order_by(*group_cols)

        with self.engine.connect() as conn:
            result = []
            for row in conn.execute(stmt):
                mapping = dict(row._mapping)
                entry = {name: mapping[name] for name in by}
                entry["_sum"] = {name: mapping[name] for name in sum_fields}
                result.append(entry)
            return result

    def aggregate(
        self,
        sum_fields: list[str],
        where: ColumnElement[bool] | None = None,
    ) -> dict[str, Any]:
        """Sum fields over all matching rows: {"_sum": {...}, "_count": n}."""
        sums = [func.sum(self.table.c[name]).label(name) for name in sum_fields]
        stmt = select(func.count().label("_count"), *sums).select_from(self.table)
        if where is not None:
            stmt = stmt.where(where)

        with self.engine.connect() as conn:
            mapping = dict(conn.execute(stmt).one()._mapping)
        return {
            "_count": mapping["_count"],
            "_sum": {name: mapping[name] for name in sum_fields},
        }

    # ------------------------------------------------------------------
    # Writes (unexecuted)
    # ------------------------------------------------------------------

    def create(self, data: dict[str, Any]) -> Statement:
        return InsertStatement(self.table, self.primary_key, data)

    def create_many(
        self, rows: list[dict[str, Any]], skip_duplicates: bool = True
    ) -> Statement:
        return InsertManyStatement(self.table, rows, skip_duplicates)

    def update(self, id: Any, data: dict[str, Any]) -> Statement:
        return UpdateStatement(self.table, self.primary_key, id, data)

    def upsert(
        self,
        id: Any,
        create_data: dict[str, Any],
        update_data: dict[str, Any],
    ) -> Statement:
        return UpsertStatement(self.table, self.primary_key, id, create_data, update_data)

    def delete(self, id: Any) -> Statement:
        return DeleteStatement(self.table, self.primary_key, id)

    def delete_many(self, where: ColumnElement[bool]) -> Statement:
        return DeleteManyStatement(self.table, where)


class SqlStore:
    """Store over a SQLAlchemy engine and the MetaData holding entity tables."""

    def __init__(self, engine: Engine, metadata: MetaData | None = None):
        self.engine = engine
        self.metadata = metadata or MetaData()

    def create_all(self) -> None:
        """Create every table registered on the MetaData."""
        self.metadata.create_all(self.engine)

    def table(self, table_name: str) -> Table:
        if table_name not in self.metadata.tables:
            raise KeyError(f"Table '{table_name}' is not registered")
        return self.metadata.tables[table_name]

    def delegate(self, table_name: str, primary_key: str = "id") -> TableDelegate:
        return TableDelegate(self.engine, self.table(table_name), primary_key)

    def transaction(self, statements: Sequence[Statement]) -> list[Any]:
        """Execute statements atomically on one connection.

        Returns:
            One result per statement, in order

        Raises:
            ServiceError subclasses for recognized integrity violations;
            anything else raised by a statement propagates unchanged.
        """
        statements = list(statements)
        if not statements:
            return []

        logger.debug("Executing transaction with %d statement(s)", len(statements))
        try:
            with self.engine.begin() as conn:
                return [statement.execute(conn) for statement in statements]
        except IntegrityError as e:
            translated = translate_integrity_error(e)
            if translated is None:
                raise
            raise translated from e
