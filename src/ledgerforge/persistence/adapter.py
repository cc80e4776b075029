"""Persistence protocols: the narrow interface entity services consume."""

from typing import Any, Protocol, Sequence, runtime_checkable

from sqlalchemy import ColumnElement, Table

from ledgerforge.persistence.statements import Statement


@runtime_checkable
class PersistenceDelegate(Protocol):
    """Per-table access used by an entity service.

    Reads execute immediately. Writes return unexecuted statements that the
    caller batches into ``Store.transaction``.
    """

    table: Table
    primary_key: str

    def find_many(
        self,
        where: ColumnElement[bool] | None = None,
        order_by: list[Any] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]: ...

    def find_first(
        self,
        where: ColumnElement[bool] | None = None,
        order_by: list[Any] | None = None,
    ) -> dict[str, Any] | None: ...

    def count(self, where: ColumnElement[bool] | None = None) -> int: ...

    def group_by(
        self,
        by: list[str],
        sum_fields: list[str],
        where: ColumnElement[bool] | None = None,
    ) -> list[dict[str, Any]]: ...

    def aggregate(
        self,
        sum_fields: list[str],
        where: ColumnElement[bool] | None = None,
    ) -> dict[str, Any]: ...

    def create(self, data: dict[str, Any]) -> Statement: ...

    def create_many(
        self, rows: list[dict[str, Any]], skip_duplicates: bool = True
    ) -> Statement: ...

    def update(self, id: Any, data: dict[str, Any]) -> Statement: ...

    def upsert(
        self,
        id: Any,
        create_data: dict[str, Any],
        update_data: dict[str, Any],
    ) -> Statement: ...

    def delete(self, id: Any) -> Statement: ...

    def delete_many(self, where: ColumnElement[bool]) -> Statement: ...


@runtime_checkable
class Store(Protocol):
    """Shared, long-lived store handle.

    ``transaction`` executes a heterogeneous statement list atomically and
    returns results positionally.
    """

    def delegate(self, table_name: str, primary_key: str = "id") -> PersistenceDelegate: ...

    def transaction(self, statements: Sequence[Statement]) -> list[Any]: ...
