"""Compile predicate nodes into SQLAlchemy Core expressions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Column, ColumnElement, Table, and_, false, or_

from ledgerforge.core.errors import UnknownFilterKeyError
from ledgerforge.filters.parser import IDS_KEY, SEARCH_KEY, parse_filter
from ledgerforge.filters.types import (
    Defined,
    Equals,
    FreeText,
    ListParams,
    Predicate,
    Range,
    RangeOp,
    SetIn,
    SetNotIn,
)
from ledgerforge.persistence.schema import coerce_value


@dataclass
class CompiledQuery:
    """Where clause plus ordering and paging for a delegate read."""

    where: ColumnElement[bool] | None = None
    order_by: list[Any] | None = None
    limit: int | None = None
    offset: int = 0


class FilterCompiler:
    """Turns filters on one table into SQLAlchemy boolean expressions.

    Args:
        table: The table the filter applies to
        primary_key: Column used for the ``ids`` key
        search_column: Derived search column, None if the entity has none
    """

    def __init__(
        self,
        table: Table,
        primary_key: str = "id",
        search_column: str | None = None,
    ):
        self.table = table
        self.primary_key = primary_key
        self.search_column = search_column

    def compile_filter(self, filter: dict[str, Any] | None) -> ColumnElement[bool] | None:
        """Compile a flat filter object into one conjunction (None when empty)."""
        clauses: list[ColumnElement[bool]] = []

        if filter and IDS_KEY in filter and filter[IDS_KEY] is not None:
            ids = list(filter[IDS_KEY])
            pk = self._column(self.primary_key)
            clauses.append(pk.in_(ids) if ids else false())

        clauses.extend(self.compile(parse_filter(filter)))

        if not clauses:
            return None
        if len(clauses) == 1:
            return clauses[0]
        return and_(*clauses)

    def compile(self, predicates: list[Predicate]) -> list[ColumnElement[bool]]:
        return [self._compile_one(p) for p in predicates]

    def compile_params(self, params: ListParams) -> CompiledQuery:
        """Compile filter, sort and pagination of a list request."""
        order_by = None
        if params.sort_field:
            column = self._column(params.sort_field)
            order_by = [column.desc() if params.sort_order == "DESC" else column.asc()]

        return CompiledQuery(
            where=self.compile_filter(params.filter),
            order_by=order_by,
            limit=params.limit,
            offset=params.offset,
        )

    def _compile_one(self, predicate: Predicate) -> ColumnElement[bool]:
        if isinstance(predicate, Equals):
            column = self._column(predicate.field)
            if predicate.value is None:
                return column.is_(None)
            return column == coerce_value(column, predicate.value)

        if isinstance(predicate, Range):
            column = self._column(predicate.field)
            bound = coerce_value(column, predicate.bound)
            if predicate.op is RangeOp.LTE:
                return column <= bound
            if predicate.op is RangeOp.GTE:
                return column >= bound
            if predicate.op is RangeOp.LT:
                return column < bound
            return column > bound

        if isinstance(predicate, SetIn):
            column = self._column(predicate.field)
            clause = column.in_([coerce_value(column, v) for v in predicate.values])
            return or_(clause, column.is_(None)) if predicate.include_null else clause

        if isinstance(predicate, SetNotIn):
            column = self._column(predicate.field)
            clause = column.not_in([coerce_value(column, v) for v in predicate.values])
            return or_(clause, column.is_(None)) if predicate.include_null else clause

        if isinstance(predicate, Defined):
            column = self._column(predicate.field)
            return column.is_not(None) if predicate.defined else column.is_(None)

        if isinstance(predicate, FreeText):
            if not self.search_column:
                raise UnknownFilterKeyError(SEARCH_KEY, self.table.name)
            column = self._column(self.search_column)
            return and_(*(column.contains(t, autoescape=True) for t in predicate.tokens))

        raise TypeError(f"Unsupported predicate: {predicate!r}")

    def _column(self, name: str) -> Column[Any]:
        if name not in self.table.c:
            raise UnknownFilterKeyError(name, self.table.name)
        return self.table.c[name]
