"""Registry services.

Registries hold rows produced by document posting (or written directly).
Information registries are read as point-in-time slices; sum registries
accumulate resources that are read back as totals.
"""

import inspect
import logging
from typing import Any, Callable

from sqlalchemy import and_

from ledgerforge.core.types import Record, ServiceConfig
from ledgerforge.filters import FilterCompiler
from ledgerforge.hooks import ServiceHooks
from ledgerforge.persistence.adapter import PersistenceDelegate
from ledgerforge.services.base import EntityService
from ledgerforge.services.context import ServiceContext

logger = logging.getLogger(__name__)


class SliceQuery:
    """Point-in-time reads over a period column.

    Args:
        delegate: Delegate of the registry table
        compiler: Filter compiler of the registry table
        period_field: Column holding the period date
        dimensions: Columns identifying one tracked series
    """

    def __init__(
        self,
        delegate: PersistenceDelegate,
        compiler: FilterCompiler,
        period_field: str = "date",
        dimensions: tuple[str, ...] = (),
    ):
        self.delegate = delegate
        self.compiler = compiler
        self.period_field = period_field
        self.dimensions = dimensions

    def _where(self, filter: dict[str, Any] | None, bound: str, moment: Any) -> Any:
        # Caller bounds on the period field still apply alongside the slice bound
        period_bound = self.compiler.compile_filter({f"{self.period_field}{bound}": moment})
        where = self.compiler.compile_filter(filter)
        if where is None or period_bound is None:
            return period_bound if where is None else where
        return and_(where, period_bound)

    def _order(self, descending: bool) -> list[Any]:
        table = self.delegate.table
        period = table.c[self.period_field]
        pk = table.c[self.delegate.primary_key]
        if descending:
            return [period.desc(), pk.desc()]
        return [period.asc(), pk.asc()]

    def last(self, moment: Any, filter: dict[str, Any] | None = None) -> Record | None:
        """Latest row with period <= moment."""
        return self.delegate.find_first(
            where=self._where(filter, "_lte", moment), order_by=self._order(True)
        )

    def first(self, moment: Any, filter: dict[str, Any] | None = None) -> Record | None:
        """Earliest row with period >= moment."""
        return self.delegate.find_first(
            where=self._where(filter, "_gte", moment), order_by=self._order(False)
        )

    def latest_per_dimensions(
        self, moment: Any, filter: dict[str, Any] | None = None
    ) -> list[Record]:
        """Latest row at or before moment for every dimension tuple."""
        rows = self.delegate.find_many(
            where=self._where(filter, "_lte", moment), order_by=self._order(True)
        )
        seen: dict[tuple[Any, ...], Record] = {}
        for row in rows:
            key = tuple(row.get(d) for d in self.dimensions)
            seen.setdefault(key, row)
        return list(seen.values())


class InfoRegistryService(EntityService):
    """Information registry: values that change over time per dimension."""

    def __init__(
        self,
        ctx: ServiceContext,
        config: ServiceConfig,
        hooks: ServiceHooks | None = None,
        delegate: PersistenceDelegate | None = None,
    ):
        super().__init__(ctx, config, hooks=hooks, delegate=delegate)
        self.slices = SliceQuery(
            self.delegate, self.compiler, config.period_field, config.dimensions
        )

    async def _slice_filter(self, filter: dict[str, Any] | None, by_user: bool) -> dict[str, Any]:
        params = await self._list_params({"filter": filter or {}}, by_user)
        return params.filter

    async def slice_of_the_last(
        self, date: Any, filter: dict[str, Any] | None = None, by_user: bool = False
    ) -> Record | None:
        return self.slices.last(date, await self._slice_filter(filter, by_user))

    async def slice_of_the_first(
        self, date: Any, filter: dict[str, Any] | None = None, by_user: bool = False
    ) -> Record | None:
        return self.slices.first(date, await self._slice_filter(filter, by_user))

    async def get_slice(
        self, date: Any, filter: dict[str, Any] | None = None, by_user: bool = False
    ) -> list[Record]:
        """Current value of every series as of date."""
        rows = self.slices.latest_per_dimensions(
            date, await self._slice_filter(filter, by_user)
        )
        logger.debug("Slice of %s at %s: %d series", self.name, date, len(rows))
        return rows


AfterPostFn = Callable[[list[Record]], Any]


class SumRegistryService(EntityService):
    """Accumulation registry: resources summed per dimension.

    Args:
        after_post: Called with the posted entries after a document create
            or delete commits (sync or async). Defaults to a no-op.
    """

    def __init__(
        self,
        ctx: ServiceContext,
        config: ServiceConfig,
        hooks: ServiceHooks | None = None,
        after_post: AfterPostFn | None = None,
        delegate: PersistenceDelegate | None = None,
    ):
        super().__init__(ctx, config, hooks=hooks, delegate=delegate)
        self._after_post = after_post

    async def after_post(self, entries: list[Record]) -> None:
        if self._after_post is None:
            return
        result = self._after_post(entries)
        if inspect.isawaitable(result):
            await result

    async def totals(
        self,
        params: dict[str, Any] | None = None,
        group_by: list[str] | None = None,
        by_user: bool = False,
    ) -> list[dict[str, Any]]:
        """Resource sums per group (dimensions by default).

        Returns:
            Rows like ``{"warehouse": "A", "_sum": {"quantity": 12}}``
        """
        request = await self._list_params(params, by_user)
        by = list(group_by if group_by is not None else self.config.dimensions)
        return self.delegate.group_by(
            by, list(self.config.resources), self.compiler.compile_filter(request.filter)
        )

    async def total(
        self, params: dict[str, Any] | None = None, by_user: bool = False
    ) -> dict[str, Any]:
        """Resource sums over every matching row: ``{"_count": n, "_sum": {...}}``."""
        request = await self._list_params(params, by_user)
        return self.delegate.aggregate(
            list(self.config.resources), self.compiler.compile_filter(request.filter)
        )
