"""Predicate descriptors and list request parameters.

A flat filter object is parsed into a closed set of predicate nodes before it
is compiled, so the compiler dispatches on node type instead of key strings.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# -----------------------------------------------------------------------------
# Predicate Nodes
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class Predicate:
    """Base class for predicate nodes."""
    pass


@dataclass(frozen=True)
class Equals(Predicate):
    """field = value (IS NULL when value is None)."""
    field: str
    value: Any


class RangeOp(Enum):
    LTE = "lte"
    GTE = "gte"
    LT = "lt"
    GT = "gt"


@dataclass(frozen=True)
class Range(Predicate):
    """field <op> bound."""
    field: str
    op: RangeOp
    bound: Any


@dataclass(frozen=True)
class SetIn(Predicate):
    """field IN values, optionally OR field IS NULL."""
    field: str
    values: tuple[Any, ...]
    include_null: bool = False


@dataclass(frozen=True)
class SetNotIn(Predicate):
    """field NOT IN values, optionally OR field IS NULL."""
    field: str
    values: tuple[Any, ...]
    include_null: bool = False


@dataclass(frozen=True)
class Defined(Predicate):
    """field IS NOT NULL (defined=True) or IS NULL."""
    field: str
    defined: bool


@dataclass(frozen=True)
class FreeText(Predicate):
    """Every token is contained in the search column."""
    tokens: tuple[str, ...]


# -----------------------------------------------------------------------------
# List Request
# -----------------------------------------------------------------------------


@dataclass
class ListParams:
    """List request wire shape: filter, sorting and zero-based pagination.

    Attributes:
        filter: Flat filter object (see parse_filter)
        sort_field: Column to order by
        sort_order: "ASC" or "DESC"
        page: Zero-based page index (needs per_page)
        per_page: Page size
    """

    filter: dict[str, Any] = field(default_factory=dict)
    sort_field: str | None = None
    sort_order: str = "ASC"
    page: int | None = None
    per_page: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ListParams":
        """Create ListParams from the camelCase wire dict."""
        data = data or {}
        return cls(
            filter=dict(data.get("filter") or {}),
            sort_field=data.get("sortField"),
            sort_order=(data.get("sortOrder") or "ASC").upper(),
            page=data.get("page"),
            per_page=data.get("perPage"),
        )

    @property
    def limit(self) -> int | None:
        return self.per_page

    @property
    def offset(self) -> int:
        if self.page is None or self.per_page is None:
            return 0
        return self.page * self.per_page
