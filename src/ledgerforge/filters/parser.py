"""Parser for flat filter objects.

Converts ``{"quantity_gte": 10, "status_in": ["new", None], "q": "red chair"}``
into predicate nodes. Keys are classified as:

- ``ids``: explicit key list, left to the request builder
- ``q``: free text, tokenized into a FreeText node
- ``<field><suffix>``: one of the recognized suffixes below
- anything else: plain equality
"""

from collections.abc import Iterable, Mapping
from typing import Any

from ledgerforge.core.errors import UnknownFilterKeyError
from ledgerforge.filters.types import (
    Defined,
    Equals,
    FreeText,
    Predicate,
    Range,
    RangeOp,
    SetIn,
    SetNotIn,
)

IDS_KEY = "ids"
SEARCH_KEY = "q"

# Longest first so "_not_in" wins over "_in" and "_lte" over "_lt"
SUFFIXES = ("_not_in", "_defined", "_lte", "_gte", "_in", "_lt", "_gt")

_RANGE_OPS = {
    "_lte": RangeOp.LTE,
    "_gte": RangeOp.GTE,
    "_lt": RangeOp.LT,
    "_gt": RangeOp.GT,
}


def split_key(key: str) -> tuple[str, str | None]:
    """Split a filter key into (field, suffix); suffix is None for plain keys."""
    for suffix in SUFFIXES:
        if key.endswith(suffix) and len(key) > len(suffix):
            return key[: -len(suffix)], suffix
    return key, None


def tokenize_search(query: Any) -> tuple[str, ...]:
    """Trim, lower-case and split a free-text query on whitespace."""
    if not isinstance(query, str):
        return ()
    return tuple(query.strip().lower().split())


def parse_filter(filter: dict[str, Any] | None) -> list[Predicate]:
    """Parse a flat filter object into predicate nodes.

    Predicates that carry no constraint (null range bounds, empty set lists,
    blank free text) are dropped rather than turned into "match nothing".
    """
    if not filter:
        return []

    predicates: list[Predicate] = []

    for key, value in filter.items():
        if key == IDS_KEY:
            continue

        if key == SEARCH_KEY:
            tokens = tokenize_search(value)
            if tokens:
                predicates.append(FreeText(tokens))
            continue

        field, suffix = split_key(key)
        predicate = _parse_pair(field, suffix, value)
        if predicate is not None:
            predicates.append(predicate)

    return predicates


def _parse_pair(field: str, suffix: str | None, value: Any) -> Predicate | None:
    if suffix is None:
        return Equals(field, value)

    if suffix in _RANGE_OPS:
        if value is None:
            return None
        return Range(field, _RANGE_OPS[suffix], value)

    if suffix in ("_in", "_not_in"):
        if value is None:
            return None
        if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
            raise UnknownFilterKeyError(f"{field}{suffix}")
        items = tuple(value)
        include_null = any(v is None for v in items)
        values = tuple(v for v in items if v is not None)
        if not values:
            return None
        node = SetIn if suffix == "_in" else SetNotIn
        return node(field, values, include_null)

    if suffix == "_defined":
        return Defined(field, bool(value))

    # split_key only yields suffixes handled above
    raise AssertionError(f"Unhandled filter suffix: {suffix}")
