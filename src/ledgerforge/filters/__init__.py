"""Filter parsing and compilation.

Usage:
    from ledgerforge.filters import FilterCompiler, ListParams

    compiler = FilterCompiler(table, search_column="search")
    where = compiler.compile_filter({"quantity_gte": 10, "q": "widget"})
"""

from ledgerforge.filters.compiler import CompiledQuery, FilterCompiler
from ledgerforge.filters.parser import parse_filter, split_key, tokenize_search
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

__all__ = [
    "CompiledQuery",
    "Defined",
    "Equals",
    "FilterCompiler",
    "FreeText",
    "ListParams",
    "Predicate",
    "Range",
    "RangeOp",
    "SetIn",
    "SetNotIn",
    "parse_filter",
    "split_key",
    "tokenize_search",
]
