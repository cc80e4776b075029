"""Derived search column value."""

from datetime import date, datetime, timezone
from typing import Any

from ledgerforge.core.types import SearchConfig


def _format_date(value: Any, date_format: str) -> str:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime(date_format)
    if isinstance(value, date):
        return value.strftime(date_format)
    return str(value).lower()


def build_search_string(record: dict[str, Any], search: SearchConfig) -> str:
    """Lower-cased, space-joined rendering of the configured fields.

    Plain fields come first, in configured order, then date fields rendered
    in UTC. Absent and null fields are skipped alike, so the result depends
    only on the record's values.
    """
    parts = [
        str(record[name]).lower()
        for name in search.fields
        if record.get(name) is not None
    ]
    parts.extend(
        _format_date(record[name], search.date_format)
        for name in search.date_fields
        if record.get(name) is not None
    )
    return " ".join(parts)
