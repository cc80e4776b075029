"""Translate store integrity violations into the service error taxonomy."""

import re

from sqlalchemy.exc import IntegrityError

from ledgerforge.core.errors import (
    DuplicationError,
    ForeignKeyConstraintError,
    MissingRequiredFieldsError,
    ServiceError,
)

# SQLite: "UNIQUE constraint failed: product.name, product.code"
_SQLITE_UNIQUE = re.compile(r"UNIQUE constraint failed: (?P<cols>.+)$")
_SQLITE_NOT_NULL = re.compile(r"NOT NULL constraint failed: (?P<cols>.+)$")
# PostgreSQL: "Key (name, code)=(a, b) already exists." / "Key (categoryId)=(7) is not present"
_PG_KEY = re.compile(r"Key \((?P<cols>[^)]+)\)=")
_PG_NOT_NULL = re.compile(r'null value in column "(?P<col>[^"]+)"')

# PostgreSQL SQLSTATE codes
_PG_UNIQUE_VIOLATION = "23505"
_PG_FOREIGN_KEY_VIOLATION = "23503"
_PG_NOT_NULL_VIOLATION = "23502"


def _sqlite_columns(match: re.Match) -> list[str]:
    return [c.strip().split(".")[-1] for c in match.group("cols").split(",")]


def translate_integrity_error(error: IntegrityError) -> ServiceError | None:
    """Map an IntegrityError to a ServiceError, or None if unrecognized.

    Args:
        error: The SQLAlchemy IntegrityError raised by the driver

    Returns:
        DuplicationError, ForeignKeyConstraintError or
        MissingRequiredFieldsError carrying the offending field names
    """
    orig = error.orig
    message = str(orig)
    pgcode = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)

    if pgcode is not None:
        key_match = _PG_KEY.search(message)
        fields = [c.strip().strip('"') for c in key_match.group("cols").split(",")] if key_match else []
        if pgcode == _PG_UNIQUE_VIOLATION:
            return DuplicationError.for_fields(fields)
        if pgcode == _PG_FOREIGN_KEY_VIOLATION:
            return ForeignKeyConstraintError(f"Foreign key constraint violated: {message}", fields)
        if pgcode == _PG_NOT_NULL_VIOLATION:
            col = _PG_NOT_NULL.search(message)
            fields = [col.group("col")] if col else []
            return MissingRequiredFieldsError(f"Required fields missing: {', '.join(fields)}", fields)
        return None

    unique = _SQLITE_UNIQUE.search(message)
    if unique:
        return DuplicationError.for_fields(_sqlite_columns(unique))
    if "FOREIGN KEY constraint failed" in message:
        return ForeignKeyConstraintError("Foreign key constraint violated", [])
    not_null = _SQLITE_NOT_NULL.search(message)
    if not_null:
        fields = _sqlite_columns(not_null)
        return MissingRequiredFieldsError(f"Required fields missing: {', '.join(fields)}", fields)
    return None
