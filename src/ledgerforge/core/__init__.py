"""Configuration types and error taxonomy."""

from ledgerforge.core.errors import (
    AlreadyCancelledError,
    DoNotAllowToChangeError,
    DuplicationError,
    EntityNotFoundError,
    ErrorCode,
    ForeignKeyConstraintError,
    HookRejectedError,
    MissingRequiredFieldsError,
    ServiceError,
    UnknownFilterKeyError,
)
from ledgerforge.core.types import (
    EntityId,
    EntityKind,
    IdStrategy,
    Operation,
    Record,
    SearchConfig,
    ServiceConfig,
)

__all__ = [
    "AlreadyCancelledError",
    "DoNotAllowToChangeError",
    "DuplicationError",
    "EntityId",
    "EntityKind",
    "EntityNotFoundError",
    "ErrorCode",
    "ForeignKeyConstraintError",
    "HookRejectedError",
    "IdStrategy",
    "MissingRequiredFieldsError",
    "Operation",
    "Record",
    "SearchConfig",
    "ServiceConfig",
    "ServiceError",
    "UnknownFilterKeyError",
]
