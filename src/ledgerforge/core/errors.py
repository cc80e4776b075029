"""Error taxonomy raised by entity services.

Callers branch on ``ServiceError.code`` (or the exception class) instead of
parsing messages. Only ``HookRejectedError`` messages are meant to be shown
to end users verbatim.
"""

from enum import Enum
from typing import Any


class ErrorCode(Enum):
    DUPLICATION = "DUPLICATION"
    FOREIGN_KEY_CONSTRAINT = "FOREIGN_KEY_CONSTRAINT"
    REQUIRED_FIELDS_MISSING = "REQUIRED_FIELDS_MISSING"
    DO_NOT_ALLOW_TO_CHANGE = "DO_NOT_ALLOW_TO_CHANGE"
    ENTITY_NOT_FOUND = "ENTITY_NOT_FOUND"
    HOOK_REJECTED = "HOOK_REJECTED"
    UNKNOWN_FILTER_KEY = "UNKNOWN_FILTER_KEY"
    ALREADY_CANCELLED = "ALREADY_CANCELLED"


class ServiceError(Exception):
    """Base class for every error in the taxonomy."""

    code: ErrorCode

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code.value,
            "details": self.details,
        }


class _FieldsError(ServiceError):
    def __init__(self, message: str, fields: list[str] | None = None):
        self.fields = list(fields or [])
        super().__init__(message, {"fields": self.fields})


class DuplicationError(_FieldsError):
    code = ErrorCode.DUPLICATION

    @classmethod
    def for_fields(cls, fields: list[str]) -> "DuplicationError":
        if fields:
            return cls(f"Uniqueness violated for fields: ({', '.join(fields)})", fields)
        return cls("A record with the same data already exists", fields)


class ForeignKeyConstraintError(_FieldsError):
    code = ErrorCode.FOREIGN_KEY_CONSTRAINT


class MissingRequiredFieldsError(_FieldsError):
    code = ErrorCode.REQUIRED_FIELDS_MISSING


class DoNotAllowToChangeError(ServiceError):
    code = ErrorCode.DO_NOT_ALLOW_TO_CHANGE

    def __init__(self, entity_name: str):
        super().__init__(
            f"Changing this {entity_name} is not allowed", {"entity": entity_name}
        )


class EntityNotFoundError(ServiceError):
    code = ErrorCode.ENTITY_NOT_FOUND

    def __init__(self, entity_name: str, criteria: Any):
        super().__init__(
            f"There is no {entity_name} matching {criteria!r}",
            {"entity": entity_name, "criteria": criteria},
        )


class HookRejectedError(ServiceError):
    """Raised by hook authors to abort an operation with a user-facing message."""

    code = ErrorCode.HOOK_REJECTED


class UnknownFilterKeyError(ServiceError):
    code = ErrorCode.UNKNOWN_FILTER_KEY

    def __init__(self, key: str, entity_name: str | None = None):
        where = f" for {entity_name}" if entity_name else ""
        super().__init__(f"Unknown filter key '{key}'{where}", {"key": key})


class AlreadyCancelledError(ServiceError):
    code = ErrorCode.ALREADY_CANCELLED

    def __init__(self, entity_name: str, id: Any):
        super().__init__(
            f"{entity_name} {id} is already cancelled", {"entity": entity_name, "id": id}
        )
