"""SQLAlchemy table construction from entity metadata."""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.types import TypeEngine

from ledgerforge.core.types import EntityKind, IdStrategy

if TYPE_CHECKING:
    from ledgerforge.metadata.loader import EntityModel, FieldDefinition

REGISTRAR_TYPE_FIELD = "registrarTypeId"
REGISTRAR_ID_FIELD = "registrarId"
ROW_FIELD = "row"

# Field type name -> SQLAlchemy column type
STORAGE_TYPES: dict[str, type[TypeEngine[Any]]] = {
    "string": String,
    "text": Text,
    "uuid": String,
    "int": Integer,
    "integer": Integer,
    "bigint": BigInteger,
    "number": Float,
    "decimal": Numeric,
    "boolean": Boolean,
    "date": Date,
    "datetime": DateTime,
}


def get_storage_type(type_name: str) -> TypeEngine[Any]:
    """Get the column type for a field type, defaulting to String."""
    return STORAGE_TYPES.get(type_name, String)()


def coerce_value(column: Column[Any], value: Any) -> Any:
    """Convert ISO strings bound to date/datetime columns into Python values.

    SQLite's date types only accept date/datetime objects, while filters and
    payloads frequently arrive as ISO strings.
    """
    if not isinstance(value, str):
        return value
    if isinstance(column.type, DateTime):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(column.type, Date):
        return date.fromisoformat(value[:10])
    return value


def coerce_row(table: Table, data: dict[str, Any]) -> dict[str, Any]:
    """Keep only table columns and coerce their values."""
    return {
        key: coerce_value(table.c[key], value)
        for key, value in data.items()
        if key in table.c
    }


def _primary_key_column(entity: EntityModel, declared: FieldDefinition | None) -> Column[Any]:
    pk = entity.config.primary_key
    strategy = entity.config.id_strategy
    if strategy is IdStrategy.AUTOINCREMENT:
        return Column(pk, Integer, primary_key=True, autoincrement=True)
    if strategy is IdStrategy.UUID:
        return Column(pk, String(36), primary_key=True, autoincrement=False)
    col_type = get_storage_type(declared.type) if declared else String()
    return Column(pk, col_type, primary_key=True, autoincrement=False)


def build_table(entity: EntityModel, metadata: MetaData) -> Table:
    """Create the Table for an entity on the given MetaData.

    Adds the derived search column when the entity maintains one, and the
    registrar columns for registry entities.
    """
    pk = entity.config.primary_key
    declared_pk = next((f for f in entity.fields if f.name == pk), None)
    columns: list[Any] = [_primary_key_column(entity, declared_pk)]

    is_registry = entity.kind in (EntityKind.INFO_REGISTRY, EntityKind.SUM_REGISTRY)
    registrar_columns = (REGISTRAR_TYPE_FIELD, REGISTRAR_ID_FIELD, ROW_FIELD)

    for field in entity.fields:
        if field.name == pk or (is_registry and field.name in registrar_columns):
            continue
        col_type = get_storage_type(field.type)
        args: list[Any] = [field.name, col_type]
        if field.references:
            args.append(ForeignKey(field.references))
        columns.append(
            Column(*args, nullable=not field.required, unique=field.unique)
        )

    if entity.config.search is not None:
        columns.append(Column(entity.config.search.column, Text, nullable=True))

    if is_registry:
        columns.extend([
            Column(REGISTRAR_TYPE_FIELD, String, nullable=True),
            Column(REGISTRAR_ID_FIELD, String, nullable=True),
            Column(ROW_FIELD, Integer, nullable=True),
        ])
        columns.append(
            UniqueConstraint(REGISTRAR_TYPE_FIELD, REGISTRAR_ID_FIELD, ROW_FIELD)
        )

    for unique_fields in entity.unique_together:
        columns.append(UniqueConstraint(*unique_fields))

    return Table(entity.name, metadata, *columns)
