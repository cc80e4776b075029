"""Service configuration types shared by every entity service."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

EntityId = int | str
Record = dict[str, Any]


class IdStrategy(Enum):
    """How a new record gets its primary key."""

    MANUAL = "manual"  # Caller supplies the id
    AUTOINCREMENT = "autoincrement"  # Store assigns an integer on insert
    UUID = "uuid"  # Service generates an opaque string before insert


class EntityKind(Enum):
    CATALOG = "catalog"
    DOCUMENT = "document"
    INFO_REGISTRY = "infoRegistry"
    SUM_REGISTRY = "sumRegistry"


class Operation(Enum):
    """The type of write being performed."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class SearchConfig:
    """Fields that feed the derived search column.

    Attributes:
        fields: Fields rendered with str() and lower-cased
        date_fields: Date/datetime fields rendered in UTC with date_format
        date_format: strftime pattern for date_fields
        column: Name of the derived column
    """

    fields: tuple[str, ...] = ()
    date_fields: tuple[str, ...] = ()
    date_format: str = "%d.%m.%Y"
    column: str = "search"


@dataclass
class ServiceConfig:
    """Per-entity capability set consumed by EntityService.

    Attributes:
        name: Entity name (also the table and service name)
        id_strategy: How primary keys are produced
        primary_key: Name of the primary key field
        defaults: field -> static value or zero-argument callable
        forbidden_for_user_fields: Stripped from input when by_user is set
        required_db_not_user_fields: Must be present before the insert/update
        search: Derived search column config, None when not maintained
        registries: Registries un-posted (and re-posted) by this document
        registrar_depended_registries: Registries this document posts into
        entity_type_id: Registrar type stamped on posted registry entries
        period_field: Time field for info registry slices
        dimensions: Dimension fields of a registry
        resources: Summed fields of a sum registry
    """

    name: str
    id_strategy: IdStrategy = IdStrategy.MANUAL
    primary_key: str = "id"
    defaults: dict[str, Any] = field(default_factory=dict)
    forbidden_for_user_fields: tuple[str, ...] = ()
    required_db_not_user_fields: tuple[str, ...] = ()
    search: SearchConfig | None = None
    registries: tuple[str, ...] = ()
    registrar_depended_registries: tuple[str, ...] = ()
    entity_type_id: str | None = None
    period_field: str = "date"
    dimensions: tuple[str, ...] = ()
    resources: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # A document that posts somewhere must also un-post from there
        if self.registrar_depended_registries and not self.registries:
            self.registries = tuple(self.registrar_depended_registries)
        missing = set(self.registrar_depended_registries) - set(self.registries)
        if missing:
            raise ValueError(
                f"Entity '{self.name}' posts into registries it never un-posts: "
                f"{', '.join(sorted(missing))}"
            )
        if self.registrar_depended_registries and not self.entity_type_id:
            raise ValueError(
                f"Entity '{self.name}' posts into registries but has no entityTypeId"
            )

    @property
    def with_search(self) -> bool:
        return self.search is not None

    def default_values(self) -> dict[str, Any]:
        """Resolve configured defaults, calling factories."""
        return {
            key: value() if callable(value) else value
            for key, value in self.defaults.items()
        }

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> "ServiceConfig":
        """Create ServiceConfig from a YAML/JSON dict with camelCase keys."""
        search = None
        if data.get("withSearch"):
            search = SearchConfig(
                fields=tuple(data.get("searchFields", [])),
                date_fields=tuple(data.get("searchDateFields", [])),
                date_format=data.get("searchDateFormat", "%d.%m.%Y"),
            )

        return cls(
            name=name,
            id_strategy=IdStrategy(data.get("idStrategy", "manual")),
            primary_key=data.get("primaryKey", "id"),
            defaults=dict(data.get("defaults", {})),
            forbidden_for_user_fields=tuple(data.get("forbiddenForUserFields", [])),
            required_db_not_user_fields=tuple(data.get("requiredDbNotUserFields", [])),
            search=search,
            registries=tuple(data.get("registries", [])),
            registrar_depended_registries=tuple(
                data.get("registrarDependedRegistries", [])
            ),
            entity_type_id=data.get("entityTypeId"),
            period_field=data.get("periodField", "date"),
            dimensions=tuple(data.get("dimensions", [])),
            resources=tuple(data.get("resources", [])),
        )


def to_log_id(record_id: EntityId) -> str:
    """Render an id for log lines and registrar columns."""
    return str(record_id)


def omit(data: Record, keys: tuple[str, ...]) -> Record:
    """Return a copy of data without the given keys."""
    return {k: v for k, v in data.items() if k not in keys}
