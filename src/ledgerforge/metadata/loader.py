"""Load entity definitions from YAML files."""

from pathlib import Path
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
import yaml

from ledgerforge.core.types import EntityKind, ServiceConfig


@dataclass
class FieldDefinition:
    name: str
    type: str = "string"
    primary_key: bool = False
    required: bool = False
    unique: bool = False
    references: str | None = None  # "table.column" for foreign keys
    default: Any = None
    auto: str | None = None  # "now"


@dataclass
class EntityModel:
    name: str
    kind: EntityKind
    fields: list[FieldDefinition]
    config: ServiceConfig
    unique_together: list[tuple[str, ...]] = field(default_factory=list)

    def get_field(self, name: str) -> FieldDefinition | None:
        return next((f for f in self.fields if f.name == name), None)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Field "auto" values -> default factories
AUTO_DEFAULTS = {
    "now": _utcnow,
}


class MetadataLoader:
    """Loads entity and block definitions from YAML files.

    Layout::

        <metadata_path>/blocks/*.yaml     reusable field lists (block: name)
        <metadata_path>/entities/*.yaml   one entity per file (entity: name)
    """

    def __init__(self, metadata_path: Path):
        self.metadata_path = metadata_path
        self.entities: dict[str, EntityModel] = {}
        self.blocks: dict[str, list[dict]] = {}

    def load_all(self) -> None:
        """Load all blocks and entities."""
        self._load_blocks()
        self._load_entities()

    def get_entity(self, name: str) -> EntityModel | None:
        return self.entities.get(name)

    def list_entities(self) -> list[str]:
        return sorted(self.entities.keys())

    def _load_blocks(self) -> None:
        """Load reusable block definitions."""
        blocks_path = self.metadata_path / "blocks"
        if not blocks_path.exists():
            return

        for yaml_file in sorted(blocks_path.glob("*.yaml")):
            with open(yaml_file) as f:
                data = yaml.safe_load(f)
                if data and "block" in data:
                    self.blocks[data["block"]] = data.get("fields", [])

    def _load_entities(self) -> None:
        """Load entity definitions."""
        entities_path = self.metadata_path / "entities"
        if not entities_path.exists():
            return

        for yaml_file in sorted(entities_path.glob("*.yaml")):
            with open(yaml_file) as f:
                data = yaml.safe_load(f)
                if data and "entity" in data:
                    entity = self.load_entity_dict(data)
                    self.entities[entity.name] = entity

    def load_entity_dict(self, data: dict) -> EntityModel:
        """Resolve an entity definition, expanding blocks."""
        name = data["entity"]

        all_fields: list[dict] = []
        for include in data.get("includes", []):
            block_name = include["block"]
            prefix = include.get("prefix", "")
            if block_name not in self.blocks:
                raise ValueError(f"Entity '{name}' includes unknown block '{block_name}'")
            for block_field in self.blocks[block_name]:
                field_copy = block_field.copy()
                if prefix:
                    field_copy["name"] = prefix + field_copy["name"]
                all_fields.append(field_copy)
        all_fields.extend(data.get("fields", []))

        fields = [self._resolve_field(f) for f in all_fields]

        # Entity-level settings win over field-level defaults / primary key
        config_data = dict(data)
        pk_field = next((f for f in fields if f.primary_key), None)
        if pk_field and "primaryKey" not in config_data:
            config_data["primaryKey"] = pk_field.name
        config_data["defaults"] = {
            **self._field_defaults(fields),
            **(data.get("defaults") or {}),
        }

        return EntityModel(
            name=name,
            kind=EntityKind(data.get("kind", "catalog")),
            fields=fields,
            config=ServiceConfig.from_dict(name, config_data),
            unique_together=[tuple(u) for u in data.get("uniqueTogether", [])],
        )

    def _field_defaults(self, fields: list[FieldDefinition]) -> dict[str, Any]:
        defaults: dict[str, Any] = {}
        for f in fields:
            if f.auto is not None:
                if f.auto not in AUTO_DEFAULTS:
                    raise ValueError(f"Field '{f.name}' has unknown auto value '{f.auto}'")
                defaults[f.name] = AUTO_DEFAULTS[f.auto]
            elif f.default is not None:
                defaults[f.name] = f.default
        return defaults

    def _resolve_field(self, data: dict) -> FieldDefinition:
        """Convert field dict to FieldDefinition."""
        validation = data.get("validation", {})

        # relation: {entity: category, field: id} -> "category.id"
        references = None
        relation = data.get("relation")
        if relation:
            references = f"{relation['entity']}.{relation.get('field', 'id')}"

        return FieldDefinition(
            name=data["name"],
            type=data.get("type", "string"),
            primary_key=data.get("primaryKey", False),
            required=data.get("required", validation.get("required", False)),
            unique=data.get("unique", False),
            references=references,
            default=data.get("default"),
            auto=data.get("auto"),
        )
