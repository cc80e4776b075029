"""Tests for YAML entity loading and service bootstrap."""

from datetime import datetime
from pathlib import Path

import pytest
import yaml
from sqlalchemy import MetaData

from ledgerforge.core.types import EntityKind, IdStrategy
from ledgerforge.hooks import HookRegistry, hook
from ledgerforge.metadata.loader import MetadataLoader
from ledgerforge.persistence import DatabaseConfig
from ledgerforge.persistence.schema import build_table
from ledgerforge.services import (
    DocumentService,
    EntityService,
    InfoRegistryService,
    SumRegistryService,
    initialize_services,
)


@pytest.fixture(autouse=True)
def clear_hook_registry():
    HookRegistry.clear()
    yield
    HookRegistry.clear()


def write_yaml(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(data, f)


@pytest.fixture
def metadata_path(tmp_path):
    root = tmp_path / "metadata"
    write_yaml(root / "blocks" / "audit.yaml", {
        "block": "audit",
        "fields": [{"name": "createdAt", "type": "datetime", "auto": "now"}],
    })
    write_yaml(root / "entities" / "product.yaml", {
        "entity": "product",
        "idStrategy": "manual",
        "withSearch": True,
        "searchFields": ["name"],
        "includes": [{"block": "audit"}],
        "fields": [
            {"name": "code", "type": "string", "primaryKey": True},
            {"name": "name", "type": "string", "validation": {"required": True}},
            {"name": "status", "type": "string", "default": "active"},
        ],
    })
    write_yaml(root / "entities" / "receipt.yaml", {
        "entity": "receipt",
        "kind": "document",
        "idStrategy": "autoincrement",
        "entityTypeId": "receipt",
        "registrarDependedRegistries": ["stock"],
        "fields": [
            {"name": "date", "type": "datetime"},
            {"name": "product", "type": "string", "relation": {"entity": "product", "field": "code"}},
            {"name": "quantity", "type": "number"},
        ],
    })
    write_yaml(root / "entities" / "stock.yaml", {
        "entity": "stock",
        "kind": "sumRegistry",
        "idStrategy": "autoincrement",
        "dimensions": ["product"],
        "resources": ["quantity"],
        "fields": [
            {"name": "date", "type": "datetime"},
            {"name": "product", "type": "string"},
            {"name": "quantity", "type": "number"},
        ],
    })
    write_yaml(root / "entities" / "rate.yaml", {
        "entity": "rate",
        "kind": "infoRegistry",
        "idStrategy": "uuid",
        "dimensions": ["currency"],
        "fields": [
            {"name": "date", "type": "datetime"},
            {"name": "currency", "type": "string"},
            {"name": "value", "type": "number"},
        ],
    })
    return root


# =============================================================================
# MetadataLoader
# =============================================================================


class TestMetadataLoader:
    def test_loads_all_entities(self, metadata_path):
        loader = MetadataLoader(metadata_path)
        loader.load_all()
        assert loader.list_entities() == ["product", "rate", "receipt", "stock"]

    def test_entity_config(self, metadata_path):
        loader = MetadataLoader(metadata_path)
        loader.load_all()
        product = loader.get_entity("product")

        assert product.kind is EntityKind.CATALOG
        assert product.config.id_strategy is IdStrategy.MANUAL
        assert product.config.primary_key == "code"
        assert product.config.search.fields == ("name",)
        assert product.get_field("name").required is True

    def test_blocks_expanded(self, metadata_path):
        loader = MetadataLoader(metadata_path)
        loader.load_all()
        product = loader.get_entity("product")
        assert product.fields[0].name == "createdAt"

    def test_field_defaults_become_config_defaults(self, metadata_path):
        loader = MetadataLoader(metadata_path)
        loader.load_all()
        defaults = loader.get_entity("product").config.default_values()

        assert defaults["status"] == "active"
        assert isinstance(defaults["createdAt"], datetime)

    def test_relation_becomes_reference(self, metadata_path):
        loader = MetadataLoader(metadata_path)
        loader.load_all()
        assert loader.get_entity("receipt").get_field("product").references == "product.code"

    def test_document_registries_default_to_posted_ones(self, metadata_path):
        loader = MetadataLoader(metadata_path)
        loader.load_all()
        config = loader.get_entity("receipt").config
        assert config.registries == ("stock",)
        assert config.entity_type_id == "receipt"

    def test_unknown_block(self):
        loader = MetadataLoader(Path("unused"))
        with pytest.raises(ValueError, match="unknown block"):
            loader.load_entity_dict({"entity": "x", "includes": [{"block": "nope"}]})

    def test_unknown_auto_value(self):
        loader = MetadataLoader(Path("unused"))
        with pytest.raises(ValueError, match="unknown auto value"):
            loader.load_entity_dict(
                {"entity": "x", "fields": [{"name": "at", "auto": "tomorrow"}]}
            )

    def test_missing_directory_loads_nothing(self, tmp_path):
        loader = MetadataLoader(tmp_path / "nothing")
        loader.load_all()
        assert loader.list_entities() == []


class TestBuildTable:
    def test_registry_gets_registrar_columns(self, metadata_path):
        loader = MetadataLoader(metadata_path)
        loader.load_all()
        table = build_table(loader.get_entity("stock"), MetaData())
        assert {"registrarTypeId", "registrarId", "row"} <= set(table.c.keys())

    def test_search_column(self, metadata_path):
        loader = MetadataLoader(metadata_path)
        loader.load_all()
        table = build_table(loader.get_entity("product"), MetaData())
        assert "search" in table.c
        assert table.c.code.primary_key
        assert not table.c.name.nullable


# =============================================================================
# Bootstrap
# =============================================================================


class TestInitializeServices:
    def test_service_per_kind(self, metadata_path):
        services = initialize_services(metadata_path, DatabaseConfig(url="sqlite://"))

        assert type(services.service("product")) is EntityService
        assert isinstance(services.service("receipt"), DocumentService)
        assert isinstance(services.service("stock"), SumRegistryService)
        assert isinstance(services.service("rate"), InfoRegistryService)

    @pytest.mark.asyncio
    async def test_registered_hooks_are_wired(self, metadata_path):
        @hook("receipt", "get_registry_entries")
        def entries(ctx, record):
            return {"stock": [{
                "date": record["date"],
                "product": record["product"],
                "quantity": record["quantity"],
            }]}

        posted = []

        @hook("stock", "after_post")
        def collect(entries):
            posted.extend(entries)

        @hook("product", "before_create")
        def upper(ctx, data):
            return {**data, "name": data["name"].upper()}

        services = initialize_services(metadata_path, DatabaseConfig(url="sqlite://"))
        product = await services.service("product").create({"code": "P1", "name": "bolt"})
        assert product["name"] == "BOLT"
        assert product["status"] == "active"

        await services.service("receipt").create(
            {"date": datetime(2024, 1, 1), "product": "P1", "quantity": 3}
        )
        totals = await services.service("stock").totals()
        assert totals == [{"product": "P1", "_sum": {"quantity": 3}}]
        assert len(posted) == 1

    def test_sqlite_file_directory_created(self, metadata_path, tmp_path):
        db_file = tmp_path / "data" / "nested" / "ledger.db"
        initialize_services(metadata_path, DatabaseConfig(url=f"sqlite:///{db_file}"))
        assert db_file.parent.exists()
