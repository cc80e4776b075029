"""Tests for document posting into registries."""

import logging
from datetime import datetime
from pathlib import Path

import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy import MetaData

from ledgerforge.core.errors import (
    AlreadyCancelledError,
    DoNotAllowToChangeError,
    EntityNotFoundError,
)
from ledgerforge.core.types import ServiceConfig
from ledgerforge.hooks import ServiceHooks
from ledgerforge.metadata.loader import MetadataLoader
from ledgerforge.persistence import DatabaseConfig, create_store
from ledgerforge.persistence.schema import build_table
from ledgerforge.services import (
    DocumentService,
    Posting,
    ServiceContext,
    SumRegistryService,
)


INVOICE = {
    "entity": "invoice",
    "kind": "document",
    "idStrategy": "autoincrement",
    "entityTypeId": "invoice",
    "registrarDependedRegistries": ["stock"],
    "fields": [
        {"name": "date", "type": "datetime"},
        {"name": "warehouse", "type": "string"},
        {"name": "source", "type": "string"},
        {"name": "product", "type": "string"},
        {"name": "quantity", "type": "number"},
        {"name": "cancelled", "type": "boolean", "default": False},
        {"name": "dateToCancelled", "type": "datetime"},
    ],
}

STOCK = {
    "entity": "stock",
    "kind": "sumRegistry",
    "idStrategy": "autoincrement",
    "dimensions": ["warehouse", "product"],
    "resources": ["quantity"],
    "fields": [
        {"name": "date", "type": "datetime"},
        {"name": "warehouse", "type": "string"},
        {"name": "product", "type": "string"},
        {"name": "quantity", "type": "number"},
    ],
}


def stock_entries(ctx, record):
    """Incoming quantity at warehouse, outgoing at source when set."""
    entries = [{
        "date": record["date"],
        "warehouse": record["warehouse"],
        "product": record["product"],
        "quantity": record["quantity"],
    }]
    if record.get("source"):
        entries.append({
            "date": record["date"],
            "warehouse": record["source"],
            "product": record["product"],
            "quantity": -record["quantity"],
        })
    return {"stock": entries}


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def setup():
    loader = MetadataLoader(Path("metadata"))
    entities = {d["entity"]: loader.load_entity_dict(d) for d in (INVOICE, STOCK)}
    metadata = MetaData()
    for entity in entities.values():
        build_table(entity, metadata)
    store = create_store(DatabaseConfig(url="sqlite://"), metadata)
    store.create_all()
    return ServiceContext(store), entities


@pytest.fixture
def after_post():
    return AsyncMock()


@pytest.fixture
def stock(setup, after_post):
    ctx, entities = setup
    service = SumRegistryService(ctx, entities["stock"].config, after_post=after_post)
    ctx.register("stock", service)
    return service


@pytest.fixture
def invoices(setup, stock):
    ctx, entities = setup
    service = DocumentService(
        ctx, entities["invoice"].config, get_registry_entries=stock_entries
    )
    ctx.register("invoice", service)
    return service


def invoice_data(**overrides):
    data = {
        "date": datetime(2024, 5, 1, 9, 0),
        "warehouse": "main",
        "product": "bolt",
        "quantity": 10,
    }
    data.update(overrides)
    return data


# =============================================================================
# Posting component
# =============================================================================


class TestPosting:
    def test_tag_overrides_registrar_identity(self, setup):
        ctx, entities = setup
        posting = Posting(ctx, entities["invoice"].config)
        tagged = posting.tag(
            [{"quantity": 1, "registrarId": "999"}, {"quantity": 2, "row": 7}], 5
        )
        assert tagged == [
            {"row": 1, "quantity": 1, "registrarTypeId": "invoice", "registrarId": "5"},
            {"row": 7, "quantity": 2, "registrarTypeId": "invoice", "registrarId": "5"},
        ]

    @pytest.mark.asyncio
    async def test_no_entries_by_default(self, setup):
        ctx, entities = setup
        posting = Posting(ctx, entities["invoice"].config)
        assert await posting.registry_entries({"id": 1}) == {"stock": []}

    @pytest.mark.asyncio
    async def test_unknown_registry_ignored(self, setup, caplog):
        ctx, entities = setup

        async def entries(ctx, record):
            return {"stock": [{"quantity": 1}], "ghost": [{"quantity": 2}]}

        posting = Posting(ctx, entities["invoice"].config, entries)
        with caplog.at_level(logging.WARNING):
            result = await posting.registry_entries({"id": 1})

        assert result == {"stock": [{"quantity": 1}]}
        assert "ghost" in caplog.text

    @pytest.mark.asyncio
    async def test_nothing_to_post_without_registries(self, setup):
        ctx, _ = setup
        config = ServiceConfig(name="memo")
        assert await Posting(ctx, config).post_operations({"id": 1}) == []
        assert Posting(ctx, config).unpost_operations(1) == []

    def test_config_requires_entity_type(self):
        with pytest.raises(ValueError, match="entityTypeId"):
            ServiceConfig(name="memo", registrar_depended_registries=("stock",))

    def test_posted_registries_must_be_unposted(self):
        with pytest.raises(ValueError, match="never un-posts"):
            ServiceConfig(
                name="memo",
                entity_type_id="memo",
                registries=("other",),
                registrar_depended_registries=("stock",),
            )


# =============================================================================
# Document lifecycle
# =============================================================================


class TestDocumentPosting:
    @pytest.mark.asyncio
    async def test_create_posts_tagged_entries(self, invoices, stock):
        invoice = await invoices.create(invoice_data(source="reserve"))

        entries = await stock.all({"sortField": "row"})
        assert [(e["warehouse"], e["quantity"], e["row"]) for e in entries] == [
            ("main", 10, 1),
            ("reserve", -10, 2),
        ]
        assert all(e["registrarTypeId"] == "invoice" for e in entries)
        assert all(e["registrarId"] == str(invoice["id"]) for e in entries)

    @pytest.mark.asyncio
    async def test_update_regenerates_entries(self, invoices, stock):
        invoice = await invoices.create(invoice_data(source="reserve"))
        await invoices.update({"id": invoice["id"], "quantity": 4, "source": None})

        entries = await stock.all()
        assert [(e["warehouse"], e["quantity"]) for e in entries] == [("main", 4)]

    @pytest.mark.asyncio
    async def test_delete_unposts_only_own_entries(self, invoices, stock):
        first = await invoices.create(invoice_data())
        second = await invoices.create(invoice_data(quantity=3))

        await invoices.delete(first["id"])

        entries = await stock.all()
        assert [e["registrarId"] for e in entries] == [str(second["id"])]
        assert await invoices.get(first["id"]) is None

    @pytest.mark.asyncio
    async def test_re_post_restores_entries(self, setup, invoices, stock):
        ctx, _ = setup
        invoice = await invoices.create(invoice_data())

        # Out-of-band removal of the ledger rows
        table = stock.delegate.table
        ctx.store.transaction([stock.delegate.delete_many(table.c.registrarId.is_not(None))])
        assert await stock.count() == 0

        await invoices.re_post(invoice["id"])
        assert await stock.count() == 1

    @pytest.mark.asyncio
    async def test_re_post_is_idempotent(self, invoices, stock):
        invoice = await invoices.create(invoice_data(source="reserve"))
        await invoices.re_post(invoice["id"])
        await invoices.re_post(invoice["id"])
        assert await stock.count() == 2

    @pytest.mark.asyncio
    async def test_re_post_respects_allowed_to_change(self, setup, stock):
        ctx, entities = setup
        locked = {"on": False}
        invoices = DocumentService(
            ctx,
            entities["invoice"].config,
            hooks=ServiceHooks(allowed_to_change=lambda record: not locked["on"]),
            get_registry_entries=stock_entries,
        )
        invoice = await invoices.create(invoice_data())
        table = stock.delegate.table
        ctx.store.transaction([stock.delegate.delete_many(table.c.registrarId.is_not(None))])

        locked["on"] = True
        with pytest.raises(DoNotAllowToChangeError):
            await invoices.re_post(invoice["id"])
        assert await stock.count() == 0

    @pytest.mark.asyncio
    async def test_re_post_augments_before_posting(self, setup, stock):
        ctx, entities = setup
        augment = MagicMock(side_effect=lambda ctx, data: {**data, "quantity": 7})
        invoices = DocumentService(
            ctx,
            entities["invoice"].config,
            hooks=ServiceHooks(augment_by_default=augment),
            get_registry_entries=stock_entries,
        )
        invoice = await invoices.create(invoice_data(quantity=7))
        augment.reset_mock()

        await invoices.re_post(invoice["id"])

        augment.assert_called_once()
        assert [e["quantity"] for e in await stock.all()] == [7]

    @pytest.mark.asyncio
    async def test_re_post_missing_document(self, invoices):
        with pytest.raises(EntityNotFoundError):
            await invoices.re_post(404)

    @pytest.mark.asyncio
    async def test_upsert_existing_replaces_entries(self, invoices, stock):
        invoice = await invoices.create(invoice_data(source="reserve"))
        assert await stock.count() == 2

        await invoices.upsert({"id": invoice["id"], "quantity": 4, "source": None})

        entries = await stock.all()
        assert [(e["warehouse"], e["quantity"], e["row"]) for e in entries] == [("main", 4, 1)]
        assert entries[0]["registrarId"] == str(invoice["id"])

    @pytest.mark.asyncio
    async def test_upsert_without_id_posts_like_create(self, invoices, stock):
        other = await invoices.create(invoice_data(quantity=1))

        created = await invoices.upsert(invoice_data(source="reserve"))

        own = await stock.all({"filter": {"registrarId": str(created["id"])}, "sortField": "row"})
        assert [(e["warehouse"], e["quantity"]) for e in own] == [("main", 10), ("reserve", -10)]
        assert await stock.count({"filter": {"registrarId": str(other["id"])}}) == 1

    @pytest.mark.asyncio
    async def test_after_post_dispatch(self, invoices, after_post):
        invoice = await invoices.create(invoice_data())
        after_post.assert_awaited_once()
        assert after_post.call_args.args[0][0]["quantity"] == 10

        await invoices.delete(invoice["id"])
        assert after_post.await_count == 2

    @pytest.mark.asyncio
    async def test_totals_follow_postings(self, invoices, stock):
        await invoices.create(invoice_data(quantity=10))
        await invoices.create(invoice_data(quantity=5, source="reserve"))

        totals = await stock.totals()
        assert totals == [
            {"warehouse": "main", "product": "bolt", "_sum": {"quantity": 15}},
            {"warehouse": "reserve", "product": "bolt", "_sum": {"quantity": -5}},
        ]


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_sets_flags(self, invoices):
        invoice = await invoices.create(invoice_data())
        assert invoice["cancelled"] is False

        cancelled = await invoices.cancel(invoice["id"])
        assert cancelled["cancelled"] is True
        assert cancelled["dateToCancelled"] is not None

    @pytest.mark.asyncio
    async def test_cancel_twice_rejected(self, invoices):
        invoice = await invoices.create(invoice_data())
        await invoices.cancel(invoice["id"])
        with pytest.raises(AlreadyCancelledError):
            await invoices.cancel(invoice["id"])

    @pytest.mark.asyncio
    async def test_cancel_missing(self, invoices):
        with pytest.raises(EntityNotFoundError):
            await invoices.cancel(404)
