"""Tests for the entity hook system."""

import logging

import pytest
from unittest.mock import AsyncMock, MagicMock

from ledgerforge.core.types import Operation
from ledgerforge.hooks import (
    COMPONENT_HOOK_POINTS,
    HOOK_POINTS,
    HookPipeline,
    HookRegistry,
    ServiceHooks,
    hook,
)
from ledgerforge.persistence import RawStatement


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clear_hook_registry():
    """Clear hook registry before and after each test."""
    HookRegistry.clear()
    yield
    HookRegistry.clear()


@pytest.fixture
def ctx():
    return MagicMock(name="ctx")


# =============================================================================
# HookRegistry tests
# =============================================================================


class TestHookRegistry:
    def test_register_and_get(self):
        async def my_hook(ctx, data):
            return data

        HookRegistry.register("product", "before_create", my_hook)
        assert HookRegistry.get("product", "before_create") is my_hook
        assert HookRegistry.is_registered("product", "before_create")

    def test_register_idempotent(self):
        async def hook_a(ctx, data):
            return data

        async def hook_b(ctx, data):
            return data

        HookRegistry.register("product", "validate", hook_a)
        HookRegistry.register("product", "validate", hook_b)
        assert HookRegistry.get("product", "validate") is hook_a

    def test_unknown_point_rejected(self):
        with pytest.raises(ValueError, match="Unknown hook point"):
            HookRegistry.register("product", "before_everything", lambda ctx, d: d)

    def test_component_points_accepted(self):
        for point in COMPONENT_HOOK_POINTS:
            HookRegistry.register("invoice", point, lambda *args: None)
        assert HookRegistry.is_registered("invoice", "get_registry_entries")

    def test_get_missing(self):
        assert HookRegistry.get("product", "after_create") is None

    def test_for_entity_and_list(self):
        HookRegistry.register("a", "validate", lambda ctx, d: None)
        HookRegistry.register("b", "after_update", lambda ctx, r: None)
        assert set(HookRegistry.for_entity("a")) == {"validate"}
        assert HookRegistry.list_registered() == [("a", "validate"), ("b", "after_update")]

    def test_decorator(self):
        @hook("order", "before_update")
        async def stamp(ctx, data):
            return data

        assert HookRegistry.get("order", "before_update") is stamp


# =============================================================================
# ServiceHooks tests
# =============================================================================


class TestServiceHooks:
    def test_fields_match_hook_points(self):
        from dataclasses import fields

        assert tuple(f.name for f in fields(ServiceHooks)) == HOOK_POINTS

    def test_merge_overrides_set_hooks_only(self):
        base_validate = MagicMock()
        base_after = MagicMock()
        override_after = MagicMock()

        base = ServiceHooks(validate=base_validate, after_create=base_after)
        merged = base.merge(ServiceHooks(after_create=override_after))

        assert merged.validate is base_validate
        assert merged.after_create is override_after

    def test_merge_none(self):
        base = ServiceHooks()
        assert base.merge(None) is base

    def test_from_registry_ignores_component_points(self):
        @hook("invoice", "before_create")
        def upper(ctx, data):
            return data

        @hook("invoice", "get_registry_entries")
        def entries(ctx, record):
            return {}

        hooks = ServiceHooks.from_registry("invoice")
        assert hooks.before_create is upper
        assert hooks.validate is None


# =============================================================================
# HookPipeline tests
# =============================================================================


class TestHookPipeline:
    @pytest.mark.asyncio
    async def test_missing_hooks_are_identity(self, ctx):
        pipeline = HookPipeline("product")
        data = {"name": "x"}

        assert await pipeline.augment_by_default(ctx, data) is data
        assert await pipeline.before_create(ctx, data) is data
        assert await pipeline.before_update(ctx, data) is data
        assert await pipeline.change_list_filter(ctx, data) is data
        assert await pipeline.additional_operations(Operation.CREATE, ctx, data) == []
        assert pipeline.allowed_to_change(data) is True
        await pipeline.before_delete(ctx, data)
        await pipeline.after(Operation.CREATE, ctx, data)

    @pytest.mark.asyncio
    async def test_sync_and_async_hooks(self, ctx):
        def sync_before(ctx, data):
            return {**data, "sync": True}

        async_before = AsyncMock(side_effect=lambda ctx, data: {**data, "async": True})

        create = HookPipeline("p", ServiceHooks(before_create=sync_before))
        update = HookPipeline("p", ServiceHooks(before_update=async_before))

        assert await create.before_create(ctx, {}) == {"sync": True}
        assert await update.before_update(ctx, {}) == {"async": True}

    @pytest.mark.asyncio
    async def test_validate_runs_before_before_create(self, ctx):
        calls = []
        hooks = ServiceHooks(
            validate=lambda ctx, data: calls.append("validate"),
            before_create=lambda ctx, data: calls.append("before") or data,
        )
        await HookPipeline("p", hooks).before_create(ctx, {})
        assert calls == ["validate", "before"]

    @pytest.mark.asyncio
    async def test_validate_error_propagates(self, ctx):
        def reject(ctx, data):
            raise ValueError("bad")

        before = AsyncMock()
        pipeline = HookPipeline("p", ServiceHooks(validate=reject, before_create=before))
        with pytest.raises(ValueError, match="bad"):
            await pipeline.before_create(ctx, {})
        before.assert_not_called()

    @pytest.mark.asyncio
    async def test_before_upsert_receives_both_shapes(self, ctx):
        async def before_upsert(ctx, payload):
            return {
                "create_data": {**payload["create_data"], "created": True},
                "update_data": {**payload["update_data"], "updated": True},
            }

        validate = MagicMock()
        pipeline = HookPipeline("p", ServiceHooks(validate=validate, before_upsert=before_upsert))
        create_data, update_data = await pipeline.before_upsert(ctx, {"a": 1}, {"a": 2})

        assert create_data == {"a": 1, "created": True}
        assert update_data == {"a": 2, "updated": True}
        validate.assert_called_once_with(ctx, {"a": 2})

    @pytest.mark.asyncio
    async def test_additional_operations(self, ctx):
        statement = RawStatement("SELECT 1")
        hooks = ServiceHooks(additional_operations_on_delete=lambda ctx, data: [statement])
        ops = await HookPipeline("p", hooks).additional_operations(Operation.DELETE, ctx, {})
        assert ops == [statement]

    @pytest.mark.asyncio
    async def test_after_hook_failure_is_logged(self, ctx, caplog):
        async def broken(ctx, record):
            raise RuntimeError("boom")

        pipeline = HookPipeline("product", ServiceHooks(after_update=broken))
        with caplog.at_level(logging.ERROR, logger="ledgerforge.hooks.service"):
            await pipeline.after(Operation.UPDATE, ctx, {"id": 1})

        assert "after_update hook for 'product' failed" in caplog.text

    def test_allowed_to_change_predicate(self):
        pipeline = HookPipeline("p", ServiceHooks(allowed_to_change=lambda r: not r.get("locked")))
        assert pipeline.allowed_to_change({"locked": False})
        assert not pipeline.allowed_to_change({"locked": True})
