"""Hook execution for entity services.

Runs the hooks of a ServiceHooks table in their fixed order, supplying the
identity / no-op default for any hook that is not set. ``validate`` is run
ahead of every before-save hook and cannot be skipped.
"""

import inspect
import logging
from typing import Any

from ledgerforge.core.types import Operation
from ledgerforge.hooks.types import ServiceHooks
from ledgerforge.persistence.statements import Statement

logger = logging.getLogger(__name__)


async def _call(fn: Any, *args: Any) -> Any:
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class HookPipeline:
    """Orchestrates hook execution for one entity service.

    Errors raised by hooks propagate unchanged, except from after_* hooks:
    those run after commit, so a failure is logged and the committed write
    stands.
    """

    def __init__(self, entity_name: str, hooks: ServiceHooks | None = None):
        self.entity_name = entity_name
        self.hooks = hooks or ServiceHooks()

    # ------------------------------------------------------------------
    # Pure predicate
    # ------------------------------------------------------------------

    def allowed_to_change(self, record: dict[str, Any]) -> bool:
        if self.hooks.allowed_to_change is None:
            return True
        return bool(self.hooks.allowed_to_change(record))

    # ------------------------------------------------------------------
    # Transforming hooks
    # ------------------------------------------------------------------

    async def augment_by_default(self, ctx: Any, data: dict[str, Any]) -> dict[str, Any]:
        if self.hooks.augment_by_default is None:
            return data
        return await _call(self.hooks.augment_by_default, ctx, data)

    async def validate(self, ctx: Any, data: dict[str, Any]) -> None:
        if self.hooks.validate is not None:
            await _call(self.hooks.validate, ctx, data)

    async def before_create(self, ctx: Any, data: dict[str, Any]) -> dict[str, Any]:
        await self.validate(ctx, data)
        if self.hooks.before_create is None:
            return data
        return await _call(self.hooks.before_create, ctx, data)

    async def before_update(self, ctx: Any, data: dict[str, Any]) -> dict[str, Any]:
        await self.validate(ctx, data)
        if self.hooks.before_update is None:
            return data
        return await _call(self.hooks.before_update, ctx, data)

    async def before_upsert(
        self, ctx: Any, create_data: dict[str, Any], update_data: dict[str, Any]
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """Validate the update shape, then let the hook rewrite both shapes."""
        await self.validate(ctx, update_data)
        if self.hooks.before_upsert is None:
            return create_data, update_data
        result = await _call(
            self.hooks.before_upsert,
            ctx,
            {"create_data": create_data, "update_data": update_data},
        )
        return result["create_data"], result["update_data"]

    async def before_delete(self, ctx: Any, data: dict[str, Any]) -> None:
        if self.hooks.before_delete is not None:
            await _call(self.hooks.before_delete, ctx, data)

    async def change_list_filter(self, ctx: Any, params: dict[str, Any]) -> dict[str, Any]:
        if self.hooks.change_list_filter is None:
            return params
        return await _call(self.hooks.change_list_filter, ctx, params)

    # ------------------------------------------------------------------
    # Additional operations (joined to the enclosing transaction)
    # ------------------------------------------------------------------

    async def additional_operations(
        self, operation: Operation, ctx: Any, data: dict[str, Any]
    ) -> list[Statement]:
        fn = getattr(self.hooks, f"additional_operations_on_{operation.value}")
        if fn is None:
            return []
        return list(await _call(fn, ctx, data) or [])

    # ------------------------------------------------------------------
    # Post-commit hooks
    # ------------------------------------------------------------------

    async def after(self, operation: Operation, ctx: Any, record: dict[str, Any]) -> None:
        fn = getattr(self.hooks, f"after_{operation.value}")
        if fn is None:
            return
        try:
            await _call(fn, ctx, record)
        except Exception:
            # Post-commit: the write is durable, report and move on
            logger.exception(
                "after_%s hook for '%s' failed", operation.value, self.entity_name
            )
