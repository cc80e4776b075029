"""ledgerforge entity lifecycle hook system.

Provides extension points that run at fixed positions of every entity
operation:
- validate / before_*: transform or reject the payload before any write
- additional_operations_on_*: extra statements in the same transaction
- after_*: post-commit observers (failures are logged, never rolled back)
- change_list_filter: augments list filters for by_user reads

Usage:
    from ledgerforge.hooks import ServiceHooks, hook

    @hook("product", "before_create")
    async def upper_title(ctx, data):
        return {**data, "title": data["title"].upper()}
"""

from ledgerforge.hooks.registry import HookRegistry, hook
from ledgerforge.hooks.service import HookPipeline
from ledgerforge.hooks.types import COMPONENT_HOOK_POINTS, HOOK_POINTS, HookFn, ServiceHooks

__all__ = [
    "COMPONENT_HOOK_POINTS",
    "HOOK_POINTS",
    "HookFn",
    "HookPipeline",
    "HookRegistry",
    "ServiceHooks",
    "hook",
]
