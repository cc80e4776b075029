"""Hook table for entity services.

Every hook is optional. A missing hook behaves as identity (transforming
hooks), no-op (observing hooks), empty list (additional operations) or
``True`` (``allowed_to_change``).

Hook signatures (sync or async functions are both accepted, except
``allowed_to_change`` which must be a plain function):

    validate(ctx, data) -> None                       raise to reject
    allowed_to_change(record) -> bool                 pure predicate
    augment_by_default(ctx, data) -> data
    before_create(ctx, data) -> data
    before_update(ctx, data) -> data
    before_upsert(ctx, {"create_data": .., "update_data": ..}) -> same shape
    before_delete(ctx, data) -> None                  raise to veto
    additional_operations_on_create(ctx, data) -> list[Statement]
    additional_operations_on_update(ctx, data) -> list[Statement]
    additional_operations_on_delete(ctx, data) -> list[Statement]
    after_create(ctx, record) -> None                 post-commit
    after_update(ctx, record) -> None                 post-commit
    after_delete(ctx, record) -> None                 post-commit
    change_list_filter(ctx, params) -> params         by_user reads only
"""

from dataclasses import dataclass, fields, replace
from typing import Any, Callable

HookFn = Callable[..., Any]

HOOK_POINTS = (
    "validate",
    "allowed_to_change",
    "augment_by_default",
    "before_create",
    "before_update",
    "before_upsert",
    "before_delete",
    "additional_operations_on_create",
    "additional_operations_on_update",
    "additional_operations_on_delete",
    "after_create",
    "after_update",
    "after_delete",
    "change_list_filter",
)

# Registered like hooks, but consumed by the posting / registry components
COMPONENT_HOOK_POINTS = (
    "get_registry_entries",
    "after_post",
)


@dataclass(frozen=True)
class ServiceHooks:
    """Optional hook functions for one entity service."""

    validate: HookFn | None = None
    allowed_to_change: Callable[[dict[str, Any]], bool] | None = None
    augment_by_default: HookFn | None = None
    before_create: HookFn | None = None
    before_update: HookFn | None = None
    before_upsert: HookFn | None = None
    before_delete: HookFn | None = None
    additional_operations_on_create: HookFn | None = None
    additional_operations_on_update: HookFn | None = None
    additional_operations_on_delete: HookFn | None = None
    after_create: HookFn | None = None
    after_update: HookFn | None = None
    after_delete: HookFn | None = None
    change_list_filter: HookFn | None = None

    def merge(self, other: "ServiceHooks | None") -> "ServiceHooks":
        """Return hooks where every hook set on other replaces ours."""
        if other is None:
            return self
        overrides = {
            f.name: getattr(other, f.name)
            for f in fields(other)
            if getattr(other, f.name) is not None
        }
        return replace(self, **overrides)

    @classmethod
    def from_registry(cls, entity_name: str) -> "ServiceHooks":
        """Build hooks from functions registered with @hook for an entity."""
        from ledgerforge.hooks.registry import HookRegistry

        registered = HookRegistry.for_entity(entity_name)
        return cls(**{k: v for k, v in registered.items() if k in HOOK_POINTS})
