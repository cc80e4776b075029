"""Hook registry for ledgerforge.

Provides registration and lookup for per-entity hook implementations, so
customizations can live in their own modules and be picked up when the
services are bootstrapped.
"""

from collections.abc import Callable

from ledgerforge.hooks.types import COMPONENT_HOOK_POINTS, HOOK_POINTS, HookFn


class HookRegistry:
    """Registry of hook functions keyed by (entity name, hook point).

    Example:
        @hook("order", "before_create")
        async def stamp_number(ctx, data):
            return {**data, "number": await next_number(ctx)}
    """

    _hooks: dict[tuple[str, str], HookFn] = {}

    @classmethod
    def register(cls, entity_name: str, hook_point: str, hook_fn: HookFn) -> None:
        """Register a hook function for an entity.

        Idempotent: re-registering the same (entity, point) is a no-op.

        Args:
            entity_name: Entity the hook belongs to
            hook_point: One of HOOK_POINTS or COMPONENT_HOOK_POINTS
            hook_fn: Function implementing the hook

        Raises:
            ValueError: If hook_point is not a known hook point
        """
        if hook_point not in HOOK_POINTS + COMPONENT_HOOK_POINTS:
            raise ValueError(
                f"Unknown hook point '{hook_point}'. "
                f"Valid points: {', '.join(HOOK_POINTS + COMPONENT_HOOK_POINTS)}"
            )
        key = (entity_name, hook_point)
        if key in cls._hooks:
            return
        cls._hooks[key] = hook_fn

    @classmethod
    def get(cls, entity_name: str, hook_point: str) -> HookFn | None:
        """Get the hook registered for an entity and point, if any."""
        return cls._hooks.get((entity_name, hook_point))

    @classmethod
    def for_entity(cls, entity_name: str) -> dict[str, HookFn]:
        """All hooks registered for an entity, keyed by hook point."""
        return {
            point: fn
            for (entity, point), fn in cls._hooks.items()
            if entity == entity_name
        }

    @classmethod
    def is_registered(cls, entity_name: str, hook_point: str) -> bool:
        return (entity_name, hook_point) in cls._hooks

    @classmethod
    def list_registered(cls) -> list[tuple[str, str]]:
        """List all registered (entity, hook point) pairs."""
        return sorted(cls._hooks.keys())

    @classmethod
    def clear(cls) -> None:
        """Clear all registrations. Primarily for testing."""
        cls._hooks.clear()


def hook(entity_name: str, hook_point: str) -> Callable[[HookFn], HookFn]:
    """Decorator to register a hook function.

    Usage:
        @hook("product", "before_create")
        async def upper_title(ctx, data):
            ...
    """

    def decorator(fn: HookFn) -> HookFn:
        HookRegistry.register(entity_name, hook_point, fn)
        return fn

    return decorator
