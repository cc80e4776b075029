"""Service context shared by every entity service of an application."""

from typing import Any

from ledgerforge.persistence.adapter import PersistenceDelegate, Store


class ServiceContext:
    """Holds the shared store and a name -> service locator.

    Hooks receive the context as their first argument, so they can reach
    other services (``ctx.service("stock")``) or build statements on any
    table (``ctx.delegate_for("stock").create({...})``).
    """

    def __init__(self, store: Store):
        self.store = store
        self._services: dict[str, Any] = {}

    def register(self, name: str, service: Any) -> None:
        self._services[name] = service

    def service(self, name: str) -> Any:
        if name not in self._services:
            raise KeyError(f"Service '{name}' is not registered")
        return self._services[name]

    def has_service(self, name: str) -> bool:
        return name in self._services

    def list_services(self) -> list[str]:
        return sorted(self._services)

    def delegate_for(self, name: str) -> PersistenceDelegate:
        """Delegate of a registered service, or a plain table delegate."""
        if name in self._services:
            return self._services[name].delegate
        return self.store.delegate(name)
