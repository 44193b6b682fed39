"""Per-view service registry.

Holds the engine components built for one active board view (event bus,
optimistic store, drag controller, reconciliation protocol, log service).
There is deliberately no module-level instance: ``board.app.bootstrap``
creates one locator per view and tears it down on dispose.

Usage pattern:
    locator = ServiceLocator()
    locator.register("event_bus", EventBus())
    bus = locator.get_typed("event_bus", EventBus)
"""

from __future__ import annotations

from dataclasses import dataclass
from threading import RLock
from typing import Any, Dict, Iterable, Type, TypeVar

T = TypeVar("T")

__all__ = ["ServiceLocator", "ServiceAlreadyRegisteredError", "ServiceNotFoundError"]


class ServiceAlreadyRegisteredError(RuntimeError):
    """Raised when attempting to register an existing key without allow_override."""


class ServiceNotFoundError(KeyError):
    """Raised when a requested service key is not present."""


@dataclass
class ServiceRecord:
    key: str
    value: Any


class ServiceLocator:
    """Thread-safe service registry."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._services: Dict[str, ServiceRecord] = {}

    def register(self, key: str, value: Any, *, allow_override: bool = False) -> None:
        with self._lock:
            if key in self._services and not allow_override:
                raise ServiceAlreadyRegisteredError(f"Service '{key}' already registered")
            self._services[key] = ServiceRecord(key=key, value=value)

    def get(self, key: str) -> Any:
        with self._lock:
            record = self._services.get(key)
            if record is None:
                raise ServiceNotFoundError(key)
            return record.value

    def get_typed(self, key: str, expected_type: Type[T]) -> T:
        """Retrieve a service and assert it matches expected_type."""
        value = self.get(key)
        if not isinstance(value, expected_type):
            raise TypeError(
                f"Service '{key}' expected type {expected_type!r} but got {type(value)!r}"
            )
        return value

    def list_keys(self) -> Iterable[str]:
        with self._lock:
            return list(self._services.keys())

    def clear(self) -> None:
        with self._lock:
            self._services.clear()
