"""Board engine bootstrap.

Builds the components for one active board view and wires them together:

 - EventBus (store changes, invalidation signal, notices)
 - OptimisticStore (created from an optional initial snapshot)
 - ReconciliationProtocol over the supplied transport
 - DragController with the caller's drop predicate and scheduler
 - ReorderLogService attached to the ``board`` logger
 - BoardViewModel for the renderer

Everything is registered on a fresh ``ServiceLocator`` held by the returned
context. ``BoardContext.dispose`` is the unmount hook: it cancels pending
timeouts, resets the store and detaches logging. No state outlives it.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Sequence

from domain.models import ServerSnapshot

from ..reorder.drag_controller import CanDrop, DragController, allow_all
from ..reorder.group_builder import GroupDefinition
from ..reorder.notices import NoticeSink, Notifier
from ..reorder.optimistic_store import OptimisticStore
from ..reorder.reconciliation import ReconciliationProtocol
from ..reorder.scheduling import Scheduler
from ..services.event_bus import EventBus
from ..services.reorder_log import ReorderLogService
from ..services.service_locator import ServiceLocator
from ..services.settings_service import ReorderSettings
from ..viewmodels.board_viewmodel import BoardViewModel

__all__ = ["BoardContext", "create_board"]


@dataclass
class BoardContext:
    """Container with references created during bootstrap.

    Attributes
    ----------
    view_id: Identifier of the board view the engine serves
    services: Locator holding every component of this view
    started_at: Monotonic timestamp when bootstrap started
    duration_s: Total elapsed seconds for bootstrap
    metadata: Free-form dict for callers
    """

    view_id: str
    services: ServiceLocator
    started_at: float
    duration_s: float
    metadata: Dict[str, Any] = field(default_factory=dict)
    disposed: bool = False

    @property
    def event_bus(self) -> EventBus:
        return self.services.get_typed("event_bus", EventBus)

    @property
    def store(self) -> OptimisticStore:
        return self.services.get_typed("optimistic_store", OptimisticStore)

    @property
    def controller(self) -> DragController:
        return self.services.get_typed("drag_controller", DragController)

    @property
    def protocol(self) -> ReconciliationProtocol:
        return self.services.get_typed("reconciliation", ReconciliationProtocol)

    @property
    def viewmodel(self) -> BoardViewModel:
        return self.services.get_typed("board_viewmodel", BoardViewModel)

    @property
    def log_service(self) -> ReorderLogService:
        return self.services.get_typed("reorder_log", ReorderLogService)

    def dispose(self) -> None:
        if self.disposed:
            return
        self.viewmodel.close()
        self.controller.dispose()
        self.store.reset()
        self.log_service.detach()
        self.event_bus.clear()
        self.services.clear()
        self.disposed = True


def create_board(
    view_id: str,
    transport,
    *,
    snapshot: ServerSnapshot | None = None,
    settings: ReorderSettings | None = None,
    scheduler: Scheduler | None = None,
    can_drop: CanDrop = allow_all,
    notifier: Notifier | None = None,
    definitions: Optional[Sequence[GroupDefinition]] = None,
    on_ordering_change: Callable[[str], None] | None = None,
    on_group_update: Callable[[str, Dict[str, int]], None] | None = None,
    spawn: Callable[..., Any] | None = None,
    attach_logging: bool = True,
) -> BoardContext:
    """Create the engine for one board view."""
    started = time.perf_counter()
    settings = settings or ReorderSettings.instance
    locator = ServiceLocator()
    bus = EventBus()
    locator.register("event_bus", bus)
    locator.register("settings", settings)

    log_service = ReorderLogService(event_bus=bus)
    if attach_logging:
        log_service.attach()
    locator.register("reorder_log", log_service)

    store = OptimisticStore.create(snapshot, event_bus=bus)
    locator.register("optimistic_store", store)
    locator.register("transport", transport)

    notices = NoticeSink(notifier, event_bus=bus)
    protocol = ReconciliationProtocol(store, transport, notices=notices, event_bus=bus)
    locator.register("reconciliation", protocol)

    extra: Dict[str, Any] = {}
    if spawn is not None:
        extra["spawn"] = spawn
    controller = DragController(
        store,
        protocol,
        settings=settings,
        scheduler=scheduler,
        can_drop=can_drop,
        notices=notices,
        event_bus=bus,
        on_ordering_change=on_ordering_change,
        **extra,
    )
    locator.register("drag_controller", controller)

    viewmodel = BoardViewModel(
        store,
        controller,
        definitions=definitions,
        event_bus=bus,
        on_group_update=on_group_update,
    )
    locator.register("board_viewmodel", viewmodel)

    return BoardContext(
        view_id=view_id,
        services=locator,
        started_at=started,
        duration_s=time.perf_counter() - started,
    )
