"""ViewModel for a kanban board view.

Read side for renderers: derives columns from the optimistic store through
the group builder and exposes drag feedback. Renderers treat everything it
returns as read-only; groups are rebuilt (never patched) on each store
change.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Sequence

from domain.models import Group

from ..reorder.drag_controller import DragController, HoverState
from ..reorder.errors import DragRefused
from ..reorder.group_builder import GroupDefinition, build_groups, count_items_by_state
from ..reorder.optimistic_store import OptimisticStore
from ..services.event_bus import BoardEvent, Event, EventBus

__all__ = ["BoardViewModel"]

log = logging.getLogger(__name__)


class BoardViewModel:
    def __init__(
        self,
        store: OptimisticStore,
        controller: DragController,
        *,
        definitions: Optional[Sequence[GroupDefinition]] = None,
        allowed_groups: Optional[Sequence[str]] = None,
        event_bus: EventBus | None = None,
        on_group_update: Callable[[str, Dict[str, int]], None] | None = None,
    ):
        self._store = store
        self._controller = controller
        self._definitions = list(definitions or ())
        self._allowed = list(allowed_groups) if allowed_groups else None
        self._event_bus = event_bus
        self._on_group_update = on_group_update
        self._column_order: Optional[List[str]] = None
        self._groups: List[Group] = []
        self._sub = None
        if event_bus is not None:
            self._sub = event_bus.subscribe(BoardEvent.STORE_CHANGED, self._on_store_changed)
        self.refresh()

    # Read side -----------------------------------------------------------
    def refresh(self) -> None:
        self._groups = build_groups(
            self._store.items(),
            self._definitions,
            ordering=self._controller.ordering,
            allowed=self._allowed,
            column_order=self._column_order,
        )

    def groups(self) -> List[Group]:
        return list(self._groups)

    def group(self, group_id: str) -> Optional[Group]:
        for g in self._groups:
            if g.id == group_id:
                return g
        return None

    @property
    def hover(self) -> HoverState:
        return self._controller.hover

    @property
    def operations_in_progress(self) -> frozenset[str]:
        return self._controller.operations_in_progress

    @property
    def has_pending_updates(self) -> bool:
        return self._controller.has_pending_updates

    def counts(self) -> Dict[str, int]:
        return count_items_by_state(self._store.items())

    # Gesture adapters -----------------------------------------------------
    def begin_drag(self, item_id: str) -> bool:
        """Start a drag; False when the engine refuses it."""
        try:
            self._controller.on_drag_start(item_id)
        except DragRefused as e:
            log.info("drag refused: %s", e)
            return False
        return True

    def move_group(self, source_index: int, target_index: int) -> bool:
        """Reorder columns locally and report each column's new order."""
        ids = [g.id for g in self._groups]
        if source_index == target_index or not (
            0 <= source_index < len(ids) and 0 <= target_index < len(ids)
        ):
            return False
        moved = ids.pop(source_index)
        ids.insert(target_index, moved)
        self._column_order = ids
        self.refresh()
        if self._on_group_update is not None:
            for order, gid in enumerate(ids):
                self._on_group_update(gid, {"order": order})
        if self._event_bus is not None:
            self._event_bus.publish(BoardEvent.COLUMN_ORDER_CHANGED, {"order": list(ids)})
        return True

    def close(self) -> None:
        if self._sub is not None and self._event_bus is not None:
            self._event_bus.unsubscribe(self._sub)
            self._sub = None

    def _on_store_changed(self, _evt: Event) -> None:
        self.refresh()
