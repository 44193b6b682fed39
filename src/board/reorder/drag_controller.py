"""Drag controller: one drag gesture at a time, optimistic commit on drop.

State machine::

    IDLE --start--> DRAGGING --drop--> COMMITTING --> IDLE
                        |
                        +--cancel / rejected drop--> CANCELLED --> IDLE

A drop plans the new position against the store's *current* optimistic view
(so a second rapid move sees the first one), writes the override before
returning, registers the pending operation with a fresh sequence number and
batch id, arms the timeout and hands the bulk request to the
reconciliation protocol as an asyncio task. Nothing in the drop path waits
for the network.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Collection, Coroutine, Dict, Mapping, Optional, Tuple

from domain.models import DragSession, Item, PendingOperation

from ..services.event_bus import BoardEvent, EventBus
from ..services.settings_service import ReorderSettings
from .errors import DragRefused, DropRejected, ReorderError
from .group_builder import Ordering, ordered_group
from .notices import NoticeCategory, NoticeSink
from .optimistic_store import OptimisticStore, Override
from .position_allocator import DropPlan, plan_drop
from .reconciliation import ReconciliationProtocol
from .scheduling import AsyncioScheduler, Scheduler

__all__ = [
    "CanDrop",
    "allow_all",
    "status_can_drop",
    "DragState",
    "DropStatus",
    "HoverState",
    "DropOutcome",
    "DragController",
]

log = logging.getLogger(__name__)

CanDrop = Callable[[Item, str], bool]


def allow_all(item: Item, target_group: str) -> bool:
    return True


def status_can_drop(
    allowed_by_scope: Optional[Mapping[str, Collection[str]]], *, scope_key: str = "project_id"
) -> CanDrop:
    """Build a drop predicate restricting items to the groups of their scope.

    Reordering inside the current group is always allowed. Items whose scope
    (``item.payload[scope_key]``) has no configured groups may go anywhere.
    """

    def can_drop(item: Item, target_group: str) -> bool:
        if item.group_key == target_group or not allowed_by_scope:
            return True
        groups = allowed_by_scope.get(item.payload.get(scope_key))
        if not groups:
            return True
        return target_group in groups

    return can_drop


class DragState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    COMMITTING = "committing"
    CANCELLED = "cancelled"


class DropStatus(str, Enum):
    COMMITTED = "committed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    NOOP = "noop"
    IGNORED = "ignored"


@dataclass(frozen=True)
class HoverState:
    can_drop: bool = True
    group_id: Optional[str] = None


@dataclass
class DropOutcome:
    status: DropStatus
    plan: Optional[DropPlan] = None
    operation: Optional[PendingOperation] = None
    task: Optional[asyncio.Task] = None
    error: Optional[ReorderError] = None


def _spawn(coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
    return asyncio.get_running_loop().create_task(coro)


class DragController:
    def __init__(
        self,
        store: OptimisticStore,
        protocol: ReconciliationProtocol,
        *,
        settings: ReorderSettings | None = None,
        scheduler: Scheduler | None = None,
        can_drop: CanDrop = allow_all,
        notices: NoticeSink | None = None,
        event_bus: EventBus | None = None,
        on_ordering_change: Callable[[str], None] | None = None,
        spawn: Callable[[Coroutine[Any, Any, Any]], Any] = _spawn,
    ) -> None:
        self._store = store
        self._protocol = protocol
        self._settings = settings or ReorderSettings.instance
        self._scheduler = scheduler or AsyncioScheduler()
        self._can_drop = can_drop
        self._notices = notices or NoticeSink(event_bus=event_bus)
        self._event_bus = event_bus
        self._on_ordering_change = on_ordering_change
        self._spawn = spawn
        self.ordering = Ordering.parse(self._settings.ordering)
        self._state = DragState.IDLE
        self._session: Optional[DragSession] = None
        self._pre_drag: Optional[Item] = None
        self._was_busy = False
        self._hover = HoverState()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def state(self) -> DragState:
        return self._state

    @property
    def session(self) -> Optional[DragSession]:
        return self._session

    @property
    def hover(self) -> HoverState:
        return self._hover

    def pending(self, item_id: str) -> Optional[PendingOperation]:
        return self._protocol.pending(item_id)

    @property
    def operations_in_progress(self) -> frozenset[str]:
        return self._protocol.operations_in_progress

    @property
    def has_pending_updates(self) -> bool:
        return self._protocol.has_pending

    # ------------------------------------------------------------------
    # Gesture handlers
    # ------------------------------------------------------------------
    def on_drag_start(self, item_id: str) -> DragSession:
        if self._session is not None:
            raise DragRefused(
                f"drag already active for {self._session.item_id}", context={"item_id": item_id}
            )
        if self._protocol.pending(item_id) is not None:
            raise DragRefused(
                f"item {item_id} still has an unresolved move", context={"item_id": item_id}
            )
        item = self._store.get(item_id)
        if item is None:
            raise DragRefused(f"unknown item {item_id}", context={"item_id": item_id})
        self._pre_drag = item
        # a renumbered companion of an in-flight batch is already busy
        self._was_busy = self._store.is_busy(item_id)
        self._session = DragSession(item_id=item_id, source_group=item.group_key)
        self._hover = HoverState()
        self._store.mark_busy([item_id])
        self._set_state(DragState.DRAGGING)
        return self._session

    def on_hover_change(self, target_group: Optional[str]) -> bool:
        session = self._session
        if session is None or self._pre_drag is None:
            return False
        if target_group is None:
            self._hover = HoverState()
            session.hover_group = None
            session.can_drop = True
            return True
        allowed = bool(self._can_drop(self._pre_drag, target_group))
        self._hover = HoverState(can_drop=allowed, group_id=target_group)
        session.hover_group = target_group
        session.can_drop = allowed
        return allowed

    def on_cancel(self) -> None:
        if self._session is None:
            return
        self._finish(DragState.CANCELLED)

    def on_drop(
        self,
        source_group: str,
        target_group: Optional[str],
        drop_index: int,
        source_index: Optional[int] = None,
    ) -> DropOutcome:
        session = self._session
        moved = self._pre_drag
        if session is None or moved is None:
            return DropOutcome(DropStatus.IGNORED)
        if target_group is not None and target_group != session.hover_group:
            self.on_hover_change(target_group)
        if not session.can_drop:
            error = DropRejected(
                f"{moved.title or moved.id} cannot be dropped to {session.hover_group}",
                context={"item_id": moved.id, "group": session.hover_group},
            )
            self._finish(DragState.CANCELLED)
            self._notices(NoticeCategory.ERROR, f"Cannot drop: {error}")
            return DropOutcome(DropStatus.REJECTED, error=error)
        if target_group is None:
            self._finish(DragState.CANCELLED)
            return DropOutcome(DropStatus.CANCELLED)

        view = ordered_group(self._store.items(), target_group, self.ordering)
        if source_group == target_group:
            if source_index is None:
                ids = [it.id for it in view]
                source_index = ids.index(moved.id) if moved.id in ids else None
            if drop_index == source_index:
                self._finish(DragState.IDLE)
                return DropOutcome(DropStatus.NOOP)

        self._set_state(DragState.COMMITTING)
        return self._commit(moved, source_group, target_group, drop_index, view)

    def on_timeout(self, item_id: str) -> bool:
        return self._protocol.expire(item_id)

    def dispose(self) -> None:
        """Tear down for view unmount: cancel timers and drop all pending state."""
        if self._session is not None and not self._was_busy:
            self._store.clear_busy([self._session.item_id])
        self._session = None
        self._pre_drag = None
        self._hover = HoverState()
        self._protocol.dispose()
        self._state = DragState.IDLE

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _commit(
        self, moved: Item, source_group: str, target_group: str, drop_index: int, view
    ) -> DropOutcome:
        switch_to_manual = self.ordering is not Ordering.MANUAL
        plan = plan_drop(
            view,
            moved,
            target_group,
            drop_index,
            gap=self._settings.position_gap,
            tight_threshold=self._settings.tight_threshold,
            min_batch_gap=self._settings.min_batch_gap,
            force_renumber=switch_to_manual,
        )
        if switch_to_manual:
            self.ordering = Ordering.MANUAL
            if self._on_ordering_change is not None:
                self._on_ordering_change(Ordering.MANUAL.value)

        # current value and prior override of every item this drop rewrites
        applied: Dict[str, Tuple[Item, Optional[Override]]] = {}
        op: Optional[PendingOperation] = None
        coro = None
        try:
            companions: Dict[str, Item] = {}
            for update in plan.updates:
                current = self._store.get(update.item_id)
                if current is None:
                    continue
                if update.item_id != moved.id:
                    companions[update.item_id] = current
                applied[update.item_id] = (current, self._store.override_for(update.item_id))
                self._store.apply_override(update.item_id, Override(update.group_id, update.position))

            sequence = self._protocol.sequences.next()
            batch_id = f"{target_group}-{sequence}-{int(time.time() * 1000)}"
            op = PendingOperation(
                item_id=moved.id,
                source_group=source_group,
                target_group=target_group,
                position=plan.position,
                sequence=sequence,
                batch_id=batch_id,
                created_at=self._scheduler.now(),
                previous=moved,
                renumbered=plan.renumbered,
            )
            adopted = self._protocol.register(op, companions)
            self._arm_timeout(op)
            for other in adopted:
                self._arm_timeout(other)
            request = self._protocol.build_request(plan, op)
            log.debug(
                "drop %s -> %s[%d] pos=%d seq=%d renumbered=%s",
                moved.id,
                target_group,
                plan.index,
                plan.position,
                sequence,
                plan.renumbered,
            )
            coro = self._protocol.reconcile(op, request)
            task = self._spawn(coro)
        except Exception:
            log.exception("drop of %s could not be committed", moved.id)
            if coro is not None:
                coro.close()
            if op is not None:
                self._protocol.discard(op)
            self._undo(applied)
            self._finish(DragState.CANCELLED)
            raise
        self._finish(DragState.IDLE, keep_busy=True)
        return DropOutcome(DropStatus.COMMITTED, plan=plan, operation=op, task=task)

    def _undo(self, applied: Dict[str, Tuple[Item, Optional[Override]]]) -> None:
        for item_id, (current, override) in applied.items():
            if override is not None:
                self._store.apply_override(item_id, override)
            else:
                self._store.rollback(item_id, current)

    def _arm_timeout(self, op: PendingOperation) -> None:
        if op.timeout_handle is not None:
            op.timeout_handle.cancel()
        item_id = op.item_id
        op.timeout_handle = self._scheduler.call_later(
            self._settings.operation_timeout_s, lambda: self.on_timeout(item_id)
        )

    def _finish(self, terminal: DragState, *, keep_busy: bool = False) -> None:
        if self._session is not None and not keep_busy and not self._was_busy:
            self._store.clear_busy([self._session.item_id])
        self._session = None
        self._pre_drag = None
        self._hover = HoverState()
        if terminal is not DragState.IDLE:
            self._set_state(terminal)
        self._set_state(DragState.IDLE)

    def _set_state(self, state: DragState) -> None:
        if state is self._state:
            return
        self._state = state
        if self._event_bus is not None:
            self._event_bus.publish(BoardEvent.DRAG_STATE_CHANGED, {"state": state.value})
