"""Reconciliation protocol: persist optimistic moves and settle the store.

One bulk request is sent per drop. It carries the moved item, or every item
of the target group when the drop renumbered it, plus a cleanup instruction
for cross-group moves. Requests are tagged with a batch id and a sequence
number drawn from one monotonic counter.

Sequence rules
--------------
Every item written by a request records that request's sequence as its
latest. A response only touches items whose latest sequence is still the
response's sequence; anything older is a ``StaleResponse`` and is dropped.
When a renumbering drop rewrites an item that has its own unresolved move,
that move is adopted by the newer request: its sequence and batch id are
bumped so it resolves (or rolls back) together with the newer write.

Cross-group moves issue the group/status update first. If that succeeds and
the position write then fails, the item stays in its new group (the status
change is never reverted) and only the position is treated as unsaved.
Timed-out and failed sequences are abandoned; late responses for them are
ignored. A failure for a request that was superseded by adoption is stale:
the newer request decides the item's fate and no notice is shown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from domain.models import (
    BulkPositionRequest,
    BulkPositionResponse,
    CleanupInstruction,
    Item,
    PendingOperation,
    PositionUpdate,
)

from ..services.event_bus import BoardEvent, EventBus
from .errors import NetworkFailure, OperationTimeout, ReorderError, StaleResponse
from .notices import NoticeCategory, NoticeSink
from .optimistic_store import OptimisticStore
from .position_allocator import DropPlan

__all__ = ["SequenceRegistry", "ReconcileResult", "ReconciliationProtocol"]

log = logging.getLogger(__name__)

CONFIRMED = "confirmed"
STALE = "stale"
FAILED = "failed"
PARTIAL = "partial"
ABANDONED = "abandoned"
TIMED_OUT = "timed_out"


class SequenceRegistry:
    """Monotonic request counter plus the latest sequence written per item."""

    def __init__(self) -> None:
        self._counter = 0
        self._latest: Dict[str, int] = {}

    def next(self) -> int:
        self._counter += 1
        return self._counter

    def issue(self, item_ids: Iterable[str], sequence: int) -> None:
        for item_id in item_ids:
            if sequence > self._latest.get(item_id, 0):
                self._latest[item_id] = sequence

    def latest(self, item_id: str) -> int:
        return self._latest.get(item_id, 0)

    def is_latest(self, item_id: str, sequence: int) -> bool:
        return self.latest(item_id) <= sequence

    def restore(self, latest: Dict[str, int]) -> None:
        """Put back per-item latest values captured before an ``issue``."""
        for item_id, sequence in latest.items():
            if sequence:
                self._latest[item_id] = sequence
            else:
                self._latest.pop(item_id, None)

    @property
    def current(self) -> int:
        return self._counter


@dataclass
class ReconcileResult:
    sequence: int
    outcome: str
    confirmed: Tuple[str, ...] = ()
    stale: Tuple[str, ...] = ()
    error: Optional[ReorderError] = None


@dataclass
class _Batch:
    sequence: int
    previous: Dict[str, Item] = field(default_factory=dict)
    # what register() overwrote, for discard()
    latest_before: Dict[str, int] = field(default_factory=dict)
    adopted: Dict[str, Tuple[int, str]] = field(default_factory=dict)


class ReconciliationProtocol:
    def __init__(
        self,
        store: OptimisticStore,
        transport,
        *,
        notices: NoticeSink | None = None,
        event_bus: EventBus | None = None,
        sequences: SequenceRegistry | None = None,
    ) -> None:
        self._store = store
        self._transport = transport
        self._notices = notices or NoticeSink(event_bus=event_bus)
        self._event_bus = event_bus
        self.sequences = sequences or SequenceRegistry()
        self._pending: Dict[str, PendingOperation] = {}
        self._batches: Dict[int, _Batch] = {}
        self._abandoned: Set[int] = set()

    # ------------------------------------------------------------------
    # Pending operation bookkeeping
    # ------------------------------------------------------------------
    def pending(self, item_id: str) -> Optional[PendingOperation]:
        return self._pending.get(item_id)

    @property
    def operations_in_progress(self) -> frozenset[str]:
        return frozenset(self._pending)

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def register(
        self, op: PendingOperation, companions: Dict[str, Item] | None = None
    ) -> List[PendingOperation]:
        """Track ``op`` and the renumbered items written alongside it.

        ``companions`` maps each other item in the request to its value
        before this drop. Returns the older operations adopted by this
        request.
        """
        if op.item_id in self._pending:
            raise ReorderError(
                f"item {op.item_id} already has a pending operation",
                context={"sequence": self._pending[op.item_id].sequence},
            )
        companions = dict(companions or {})
        written = [op.item_id, *companions]
        batch = _Batch(
            op.sequence,
            companions,
            latest_before={item_id: self.sequences.latest(item_id) for item_id in written},
        )
        adopted: List[PendingOperation] = []
        for item_id in companions:
            other = self._pending.get(item_id)
            if other is not None:
                log.debug(
                    "operation %s for %s adopted by batch %s", other.sequence, item_id, op.batch_id
                )
                batch.adopted[item_id] = (other.sequence, other.batch_id)
                other.sequence = op.sequence
                other.batch_id = op.batch_id
                adopted.append(other)
        self._pending[op.item_id] = op
        self._batches[op.sequence] = batch
        self.sequences.issue(written, op.sequence)
        self._store.mark_busy(written)
        return adopted

    def discard(self, op: PendingOperation) -> None:
        """Undo ``register`` for an operation whose request was never sent.

        Adopted operations get their own sequence and batch id back. Store
        values are left to the caller.
        """
        if self._pending.get(op.item_id) is op:
            del self._pending[op.item_id]
        if op.timeout_handle is not None:
            op.timeout_handle.cancel()
            op.timeout_handle = None
        batch = self._batches.pop(op.sequence, None)
        if batch is None:
            self._clear_busy([op.item_id])
            return
        for item_id, (sequence, batch_id) in batch.adopted.items():
            other = self._pending.get(item_id)
            if other is not None and other.sequence == op.sequence:
                other.sequence = sequence
                other.batch_id = batch_id
        self.sequences.restore(batch.latest_before)
        self._clear_busy([op.item_id, *batch.previous])

    def _clear(self, op: PendingOperation) -> None:
        if self._pending.get(op.item_id) is op:
            del self._pending[op.item_id]
        if op.timeout_handle is not None:
            op.timeout_handle.cancel()
            op.timeout_handle = None
        self._store.clear_busy([op.item_id])

    def _clear_busy(self, item_ids: Iterable[str]) -> None:
        in_flight = set(self._pending)
        for other in self._batches.values():
            in_flight.update(other.previous)
        self._store.clear_busy(item_id for item_id in item_ids if item_id not in in_flight)

    def _release_batch(self, sequence: int) -> Optional[_Batch]:
        batch = self._batches.pop(sequence, None)
        if batch is not None:
            self._clear_busy(batch.previous)
        return batch

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------
    def build_request(self, plan: DropPlan, op: PendingOperation) -> BulkPositionRequest:
        cleanup = None
        if op.cross_group:
            cleanup = CleanupInstruction(item_ids=(op.item_id,), keep_group_id=op.target_group)
        return BulkPositionRequest(
            items=tuple(plan.updates),
            batch_id=op.batch_id,
            sequence=op.sequence,
            cleanup=cleanup,
        )

    # ------------------------------------------------------------------
    # Round trip
    # ------------------------------------------------------------------
    async def reconcile(self, op: PendingOperation, request: BulkPositionRequest) -> ReconcileResult:
        status_applied = False
        try:
            if op.cross_group:
                await self._transport.update_group(op.item_id, op.target_group)
                status_applied = True
            response = await self._transport.put_positions(request)
            if not response.ok:
                raise NetworkFailure(
                    f"position write rejected: {response.error}",
                    context={"batch_id": request.batch_id},
                )
        except Exception as exc:  # noqa: BLE001 - every failure must roll back
            error = exc if isinstance(exc, NetworkFailure) else NetworkFailure(str(exc))
            if error is not exc:
                error.__cause__ = exc
            return self._fail(op, request, error, status_applied)
        return self._succeed(op, request, response)

    def _succeed(
        self, op: PendingOperation, request: BulkPositionRequest, response: BulkPositionResponse
    ) -> ReconcileResult:
        sequence = request.sequence
        if sequence in self._abandoned:
            log.debug("late response for abandoned batch %s ignored", request.batch_id)
            return ReconcileResult(sequence, ABANDONED)
        if response.sequence is not None and response.sequence != sequence:
            log.warning(
                "batch %s answered with sequence %s, expected %s",
                request.batch_id,
                response.sequence,
                sequence,
            )
        values: Dict[str, PositionUpdate] = {u.item_id: u for u in request.items}
        values.update({u.item_id: u for u in response.items})
        confirmed: List[str] = []
        stale: List[str] = []
        for item_id, update in values.items():
            if not self.sequences.is_latest(item_id, sequence):
                stale.append(item_id)
                continue
            pending = self._pending.get(item_id)
            if pending is not None and pending.sequence != sequence:
                stale.append(item_id)
                continue
            if self._store.confirm(item_id, update.group_id, update.position) is not None:
                confirmed.append(item_id)
            if pending is not None:
                self._clear(pending)
        self._release_batch(sequence)
        if stale:
            log.debug(
                "%s", StaleResponse(f"batch {request.batch_id} superseded for {', '.join(stale)}")
            )
        outcome = CONFIRMED if op.item_id in confirmed else STALE
        if outcome == CONFIRMED:
            moved = self._store.get(op.item_id)
            title = moved.title if moved is not None and moved.title else op.item_id
            self._notices(NoticeCategory.INFO, f"Moved {title} to {op.target_group}")
        self._invalidate(op, sequence, outcome)
        return ReconcileResult(sequence, outcome, tuple(confirmed), tuple(stale))

    def _fail(
        self,
        op: PendingOperation,
        request: BulkPositionRequest,
        error: ReorderError,
        status_applied: bool,
    ) -> ReconcileResult:
        sequence = request.sequence
        if sequence in self._abandoned:
            log.debug("late failure for abandoned batch %s ignored: %s", request.batch_id, error)
            return ReconcileResult(sequence, ABANDONED, error=error)
        self._abandoned.add(sequence)
        if self._pending.get(op.item_id) is not op or op.sequence != sequence:
            # a newer request owns the item now; only this batch's own writes unwind
            stale = StaleResponse(
                f"failed batch {request.batch_id} superseded for {op.item_id}",
                context={"error": str(error)},
            )
            log.debug("%s", stale)
            self._rollback_batch(sequence)
            self._invalidate(op, sequence, STALE)
            return ReconcileResult(sequence, STALE, stale=(op.item_id,), error=error)
        log.warning("batch %s failed: %s", request.batch_id, error)
        if status_applied:
            # group change is persisted; keep the item where the user put it
            self._store.confirm(op.item_id, op.target_group, op.position)
            self._clear(op)
            self._rollback_batch(sequence, skip=op.item_id)
            self._notices(
                NoticeCategory.ERROR,
                f"Moved to {op.target_group} but the new position could not be saved.",
            )
            self._invalidate(op, sequence, PARTIAL)
            return ReconcileResult(sequence, PARTIAL, error=error)
        self._rollback_batch(sequence)
        self._notices(NoticeCategory.ERROR, "Move failed. Could not save new position.")
        self._invalidate(op, sequence, FAILED)
        return ReconcileResult(sequence, FAILED, error=error)

    def expire(self, item_id: str) -> bool:
        """Roll back an operation whose safety-net timer fired.

        Returns False when the operation already resolved.
        """
        op = self._pending.get(item_id)
        if op is None:
            return False
        sequence = op.sequence
        error = OperationTimeout(
            f"operation for {item_id} timed out", context={"batch_id": op.batch_id}
        )
        log.warning("%s", error)
        op.timeout_handle = None
        self._abandoned.add(sequence)
        self._rollback_batch(sequence)
        self._notices(NoticeCategory.ERROR, "Operation timed out. State restored.")
        self._invalidate(op, sequence, TIMED_OUT)
        return True

    def _rollback_batch(self, sequence: int, skip: str | None = None) -> None:
        # adopted moves go back to their pre-drag value, not the companion value
        restored: Set[str] = set()
        for item_id, op in list(self._pending.items()):
            if op.sequence == sequence and item_id != skip:
                self._store.rollback(item_id, op.previous)
                self._clear(op)
                restored.add(item_id)
        batch = self._release_batch(sequence)
        if batch is None:
            return
        for item_id, previous in batch.previous.items():
            if item_id == skip or item_id in restored:
                continue
            if not self.sequences.is_latest(item_id, sequence):
                continue
            if self._pending.get(item_id) is not None:
                continue
            self._store.rollback(item_id, previous)

    def _invalidate(self, op: PendingOperation, sequence: int, outcome: str) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(
                BoardEvent.REORDER_INVALIDATED,
                {"item_id": op.item_id, "sequence": sequence, "outcome": outcome},
            )

    def dispose(self) -> None:
        for op in list(self._pending.values()):
            self._clear(op)
        for sequence in list(self._batches):
            self._release_batch(sequence)
        self._abandoned.clear()
