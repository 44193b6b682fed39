"""Optimistic item store for one active board view.

The store owns the merged local view of items:

    local = baseline (last server snapshot, plus confirmed writes)
            overlaid with pending per-item overrides

Rules
-----
- ``apply_override`` always wins over the baseline for rendering.
- ``merge_snapshot`` adopts snapshot values for items without an override,
  drops overrides the snapshot has caught up with (convergence) and keeps
  the rest. Items marked busy (inside an active drag or with an unexpired
  pending operation) are skipped entirely so an in-flight write never
  flickers back.
- ``rollback`` restores the value captured before an operation began.
- Every mutation stores new ``Item`` values; nothing is changed in place, so
  a reader holding a previous ``items()`` tuple never sees a half update.
- Writes are synchronous: a read right after a write observes it.

The store is not a global. ``create`` / ``reset`` are the lifecycle hooks;
the bootstrap builds one store per view.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import RLock
from typing import Dict, Iterable, List, Optional, Set, Tuple

from domain.models import Item, ServerSnapshot

from ..services.event_bus import BoardEvent, EventBus

__all__ = ["Override", "OptimisticStore"]

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Override:
    group_key: str
    position: int

    def matches(self, item: Item) -> bool:
        return item.group_key == self.group_key and item.position == self.position


class OptimisticStore:
    def __init__(self, event_bus: EventBus | None = None) -> None:
        self._lock = RLock()
        self._event_bus = event_bus
        self._baseline: Dict[str, Item] = {}
        self._overrides: Dict[str, Override] = {}
        self._busy: Set[str] = set()
        self._version = 0
        self._snapshot: Optional[ServerSnapshot] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @classmethod
    def create(
        cls, snapshot: ServerSnapshot | None = None, *, event_bus: EventBus | None = None
    ) -> "OptimisticStore":
        store = cls(event_bus=event_bus)
        if snapshot is not None:
            store.merge_snapshot(snapshot)
        return store

    def reset(self) -> None:
        with self._lock:
            self._baseline.clear()
            self._overrides.clear()
            self._busy.clear()
            self._snapshot = None
        self._changed("reset")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def apply_override(self, item_id: str, override: Override) -> Item:
        with self._lock:
            if item_id not in self._baseline:
                raise KeyError(item_id)
            self._overrides[item_id] = override
            item = self._render(item_id)
        self._changed("override", item_id)
        return item

    def merge_snapshot(self, snapshot: ServerSnapshot) -> None:
        converged: List[str] = []
        with self._lock:
            incoming = snapshot.by_id()
            merged: Dict[str, Item] = {}
            for item_id, item in incoming.items():
                if item_id in self._busy:
                    merged[item_id] = self._baseline.get(item_id, item)
                    continue
                override = self._overrides.get(item_id)
                if override is not None and override.matches(item):
                    del self._overrides[item_id]
                    converged.append(item_id)
                merged[item_id] = item
            # keep items the snapshot no longer lists only while a local write needs them
            for item_id, item in self._baseline.items():
                if item_id in merged:
                    continue
                if item_id in self._overrides or item_id in self._busy:
                    merged[item_id] = item
            self._baseline = merged
            self._snapshot = snapshot
        if converged:
            log.debug("overrides converged with snapshot: %s", ", ".join(converged))
        self._changed("snapshot")

    def confirm(self, item_id: str, group_key: str, position: int) -> Optional[Item]:
        """Adopt a server-confirmed value as the new baseline and drop the override."""
        with self._lock:
            base = self._baseline.get(item_id)
            if base is None:
                return None
            confirmed = base.placed(group_key, position)
            self._baseline[item_id] = confirmed
            self._overrides.pop(item_id, None)
        self._changed("confirm", item_id)
        return confirmed

    def rollback(self, item_id: str, previous: Item) -> Item:
        with self._lock:
            self._overrides.pop(item_id, None)
            self._baseline[item_id] = previous
        self._changed("rollback", item_id)
        return previous

    def mark_busy(self, item_ids: Iterable[str]) -> None:
        with self._lock:
            self._busy.update(item_ids)

    def clear_busy(self, item_ids: Iterable[str]) -> None:
        with self._lock:
            self._busy.difference_update(item_ids)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def _render(self, item_id: str) -> Item:
        base = self._baseline[item_id]
        override = self._overrides.get(item_id)
        if override is None:
            return base
        return base.placed(override.group_key, override.position)

    def items(self) -> Tuple[Item, ...]:
        with self._lock:
            return tuple(self._render(item_id) for item_id in self._baseline)

    def get(self, item_id: str) -> Optional[Item]:
        with self._lock:
            if item_id not in self._baseline:
                return None
            return self._render(item_id)

    def items_in_group(self, group_key: str) -> Tuple[Item, ...]:
        return tuple(it for it in self.items() if it.group_key == group_key)

    def override_for(self, item_id: str) -> Optional[Override]:
        with self._lock:
            return self._overrides.get(item_id)

    def has_override(self, item_id: str) -> bool:
        with self._lock:
            return item_id in self._overrides

    def is_busy(self, item_id: str) -> bool:
        with self._lock:
            return item_id in self._busy

    @property
    def snapshot(self) -> Optional[ServerSnapshot]:
        return self._snapshot

    @property
    def version(self) -> int:
        return self._version

    # ------------------------------------------------------------------
    def _changed(self, reason: str, item_id: str | None = None) -> None:
        with self._lock:
            self._version += 1
            version = self._version
        if self._event_bus is not None:
            self._event_bus.publish(
                BoardEvent.STORE_CHANGED,
                {"reason": reason, "item_id": item_id, "version": version},
            )
