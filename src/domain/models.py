"""Domain models for the board reordering engine.

Items are immutable; every change produces a new value via
``dataclasses.replace`` so concurrent readers never observe a half-updated
item. Groups are derived views and are never stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple


@dataclass(frozen=True, slots=True)
class Item:
    id: str
    group_key: str
    position: Optional[int] = None
    title: str = ""
    priority: Optional[str] = None  # URGENT / HIGH / MEDIUM / LOW
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    payload: Mapping[str, Any] = field(default_factory=dict)

    def placed(self, group_key: str, position: int) -> "Item":
        return replace(self, group_key=group_key, position=position)


@dataclass(frozen=True, slots=True)
class Group:
    id: str
    name: str
    order: int
    items: Tuple[Item, ...] = ()

    def item_ids(self) -> List[str]:
        return [it.id for it in self.items]


@dataclass(frozen=True, slots=True)
class ServerSnapshot:
    """Last authoritative set of items fetched from the server."""

    items: Tuple[Item, ...]
    fetched_at: Optional[datetime] = None

    @classmethod
    def of(cls, items, fetched_at: Optional[datetime] = None) -> "ServerSnapshot":
        return cls(items=tuple(items), fetched_at=fetched_at)

    def by_id(self) -> Dict[str, Item]:
        return {it.id: it for it in self.items}


@dataclass(slots=True)
class DragSession:
    item_id: str
    source_group: str
    hover_group: Optional[str] = None
    can_drop: bool = True


@dataclass(slots=True)
class PendingOperation:
    """Outstanding optimistic move for one item.

    ``previous`` is the item as rendered before the drag began; rollback
    restores exactly that value.
    """

    item_id: str
    source_group: str
    target_group: str
    position: int
    sequence: int
    batch_id: str
    created_at: float
    previous: Item
    renumbered: bool = False
    timeout_handle: Any = None

    @property
    def cross_group(self) -> bool:
        return self.source_group != self.target_group


# -----------------------------
# Wire contract
# -----------------------------


@dataclass(frozen=True, slots=True)
class PositionUpdate:
    item_id: str
    group_id: str
    position: int

    def to_payload(self) -> Dict[str, Any]:
        return {"itemId": self.item_id, "groupId": self.group_id, "position": self.position}

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "PositionUpdate":
        return cls(
            item_id=str(data["itemId"]),
            group_id=str(data["groupId"]),
            position=int(data["position"]),
        )


@dataclass(frozen=True, slots=True)
class CleanupInstruction:
    """Drop every group association of ``item_ids`` except ``keep_group_id``."""

    item_ids: Tuple[str, ...]
    keep_group_id: str

    def to_payload(self) -> Dict[str, Any]:
        return {"itemIds": list(self.item_ids), "keepGroupId": self.keep_group_id}


@dataclass(frozen=True, slots=True)
class BulkPositionRequest:
    items: Tuple[PositionUpdate, ...]
    batch_id: str
    sequence: int
    cleanup: Optional[CleanupInstruction] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "items": [u.to_payload() for u in self.items],
            "cleanup": self.cleanup.to_payload() if self.cleanup else None,
            "batchId": self.batch_id,
            "sequence": self.sequence,
        }


@dataclass(frozen=True, slots=True)
class BulkPositionResponse:
    items: Tuple[PositionUpdate, ...] = ()
    sequence: Optional[int] = None
    batch_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "BulkPositionResponse":
        raw_items = data.get("items") or data.get("bulk") or ()
        sequence = data.get("sequence")
        return cls(
            items=tuple(PositionUpdate.from_payload(r) for r in raw_items),
            sequence=int(sequence) if sequence is not None else None,
            batch_id=data.get("batchId"),
            error=data.get("error"),
        )
