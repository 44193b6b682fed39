"""Group builder: derive ordered columns from the optimistic item list.

Groups are never stored; ``build_groups`` recomputes them from the store's
items and an ordering criterion each time a renderer asks. The input items
are never mutated and each group receives its own tuple.

Ordering criteria
-----------------
manual      position ascending, then created ascending
priority    URGENT > HIGH > MEDIUM > LOW, then position, then created
created     newest first, then position
updated     most recently updated first, then position
due_date    earliest first (missing last), then position
start_date  earliest first (missing last), then position

Items without a position sort after positioned ones in every criterion.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from domain.models import Group, Item

__all__ = [
    "Ordering",
    "GroupDefinition",
    "SortKey",
    "sort_items",
    "build_groups",
    "ordered_group",
    "count_items_by_state",
]

log = logging.getLogger(__name__)

_PRIORITY_RANK = {"URGENT": 4, "HIGH": 3, "MEDIUM": 2, "LOW": 1}
_MISSING_POSITION = float("inf")


class Ordering(str, Enum):
    MANUAL = "manual"
    PRIORITY = "priority"
    CREATED = "created"
    UPDATED = "updated"
    DUE_DATE = "due_date"
    START_DATE = "start_date"

    @classmethod
    def parse(cls, value: "str | Ordering | None") -> "Ordering":
        if isinstance(value, Ordering):
            return value
        aliases = {"createdAt": "created", "updatedAt": "updated", "dueDate": "due_date",
                   "startDate": "start_date"}
        text = aliases.get(value or "manual", value or "manual")
        try:
            return cls(text)
        except ValueError:
            log.warning("unknown ordering %r, falling back to manual", value)
            return cls.MANUAL


@dataclass(frozen=True)
class GroupDefinition:
    id: str
    name: str
    order: int = 0


@dataclass(frozen=True)
class SortKey:
    key_func: Callable[[Item], object]
    ascending: bool = True


def _position(it: Item) -> float:
    return it.position if it.position is not None else _MISSING_POSITION


def _stamp(value: Optional[datetime], missing: float) -> float:
    return value.timestamp() if value is not None else missing


_KEYS: Dict[Ordering, Sequence[SortKey]] = {
    Ordering.MANUAL: (
        SortKey(_position),
        SortKey(lambda it: _stamp(it.created_at, 0.0)),
    ),
    Ordering.PRIORITY: (
        SortKey(lambda it: _PRIORITY_RANK.get((it.priority or "").upper(), 0), ascending=False),
        SortKey(_position),
        SortKey(lambda it: _stamp(it.created_at, 0.0)),
    ),
    Ordering.CREATED: (
        SortKey(lambda it: _stamp(it.created_at, 0.0), ascending=False),
        SortKey(_position),
    ),
    Ordering.UPDATED: (
        SortKey(lambda it: _stamp(it.updated_at, 0.0), ascending=False),
        SortKey(_position),
    ),
    Ordering.DUE_DATE: (
        SortKey(lambda it: _stamp(it.due_date, _MISSING_POSITION)),
        SortKey(_position),
    ),
    Ordering.START_DATE: (
        SortKey(lambda it: _stamp(it.start_date, _MISSING_POSITION)),
        SortKey(_position),
    ),
}


def sort_items(items: Iterable[Item], ordering: "str | Ordering" = Ordering.MANUAL) -> List[Item]:
    # Apply from lowest precedence to highest for stability
    result = list(items)
    for sk in reversed(_KEYS[Ordering.parse(ordering)]):
        result.sort(key=sk.key_func, reverse=not sk.ascending)
    return result


def build_groups(
    items: Iterable[Item],
    definitions: Optional[Sequence[GroupDefinition]] = None,
    *,
    ordering: "str | Ordering" = Ordering.MANUAL,
    allowed: Optional[Iterable[str]] = None,
    column_order: Optional[Sequence[str]] = None,
) -> List[Group]:
    """Group ``items`` by group key and order each group.

    With ``definitions`` the columns are fixed and items carrying an unknown
    key are skipped (logged); without, a column is created for each key in
    first-seen order. ``column_order`` is a local column ordering that
    overrides each definition's ``order``.
    """
    allowed_set = set(allowed) if allowed else None
    names: Dict[str, str] = {}
    orders: Dict[str, int] = {}
    buckets: Dict[str, List[Item]] = {}
    fixed = bool(definitions)
    for d in definitions or ():
        if allowed_set is not None and d.id not in allowed_set:
            continue
        names[d.id] = d.name
        orders[d.id] = d.order
        buckets[d.id] = []
    for it in items:
        if allowed_set is not None and it.group_key not in allowed_set:
            continue
        if it.group_key not in buckets:
            if fixed:
                log.warning("item %s has unknown group %r; skipped", it.id, it.group_key)
                continue
            names[it.group_key] = it.group_key
            orders[it.group_key] = len(buckets)
            buckets[it.group_key] = []
        buckets[it.group_key].append(it)
    if column_order:
        index_by_id = {gid: i for i, gid in enumerate(column_order)}
        orders = {gid: index_by_id.get(gid, o) for gid, o in orders.items()}
    groups = [
        Group(id=gid, name=names[gid], order=orders[gid], items=tuple(sort_items(bucket, ordering)))
        for gid, bucket in buckets.items()
    ]
    return sorted(groups, key=lambda g: g.order)


def ordered_group(
    items: Iterable[Item], group_id: str, ordering: "str | Ordering" = Ordering.MANUAL
) -> List[Item]:
    """Visual order of a single group."""
    return sort_items((it for it in items if it.group_key == group_id), ordering)


def count_items_by_state(items: Iterable[Item]) -> Dict[str, int]:
    total = active = backlog = 0
    for it in items:
        key = it.group_key.lower()
        total += 1
        if key not in {"done", "backlog", "cancelled"}:
            active += 1
        if key in {"backlog", "todo"}:
            backlog += 1
    return {"all": total, "active": active, "backlog": backlog}
