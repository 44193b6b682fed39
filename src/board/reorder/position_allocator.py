"""Fractional position allocation for manually ordered groups.

Pure functions, no store or Qt dependency. A drop is planned in two steps:

 1. ``allocate_position`` picks a whole-number position between the drop
    neighbours (midpoint, append after, halve before, or the base gap for
    an empty group) and flags "tight spacing" when there is no room.
 2. ``plan_drop`` builds the candidate batch (the group's final visual
    order with the moved item inserted) and, when allocation was tight or
    the batch holds duplicate / crowded positions, renumbers the whole
    group to ``(visual_index + 1) * gap``.

Renumbering is keyed on final visual order, never on old positions, so it is
idempotent for a given order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from config import settings
from domain.models import Item, PositionUpdate

from .errors import RenumberingConflict

__all__ = [
    "Allocation",
    "DropPlan",
    "allocate_position",
    "detect_tight_spacing",
    "renumber",
    "plan_drop",
]

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Allocation:
    position: int
    tight: bool = False


@dataclass(frozen=True)
class DropPlan:
    """Outcome of planning one drop into ``group_id``.

    ``updates`` always contains the moved item; when ``renumbered`` is True it
    holds every item of the group in final visual order.
    """

    group_id: str
    item_id: str
    index: int
    position: int
    updates: Tuple[PositionUpdate, ...]
    renumbered: bool = False
    conflict: Optional[RenumberingConflict] = None

    def order(self) -> List[str]:
        return [u.item_id for u in sorted(self.updates, key=lambda u: u.position)]


def allocate_position(
    prev: Optional[int],
    next: Optional[int],
    *,
    gap: int = settings.POSITION_GAP,
    tight_threshold: int = settings.TIGHT_POSITION_THRESHOLD,
) -> Allocation:
    """Return a position for an item dropped between ``prev`` and ``next``.

    ``None`` means there is no neighbour on that side.
    """
    tight = False
    if prev is not None and next is not None:
        space = next - prev
        if space <= 1:
            position = prev + 1
            tight = True
        else:
            position = prev + space // 2
    elif prev is not None:
        position = prev + gap
    elif next is not None:
        if next > tight_threshold:
            position = next // 2
        else:
            # no sensible value below ``next``; caller renumbers
            position = 1
            tight = True
    else:
        position = gap
    return Allocation(position=max(1, int(position)), tight=tight)


def detect_tight_spacing(positions: Iterable[int], min_gap: int = settings.MIN_BATCH_GAP) -> bool:
    """True when a batch holds duplicates or any adjacent gap below ``min_gap``."""
    ordered = sorted(positions)
    if len(ordered) <= 1:
        return False
    if len(set(ordered)) != len(ordered):
        return True
    return any(b - a < min_gap for a, b in zip(ordered, ordered[1:]))


def renumber(
    ordered_ids: Sequence[str], group_id: str, gap: int = settings.POSITION_GAP
) -> Tuple[PositionUpdate, ...]:
    return tuple(
        PositionUpdate(item_id=item_id, group_id=group_id, position=(index + 1) * gap)
        for index, item_id in enumerate(ordered_ids)
    )


def plan_drop(
    group_items: Sequence[Item],
    moved: Item,
    group_id: str,
    drop_index: int,
    *,
    gap: int = settings.POSITION_GAP,
    tight_threshold: int = settings.TIGHT_POSITION_THRESHOLD,
    min_batch_gap: int = settings.MIN_BATCH_GAP,
    force_renumber: bool = False,
) -> DropPlan:
    """Plan the drop of ``moved`` at ``drop_index`` within ``group_items``.

    ``group_items`` is the current optimistic visual order of the target
    group; the moved item is excluded from it before neighbours are chosen.
    """
    others = [it for it in group_items if it.id != moved.id]
    index = max(0, min(drop_index, len(others)))
    prev = others[index - 1] if index > 0 else None
    nxt = others[index] if index < len(others) else None

    unpositioned = any(it.position is None for it in others)
    allocation = allocate_position(
        prev.position or 0 if prev is not None else None,
        nxt.position or 0 if nxt is not None else None,
        gap=gap,
        tight_threshold=tight_threshold,
    )
    position = allocation.position
    reasons: List[str] = []
    if force_renumber:
        reasons.append("ordering")
    if unpositioned:
        reasons.append("unpositioned")
    if allocation.tight:
        reasons.append("tight")
    elif position <= tight_threshold and any(
        (it.position or 0) <= tight_threshold for it in others
    ):
        reasons.append("low")
    candidates = [it.position or 0 for it in others] + [position]
    if not reasons and detect_tight_spacing(candidates, min_batch_gap):
        reasons.append("crowded")

    if not reasons:
        update = PositionUpdate(item_id=moved.id, group_id=group_id, position=position)
        return DropPlan(group_id, moved.id, index, position, (update,))

    final_ids = [it.id for it in others[:index]] + [moved.id] + [it.id for it in others[index:]]
    updates = renumber(final_ids, group_id, gap)
    position = updates[index].position
    conflict = RenumberingConflict(
        f"renumbering group {group_id!r}",
        context={"reasons": reasons, "size": len(updates), "item_id": moved.id},
    )
    log.debug("%s (%s) for %d items", conflict, ",".join(reasons), len(updates))
    return DropPlan(group_id, moved.id, index, position, updates, True, conflict)
