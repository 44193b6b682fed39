"""Runtime settings for the reorder engine.

Defaults come from ``config.settings`` (environment-driven constants); tests
and the bootstrap may build their own instance or replace ``instance``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from config import settings


@dataclass
class ReorderSettings:
    """Tunable spacing and timeout knobs.

    Attributes:
        position_gap: Spacing ``G`` between adjacent manual positions.
        tight_threshold: Positions at or below this are too small to halve.
        min_batch_gap: Adjacent gaps below this inside a bulk write force a
            renumber of the whole group.
        operation_timeout_s: Seconds before an unresolved move is rolled back.
        ordering: Active ordering criterion of the view (``manual`` by default).
    """

    instance: ClassVar["ReorderSettings"]

    position_gap: int = settings.POSITION_GAP
    tight_threshold: int = settings.TIGHT_POSITION_THRESHOLD
    min_batch_gap: int = settings.MIN_BATCH_GAP
    operation_timeout_s: float = settings.OPERATION_TIMEOUT_S
    ordering: str = "manual"

    def __post_init__(self) -> None:
        if self.position_gap <= 1:
            raise ValueError("position_gap must be greater than 1")
        if self.operation_timeout_s <= 0:
            raise ValueError("operation_timeout_s must be positive")


ReorderSettings.instance = ReorderSettings()
