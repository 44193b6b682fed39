"""User notices raised by the reorder engine.

The engine never presents anything itself. Every terminal event (moved,
cannot drop, rolled back, timed out) goes to the caller-supplied
``Notifier`` and is mirrored onto the event bus as
``BoardEvent.NOTIFICATION`` for toast hosts that prefer subscribing.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

from ..services.event_bus import BoardEvent, EventBus

__all__ = ["NoticeCategory", "Notifier", "NoticeSink"]

log = logging.getLogger(__name__)


class NoticeCategory(str, Enum):
    INFO = "info"
    ERROR = "error"


Notifier = Callable[[NoticeCategory, str], None]


class NoticeSink:
    """Fan-out of one notice to the notifier callback and the event bus."""

    def __init__(self, notifier: Optional[Notifier] = None, event_bus: EventBus | None = None):
        self._notifier = notifier
        self._event_bus = event_bus

    def __call__(self, category: NoticeCategory, message: str) -> None:
        level = logging.WARNING if category is NoticeCategory.ERROR else logging.INFO
        log.log(level, "notice (%s): %s", category.value, message)
        if self._notifier is not None:
            self._notifier(category, message)
        if self._event_bus is not None:
            self._event_bus.publish(
                BoardEvent.NOTIFICATION, {"category": category.value, "message": message}
            )
