"""BoardSync engine public API.

Curated, intentionally small surface for callers embedding the optimistic
reordering engine in a board view. Deeper modules stay importable
(``board.reorder.position_allocator`` etc.) for tests and advanced use.
"""

from __future__ import annotations

from .services.event_bus import BoardEvent, Event, EventBus  # noqa: F401
from .services.service_locator import ServiceLocator  # noqa: F401
from .app.bootstrap import BoardContext, create_board  # noqa: F401

__all__ = [
    "BoardEvent",
    "Event",
    "EventBus",
    "ServiceLocator",
    "BoardContext",
    "create_board",
]
