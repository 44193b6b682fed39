"""Service layer exports.

Responsibilities:
 - Per-view service locator (`ServiceLocator`)
 - EventBus publish/subscribe core
 - Runtime settings and the reorder log ring buffer
"""

from .service_locator import ServiceLocator  # noqa: F401
from .event_bus import EventBus, BoardEvent  # noqa: F401
from .settings_service import ReorderSettings  # noqa: F401
from .reorder_log import ReorderLogService  # noqa: F401

__all__ = [
    "ServiceLocator",
    "EventBus",
    "BoardEvent",
    "ReorderSettings",
    "ReorderLogService",
]
