"""Optimistic reordering core.

Leaves first: position allocator and group builder (pure), optimistic store,
reconciliation protocol, drag controller.
"""

from .errors import (  # noqa: F401
    ReorderError,
    DragRefused,
    DropRejected,
    NetworkFailure,
    StaleResponse,
    OperationTimeout,
    RenumberingConflict,
)
from .position_allocator import allocate_position, plan_drop, renumber  # noqa: F401
from .group_builder import Ordering, GroupDefinition, build_groups  # noqa: F401
from .optimistic_store import OptimisticStore, Override  # noqa: F401
from .reconciliation import ReconciliationProtocol, SequenceRegistry  # noqa: F401
from .drag_controller import DragController, DragState, DropStatus, status_can_drop  # noqa: F401
from .notices import NoticeCategory  # noqa: F401
