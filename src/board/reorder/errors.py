"""Structured errors raised and reported by the reorder engine."""

from __future__ import annotations
from typing import Any


class ReorderError(Exception):
    """Base class for reorder related issues."""

    user_visible: bool = True

    def __init__(self, message: str, *, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class DragRefused(ReorderError):
    """Raised when a drag starts on an item whose previous move is unresolved."""


class DropRejected(ReorderError):
    """Raised when the drop predicate refuses the target group."""


class NetworkFailure(ReorderError):
    """Raised when a persistence request fails or returns an error status."""


class StaleResponse(ReorderError):
    """Raised when a response arrives for a superseded sequence number."""

    user_visible = False


class OperationTimeout(ReorderError):
    """Raised when the persistence safety-net timer fires first."""


class RenumberingConflict(ReorderError):
    """Raised when allocation detects tight or duplicate positions."""

    user_visible = False
