"""Qt event-loop scheduler for operation timeouts.

Drop-in ``Scheduler`` for boards hosted in a PyQt6 window: timeouts fire on
the Qt event loop through single-shot ``QTimer`` objects instead of an
asyncio loop. Timers are handed to ``deleteLater`` once they fire or are
cancelled, so a long-lived parent does not collect them.
"""

from __future__ import annotations

from time import monotonic
from typing import Callable, Optional

from PyQt6.QtCore import QObject, QTimer

__all__ = ["QtTimerHandle", "QtTimerScheduler"]


class QtTimerHandle:
    def __init__(self, timer: QTimer) -> None:
        self._timer: Optional[QTimer] = timer

    def cancel(self) -> None:
        if self._timer is None:
            return
        self._timer.stop()
        self._release()

    def _release(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.deleteLater()

    @property
    def active(self) -> bool:
        return self._timer is not None and self._timer.isActive()


class QtTimerScheduler:
    def __init__(self, parent: Optional[QObject] = None) -> None:
        self._parent = parent

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> QtTimerHandle:
        timer = QTimer(self._parent)
        timer.setSingleShot(True)
        handle = QtTimerHandle(timer)
        timer.timeout.connect(callback)
        # connected second so the callback runs before the timer is released
        timer.timeout.connect(lambda: handle._release())
        timer.start(max(0, int(delay_s * 1000)))
        return handle

    def now(self) -> float:
        return monotonic()
