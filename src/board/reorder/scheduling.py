"""Timer scheduling seam for operation timeouts.

The drag controller never sleeps; it asks a ``Scheduler`` to call it back
later and keeps the returned handle so the timer can be cancelled when the
operation resolves. ``AsyncioScheduler`` targets the asyncio loop the
reconciliation tasks run on; ``board.qt.timer_scheduler`` provides the Qt
event loop variant.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional, Protocol

__all__ = ["Cancellable", "Scheduler", "AsyncioScheduler"]


class Cancellable(Protocol):
    def cancel(self) -> None: ...  # pragma: no cover - structural


class Scheduler(Protocol):
    def call_later(self, delay_s: float, callback: Callable[[], None]) -> Cancellable: ...

    def now(self) -> float: ...


class AsyncioScheduler:
    """Schedules callbacks on an asyncio event loop.

    Without an explicit loop, the loop running at ``call_later`` time is
    used.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay_s, callback)

    def now(self) -> float:
        return time.monotonic()
