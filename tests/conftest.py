# Shared fixtures for the reorder engine tests. Qt-based tests run on the
# offscreen platform so they never need a display.

import os

import pytest

from board.reorder.drag_controller import DragController
from board.reorder.notices import NoticeSink
from board.reorder.optimistic_store import OptimisticStore
from board.reorder.reconciliation import ReconciliationProtocol
from board.services.event_bus import EventBus
from board.services.settings_service import ReorderSettings

from tests.factories import InMemoryBackend, ManualScheduler, RecordingNotifier

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def settings():
    return ReorderSettings(position_gap=1024, tight_threshold=8, min_batch_gap=512,
                           operation_timeout_s=30.0)


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def engine(bus, scheduler, notifier, settings, backend):
    """Store + protocol + controller wired over the in-memory backend."""

    class Engine:
        pass

    e = Engine()
    e.bus = bus
    e.scheduler = scheduler
    e.notifier = notifier
    e.backend = backend
    e.store = OptimisticStore.create(event_bus=bus)
    e.notices = NoticeSink(notifier, event_bus=bus)
    e.protocol = ReconciliationProtocol(e.store, backend, notices=e.notices, event_bus=bus)
    e.controller = DragController(
        e.store,
        e.protocol,
        settings=settings,
        scheduler=scheduler,
        notices=e.notices,
        event_bus=bus,
    )
    return e
