import json
import logging

import pytest

from board.services.event_bus import BoardEvent, EventBus
from board.services.reorder_log import ReorderLogService


@pytest.fixture()
def setup_logging():
    bus = EventBus()
    svc = ReorderLogService(capacity=5, event_bus=bus)
    svc.attach()
    yield svc, bus
    svc.detach()


def test_capture_and_retrieve(setup_logging):
    svc, _ = setup_logging
    logging.getLogger("board.reorder.drag_controller").info("drop a -> doing")
    assert any(e.message == "drop a -> doing" for e in svc.recent())


def test_records_outside_namespace_ignored(setup_logging):
    svc, _ = setup_logging
    logging.getLogger("elsewhere").warning("not ours")
    assert svc.recent() == []


def test_capacity_eviction(setup_logging):
    svc, _ = setup_logging
    for i in range(10):
        logging.getLogger("board.cap").info("M%d", i)
    recents = svc.recent()
    assert len(recents) == 5  # capacity
    assert recents[0].message == "M5"
    assert len(svc.recent(limit=2)) == 2


def test_filtering(setup_logging):
    svc, _ = setup_logging
    logging.getLogger("board.reorder.reconciliation").warning("batch failed")
    logging.getLogger("board.reorder.position_allocator").debug("renumbering")
    assert [e.message for e in svc.filter(level="WARNING")] == ["batch failed"]
    allocator = svc.filter(name_contains="allocator")
    assert allocator and all("allocator" in e.name for e in allocator)


def test_event_emission(setup_logging):
    svc, bus = setup_logging
    seen = []
    bus.subscribe(BoardEvent.LOG_RECORD_ADDED, lambda e: seen.append(e.payload))
    logging.getLogger("board.x").error("boom")
    assert seen and seen[-1]["level"] == "ERROR"
    assert seen[-1]["message"] == "boom"


def test_export_jsonl(setup_logging, tmp_path):
    svc, _ = setup_logging
    logging.getLogger("board.a").info("one")
    logging.getLogger("board.b").warning("two")
    path = tmp_path / "log.jsonl"
    count = svc.export_jsonl(str(path), level="WARNING")
    assert count == 1
    lines = path.read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[0])["message"] == "two"


def test_detach_stops_capture(setup_logging):
    svc, _ = setup_logging
    svc.detach()
    assert not svc.attached
    logging.getLogger("board.late").info("after detach")
    assert svc.recent() == []
    svc.clear()
