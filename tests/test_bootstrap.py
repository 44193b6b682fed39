import asyncio

import pytest

from board import BoardEvent, create_board
from board.reorder.group_builder import GroupDefinition
from board.reorder.notices import NoticeCategory
from board.services.service_locator import ServiceNotFoundError

from tests.factories import InMemoryBackend, ManualScheduler, RecordingNotifier, make_item, make_snapshot

DEFS = [GroupDefinition("todo", "To Do", 0), GroupDefinition("doing", "Doing", 1)]


def _items():
    return make_item("a", "todo", 1024, title="Alpha"), make_item("b", "todo", 2048)


def test_bootstrap_registers_components():
    ctx = create_board(
        "view-1",
        InMemoryBackend.from_items(*_items()),
        snapshot=make_snapshot(*_items()),
        scheduler=ManualScheduler(),
        definitions=DEFS,
    )
    assert set(ctx.services.list_keys()) >= {
        "event_bus",
        "settings",
        "reorder_log",
        "optimistic_store",
        "transport",
        "reconciliation",
        "drag_controller",
        "board_viewmodel",
    }
    assert ctx.view_id == "view-1"
    assert ctx.duration_s >= 0
    assert ctx.log_service.attached
    assert [g.id for g in ctx.viewmodel.groups()] == ["todo", "doing"]
    ctx.dispose()


def test_end_to_end_move_through_context():
    items = _items()
    notifier = RecordingNotifier()
    invalidations = []
    ctx = create_board(
        "view-1",
        InMemoryBackend.from_items(*items),
        snapshot=make_snapshot(*items),
        scheduler=ManualScheduler(),
        notifier=notifier,
        definitions=DEFS,
        attach_logging=False,
    )
    ctx.event_bus.subscribe(BoardEvent.REORDER_INVALIDATED, lambda e: invalidations.append(e.payload))

    async def run():
        assert ctx.viewmodel.begin_drag("a")
        assert not ctx.viewmodel.begin_drag("b")
        outcome = ctx.controller.on_drop("todo", "doing", 0)
        # the view model already reflects the optimistic move
        assert ctx.viewmodel.group("doing").item_ids() == ["a"]
        assert ctx.viewmodel.operations_in_progress == frozenset({"a"})
        assert ctx.viewmodel.has_pending_updates
        await outcome.task

    asyncio.run(run())
    assert ctx.viewmodel.group("todo").item_ids() == ["b"]
    assert ctx.viewmodel.counts() == {"all": 2, "active": 2, "backlog": 1}
    assert notifier.of(NoticeCategory.INFO) == ["Moved Alpha to doing"]
    assert [p["outcome"] for p in invalidations] == ["confirmed"]
    ctx.dispose()


def test_dispose_tears_everything_down():
    items = _items()
    ctx = create_board(
        "view-2",
        InMemoryBackend.from_items(*items),
        snapshot=make_snapshot(*items),
        scheduler=ManualScheduler(),
    )
    log_service = ctx.log_service
    store = ctx.store
    ctx.dispose()
    assert ctx.disposed
    assert not log_service.attached
    assert store.items() == ()
    with pytest.raises(ServiceNotFoundError):
        ctx.services.get("event_bus")
    ctx.dispose()  # idempotent


def test_move_group_reports_column_order():
    updates = []
    ctx = create_board(
        "view-3",
        InMemoryBackend(),
        snapshot=make_snapshot(*_items()),
        scheduler=ManualScheduler(),
        definitions=DEFS,
        on_group_update=lambda gid, data: updates.append((gid, data)),
        attach_logging=False,
    )
    seen = []
    ctx.event_bus.subscribe(BoardEvent.COLUMN_ORDER_CHANGED, lambda e: seen.append(e.payload))
    assert ctx.viewmodel.move_group(1, 0)
    assert [g.id for g in ctx.viewmodel.groups()] == ["doing", "todo"]
    assert updates == [("doing", {"order": 0}), ("todo", {"order": 1})]
    assert seen == [{"order": ["doing", "todo"]}]
    assert not ctx.viewmodel.move_group(0, 0)
    assert not ctx.viewmodel.move_group(0, 9)
    ctx.dispose()
