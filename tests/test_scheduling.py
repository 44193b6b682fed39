import asyncio

from board.reorder.scheduling import AsyncioScheduler

from tests.factories import ManualScheduler


def test_asyncio_scheduler_fires_and_cancels():
    fired = []

    async def run():
        scheduler = AsyncioScheduler()
        scheduler.call_later(0.01, lambda: fired.append("kept"))
        handle = scheduler.call_later(0.01, lambda: fired.append("cancelled"))
        handle.cancel()
        await asyncio.sleep(0.05)

    asyncio.run(run())
    assert fired == ["kept"]


def test_asyncio_scheduler_uses_given_loop():
    loop = asyncio.new_event_loop()
    try:
        fired = []
        AsyncioScheduler(loop).call_later(0, lambda: fired.append(1))
        loop.run_until_complete(asyncio.sleep(0.01))
        assert fired == [1]
    finally:
        loop.close()


def test_manual_scheduler_only_fires_due_handles():
    scheduler = ManualScheduler()
    fired = []
    scheduler.call_later(10, lambda: fired.append("a"))
    scheduler.call_later(20, lambda: fired.append("b")).cancel()
    assert scheduler.advance(5) == 0
    assert scheduler.advance(20) == 1
    assert fired == ["a"]
    assert scheduler.active == []
