from board.services.event_bus import BoardEvent, EventBus


def test_subscribe_publish_basic():
    bus = EventBus()
    received = []

    def handler(evt):
        received.append((evt.name, evt.payload))

    bus.subscribe(BoardEvent.STORE_CHANGED, handler)
    bus.publish(BoardEvent.STORE_CHANGED, {"version": 1})
    assert received == [(BoardEvent.STORE_CHANGED.value, {"version": 1})]


def test_subscribe_and_publish_order():
    bus = EventBus()
    order = []
    bus.subscribe(BoardEvent.NOTIFICATION, lambda e: order.append("h1"))
    bus.subscribe(BoardEvent.NOTIFICATION, lambda e: order.append("h2"))
    bus.publish(BoardEvent.NOTIFICATION)
    assert order == ["h1", "h2"]


def test_once_subscription():
    bus = EventBus()
    count = 0

    def incr(_):
        nonlocal count
        count += 1

    bus.subscribe(BoardEvent.REORDER_INVALIDATED, incr, once=True)
    bus.publish(BoardEvent.REORDER_INVALIDATED)
    bus.publish(BoardEvent.REORDER_INVALIDATED)
    assert count == 1  # second publish ignored
    assert bus.subscriber_count(BoardEvent.REORDER_INVALIDATED) == 0


def test_error_isolation():
    bus = EventBus()
    order = []

    def bad(_):
        order.append("bad")
        raise RuntimeError("boom")

    bus.subscribe("custom", bad)
    bus.subscribe("custom", lambda _: order.append("good"))
    bus.publish("custom", 123)
    # Both handlers executed despite error
    assert order == ["bad", "good"]
    assert len(bus.errors) == 1


def test_unsubscribe_and_cancel():
    bus = EventBus()
    hits = []
    sub = bus.subscribe(BoardEvent.DRAG_STATE_CHANGED, hits.append)
    other = bus.subscribe(BoardEvent.DRAG_STATE_CHANGED, hits.append)
    bus.unsubscribe(sub)
    other.cancel()
    bus.publish(BoardEvent.DRAG_STATE_CHANGED, {"state": "idle"})
    assert hits == []
    assert not sub.active


def test_clear_drops_subscribers():
    bus = EventBus()
    bus.subscribe(BoardEvent.STORE_CHANGED, lambda e: None)
    bus.clear()
    assert bus.subscriber_count(BoardEvent.STORE_CHANGED) == 0
