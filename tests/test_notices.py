from board.reorder.notices import NoticeCategory, NoticeSink
from board.services.event_bus import BoardEvent

from tests.factories import RecordingNotifier


def test_notice_reaches_notifier_and_bus(bus):
    notifier = RecordingNotifier()
    seen = []
    bus.subscribe(BoardEvent.NOTIFICATION, lambda e: seen.append(e.payload))
    sink = NoticeSink(notifier, event_bus=bus)
    sink(NoticeCategory.ERROR, "Move failed. Could not save new position.")
    assert notifier.notices == [(NoticeCategory.ERROR, "Move failed. Could not save new position.")]
    assert seen == [{"category": "error", "message": "Move failed. Could not save new position."}]


def test_notice_without_consumers_is_logged_only(caplog):
    with caplog.at_level("INFO"):
        NoticeSink()(NoticeCategory.INFO, "Moved Alpha to doing")
    assert "Moved Alpha to doing" in caplog.text
