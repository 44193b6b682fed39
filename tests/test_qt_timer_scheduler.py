import time

import pytest

QtCore = pytest.importorskip("PyQt6.QtCore")

from board.qt.timer_scheduler import QtTimerScheduler  # noqa: E402


@pytest.fixture(scope="module")
def qapp():
    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication([])
    yield app


def _pump(app, seconds):
    deadline = time.monotonic() + seconds
    while time.monotonic() < deadline:
        app.processEvents()
        time.sleep(0.005)


def test_callback_fires_once_on_qt_loop(qapp):
    fired = []
    scheduler = QtTimerScheduler()
    handle = scheduler.call_later(0.01, lambda: fired.append("a"))
    assert handle.active
    _pump(qapp, 0.2)
    assert fired == ["a"]
    assert not handle.active


def test_cancelled_timer_never_fires(qapp):
    fired = []
    scheduler = QtTimerScheduler()
    handle = scheduler.call_later(0.05, lambda: fired.append("a"))
    handle.cancel()
    _pump(qapp, 0.15)
    assert fired == []


def test_now_is_monotonic():
    scheduler = QtTimerScheduler()
    first = scheduler.now()
    assert scheduler.now() >= first


def test_fired_timer_is_released_from_its_parent(qapp):
    parent = QtCore.QObject()
    scheduler = QtTimerScheduler(parent)
    handle = scheduler.call_later(0.01, lambda: None)
    assert len(parent.findChildren(QtCore.QTimer)) == 1
    _pump(qapp, 0.2)
    QtCore.QCoreApplication.sendPostedEvents(None, QtCore.QEvent.Type.DeferredDelete.value)
    assert parent.findChildren(QtCore.QTimer) == []
    assert not handle.active
    handle.cancel()  # already released


def test_cancelled_timer_is_released_from_its_parent(qapp):
    parent = QtCore.QObject()
    handle = QtTimerScheduler(parent).call_later(5, lambda: None)
    handle.cancel()
    handle.cancel()
    QtCore.QCoreApplication.sendPostedEvents(None, QtCore.QEvent.Type.DeferredDelete.value)
    assert parent.findChildren(QtCore.QTimer) == []
    assert not handle.active
