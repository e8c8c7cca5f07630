"""Tests for the change notifier."""

from datetime import datetime, timezone

from src.common.events import ChangeEvent, ChangeNotifier


def event(kind="clinician") -> ChangeEvent:
    return ChangeEvent(kind=kind, record=None, occurred_at=datetime(2025, 1, 6, 8, 0, tzinfo=timezone.utc))


def test_subscribers_receive_events():
    notifier = ChangeNotifier()
    received = []
    notifier.subscribe(received.append)

    notifier.publish(event())
    assert [e.kind for e in received] == ["clinician"]


def test_unsubscribe():
    notifier = ChangeNotifier()
    received = []
    unsubscribe = notifier.subscribe(received.append)
    unsubscribe()
    unsubscribe()

    notifier.publish(event())
    assert received == []
    assert notifier.subscriber_count == 0


def test_failing_subscriber_does_not_stop_others():
    notifier = ChangeNotifier()
    received = []

    def broken(_):
        raise ValueError("websocket closed")

    notifier.subscribe(broken)
    notifier.subscribe(received.append)

    notifier.publish(event("visit_session"))
    assert [e.kind for e in received] == ["visit_session"]
