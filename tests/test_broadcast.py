"""Tests for ralph_monitor.lib.broadcast."""

from ralph_monitor.lib.broadcast import (
    EVENT_HEARTBEAT,
    EVENT_UPDATE,
    BroadcastEvent,
    ChangeBroadcaster,
    Subscription,
)


class TestChangeBroadcaster:
    """Tests for ChangeBroadcaster."""

    def test_notify_reaches_every_subscriber(self):
        broadcaster = ChangeBroadcaster()
        first = broadcaster.subscribe()
        second = broadcaster.subscribe()

        assert broadcaster.notify() == 2
        for sub in (first, second):
            event = sub.get(timeout=1)
            assert event.kind == EVENT_UPDATE
            assert event.updated_at > 0

    def test_heartbeat_event(self):
        broadcaster = ChangeBroadcaster()
        with broadcaster.subscribe() as sub:
            broadcaster.heartbeat()
            assert sub.get(timeout=1).kind == EVENT_HEARTBEAT

    def test_leaving_unsubscribes(self):
        """Departed subscribers no longer count as fan-out targets."""
        broadcaster = ChangeBroadcaster()
        with broadcaster.subscribe():
            assert broadcaster.subscriber_count == 1
        assert broadcaster.subscriber_count == 0
        assert broadcaster.notify() == 0

    def test_explicit_unsubscribe(self):
        broadcaster = ChangeBroadcaster()
        sub = broadcaster.subscribe()
        broadcaster.unsubscribe(sub)
        broadcaster.unsubscribe(sub)
        assert broadcaster.subscriber_count == 0

    def test_get_times_out(self):
        broadcaster = ChangeBroadcaster()
        with broadcaster.subscribe() as sub:
            assert sub.get(timeout=0.01) is None


class TestSubscription:
    """Tests for Subscription."""

    def test_full_queue_drops(self):
        """A lagging subscriber loses events instead of blocking the sender."""
        sub = Subscription(ChangeBroadcaster(), maxsize=1)
        assert sub.deliver(BroadcastEvent(EVENT_UPDATE, 1))
        assert not sub.deliver(BroadcastEvent(EVENT_UPDATE, 2))
        assert sub.get(timeout=0).updated_at == 1
