"""
Fan-out of "a new snapshot may be available" notifications.

Events carry only a timestamp; subscribers pull the snapshot themselves.
Each subscriber gets its own bounded queue so one slow viewer can't hold
up the others. Leaving the subscription (or calling unsubscribe) removes
it from the fan-out set.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

EVENT_UPDATE = "update"
EVENT_HEARTBEAT = "heartbeat"

SUBSCRIBER_QUEUE_SIZE = 64


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class BroadcastEvent:
    kind: str          # update or heartbeat
    updated_at: int    # epoch millis


class Subscription:
    """One viewer's event queue. Use as a context manager to auto-unsubscribe."""

    def __init__(self, broadcaster: "ChangeBroadcaster", maxsize: int = SUBSCRIBER_QUEUE_SIZE):
        self._broadcaster = broadcaster
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)

    def deliver(self, event: BroadcastEvent) -> bool:
        """Queue an event; False if the subscriber is too far behind."""
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            return False
        return True

    def get(self, timeout: Optional[float] = None) -> Optional[BroadcastEvent]:
        """Next event, or None if none arrived within timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        self._broadcaster.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class ChangeBroadcaster:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: set[Subscription] = set()

    def subscribe(self) -> Subscription:
        sub = Subscription(self)
        with self._lock:
            self._subscribers.add(sub)
        logger.debug(f"Subscriber added ({self.subscriber_count} total)")
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            self._subscribers.discard(sub)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def _publish(self, event: BroadcastEvent) -> int:
        with self._lock:
            targets = list(self._subscribers)
        delivered = 0
        for sub in targets:
            if sub.deliver(event):
                delivered += 1
            else:
                # A full queue already holds pending updates; this one adds nothing
                logger.debug(f"Dropped {event.kind} for a lagging subscriber")
        return delivered

    def notify(self) -> int:
        """Tell every subscriber an update is available. Returns deliveries."""
        return self._publish(BroadcastEvent(EVENT_UPDATE, now_ms()))

    def heartbeat(self) -> int:
        """Idle keep-alive so subscribers can detect dead connections."""
        return self._publish(BroadcastEvent(EVENT_HEARTBEAT, now_ms()))
