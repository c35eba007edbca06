"""Status change notifications.

The transition executor publishes one ``StatusChangedEvent`` per committed
transition. Dashboards, summaries and the Slack integration subscribe to
recompute or relay it.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

STATUS_CHANGED = "status_changed"


@dataclass(frozen=True)
class StatusChangedEvent:
    timestamp: str
    kind: str
    entity_id: str
    from_status: str
    to_status: str
    automatic: bool = False
    name: str = STATUS_CHANGED

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "timestamp": self.timestamp,
            "kind": self.kind,
            "entity_id": self.entity_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "automatic": self.automatic,
        }


Subscriber = Callable[[StatusChangedEvent], None]


class StatusChangeBus:
    """Synchronous publish/subscribe channel for status change events."""

    def __init__(self):
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(subscriber)

        def unsubscribe():
            with self._lock:
                if subscriber in self._subscribers:
                    self._subscribers.remove(subscriber)

        return unsubscribe

    def publish(self, event: StatusChangedEvent):
        """Deliver an event to every subscriber. A failing subscriber is logged and skipped."""
        with self._lock:
            subscribers = list(self._subscribers)
        for subscriber in subscribers:
            try:
                subscriber(event)
            except Exception:
                logger.exception("Status change subscriber failed for %s %s", event.kind, event.entity_id)
