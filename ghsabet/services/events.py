"""
In-process event bus for state-change notifications.

Services publish an event only after their transaction commits, so
subscribers never observe state that was rolled back.  Consumers (the
activity feed, logging, anything maintaining a derived view) subscribe by
event name or with ``"*"`` for everything.

Event names:
    account.created   account.updated
    game.created      game.updated      game.deleted
    bet.placed        bet.settled
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

WILDCARD = "*"


@dataclass
class DomainEvent:
    name: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


Subscriber = Callable[[DomainEvent], None]


class EventBus:
    """
    Synchronous publish/subscribe.

    Usage::

        bus = EventBus()
        bus.subscribe("bet.placed", my_callback)
        bus.publish("bet.placed", bet_id=7, user_id=3)
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Subscriber]] = {}
        self._lock = threading.Lock()

    def subscribe(self, name: str, callback: Subscriber) -> None:
        with self._lock:
            self._subscribers.setdefault(name, []).append(callback)

    def unsubscribe(self, name: str, callback: Subscriber) -> None:
        with self._lock:
            callbacks = self._subscribers.get(name, [])
            if callback in callbacks:
                callbacks.remove(callback)

    def publish(self, name: str, **payload: Any) -> DomainEvent:
        """Deliver an event to every matching subscriber and return it."""
        event = DomainEvent(name=name, payload=payload)
        with self._lock:
            callbacks = list(self._subscribers.get(name, [])) + list(
                self._subscribers.get(WILDCARD, [])
            )

        for cb in callbacks:
            try:
                cb(event)
            except Exception as exc:
                # A failing consumer must not undo a committed state change
                logger.error("Event subscriber error on %s: %s", name, exc, exc_info=True)
        return event


class ActivityFeed:
    """Rolling window of recent events for the admin overview."""

    def __init__(self, maxlen: int = 50):
        self._events: Deque[DomainEvent] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def __call__(self, event: DomainEvent) -> None:
        with self._lock:
            self._events.append(event)

    def recent(self, limit: Optional[int] = None) -> List[DomainEvent]:
        """Newest first."""
        with self._lock:
            events = list(reversed(self._events))
        return events[:limit] if limit else events


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus
