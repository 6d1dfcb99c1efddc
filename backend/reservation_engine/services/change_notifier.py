"""In-process fan-out of reservation mutation events.

Services publish a ``MutationEvent`` after their transaction commits;
transports (the websocket manager in ``main.py``) subscribe and own delivery.
A failing subscriber is logged and skipped, it never affects the publisher.
"""

import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

Subscriber = Callable[["MutationEvent"], None]


@dataclass(frozen=True)
class MutationEvent:
    """Summary of one committed mutation."""

    event_type: str  # e.g. booking.create, booking.bulk_operation
    booking_ids: List[int]
    action: str
    actor: str = "system"
    request_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_message(self) -> Dict[str, Any]:
        return {"event": self.event_type, "data": asdict(self), "timestamp": self.timestamp}


class ChangeNotifier:
    """Subscriber registry with a bounded history of recent events."""

    HISTORY_SIZE = 100

    def __init__(self, history_size: int = HISTORY_SIZE):
        self._subscribers: List[Subscriber] = []
        self._history: Deque[MutationEvent] = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: MutationEvent) -> None:
        with self._lock:
            self._history.append(event)
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Change subscriber failed for {event.event_type}: {e}")

    def recent(self, limit: int = 20) -> List[MutationEvent]:
        with self._lock:
            return list(self._history)[-limit:]

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


# Global notifier instance
change_notifier = ChangeNotifier()
