"""
Outbound progress events.

Notification, webhook and audit collaborators subscribe here; the engine only
publishes after a successful commit and does not care how events are delivered.
"""
import inspect
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from backend.utils.logger import get_logger

logger = get_logger(__name__)


class EventKind:
    MILESTONE_PROGRESS = "milestone_progress_changed"
    BOOKING_PROGRESS = "booking_progress_changed"
    APPROVAL_REQUESTED = "approval_requested"
    APPROVAL_RESOLVED = "approval_resolved"


@dataclass
class ProgressEvent:
    booking_id: int
    kind: str
    milestone_id: Optional[int] = None
    task_id: Optional[int] = None
    new_progress: Optional[int] = None
    approval_id: Optional[int] = None
    approval_status: Optional[str] = None
    occurred_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["occurred_at"] = self.occurred_at.isoformat()
        return {k: v for k, v in data.items() if v is not None}


Subscriber = Callable[[ProgressEvent], Any]


class EventBus:
    """
    Fan-out of progress events to subscribers
    """

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Subscriber:
        if subscriber not in self._subscribers:
            self._subscribers.append(subscriber)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def clear(self) -> None:
        self._subscribers.clear()

    async def publish(self, event: ProgressEvent) -> None:
        # Delivery failures belong to the subscriber, never to the mutation
        for subscriber in list(self._subscribers):
            try:
                result = subscriber(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Event subscriber {subscriber!r} failed for {event.kind}")

    async def publish_all(self, events: List[ProgressEvent]) -> None:
        for event in events:
            await self.publish(event)


def log_event(event: ProgressEvent) -> None:
    logger.info(f"Progress event: {event.to_dict()}")


event_bus = EventBus()
