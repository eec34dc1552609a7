"""Event publisher - hands domain events to the notification worker."""
from datetime import datetime
import logging
from typing import Any, Callable, Dict, Optional, Protocol

logger = logging.getLogger(__name__)

Sender = Callable[[str, Dict[str, Any]], None]


class Event(Protocol):
    """Protocol for event types."""

    def to_dict(self) -> Dict[str, Any]:
        ...


def _celery_sender(event_type: str, payload: Dict[str, Any]) -> None:
    from ..tasks.notification_tasks import dispatch_notification

    dispatch_notification.delay(event_type, payload)


class EventPublisher:
    """
    Publishes domain events for asynchronous notification delivery.

    Delivery is fire-and-forget: a failure to enqueue is logged and never
    propagates into the state change that produced the event.
    """

    def __init__(self, sender: Optional[Sender] = None):
        self._send = sender or _celery_sender

    def publish(self, event: Event) -> None:
        event_type = type(event).__name__
        payload = event.to_dict()

        # Convert datetime objects to ISO strings for JSON serialization
        for key, value in payload.items():
            if isinstance(value, datetime):
                payload[key] = value.isoformat()

        try:
            self._send(f"event:{event_type}", payload)
        except Exception as exc:
            logger.warning(
                "event_publish_failed",
                extra={"event_type": event_type, "error": str(exc)},
            )
