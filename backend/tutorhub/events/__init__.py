from .booking_events import (
    BookingCancelled,
    BookingCompleted,
    BookingConfirmed,
    BookingCreated,
    BookingRescheduled,
)
from .payout_events import PayoutStatusChanged
from .publisher import Event, EventPublisher

__all__ = [
    "BookingCancelled",
    "BookingCompleted",
    "BookingConfirmed",
    "BookingCreated",
    "BookingRescheduled",
    "Event",
    "EventPublisher",
    "PayoutStatusChanged",
]
