"""Booking domain events."""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class BookingCreated:
    """Fired after a booking is successfully reserved."""

    booking_id: str
    teacher_id: str
    student_id: str
    start_at: datetime
    end_at: datetime
    status: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingConfirmed:
    """Fired when the teacher accepts a pending booking."""

    booking_id: str
    teacher_id: str
    student_id: str
    confirmed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingRescheduled:
    """Fired after a booking moves to a new time."""

    booking_id: str
    teacher_id: str
    student_id: str
    previous_start_at: datetime
    start_at: datetime
    end_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingCancelled:
    """Fired after a booking is cancelled."""

    booking_id: str
    teacher_id: str
    student_id: str
    cancelled_by: str
    cancelled_at: datetime
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingCompleted:
    """Fired after a booking is marked complete."""

    booking_id: str
    teacher_id: str
    completed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
