# backend/tutorhub/models/booking.py
"""
Booking model.

A booking is a commitment for [start_at, end_at) between a student and a
teacher. The price is snapshotted from the subject offering when the booking
is reserved, so later rate edits never change existing bookings. Bookings
are never deleted; they only advance through their status machine.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
import logging
from typing import TYPE_CHECKING, Dict, FrozenSet, Optional

from sqlalchemy import CheckConstraint, Enum as SAEnum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from ..core.exceptions import StateTransitionException
from ..database import Base
from .types import TimestampMixin, UTCDateTime, utcnow

if TYPE_CHECKING:
    from .teacher import SubjectOffering, TeacherProfile

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "PENDING"  # Awaiting teacher confirmation
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"  # Lesson ended without cancellation
    CANCELLED = "CANCELLED"


class BookingType(str, Enum):
    TRIAL = "TRIAL"
    SINGLE = "SINGLE"
    PACKAGE = "PACKAGE"


# Statuses that occupy the teacher's calendar
ACTIVE_BOOKING_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED}
)

BOOKING_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


def _enum_column(enum_cls: type[Enum], name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        validate_strings=True,
        values_callable=lambda members: [member.value for member in members],
    )


class Booking(TimestampMixin, Base):
    """A reserved lesson between a student and a teacher."""

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(
        String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID())
    )
    teacher_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("teacher_profiles.id"), nullable=False
    )
    student_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    subject_offering_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("subject_offerings.id"), nullable=False
    )

    start_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[BookingStatus] = mapped_column(
        _enum_column(BookingStatus, "booking_status"),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True,
    )
    booking_type: Mapped[BookingType] = mapped_column(
        _enum_column(BookingType, "booking_type"), nullable=False, default=BookingType.SINGLE
    )
    # Snapshot of the offering's rate at reservation time (minor units)
    price_at_booking: Mapped[int] = mapped_column(Integer, nullable=False)
    student_timezone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    confirmed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    cancelled_by_id: Mapped[Optional[str]] = mapped_column(String(26), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    teacher: Mapped["TeacherProfile"] = relationship("TeacherProfile")
    subject_offering: Mapped["SubjectOffering"] = relationship("SubjectOffering")

    __table_args__ = (
        CheckConstraint("end_at > start_at", name="ck_bookings_time_order"),
        CheckConstraint("price_at_booking >= 0", name="ck_bookings_price_non_negative"),
        CheckConstraint("duration_minutes > 0", name="ck_bookings_duration_positive"),
        Index("idx_bookings_teacher_status_start", "teacher_id", "status", "start_at"),
        Index("idx_bookings_status_end", "status", "end_at"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES

    def _transition(self, target: BookingStatus) -> None:
        current = BookingStatus(self.status)
        if target not in BOOKING_TRANSITIONS[current]:
            raise StateTransitionException("booking", current.value, target.value)
        self.status = target

    def confirm(self, at: Optional[datetime] = None) -> None:
        self._transition(BookingStatus.CONFIRMED)
        self.confirmed_at = at or utcnow()
        logger.info(f"Booking {self.id} confirmed")

    def cancel(
        self, cancelled_by_id: str, reason: Optional[str] = None, at: Optional[datetime] = None
    ) -> None:
        self._transition(BookingStatus.CANCELLED)
        self.cancelled_at = at or utcnow()
        self.cancelled_by_id = cancelled_by_id
        self.cancellation_reason = reason
        logger.info(f"Booking {self.id} cancelled by user {cancelled_by_id}")

    def complete(self, at: Optional[datetime] = None) -> None:
        self._transition(BookingStatus.COMPLETED)
        self.completed_at = at or utcnow()
        logger.info(f"Booking {self.id} marked as completed")

    def void_completed(self, voided_by_id: str, reason: str, at: Optional[datetime] = None) -> None:
        """Dispute resolution: cancel a lesson that already completed."""
        current = BookingStatus(self.status)
        if current != BookingStatus.COMPLETED:
            raise StateTransitionException("booking", current.value, BookingStatus.CANCELLED.value)
        self.status = BookingStatus.CANCELLED
        self.cancelled_at = at or utcnow()
        self.cancelled_by_id = voided_by_id
        self.cancellation_reason = reason
        logger.warning(f"Completed booking {self.id} voided by {voided_by_id}")

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<Booking {self.id} teacher={self.teacher_id} {self.start_at}-{self.end_at} {self.status}>"
