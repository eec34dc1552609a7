# backend/tutorhub/services/booking_service.py
"""
Booking Service

Reservation and lifecycle of lessons. Slot listings are advisory; every
write re-validates against the current rules and bookings while holding
the teacher's booking mutex, so two overlapping reservations for the same
teacher can never both commit.
"""

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    ForbiddenException,
    LockUnavailableException,
    NotFoundException,
    SlotTakenException,
    StateTransitionException,
    ValidationException,
)
from ..core.money import price_for_duration
from ..core.teacher_lock import teacher_lock
from ..domain.availability_rules import RULE_DATE_PAD, Interval, to_domain_rules
from ..events import (
    BookingCancelled,
    BookingCompleted,
    BookingConfirmed,
    BookingCreated,
    BookingRescheduled,
    EventPublisher,
)
from ..models.booking import Booking, BookingStatus, BookingType
from ..models.teacher import SubjectOffering, TeacherProfile
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .slot_generator import interval_is_open
from .timezone_service import TimezoneService
from .wallet_service import WalletService

logger = logging.getLogger(__name__)

COMPLETION_BATCH_SIZE = 500
RECENT_STATS_WINDOW = timedelta(days=183)


def _as_utc(value: datetime, field: str) -> datetime:
    if value.tzinfo is None:
        raise ValidationException(
            f"{field} must include a timezone offset",
            code="NAIVE_DATETIME",
            details={"field": field},
        )
    return value.astimezone(timezone.utc)


class BookingService(BaseService):
    """Reserve, confirm, cancel, reschedule and complete bookings."""

    def __init__(
        self,
        db: Session,
        event_publisher: Optional[EventPublisher] = None,
        wallet_service: Optional[WalletService] = None,
    ):
        super().__init__(db)
        self.repository = RepositoryFactory.create_booking_repository(db)
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)
        self.availability_repository = RepositoryFactory.create_availability_repository(db)
        self.wallet_service = wallet_service or WalletService(db)
        self.event_publisher = event_publisher or EventPublisher()

    # Lookups

    def _get_teacher(self, teacher_id: str) -> TeacherProfile:
        teacher = self.teacher_repository.get_by_id(teacher_id, load_relationships=False)
        if not teacher:
            raise NotFoundException(f"Teacher {teacher_id} not found", code="TEACHER_NOT_FOUND")
        return teacher

    def _get_booking(self, booking_id: str) -> Booking:
        booking = self.repository.get_by_id(booking_id, load_relationships=False)
        if not booking:
            raise NotFoundException(f"Booking {booking_id} not found", code="BOOKING_NOT_FOUND")
        return booking

    def _get_offering(self, teacher_id: str, offering_id: str) -> SubjectOffering:
        offering = self.teacher_repository.get_offering(offering_id)
        if not offering or offering.teacher_id != teacher_id:
            raise NotFoundException(
                f"Subject offering {offering_id} not found for this teacher",
                code="OFFERING_NOT_FOUND",
            )
        if not offering.is_active:
            raise ValidationException(
                "This subject is not currently offered", code="OFFERING_INACTIVE"
            )
        return offering

    # Validation

    def _validate_interval(
        self, teacher: TeacherProfile, start_at: datetime, end_at: datetime, now: datetime
    ) -> int:
        """Check shape, duration and notice window; returns the duration in minutes."""
        if end_at <= start_at:
            raise ValidationException("end_at must be after start_at", code="INVALID_TIME_RANGE")

        length = end_at - start_at
        duration_minutes = int(length.total_seconds() // 60)
        if length != timedelta(minutes=duration_minutes) or not teacher.allows_duration(
            duration_minutes
        ):
            raise ValidationException(
                "Lesson length is not offered by this teacher",
                code="INVALID_DURATION",
                details={
                    "duration_minutes": length.total_seconds() / 60,
                    "allowed_durations": list(teacher.allowed_durations or []),
                },
            )

        notice = teacher.min_notice_minutes
        if notice is None:
            notice = settings.min_booking_lead_minutes
        earliest = now + timedelta(minutes=notice)
        if start_at <= earliest:
            raise ValidationException(
                f"Bookings need at least {notice} minutes notice",
                code="INSUFFICIENT_NOTICE",
                details={"earliest_start": earliest.isoformat()},
            )

        horizon = now + timedelta(days=settings.max_advance_days)
        if start_at > horizon:
            raise ValidationException(
                f"Bookings can be made at most {settings.max_advance_days} days ahead",
                code="BEYOND_BOOKING_HORIZON",
                details={"latest_start": horizon.isoformat()},
            )
        return duration_minutes

    def _assert_slot_free(
        self,
        teacher: TeacherProfile,
        start_at: datetime,
        end_at: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> None:
        """Commit-time check against the live rules and bookings."""
        first = TimezoneService.utc_to_local(start_at, teacher.timezone).date()
        last = TimezoneService.utc_to_local(end_at, teacher.timezone).date()
        rows = self.availability_repository.get_rules_for_range(
            teacher.id, first - RULE_DATE_PAD, last + RULE_DATE_PAD
        )
        if not interval_is_open(to_domain_rules(rows), Interval(start_at, end_at)):
            raise ValidationException(
                "The teacher is not available at this time",
                code="OUTSIDE_AVAILABILITY",
                details={"start_at": start_at.isoformat(), "end_at": end_at.isoformat()},
            )

        conflicts = self.repository.find_overlapping(
            teacher.id, start_at, end_at, exclude_booking_id=exclude_booking_id
        )
        if conflicts:
            raise SlotTakenException(details={"conflicting_booking_id": conflicts[0].id})

    def _lock_teacher_row(self, teacher_id: str) -> None:
        try:
            self.teacher_repository.lock_profile(teacher_id)
        except LockUnavailableException:
            raise SlotTakenException()

    def _require_participant(self, booking: Booking, actor_id: str) -> TeacherProfile:
        teacher = self._get_teacher(booking.teacher_id)
        if actor_id not in (booking.student_id, teacher.user_id):
            raise ForbiddenException("You can only manage your own bookings")
        return teacher

    # Reservation

    @BaseService.measure_operation("reserve")
    def reserve(
        self,
        teacher_id: str,
        student_id: str,
        subject_offering_id: str,
        start_at: datetime,
        end_at: datetime,
        booking_type: BookingType = BookingType.SINGLE,
        student_timezone: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Reserve [start_at, end_at) with a teacher.

        Raises SlotTakenException when another reservation for the same
        teacher is in flight or the interval is already booked; the caller
        should re-fetch slots rather than retry blindly.
        """
        start_at = _as_utc(start_at, "start_at")
        end_at = _as_utc(end_at, "end_at")
        now = now or datetime.now(timezone.utc)
        if student_timezone:
            TimezoneService.get_timezone(student_timezone)

        teacher = self._get_teacher(teacher_id)
        if teacher.user_id == student_id:
            raise ValidationException("Teachers cannot book themselves", code="SELF_BOOKING")
        duration_minutes = self._validate_interval(teacher, start_at, end_at, now)

        with teacher_lock(teacher_id, "bookings") as acquired:
            if not acquired:
                logger.info(
                    "Reservation lost the teacher lock",
                    extra={"teacher_id": teacher_id, "student_id": student_id},
                )
                raise SlotTakenException()
            with self.transaction():
                self._lock_teacher_row(teacher_id)
                offering = self._get_offering(teacher_id, subject_offering_id)
                self._assert_slot_free(teacher, start_at, end_at)

                instant = teacher.instant_confirmation or settings.instant_confirmation_default
                booking = self.repository.create(
                    teacher_id=teacher_id,
                    student_id=student_id,
                    subject_offering_id=offering.id,
                    start_at=start_at,
                    end_at=end_at,
                    duration_minutes=duration_minutes,
                    booking_type=booking_type,
                    # Snapshot: later rate changes never touch this booking
                    price_at_booking=price_for_duration(offering.price_per_hour, duration_minutes),
                    student_timezone=student_timezone,
                    status=BookingStatus.CONFIRMED if instant else BookingStatus.PENDING,
                    confirmed_at=now if instant else None,
                )

        self.log_operation(
            "reserve",
            booking_id=booking.id,
            teacher_id=teacher_id,
            student_id=student_id,
            status=booking.status.value,
        )
        self.event_publisher.publish(
            BookingCreated(
                booking_id=booking.id,
                teacher_id=teacher_id,
                student_id=student_id,
                start_at=booking.start_at,
                end_at=booking.end_at,
                status=booking.status.value,
            )
        )
        return booking

    # Lifecycle

    @BaseService.measure_operation("confirm")
    def confirm(self, booking_id: str, actor_id: str, is_admin: bool = False) -> Booking:
        booking = self._get_booking(booking_id)
        teacher = self._get_teacher(booking.teacher_id)
        if not is_admin and actor_id != teacher.user_id:
            raise ForbiddenException("Only the teacher can confirm this booking")

        with self.transaction():
            booking.confirm()

        self.log_operation("confirm", booking_id=booking_id, actor_id=actor_id)
        self.event_publisher.publish(
            BookingConfirmed(
                booking_id=booking.id,
                teacher_id=booking.teacher_id,
                student_id=booking.student_id,
                confirmed_at=booking.confirmed_at,
            )
        )
        return booking

    @BaseService.measure_operation("cancel")
    def cancel(
        self,
        booking_id: str,
        actor_id: str,
        reason: Optional[str] = None,
        is_admin: bool = False,
    ) -> Booking:
        """Cancel a PENDING or CONFIRMED booking. Completed lessons stay completed."""
        booking = self._get_booking(booking_id)
        if not is_admin:
            self._require_participant(booking, actor_id)

        with self.transaction():
            booking.cancel(cancelled_by_id=actor_id, reason=reason)

        self.log_operation("cancel", booking_id=booking_id, actor_id=actor_id)
        self._publish_cancelled(booking)
        return booking

    @BaseService.measure_operation("void_completed")
    def void_completed(self, booking_id: str, actor_id: str, reason: str) -> Booking:
        """
        Administrative correction of a COMPLETED booking.

        The booking becomes CANCELLED and its earning is offset by a
        reversal entry in the same transaction, under the wallet mutex.
        """
        booking = self._get_booking(booking_id)
        with self.wallet_service.locked_wallet(booking.teacher_id):
            booking.void_completed(voided_by_id=actor_id, reason=reason)
            self.wallet_service.append_reversal(booking.id, reason)

        self.log_operation("void_completed", booking_id=booking_id, actor_id=actor_id)
        self._publish_cancelled(booking)
        return booking

    @BaseService.measure_operation("reschedule")
    def reschedule(
        self,
        booking_id: str,
        actor_id: str,
        new_start_at: datetime,
        new_end_at: datetime,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Move an active booking to a new interval of the same length.

        The price snapshot is kept. The new interval is validated exactly
        like a fresh reservation, ignoring the booking's own current slot.
        """
        new_start_at = _as_utc(new_start_at, "start_at")
        new_end_at = _as_utc(new_end_at, "end_at")
        now = now or datetime.now(timezone.utc)

        booking = self._get_booking(booking_id)
        teacher = self._require_participant(booking, actor_id)
        if not booking.is_active:
            raise StateTransitionException("booking", booking.status.value, "RESCHEDULED")
        duration_minutes = self._validate_interval(teacher, new_start_at, new_end_at, now)
        if duration_minutes != booking.duration_minutes:
            raise ValidationException(
                "Rescheduling cannot change the lesson length",
                code="DURATION_CHANGE_NOT_ALLOWED",
                details={
                    "current_duration": booking.duration_minutes,
                    "requested_duration": duration_minutes,
                },
            )

        previous_start_at = booking.start_at
        with teacher_lock(booking.teacher_id, "bookings") as acquired:
            if not acquired:
                raise SlotTakenException()
            with self.transaction():
                self._lock_teacher_row(booking.teacher_id)
                self._assert_slot_free(
                    teacher, new_start_at, new_end_at, exclude_booking_id=booking.id
                )
                booking.start_at = new_start_at
                booking.end_at = new_end_at

        self.log_operation(
            "reschedule",
            booking_id=booking_id,
            actor_id=actor_id,
            previous_start_at=previous_start_at.isoformat(),
        )
        self.event_publisher.publish(
            BookingRescheduled(
                booking_id=booking.id,
                teacher_id=booking.teacher_id,
                student_id=booking.student_id,
                previous_start_at=previous_start_at,
                start_at=booking.start_at,
                end_at=booking.end_at,
            )
        )
        return booking

    @BaseService.measure_operation("complete_due_bookings")
    def complete_due_bookings(self, now: Optional[datetime] = None) -> int:
        """
        Mark CONFIRMED bookings whose lesson has ended as COMPLETED.

        Each completion and its wallet earning commit together. Running
        this twice is harmless: completed bookings no longer match and the
        earning is idempotent per booking.
        """
        now = now or datetime.now(timezone.utc)
        completed: List[Booking] = []
        while True:
            due = self.repository.find_due_for_completion(now, limit=COMPLETION_BATCH_SIZE)
            if not due:
                break
            with self.transaction():
                for booking in due:
                    booking.complete(at=now)
                    self.wallet_service.record_earning(booking, completed_at=now)
            completed.extend(due)
            if len(due) < COMPLETION_BATCH_SIZE:
                break

        for booking in completed:
            self.event_publisher.publish(
                BookingCompleted(
                    booking_id=booking.id,
                    teacher_id=booking.teacher_id,
                    completed_at=booking.completed_at,
                )
            )
        self.log_operation("complete_due_bookings", completed=len(completed))
        return len(completed)

    # Reads

    def get_booking(
        self, booking_id: str, actor_id: Optional[str] = None, is_admin: bool = False
    ) -> Booking:
        booking = self._get_booking(booking_id)
        if actor_id is not None and not is_admin:
            self._require_participant(booking, actor_id)
        return booking

    def list_bookings(
        self,
        *,
        teacher_id: Optional[str] = None,
        student_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[List[Booking], int]:
        return self.repository.list_bookings(
            teacher_id=teacher_id,
            student_id=student_id,
            status=status,
            page=page,
            per_page=per_page,
        )

    @BaseService.measure_operation("stats_overview")
    def stats_overview(
        self,
        teacher_id: Optional[str] = None,
        student_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Booking counts by status and by type, for one participant or, with
        neither id given, for the whole platform.

        ``recent_status_distribution`` only counts bookings created in the
        last six months. Every enum value is present, zero when unused.
        """
        now = now or datetime.now(timezone.utc)
        since = now - RECENT_STATS_WINDOW
        scope = {"teacher_id": teacher_id, "student_id": student_id}

        def by_status(**extra: Any) -> Dict[str, int]:
            counts = self.repository.count_grouped_by(Booking.status, **scope, **extra)
            return {s.value: counts.get(s.value, 0) for s in BookingStatus}

        types = self.repository.count_grouped_by(Booking.booking_type, **scope)
        status_distribution = by_status()
        return {
            "total": sum(status_distribution.values()),
            "status_distribution": status_distribution,
            "type_distribution": {t.value: types.get(t.value, 0) for t in BookingType},
            "recent_status_distribution": by_status(created_since=since),
            "recent_since": since,
        }

    def _publish_cancelled(self, booking: Booking) -> None:
        self.event_publisher.publish(
            BookingCancelled(
                booking_id=booking.id,
                teacher_id=booking.teacher_id,
                student_id=booking.student_id,
                cancelled_by=booking.cancelled_by_id,
                cancelled_at=booking.cancelled_at,
                reason=booking.cancellation_reason,
            )
        )
