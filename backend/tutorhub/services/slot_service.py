# backend/tutorhub/services/slot_service.py
"""
Slot Service

Read path for students: loads a teacher's rules and live bookings, then
delegates the arithmetic to the pure functions in ``slot_generator``.
Results are advisory; ``BookingService.reserve`` re-validates everything.
"""

from datetime import date, datetime, timedelta, timezone
import logging
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import NotFoundException, ValidationException
from ..core.money import price_for_duration
from ..domain.availability_rules import RULE_DATE_PAD, Interval, Rule, to_domain_rules
from ..models.booking import Booking
from ..models.teacher import SubjectOffering, TeacherProfile
from ..repositories.factory import RepositoryFactory
from ..schemas.slots import (
    AvailableSlotsResponse,
    ScheduleDay,
    ScheduleInterval,
    ScheduleResponse,
    TimeSlotResponse,
)
from .base import BaseService
from .slot_generator import expand_rules, generate_slots
from .timezone_service import TimezoneService

logger = logging.getLogger(__name__)


class SlotService(BaseService):
    """Compute bookable slots and schedule overviews for a teacher."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)
        self.availability_repository = RepositoryFactory.create_availability_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)

    def _get_teacher(self, teacher_id: str) -> TeacherProfile:
        teacher = self.teacher_repository.get_by_id(teacher_id)
        if not teacher:
            raise NotFoundException(f"Teacher {teacher_id} not found", code="TEACHER_NOT_FOUND")
        return teacher

    def _validate_range(self, start_date: date, end_date: date) -> None:
        if end_date < start_date:
            raise ValidationException(
                "end_date must not be before start_date",
                code="INVALID_DATE_RANGE",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )
        span = (end_date - start_date).days + 1
        if span > settings.max_slot_range_days:
            raise ValidationException(
                f"Date range cannot exceed {settings.max_slot_range_days} days",
                code="DATE_RANGE_TOO_LONG",
                details={"days": span, "max_days": settings.max_slot_range_days},
            )

    def _resolve_price(
        self, teacher: TeacherProfile, subject_offering_id: Optional[str], duration_minutes: int
    ) -> Optional[int]:
        offering: Optional[SubjectOffering]
        if subject_offering_id:
            offering = self.teacher_repository.get_offering(subject_offering_id)
            if not offering or offering.teacher_id != teacher.id or not offering.is_active:
                raise NotFoundException(
                    f"Subject offering {subject_offering_id} not found for this teacher",
                    code="OFFERING_NOT_FOUND",
                )
        else:
            active = self.teacher_repository.get_active_offerings(teacher.id)
            offering = active[0] if active else None
        if offering is None:
            return None
        return price_for_duration(offering.price_per_hour, duration_minutes)

    def _load_inputs(
        self, teacher: TeacherProfile, window_start: datetime, window_end: datetime
    ) -> Tuple[List[Rule], List[Booking]]:
        first = TimezoneService.utc_to_local(window_start, teacher.timezone).date()
        last = TimezoneService.utc_to_local(window_end, teacher.timezone).date()
        rows = self.availability_repository.get_rules_for_range(
            teacher.id, first - RULE_DATE_PAD, last + RULE_DATE_PAD
        )
        bookings = self.booking_repository.get_active_in_range(teacher.id, window_start, window_end)
        return to_domain_rules(rows), bookings

    def lead_time_for(self, teacher: TeacherProfile) -> timedelta:
        minutes = teacher.min_notice_minutes
        if minutes is None:
            minutes = settings.min_booking_lead_minutes
        return timedelta(minutes=minutes)

    @BaseService.measure_operation("get_available_slots")
    def get_available_slots(
        self,
        teacher_id: str,
        start_date: date,
        end_date: date,
        duration_minutes: int,
        timezone_str: Optional[str] = None,
        subject_offering_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AvailableSlotsResponse:
        """
        Bookable slots between two dates of the requester's calendar.

        Slots never overlap a PENDING or CONFIRMED booking, start strictly
        after now plus the teacher's lead time, and stop at the advance
        booking horizon. The same inputs always yield the same slots.
        """
        self._validate_range(start_date, end_date)
        teacher = self._get_teacher(teacher_id)
        tz_name = timezone_str or teacher.timezone
        TimezoneService.get_timezone(tz_name)

        if not teacher.allows_duration(duration_minutes):
            raise ValidationException(
                f"Duration {duration_minutes} minutes is not offered by this teacher",
                code="INVALID_DURATION",
                details={
                    "duration_minutes": duration_minutes,
                    "allowed_durations": list(teacher.allowed_durations or []),
                },
            )

        now = now or datetime.now(timezone.utc)
        price = self._resolve_price(teacher, subject_offering_id, duration_minutes)

        window_start, window_end = TimezoneService.day_bounds_utc(start_date, end_date, tz_name)
        window_end = min(window_end, now + timedelta(days=settings.max_advance_days))

        slots: List[TimeSlotResponse] = []
        if window_end > window_start:
            rules, bookings = self._load_inputs(teacher, window_start, window_end)
            busy = [Interval(b.start_at, b.end_at) for b in bookings]
            sequence = generate_slots(
                rules,
                busy,
                window_start,
                window_end,
                duration_minutes,
                settings.slot_granularity_minutes,
                teacher.timezone,
                not_after=now + self.lead_time_for(teacher),
                price=price,
            )
            slots = [
                TimeSlotResponse(
                    start_at=slot.start_at,
                    end_at=slot.end_at,
                    local_start=TimezoneService.utc_to_local(slot.start_at, tz_name),
                    local_end=TimezoneService.utc_to_local(slot.end_at, tz_name),
                    duration_minutes=slot.duration_minutes,
                    price=slot.price,
                    available=slot.available,
                )
                for slot in sequence
            ]

        logger.debug(
            "Generated %s slots for teacher %s (%s..%s, %s min)",
            len(slots),
            teacher_id,
            start_date,
            end_date,
            duration_minutes,
        )
        return AvailableSlotsResponse(
            teacher_id=teacher_id,
            timezone=tz_name,
            duration_minutes=duration_minutes,
            subject_offering_id=subject_offering_id,
            slots=slots,
        )

    @BaseService.measure_operation("get_schedule")
    def get_schedule(
        self,
        teacher_id: str,
        start_date: date,
        end_date: date,
        timezone_str: Optional[str] = None,
    ) -> ScheduleResponse:
        """Per-day view of open availability and booked lessons."""
        self._validate_range(start_date, end_date)
        teacher = self._get_teacher(teacher_id)
        tz_name = timezone_str or teacher.timezone
        TimezoneService.get_timezone(tz_name)

        days: List[ScheduleDay] = []
        window_start, window_end = TimezoneService.day_bounds_utc(start_date, end_date, tz_name)
        rules, bookings = self._load_inputs(teacher, window_start, window_end)
        open_intervals = expand_rules(rules, window_start, window_end)

        day = start_date
        while day <= end_date:
            day_start, day_end = TimezoneService.day_bounds_utc(day, day, tz_name)
            opened = [
                ScheduleInterval(start_at=max(i.start, day_start), end_at=min(i.end, day_end))
                for i in open_intervals
                if i.start < day_end and i.end > day_start
            ]
            booked = [
                ScheduleInterval(start_at=b.start_at, end_at=b.end_at, booking_id=b.id)
                for b in bookings
                if b.start_at < day_end and b.end_at > day_start
            ]
            days.append(ScheduleDay(date=day, open=opened, booked=booked))
            day += timedelta(days=1)

        return ScheduleResponse(teacher_id=teacher_id, timezone=tz_name, days=days)
