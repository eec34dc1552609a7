"""SlotService: bookable slots and schedule views from stored rules and bookings."""

from datetime import date, datetime, time, timedelta, timezone

import pytest

from tutorhub.core.exceptions import NotFoundException, ValidationException
from tutorhub.models.booking import BookingStatus
from tutorhub.services.slot_service import SlotService

UTC = timezone.utc
MONDAY = date(2030, 1, 7)


def at(hour: int, minute: int = 0, day: date = MONDAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=UTC)


@pytest.fixture
def teacher(make_teacher):
    return make_teacher(timezone="UTC", allowed_durations=[30, 60, 90], min_notice_minutes=0)


@pytest.fixture
def offering(make_offering, teacher):
    return make_offering(teacher, price_per_hour=50_000)


@pytest.fixture
def monday_morning(make_weekly_rule, teacher):
    return make_weekly_rule(teacher, 0, time(9), time(12))


@pytest.fixture
def service(db) -> SlotService:
    return SlotService(db)


def starts(response):
    return [slot.start_at for slot in response.slots]


@pytest.mark.usefixtures("monday_morning", "offering")
class TestGetAvailableSlots:
    def test_open_morning_yields_half_hour_grid(self, service, teacher, fixed_now):
        response = service.get_available_slots(teacher.id, MONDAY, MONDAY, 60, now=fixed_now)

        assert starts(response) == [at(9), at(9, 30), at(10), at(10, 30), at(11)]
        assert {slot.price for slot in response.slots} == {50_000}
        assert response.timezone == "UTC"

    def test_price_scales_with_duration(self, service, teacher, fixed_now):
        response = service.get_available_slots(teacher.id, MONDAY, MONDAY, 90, now=fixed_now)
        assert {slot.price for slot in response.slots} == {75_000}

    def test_active_booking_removes_overlapping_slots(
        self, service, teacher, offering, make_booking, fixed_now
    ):
        make_booking(teacher, offering, at(10), status=BookingStatus.PENDING)

        response = service.get_available_slots(teacher.id, MONDAY, MONDAY, 60, now=fixed_now)

        assert starts(response) == [at(9), at(11)]

    def test_cancelled_booking_frees_its_time(
        self, service, teacher, offering, make_booking, fixed_now
    ):
        make_booking(teacher, offering, at(10), status=BookingStatus.CANCELLED)

        response = service.get_available_slots(teacher.id, MONDAY, MONDAY, 60, now=fixed_now)

        assert at(10) in starts(response)

    def test_lead_time_drops_early_starts(self, service, make_teacher, make_weekly_rule, fixed_now):
        strict = make_teacher(timezone="UTC", min_notice_minutes=120)
        make_weekly_rule(strict, 0, time(9), time(12))

        response = service.get_available_slots(strict.id, MONDAY, MONDAY, 60, now=fixed_now)

        # now + lead = 10:00, which is itself excluded
        assert starts(response) == [at(10, 30), at(11)]
        assert all(slot.price is None for slot in response.slots)

    def test_requester_timezone_shifts_the_day_and_local_times(self, service, teacher, fixed_now):
        response = service.get_available_slots(
            teacher.id, MONDAY, MONDAY, 60, timezone_str="Asia/Tashkent", now=fixed_now
        )

        assert response.timezone == "Asia/Tashkent"
        assert starts(response)[0] == at(9)
        assert response.slots[0].local_start.hour == 14

    def test_slots_stop_at_the_advance_horizon(self, service, teacher, fixed_now):
        far = MONDAY + timedelta(days=35)
        response = service.get_available_slots(teacher.id, far, far, 60, now=fixed_now)
        assert response.slots == []

    def test_same_inputs_give_same_slots(self, service, teacher, fixed_now):
        first = service.get_available_slots(teacher.id, MONDAY, MONDAY, 30, now=fixed_now)
        second = service.get_available_slots(teacher.id, MONDAY, MONDAY, 30, now=fixed_now)
        assert first == second

    def test_duration_not_offered(self, service, teacher, fixed_now):
        with pytest.raises(ValidationException) as exc_info:
            service.get_available_slots(teacher.id, MONDAY, MONDAY, 45, now=fixed_now)
        assert exc_info.value.code == "INVALID_DURATION"

    def test_reversed_range(self, service, teacher, fixed_now):
        with pytest.raises(ValidationException) as exc_info:
            service.get_available_slots(
                teacher.id, MONDAY, MONDAY - timedelta(days=1), 60, now=fixed_now
            )
        assert exc_info.value.code == "INVALID_DATE_RANGE"

    def test_range_too_long(self, service, teacher, fixed_now):
        with pytest.raises(ValidationException) as exc_info:
            service.get_available_slots(
                teacher.id, MONDAY, MONDAY + timedelta(days=90), 60, now=fixed_now
            )
        assert exc_info.value.code == "DATE_RANGE_TOO_LONG"

    def test_inactive_offering_is_not_found(
        self, service, teacher, make_offering, fixed_now
    ):
        retired = make_offering(teacher, is_active=False)
        with pytest.raises(NotFoundException):
            service.get_available_slots(
                teacher.id, MONDAY, MONDAY, 60, subject_offering_id=retired.id, now=fixed_now
            )

    def test_unknown_teacher(self, service, fixed_now):
        with pytest.raises(NotFoundException):
            service.get_available_slots("01J00000000000000000000000", MONDAY, MONDAY, 60, now=fixed_now)


class TestGetSchedule:
    def test_reports_open_and_booked_intervals_per_day(
        self, service, teacher, offering, monday_morning, make_exception_rule, make_booking
    ):
        tuesday = MONDAY + timedelta(days=1)
        next_monday = MONDAY + timedelta(days=7)
        make_exception_rule(teacher, next_monday)
        booking = make_booking(teacher, offering, at(10))

        schedule = service.get_schedule(teacher.id, MONDAY, next_monday)

        by_date = {day.date: day for day in schedule.days}
        assert len(schedule.days) == 8
        assert [(i.start_at, i.end_at) for i in by_date[MONDAY].open] == [(at(9), at(12))]
        assert [i.booking_id for i in by_date[MONDAY].booked] == [booking.id]
        assert by_date[tuesday].open == []
        assert by_date[next_monday].open == []
