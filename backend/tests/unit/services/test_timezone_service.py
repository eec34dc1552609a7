"""Wall-clock to UTC conversion around daylight-saving transitions."""

from datetime import date, datetime, time, timezone

import pytest

from tutorhub.core.exceptions import ValidationException
from tutorhub.services.timezone_service import TimezoneService

UTC = timezone.utc
NEW_YORK = "America/New_York"
FALL_BACK = date(2030, 11, 3)
SPRING_FORWARD = date(2030, 3, 10)


class TestLocalToUtc:
    def test_repeated_hour_first_occurrence_is_daylight_time(self):
        assert TimezoneService.local_to_utc(FALL_BACK, time(1, 30), NEW_YORK, "first") == datetime(
            2030, 11, 3, 5, 30, tzinfo=UTC
        )

    def test_repeated_hour_last_occurrence_is_standard_time(self):
        assert TimezoneService.local_to_utc(FALL_BACK, time(1, 30), NEW_YORK, "last") == datetime(
            2030, 11, 3, 6, 30, tzinfo=UTC
        )

    def test_skipped_hour_shifts_forward_by_the_gap(self):
        converted = TimezoneService.local_to_utc(SPRING_FORWARD, time(2, 30), NEW_YORK)
        assert converted == datetime(2030, 3, 10, 7, 30, tzinfo=UTC)
        assert TimezoneService.utc_to_local(converted, NEW_YORK).time() == time(3, 30)

    def test_unambiguous_times_ignore_occurrence(self):
        first = TimezoneService.local_to_utc(FALL_BACK, time(9), NEW_YORK, "first")
        last = TimezoneService.local_to_utc(FALL_BACK, time(9), NEW_YORK, "last")
        assert first == last == datetime(2030, 11, 3, 14, 0, tzinfo=UTC)

    def test_unknown_zone(self):
        with pytest.raises(ValidationException):
            TimezoneService.local_to_utc(FALL_BACK, time(9), "Mars/Olympus")
