"""
Centralized timezone handling.

Rules:
- Availability is defined in the teacher's local wall clock
- All storage: UTC
- All comparisons: UTC
- API responses: UTC instants plus a rendering in the requester's timezone
"""

from datetime import date, datetime, time, timezone
from typing import Literal

import pytz

from ..core.config import settings
from ..core.exceptions import ValidationException

Occurrence = Literal["first", "last"]


class TimezoneService:
    """Handles all timezone conversions consistently."""

    @staticmethod
    def is_valid_timezone(tz_str: str) -> bool:
        return tz_str in pytz.all_timezones_set

    @staticmethod
    def get_timezone(tz_str: str | None) -> pytz.BaseTzInfo:
        """Resolve a timezone name; unknown names are a client error."""
        name = tz_str or settings.default_timezone
        try:
            return pytz.timezone(name)
        except pytz.UnknownTimeZoneError:
            raise ValidationException(
                f"Unknown timezone: {name}",
                code="INVALID_TIMEZONE",
                details={"timezone": name},
            )

    @staticmethod
    def local_to_utc(
        local_date: date,
        local_time: time,
        timezone_str: str,
        occurrence: Occurrence = "first",
    ) -> datetime:
        """
        Convert a local wall-clock time to UTC.

        Uses the timezone rules valid on ``local_date`` (not today).
        - Ambiguous times (fall back, the hour repeats) resolve to the first
          or last occurrence as requested.
        - Nonexistent times (spring forward gap) shift forward by the length
          of the gap, so 02:30 on a 02:00->03:00 day becomes 03:30.
        """
        tz = TimezoneService.get_timezone(timezone_str)
        naive_dt = datetime.combine(
            local_date, local_time
        )  # utc-naive-ok: Intentionally naive for pytz.localize()

        try:
            # is_dst=None raises exception for ambiguous/nonexistent times
            local_dt = tz.localize(naive_dt, is_dst=None)
        except pytz.exceptions.AmbiguousTimeError:
            local_dt = tz.localize(naive_dt, is_dst=(occurrence == "first"))
        except pytz.exceptions.NonExistentTimeError:
            # Standard-time offset places the instant past the gap
            local_dt = tz.localize(naive_dt, is_dst=False)

        return local_dt.astimezone(timezone.utc)

    @staticmethod
    def utc_to_local(utc_dt: datetime, timezone_str: str) -> datetime:
        """Convert UTC datetime to local timezone."""
        if utc_dt.tzinfo is None:
            utc_dt = utc_dt.replace(tzinfo=timezone.utc)

        tz = TimezoneService.get_timezone(timezone_str)
        return utc_dt.astimezone(tz)

    @staticmethod
    def day_bounds_utc(start_date: date, end_date: date, timezone_str: str) -> tuple[datetime, datetime]:
        """UTC instants for local midnight of start_date and of the day after end_date."""
        start = TimezoneService.local_to_utc(start_date, time.min, timezone_str)
        end = TimezoneService.local_to_utc(
            date.fromordinal(end_date.toordinal() + 1), time.min, timezone_str
        )
        return start, end
