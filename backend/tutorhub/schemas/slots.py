"""Slot lookup and schedule overview schemas."""

import datetime
from typing import List, Optional

from ._strict_base import StrictModel


class TimeSlotResponse(StrictModel):
    start_at: datetime.datetime
    end_at: datetime.datetime
    local_start: datetime.datetime
    local_end: datetime.datetime
    duration_minutes: int
    price: Optional[int]
    available: bool = True


class AvailableSlotsResponse(StrictModel):
    teacher_id: str
    timezone: str
    duration_minutes: int
    subject_offering_id: Optional[str]
    slots: List[TimeSlotResponse]


class ScheduleInterval(StrictModel):
    start_at: datetime.datetime
    end_at: datetime.datetime
    booking_id: Optional[str] = None


class ScheduleDay(StrictModel):
    date: datetime.date
    open: List[ScheduleInterval]
    booked: List[ScheduleInterval]


class ScheduleResponse(StrictModel):
    teacher_id: str
    timezone: str
    days: List[ScheduleDay]
