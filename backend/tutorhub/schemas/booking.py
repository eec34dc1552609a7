# backend/tutorhub/schemas/booking.py
"""
Booking schemas.

Instants must carry an explicit UTC offset; naive datetimes are rejected
at the boundary rather than guessed.
"""

import datetime
from typing import Dict, Optional

from pydantic import AwareDatetime, Field, model_validator

from ..models.booking import BookingStatus, BookingType
from ._strict_base import ORMResponseModel, StrictModel, StrictRequestModel


class BookingCreate(StrictRequestModel):
    teacher_id: str = Field(min_length=1, max_length=26)
    subject_offering_id: str = Field(min_length=1, max_length=26)
    start_at: AwareDatetime
    end_at: AwareDatetime
    booking_type: BookingType = BookingType.SINGLE
    student_timezone: Optional[str] = Field(default=None, max_length=64)

    @model_validator(mode="after")
    def _check_order(self) -> "BookingCreate":
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self


class BookingCancel(StrictRequestModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class BookingVoid(StrictRequestModel):
    reason: str = Field(min_length=1, max_length=500)


class BookingReschedule(StrictRequestModel):
    start_at: AwareDatetime
    end_at: AwareDatetime

    @model_validator(mode="after")
    def _check_order(self) -> "BookingReschedule":
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self


class BookingResponse(ORMResponseModel):
    id: str
    teacher_id: str
    student_id: str
    subject_offering_id: str
    start_at: datetime.datetime
    end_at: datetime.datetime
    duration_minutes: int
    status: BookingStatus
    booking_type: BookingType
    price_at_booking: int
    student_timezone: Optional[str]
    confirmed_at: Optional[datetime.datetime]
    completed_at: Optional[datetime.datetime]
    cancelled_at: Optional[datetime.datetime]
    cancellation_reason: Optional[str]
    created_at: datetime.datetime


class BookingStatsResponse(StrictModel):
    total: int
    status_distribution: Dict[BookingStatus, int]
    type_distribution: Dict[BookingType, int]
    recent_status_distribution: Dict[BookingStatus, int] = Field(
        description="Bookings created since recent_since, by status"
    )
    recent_since: datetime.datetime
