# backend/tutorhub/schemas/availability.py
"""
Availability rule schemas.

Times are local wall-clock "HH:MM" values in the rule's timezone (the
teacher's timezone when omitted). Weekday follows Python: 0 = Monday.
"""

import datetime
from typing import List, Optional

from pydantic import Field, model_validator

from ..models.availability import AvailabilityRuleKind
from ._strict_base import ORMResponseModel, StrictRequestModel

MAX_BULK_RULES = 50


class AvailabilityRuleCreate(StrictRequestModel):
    kind: AvailabilityRuleKind
    weekday: Optional[int] = Field(default=None, ge=0, le=6)
    specific_date: Optional[datetime.date] = None
    start_time: Optional[datetime.time] = None
    end_time: Optional[datetime.time] = None
    is_open: bool = True
    timezone: Optional[str] = Field(default=None, max_length=64)
    valid_from: Optional[datetime.date] = None
    valid_until: Optional[datetime.date] = None

    @model_validator(mode="after")
    def _check_shape(self) -> "AvailabilityRuleCreate":
        if self.kind == AvailabilityRuleKind.RECURRING:
            if self.weekday is None or self.specific_date is not None:
                raise ValueError("Recurring rules need a weekday and no specific_date")
            if not self.is_open:
                raise ValueError("Recurring rules are always open; block dates with an exception")
        else:
            if self.specific_date is None or self.weekday is not None:
                raise ValueError("Exception rules need a specific_date and no weekday")
            if self.valid_from or self.valid_until:
                raise ValueError("Exception rules cannot carry a validity window")

        if self.is_open:
            if self.start_time is None or self.end_time is None:
                raise ValueError("Open rules need start_time and end_time")
            if self.end_time <= self.start_time:
                raise ValueError("End time must be after start time")
        elif self.start_time is not None or self.end_time is not None:
            raise ValueError("Blocked exceptions cannot carry times")

        if self.valid_from and self.valid_until and self.valid_until < self.valid_from:
            raise ValueError("valid_until must not be before valid_from")
        return self


class AvailabilityRuleUpdate(AvailabilityRuleCreate):
    """Full replacement of an existing rule's definition (edited in place)."""


class AvailabilityRulesReplace(StrictRequestModel):
    rules: List[AvailabilityRuleCreate] = Field(max_length=MAX_BULK_RULES)
    replace_existing: bool = True


class AvailabilityRuleResponse(ORMResponseModel):
    id: str
    teacher_id: str
    kind: AvailabilityRuleKind
    weekday: Optional[int]
    specific_date: Optional[datetime.date]
    start_time: Optional[datetime.time]
    end_time: Optional[datetime.time]
    is_open: bool
    timezone: str
    valid_from: Optional[datetime.date]
    valid_until: Optional[datetime.date]
