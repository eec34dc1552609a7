"""
Availability rules as a tagged variant.

``RecurringRule`` describes a weekly interval; ``ExceptionRule`` takes over a
single date and either blocks it or replaces the weekly intervals with its
own. Both are immutable and carry the timezone their wall-clock times are
expressed in.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Union

from ..models.availability import AvailabilityRule, AvailabilityRuleKind

# Rule dates are on each rule's own clock and callers compute dates on the
# teacher's. UTC offsets span 26 hours, so the two can be two days apart.
RULE_DATE_PAD = timedelta(days=2)


@dataclass(frozen=True)
class LocalWindow:
    start: time
    end: time

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ValueError(f"window end {self.end} must be after start {self.start}")


@dataclass(frozen=True)
class RecurringRule:
    weekday: int  # 0 = Monday
    window: LocalWindow
    timezone: str
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None

    def applies_on(self, day: date) -> bool:
        if day.weekday() != self.weekday:
            return False
        if self.valid_from and day < self.valid_from:
            return False
        if self.valid_until and day > self.valid_until:
            return False
        return True


@dataclass(frozen=True)
class Blocked:
    """The whole date is closed."""


@dataclass(frozen=True)
class Replaced:
    window: LocalWindow


Override = Union[Blocked, Replaced]


@dataclass(frozen=True)
class ExceptionRule:
    on_date: date
    override: Override
    timezone: str


Rule = Union[RecurringRule, ExceptionRule]


@dataclass(frozen=True, order=True)
class Interval:
    """Half-open UTC interval [start, end)."""

    start: datetime
    end: datetime

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    def contains(self, other: "Interval") -> bool:
        return self.start <= other.start and other.end <= self.end


def to_domain_rule(row: AvailabilityRule) -> Rule:
    if row.kind == AvailabilityRuleKind.RECURRING:
        return RecurringRule(
            weekday=row.weekday,
            window=LocalWindow(row.start_time, row.end_time),
            timezone=row.timezone,
            valid_from=row.valid_from,
            valid_until=row.valid_until,
        )
    override: Override = (
        Replaced(LocalWindow(row.start_time, row.end_time)) if row.is_open else Blocked()
    )
    return ExceptionRule(on_date=row.specific_date, override=override, timezone=row.timezone)


def to_domain_rules(rows: Iterable[AvailabilityRule]) -> List[Rule]:
    return [to_domain_rule(row) for row in rows]
