"""
Pure slot generation.

Turns availability rules plus occupied intervals into bookable slots:

1. ``expand_rules``     rules -> concrete UTC intervals for a window (DST-aware)
2. ``subtract_intervals`` free minus busy
3. ``slide_windows``    fixed-length windows on a local-clock grid

Nothing here touches the database or the clock. Callers pass ``not_after``
(now + lead time) explicitly, which keeps results reproducible for fixed
inputs. Slots are advisory: reservation re-validates everything.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from ..domain.availability_rules import (
    Blocked,
    ExceptionRule,
    Interval,
    LocalWindow,
    RecurringRule,
    Replaced,
    Rule,
)
from .timezone_service import TimezoneService


@dataclass(frozen=True)
class TimeSlot:
    start_at: datetime
    end_at: datetime
    duration_minutes: int
    price: Optional[int]
    available: bool = True


def _window_to_utc(day: date, window: LocalWindow, timezone_str: str) -> Interval:
    # Ambiguous start -> first occurrence, ambiguous end -> last occurrence,
    # so a window across a fall-back hour keeps its full wall-clock span.
    return Interval(
        TimezoneService.local_to_utc(day, window.start, timezone_str, occurrence="first"),
        TimezoneService.local_to_utc(day, window.end, timezone_str, occurrence="last"),
    )


def _local_dates(window_start: datetime, window_end: datetime, timezone_str: str) -> List[date]:
    first = TimezoneService.utc_to_local(window_start, timezone_str).date()
    last = TimezoneService.utc_to_local(window_end, timezone_str).date()
    return [first + timedelta(days=offset) for offset in range((last - first).days + 1)]


def merge_intervals(intervals: Iterable[Interval]) -> List[Interval]:
    """Sort and coalesce overlapping or touching intervals."""
    merged: List[Interval] = []
    for interval in sorted(i for i in intervals if not i.is_empty):
        if merged and interval.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = Interval(last.start, max(last.end, interval.end))
        else:
            merged.append(interval)
    return merged


def expand_rules(
    rules: Sequence[Rule], window_start: datetime, window_end: datetime
) -> List[Interval]:
    """
    Concrete UTC intervals that ``rules`` open inside [window_start, window_end).

    Each rule is evaluated against the local dates of its own timezone. An
    exception owns its date entirely: any Blocked exception closes the day,
    otherwise the Replaced windows are used instead of the weekly rules.
    """
    exceptions: Dict[date, List[ExceptionRule]] = defaultdict(list)
    recurring: List[RecurringRule] = []
    for rule in rules:
        if isinstance(rule, ExceptionRule):
            exceptions[rule.on_date].append(rule)
        else:
            recurring.append(rule)

    raw: List[Interval] = []
    for day, day_exceptions in exceptions.items():
        if any(isinstance(exc.override, Blocked) for exc in day_exceptions):
            continue
        for exc in day_exceptions:
            if isinstance(exc.override, Replaced):
                raw.append(_window_to_utc(day, exc.override.window, exc.timezone))

    for rule in recurring:
        for day in _local_dates(window_start, window_end, rule.timezone):
            if day in exceptions or not rule.applies_on(day):
                continue
            raw.append(_window_to_utc(day, rule.window, rule.timezone))

    clipped = (
        Interval(max(i.start, window_start), min(i.end, window_end))
        for i in raw
        if i.end > window_start and i.start < window_end
    )
    return merge_intervals(clipped)


def subtract_intervals(free: Iterable[Interval], busy: Iterable[Interval]) -> List[Interval]:
    """Remove every busy interval from the free intervals."""
    busy_sorted = merge_intervals(busy)
    result: List[Interval] = []
    for interval in merge_intervals(free):
        cursor = interval.start
        for blocker in busy_sorted:
            if blocker.end <= cursor:
                continue
            if blocker.start >= interval.end:
                break
            if blocker.start > cursor:
                result.append(Interval(cursor, blocker.start))
            cursor = max(cursor, blocker.end)
            if cursor >= interval.end:
                break
        if cursor < interval.end:
            result.append(Interval(cursor, interval.end))
    return result


def _align_to_grid(instant: datetime, step: timedelta, grid_timezone: str) -> datetime:
    """Round ``instant`` up to the next multiple of ``step`` on the local wall clock."""
    local = TimezoneService.utc_to_local(instant, grid_timezone)
    since_midnight = timedelta(
        hours=local.hour, minutes=local.minute, seconds=local.second, microseconds=local.microsecond
    )
    remainder = since_midnight % step
    if not remainder:
        return instant
    return instant + (step - remainder)


def slide_windows(
    free: Iterable[Interval],
    duration_minutes: int,
    granularity_minutes: int,
    grid_timezone: str,
    not_after: Optional[datetime] = None,
    price: Optional[int] = None,
) -> Iterator[TimeSlot]:
    """
    Yield every ``duration``-long window fully inside a free interval.

    Candidate starts sit on a ``granularity`` grid of the teacher's local
    clock. Starts at or before ``not_after`` are dropped.
    """
    length = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=granularity_minutes)
    for interval in free:
        start = _align_to_grid(interval.start, step, grid_timezone)
        if not_after is not None and start <= not_after:
            skipped = (not_after - start) // step + 1
            start = start + step * skipped
        while start + length <= interval.end:
            yield TimeSlot(
                start_at=start,
                end_at=start + length,
                duration_minutes=duration_minutes,
                price=price,
            )
            start += step


@dataclass(frozen=True)
class SlotSequence:
    """
    Finite, ordered, restartable slot sequence.

    Every iteration recomputes the windows from the same free intervals, so
    the sequence can be consumed any number of times with identical results.
    """

    free: Tuple[Interval, ...]
    duration_minutes: int
    granularity_minutes: int
    grid_timezone: str
    not_after: Optional[datetime] = None
    price: Optional[int] = None

    def __iter__(self) -> Iterator[TimeSlot]:
        return slide_windows(
            self.free,
            self.duration_minutes,
            self.granularity_minutes,
            self.grid_timezone,
            self.not_after,
            self.price,
        )


def generate_slots(
    rules: Sequence[Rule],
    busy: Iterable[Interval],
    window_start: datetime,
    window_end: datetime,
    duration_minutes: int,
    granularity_minutes: int,
    grid_timezone: str,
    not_after: Optional[datetime] = None,
    price: Optional[int] = None,
) -> SlotSequence:
    free = subtract_intervals(expand_rules(rules, window_start, window_end), busy)
    return SlotSequence(
        free=tuple(free),
        duration_minutes=duration_minutes,
        granularity_minutes=granularity_minutes,
        grid_timezone=grid_timezone,
        not_after=not_after,
        price=price,
    )


def interval_is_open(
    rules: Sequence[Rule], candidate: Interval, busy: Iterable[Interval] = ()
) -> bool:
    """Whether ``candidate`` lies inside a single free interval."""
    free = subtract_intervals(expand_rules(rules, candidate.start, candidate.end), busy)
    return any(interval.contains(candidate) for interval in free)
