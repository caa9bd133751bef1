"""
Availability slot generation.

Turns an expert's coarse availability (a day window, a dragged calendar range,
or a weekly recurrence) into discrete ``(start, end)`` pairs ready to insert as
availability slots. Everything here is pure: callers persist the result.
"""

from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

from app.exceptions import ValidationFailed

Slot = Tuple[datetime, datetime]

PRESET_DURATIONS = (30, 60, 90, 120)


def _check_duration(duration_minutes: int) -> timedelta:
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int) or duration_minutes <= 0:
        raise ValidationFailed("Slot duration must be a positive number of minutes", "invalid-duration")
    return timedelta(minutes=duration_minutes)


def _cursor_slots(start: datetime, end: datetime, step: timedelta) -> List[Slot]:
    slots = []
    cursor = start
    # a trailing partial slot is dropped, not truncated
    while cursor + step <= end:
        slots.append((cursor, cursor + step))
        cursor += step
    return slots


def generate_day_slots(day: date, day_start: time, day_end: time, duration_minutes: int) -> List[Slot]:
    """Back-to-back slots of ``duration_minutes`` between two times of one day."""
    step = _check_duration(duration_minutes)
    if day_end <= day_start:
        raise ValidationFailed("End time must be after start time", "invalid-time-range")
    return _cursor_slots(datetime.combine(day, day_start), datetime.combine(day, day_end), step)


def recurring_dates(base_date: date, weekdays: Iterable[int], weeks: int) -> List[date]:
    """
    Dates for a weekly recurrence.

    For every weekday (0 = Monday) the first occurrence on or after
    ``base_date`` is the anchor, followed by the same weekday for the next
    ``weeks - 1`` weeks.
    """
    days = set(weekdays)
    if not days:
        raise ValidationFailed("Select at least one weekday", "invalid-recurrence")
    if any(d not in range(7) for d in days):
        raise ValidationFailed("Weekdays must be between 0 (Monday) and 6 (Sunday)", "invalid-recurrence")
    if weeks < 1:
        raise ValidationFailed("Number of weeks must be at least 1", "invalid-recurrence")

    dates = []
    for weekday in days:
        first = base_date + timedelta(days=(weekday - base_date.weekday()) % 7)
        dates.extend(first + timedelta(weeks=week) for week in range(weeks))
    return sorted(dates)


def generate_slots(
    base_date: date,
    day_start: time,
    day_end: time,
    duration_minutes: int,
    weekdays: Optional[Sequence[int]] = None,
    weeks: Optional[int] = None,
) -> List[Slot]:
    if weekdays:
        dates = recurring_dates(base_date, weekdays, 1 if weeks is None else weeks)
    else:
        dates = [base_date]

    slots = []
    for day in dates:
        slots.extend(generate_day_slots(day, day_start, day_end, duration_minutes))
    return slots


def split_range(start: datetime, end: datetime, duration_minutes: int, split: bool = True) -> List[Slot]:
    """Slots for a range dragged on the calendar, either whole or cut into pieces."""
    if end <= start:
        raise ValidationFailed("End time must be after start time", "invalid-time-range")
    if not split:
        return [(start, end)]
    return _cursor_slots(start, end, _check_duration(duration_minutes))


def within_business_hours(
    start: datetime,
    end: datetime,
    business_days: Iterable[int],
    opens: time,
    closes: time,
) -> bool:
    if start.date() != end.date():
        return False
    if start.weekday() not in set(business_days):
        return False
    close_at = datetime.combine(start.date(), closes)
    return datetime.combine(start.date(), opens) <= start and end <= close_at
