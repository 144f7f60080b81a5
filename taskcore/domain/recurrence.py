from __future__ import annotations

from datetime import datetime, timedelta

from .entities import Frequency, RecurrenceEntity
from .enums import FrequencyUnit, RecurrenceKind
from .errors import InvalidRecurrencePattern, MissingAnchor

_FIXED_STEPS = {
    FrequencyUnit.HOURS: timedelta(hours=1),
    FrequencyUnit.DAYS: timedelta(days=1),
    FrequencyUnit.WEEKS: timedelta(weeks=1),
}


def validate_frequency(frequency: Frequency) -> None:
    interval = frequency.interval
    if isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0:
        raise InvalidRecurrencePattern(f"interval must be a positive integer, got {interval!r}")
    try:
        FrequencyUnit(frequency.unit)
    except ValueError:
        raise InvalidRecurrencePattern(f"unknown unit {frequency.unit!r}") from None
    excluded = set(frequency.exclude_weekdays)
    if any(not isinstance(day, int) or not 0 <= day <= 6 for day in excluded):
        raise InvalidRecurrencePattern(f"excluded weekdays must be within 0..6, got {sorted(excluded)}")
    if len(excluded) == 7:
        raise InvalidRecurrencePattern("every weekday is excluded")


def validate_recurrence(recurrence: RecurrenceEntity) -> None:
    validate_frequency(recurrence.frequency)
    if recurrence.kind == RecurrenceKind.FIXED_SCHEDULE and recurrence.anchor_date is None:
        raise MissingAnchor(recurrence.id)


def compute_next_due(
    recurrence: RecurrenceEntity,
    completed_at: datetime,
    *,
    current_due: datetime | None = None,
) -> datetime:
    """Next due date of a recurring task completed at ``completed_at``.

    ``current_due`` is the due date of the occurrence being completed; a fixed
    schedule never re-issues it even when the occurrence is completed early.
    """
    validate_recurrence(recurrence)
    frequency = recurrence.frequency
    if recurrence.kind == RecurrenceKind.AFTER_COMPLETION:
        return shift(completed_at, frequency.unit, frequency.interval)

    threshold = completed_at
    if current_due is not None and current_due > threshold:
        threshold = current_due
    candidate = next_fixed_occurrence(recurrence.anchor_date, frequency, threshold)
    return skip_excluded_weekdays(candidate, frequency.exclude_weekdays)


def next_fixed_occurrence(anchor: datetime, frequency: Frequency, after: datetime) -> datetime:
    """First ``anchor + k * interval`` (k >= 1) strictly after ``after``."""
    interval = frequency.interval
    unit = FrequencyUnit(frequency.unit)

    if unit == FrequencyUnit.MONTHS:
        months_apart = (after.year - anchor.year) * 12 + (after.month - anchor.month)
        steps = max(months_apart // interval, 1)
        candidate = add_months(anchor, steps * interval)
        while candidate <= after:
            steps += 1
            candidate = add_months(anchor, steps * interval)
        return candidate

    step = _FIXED_STEPS[unit] * interval
    steps = 1 if after < anchor else (after - anchor) // step + 1
    return anchor + step * steps


def skip_excluded_weekdays(moment: datetime, excluded: frozenset[int]) -> datetime:
    if len(excluded) >= 7:
        raise InvalidRecurrencePattern("every weekday is excluded")
    while weekday_index(moment) in excluded:
        moment += timedelta(days=1)
    return moment


def shift(base: datetime, unit: FrequencyUnit, amount: int) -> datetime:
    unit = FrequencyUnit(unit)
    if unit == FrequencyUnit.MONTHS:
        return add_months(base, amount)
    return base + _FIXED_STEPS[unit] * amount


def weekday_index(moment: datetime) -> int:
    """Weekday with Sunday as 0, the numbering the web client stores."""
    return (moment.weekday() + 1) % 7


def add_months(base: datetime, months: int) -> datetime:
    year = base.year + (base.month - 1 + months) // 12
    month = (base.month - 1 + months) % 12 + 1
    day = min(base.day, days_in_month(year, month))
    return base.replace(year=year, month=month, day=day)


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = datetime(year + 1, 1, 1)
    else:
        next_month = datetime(year, month + 1, 1)
    return (next_month - timedelta(days=1)).day
