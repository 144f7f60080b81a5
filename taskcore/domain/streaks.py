"""Habit streak rules.

A habit occurrence completed by its due date extends the streak. Completing it
late still counts while ``streak_safe_until`` has not passed; after that the
completion is rejected for streak purposes and the daily sweep resets the
streak.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Iterable

from .entities import CompletionEntity, TaskEntity
from .enums import HabitPeriod, TaskStatus
from .errors import GracePeriodExpired

GRACE_PERIOD = timedelta(hours=24)


@dataclass(frozen=True)
class StreakOutcome:
    task: TaskEntity
    was_late: bool
    was_retroactive: bool


def grace_deadline(task: TaskEntity) -> datetime | None:
    if task.streak_safe_until is not None:
        return task.streak_safe_until
    if task.due_date is not None:
        return task.due_date + GRACE_PERIOD
    return None


def next_safe_until(next_due: datetime) -> datetime:
    return next_due + GRACE_PERIOD


def apply_completion(task: TaskEntity, completed_at: datetime) -> StreakOutcome:
    if task.streak_locked:
        raise GracePeriodExpired(task.id, grace_deadline(task))

    deadline = task.due_date if task.has_due_date else None
    was_late = deadline is not None and completed_at > deadline
    if was_late:
        safe_until = grace_deadline(task)
        if safe_until is not None and completed_at > safe_until:
            raise GracePeriodExpired(task.id, safe_until)

    current = task.current_streak + 1
    updated = replace(
        task,
        current_streak=current,
        longest_streak=max(task.longest_streak, current),
    )
    return StreakOutcome(task=updated, was_late=was_late, was_retroactive=was_late)


def expire_streak(task: TaskEntity, now: datetime) -> TaskEntity | None:
    """Reset and lock a habit occurrence whose grace window has passed.

    Returns ``None`` when there is nothing to change, which makes repeated
    sweeps no-ops.
    """
    if not task.is_habit or task.status in (TaskStatus.COMPLETED, TaskStatus.ARCHIVED):
        return None
    safe_until = grace_deadline(task)
    if safe_until is None or now <= safe_until:
        return None
    if task.streak_locked and task.current_streak == 0:
        return None
    return replace(task, current_streak=0, streak_locked=True, updated_at=now)


def period_bounds(period: HabitPeriod, now: datetime) -> tuple[datetime, datetime]:
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    period = HabitPeriod(period)
    if period == HabitPeriod.DAY:
        return day_start, day_start + timedelta(days=1)
    if period == HabitPeriod.WEEK:
        # ISO weeks start on Monday
        start = day_start - timedelta(days=day_start.weekday())
        return start, start + timedelta(weeks=1)
    start = day_start.replace(day=1)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def count_in_period(
    completions: Iterable[CompletionEntity], period: HabitPeriod, now: datetime
) -> int:
    start, end = period_bounds(period, now)
    return len({c.id for c in completions if start <= c.completed_at < end})


def is_due_today(
    task: TaskEntity, completions: Iterable[CompletionEntity], now: datetime
) -> bool:
    target = task.target_frequency
    if target is None or HabitPeriod(target.period) == HabitPeriod.DAY:
        return True
    return count_in_period(completions, target.period, now) < target.count
