from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

from .entities import TaskEntity
from .enums import OPEN_STATUSES


def is_eligible(task: TaskEntity) -> bool:
    return task.is_someday and task.status in OPEN_STATUSES


def nudge_reference(task: TaskEntity) -> datetime:
    return task.last_completed_at or task.created_at


def should_nudge(task: TaskEntity, now: datetime) -> bool:
    if not is_eligible(task):
        return False
    # whole elapsed days, not calendar boundaries
    idle_days = (now - nudge_reference(task)).days
    if idle_days < task.nudge_threshold_days:
        return False
    # Also covers snoozes, which push last_nudged_at into the future.
    return task.last_nudged_at is None or task.last_nudged_at.date() < now.date()


def apply_nudge(task: TaskEntity, now: datetime) -> TaskEntity | None:
    if not should_nudge(task, now):
        return None
    return replace(task, last_nudged_at=now, updated_at=now)


def snooze(task: TaskEntity, days: int, now: datetime) -> TaskEntity:
    if days <= 0:
        raise ValueError("Snooze length must be a positive number of days")
    return replace(task, last_nudged_at=now + timedelta(days=days), updated_at=now)
