from __future__ import annotations

from datetime import datetime, timedelta

from .entities import TaskEntity
from .enums import TaskStatus

CLOSED_STATUSES = (TaskStatus.COMPLETED, TaskStatus.ARCHIVED)


def day_bounds(now: datetime) -> tuple[datetime, datetime]:
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def _due(task: TaskEntity) -> datetime | None:
    return task.due_date if task.has_due_date else None


def is_overdue(task: TaskEntity, now: datetime) -> bool:
    """Open and due before today. A task due later today is not overdue yet."""
    due = _due(task)
    if due is None or task.status in CLOSED_STATUSES:
        return False
    start, _ = day_bounds(now)
    return due < start


def is_due_today(task: TaskEntity, now: datetime) -> bool:
    due = _due(task)
    if due is None:
        return False
    start, end = day_bounds(now)
    return start <= due < end
