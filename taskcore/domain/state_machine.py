from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from .entities import TaskEntity
from .enums import TaskStatus
from .errors import InvalidTransition, MissingBlockReason

ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.READY: frozenset({
        TaskStatus.IN_PROGRESS,
        TaskStatus.BLOCKED,
        TaskStatus.COMPLETED,
        TaskStatus.ARCHIVED,
    }),
    TaskStatus.IN_PROGRESS: frozenset({
        TaskStatus.BLOCKED,
        TaskStatus.COMPLETED,
        TaskStatus.ARCHIVED,
    }),
    TaskStatus.BLOCKED: frozenset({
        TaskStatus.READY,
        TaskStatus.IN_PROGRESS,
        TaskStatus.ARCHIVED,
    }),
    # reopen
    TaskStatus.COMPLETED: frozenset({TaskStatus.READY}),
    # unarchive
    TaskStatus.ARCHIVED: frozenset({TaskStatus.READY}),
}


def allowed_targets(status: TaskStatus) -> frozenset[TaskStatus]:
    return ALLOWED_TRANSITIONS.get(TaskStatus(status), frozenset())


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return TaskStatus(target) in allowed_targets(current)


def transition(
    task: TaskEntity,
    target: TaskStatus,
    *,
    at: datetime,
    reason: str | None = None,
) -> TaskEntity:
    """Return ``task`` moved to ``target``.

    Only the status bookkeeping happens here: completion side effects
    (counters, streaks, recurrence, cascades) belong to the lifecycle service.
    """
    target = TaskStatus(target)
    if not can_transition(task.status, target):
        raise InvalidTransition(task.id, str(task.status), str(target))

    changes: dict = {"status": target, "updated_at": at, "blocked_reason": None}
    if target == TaskStatus.BLOCKED:
        cleaned = (reason or "").strip()
        if not cleaned:
            raise MissingBlockReason(task.id)
        changes["blocked_reason"] = cleaned
    if target == TaskStatus.IN_PROGRESS and task.started_at is None:
        changes["started_at"] = at
    return replace(task, **changes)
