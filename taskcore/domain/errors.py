"""Lifecycle errors.

Every error is terminal for the operation that raised it and carries a message
that can be shown to the user as is.
"""

from __future__ import annotations

from datetime import datetime


class LifecycleError(Exception):
    """Base class for errors raised by the lifecycle engine."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidTransition(LifecycleError):
    def __init__(self, task_id: str, current: str, target: str) -> None:
        self.task_id = task_id
        self.current = current
        self.target = target
        super().__init__(
            f"Task {task_id} cannot move from '{current}' to '{target}'."
        )


class MissingBlockReason(LifecycleError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task {task_id} needs a reason to be marked as blocked.")


class InvalidRecurrencePattern(LifecycleError):
    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Invalid recurrence pattern: {detail}.")


class MissingAnchor(LifecycleError):
    def __init__(self, recurrence_id: str | None) -> None:
        self.recurrence_id = recurrence_id
        super().__init__(
            f"Fixed schedule recurrence {recurrence_id or '<new>'} has no anchor date; "
            "pick the date the schedule starts from."
        )


class GracePeriodExpired(LifecycleError):
    def __init__(self, task_id: str, safe_until: datetime | None) -> None:
        self.task_id = task_id
        self.safe_until = safe_until
        deadline = f" (ended {safe_until:%Y-%m-%d %H:%M})" if safe_until else ""
        super().__init__(
            f"Streak grace period has expired{deadline}; "
            "this completion will not be counted towards the streak."
        )


class SelfParentError(LifecycleError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task {task_id} cannot be its own parent.")


class CircularParentReference(LifecycleError):
    def __init__(self, task_id: str, parent_id: str, *, existing_loop: bool = False) -> None:
        self.task_id = task_id
        self.parent_id = parent_id
        self.existing_loop = existing_loop
        if existing_loop:
            message = (
                f"The parents of task {parent_id} already form a loop; "
                f"task {task_id} cannot be moved under it until that loop is broken."
            )
        else:
            message = (
                f"Task {parent_id} is a subtask of {task_id}; "
                "choose a parent outside this task's own subtasks."
            )
        super().__init__(message)


class NotFound(LifecycleError):
    def __init__(self, entity: str, entity_id: str | None) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} {entity_id} was not found.")


class ConcurrentUpdate(LifecycleError):
    def __init__(self, task_id: str | None) -> None:
        self.task_id = task_id
        subject = f"Task {task_id}" if task_id else "A task"
        super().__init__(
            f"{subject} was changed by another operation while this one ran; "
            "reload it and try again."
        )
