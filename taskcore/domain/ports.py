"""Ports the lifecycle service depends on.

The service only talks to these Protocols, so the SQLAlchemy repository, the
clock and the intent sink can be swapped for fakes in tests.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Protocol

from .entities import ChangeSet, CompletionEntity, Intent, RecurrenceEntity, TaskEntity
from .filters import TaskFilters


class Clock(Protocol):
    def now(self) -> datetime: ...


class EventSink(Protocol):
    def emit(self, intent: Intent) -> None: ...


class TaskStore(Protocol):
    def get_task(self, task_id: str) -> TaskEntity | None: ...

    def list_tasks(self, filters: TaskFilters) -> list[TaskEntity]: ...

    def list_children(self, parent_id: str) -> list[TaskEntity]: ...

    def get_recurrence(self, recurrence_id: str) -> RecurrenceEntity | None: ...

    def list_completions(
        self,
        *,
        task_ids: Iterable[str] | None = None,
        recurrence_id: str | None = None,
        since: datetime | None = None,
    ) -> list[CompletionEntity]: ...

    def add_task(
        self, task: TaskEntity, recurrence: RecurrenceEntity | None = None
    ) -> TaskEntity: ...

    def apply(self, changes: ChangeSet) -> None:
        """Persist every mutation of ``changes`` atomically.

        Raises ``ConcurrentUpdate`` when an updated task no longer has the
        version it was read at.
        """
        ...
