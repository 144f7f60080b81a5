from __future__ import annotations

import os
import threading
from dataclasses import replace
from datetime import datetime

import pytest

# taskcore.config refuses to import without a database URL
os.environ.setdefault("DATABASE_URL", "sqlite://")

from taskcore.domain import due  # noqa: E402
from taskcore.domain.entities import (  # noqa: E402
    ChangeSet,
    CompletionEntity,
    RecurrenceEntity,
    TaskEntity,
)
from taskcore.domain.enums import OPEN_STATUSES, TaskKind  # noqa: E402
from taskcore.domain.errors import ConcurrentUpdate, NotFound  # noqa: E402
from taskcore.domain.filters import TaskFilters  # noqa: E402
from taskcore.infra.clock import FixedClock  # noqa: E402
from taskcore.infra.events import CollectingEventSink  # noqa: E402
from taskcore.services.lifecycle_service import LifecycleService  # noqa: E402

# Monday
BASE = datetime(2026, 3, 2, 9, 0)
OWNER = "owner-1"


class FakeRepo:
    def __init__(self) -> None:
        self.tasks: dict[str, TaskEntity] = {}
        self.recurrences: dict[str, RecurrenceEntity] = {}
        self.completions: list[CompletionEntity] = []
        self.applied: list[ChangeSet] = []
        self.fail_for: set[str] = set()
        self._lock = threading.Lock()

    def get_task(self, task_id: str) -> TaskEntity | None:
        return self.tasks.get(task_id)

    def list_tasks(self, filters: TaskFilters) -> list[TaskEntity]:
        result = []
        for task in self.tasks.values():
            if filters.owner_id is not None and task.owner_id != filters.owner_id:
                continue
            if filters.parent_id is not None and task.parent_id != filters.parent_id:
                continue
            if filters.recurrence_id is not None and task.recurrence_id != filters.recurrence_id:
                continue
            if filters.filter_key == "sweep" and not (
                task.status in OPEN_STATUSES and (task.is_habit or task.is_someday)
            ):
                continue
            if filters.filter_key == "overdue" and not due.is_overdue(task, filters.as_of):
                continue
            if filters.filter_key == "due_today" and not due.is_due_today(task, filters.as_of):
                continue
            if filters.has_due_date is not None and task.has_due_date != filters.has_due_date:
                continue
            result.append(task)
        return result

    def list_children(self, parent_id: str) -> list[TaskEntity]:
        return [task for task in self.tasks.values() if task.parent_id == parent_id]

    def get_recurrence(self, recurrence_id: str) -> RecurrenceEntity | None:
        return self.recurrences.get(recurrence_id)

    def list_completions(self, *, task_ids=None, recurrence_id=None, since=None):
        ids = set(task_ids) if task_ids is not None else None
        result = []
        for completion in self.completions:
            task = self.tasks.get(completion.task_id)
            if ids is not None and completion.task_id not in ids:
                continue
            if recurrence_id is not None and (task is None or task.recurrence_id != recurrence_id):
                continue
            if since is not None and completion.completed_at < since:
                continue
            result.append(completion)
        return result

    def add_task(self, task: TaskEntity, recurrence: RecurrenceEntity | None = None) -> TaskEntity:
        if recurrence is not None:
            self.recurrences[recurrence.id] = recurrence
        self.tasks[task.id] = task
        return task

    def apply(self, changes: ChangeSet) -> None:
        touched = set(changes.updated_tasks) | {task.id for task in changes.created_tasks}
        if touched & self.fail_for:
            raise RuntimeError("store unavailable")
        with self._lock:
            for task in changes.updated_tasks.values():
                stored = self.tasks.get(task.id)
                if stored is None:
                    raise NotFound("task", task.id)
                if stored.version != task.version:
                    raise ConcurrentUpdate(task.id)
            self.recurrences.update(changes.updated_recurrences)
            for task in changes.updated_tasks.values():
                self.tasks[task.id] = replace(task, version=task.version + 1)
            for task in changes.created_tasks:
                self.tasks[task.id] = task
            self.completions.extend(changes.completions)
            self.applied.append(changes)


@pytest.fixture()
def repo() -> FakeRepo:
    return FakeRepo()


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(BASE)


@pytest.fixture()
def sink() -> CollectingEventSink:
    return CollectingEventSink()


@pytest.fixture()
def service(repo: FakeRepo, clock: FixedClock, sink: CollectingEventSink) -> LifecycleService:
    return LifecycleService(repo, clock, sink, sweep_workers=3)


@pytest.fixture()
def make_task(repo: FakeRepo):
    """Store a task built from keyword overrides and return it."""
    counter = iter(range(1, 10_000))

    def _make(**overrides) -> TaskEntity:
        task_id = overrides.pop("id", None) or f"task-{next(counter)}"
        task = TaskEntity(
            id=task_id,
            owner_id=OWNER,
            title=overrides.pop("title", task_id),
            created_at=overrides.pop("created_at", BASE),
            updated_at=BASE,
            kind=overrides.pop("kind", TaskKind.STANDARD),
        )
        task = replace(task, **overrides)
        repo.tasks[task.id] = task
        return task

    return _make
