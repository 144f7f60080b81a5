from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from taskcore.domain.entities import (
    ChangeSet,
    CompletionEntity,
    Frequency,
    RecurrenceEntity,
    TargetFrequency,
    TaskEntity,
)
from taskcore.domain.enums import (
    OPEN_STATUSES,
    FrequencyUnit,
    HabitPeriod,
    RecurrenceKind,
    TaskKind,
    TaskStatus,
)
from taskcore.domain.due import CLOSED_STATUSES, day_bounds
from taskcore.domain.errors import ConcurrentUpdate, NotFound
from taskcore.domain.filters import TaskFilters

from .clock import utcnow
from .db import SessionLocal
from .models import CompletionModel, RecurrenceModel, TaskModel

logger = logging.getLogger(__name__)

OPEN_STATUS_VALUES = [status.value for status in OPEN_STATUSES]

_TASK_FIELDS = (
    "owner_id",
    "title",
    "description",
    "tags",
    "blocked_reason",
    "parent_id",
    "due_date",
    "has_due_date",
    "started_at",
    "last_completed_at",
    "completed_count",
    "current_streak",
    "longest_streak",
    "streak_safe_until",
    "streak_locked",
    "nudge_threshold_days",
    "last_nudged_at",
    "recurrence_id",
    "created_at",
    "updated_at",
    "version",
)


def _to_entity(model: TaskModel) -> TaskEntity:
    target = model.target_frequency
    return TaskEntity(
        id=model.id,
        owner_id=model.owner_id,
        title=model.title,
        description=model.description,
        tags=model.tags,
        kind=TaskKind(model.type),
        status=TaskStatus(model.status),
        blocked_reason=model.blocked_reason,
        parent_id=model.parent_id,
        due_date=model.due_date,
        has_due_date=model.has_due_date,
        started_at=model.started_at,
        last_completed_at=model.last_completed_at,
        completed_count=model.completed_count,
        target_frequency=(
            TargetFrequency(count=int(target["count"]), period=HabitPeriod(target["period"]))
            if target
            else None
        ),
        current_streak=model.current_streak,
        longest_streak=model.longest_streak,
        streak_safe_until=model.streak_safe_until,
        streak_locked=model.streak_locked,
        nudge_threshold_days=model.nudge_threshold_days,
        last_nudged_at=model.last_nudged_at,
        recurrence_id=model.recurrence_id,
        created_at=model.created_at,
        updated_at=model.updated_at,
        version=model.version,
    )


def _task_values(task: TaskEntity) -> dict:
    values = {name: getattr(task, name) for name in _TASK_FIELDS}
    values["type"] = TaskKind(task.kind).value
    values["status"] = TaskStatus(task.status).value
    target = task.target_frequency
    values["target_frequency"] = (
        {"count": target.count, "period": HabitPeriod(target.period).value} if target else None
    )
    return values


def _recurrence_to_entity(model: RecurrenceModel) -> RecurrenceEntity:
    frequency = model.frequency or {}
    return RecurrenceEntity(
        id=model.id,
        kind=RecurrenceKind(model.type),
        frequency=Frequency(
            interval=frequency.get("interval", 1),
            unit=FrequencyUnit(frequency.get("unit", FrequencyUnit.DAYS.value)),
            exclude_weekdays=frozenset(frequency.get("exclude_weekdays") or ()),
        ),
        anchor_date=model.anchor_date,
        next_due_date=model.next_due_date,
        created_at=model.created_at,
    )


def _recurrence_values(recurrence: RecurrenceEntity) -> dict:
    frequency = recurrence.frequency
    values = {
        "type": RecurrenceKind(recurrence.kind).value,
        "frequency": {
            "interval": frequency.interval,
            "unit": FrequencyUnit(frequency.unit).value,
            "exclude_weekdays": sorted(frequency.exclude_weekdays),
        },
        "anchor_date": recurrence.anchor_date,
        "next_due_date": recurrence.next_due_date,
    }
    if recurrence.created_at is not None:
        values["created_at"] = recurrence.created_at
    return values


def _completion_to_entity(model: CompletionModel) -> CompletionEntity:
    return CompletionEntity(
        id=model.id,
        task_id=model.task_id,
        completed_at=model.completed_at,
        was_late=model.was_late,
        was_retroactive=model.was_retroactive,
    )


def _apply_filters(stmt, filters: TaskFilters) -> object:
    if filters.owner_id is not None:
        stmt = stmt.where(TaskModel.owner_id == filters.owner_id)
    if filters.parent_id is not None:
        stmt = stmt.where(TaskModel.parent_id == filters.parent_id)
    if filters.recurrence_id is not None:
        stmt = stmt.where(TaskModel.recurrence_id == filters.recurrence_id)

    if filters.filter_key == "open":
        stmt = stmt.where(TaskModel.status.in_(OPEN_STATUS_VALUES))
    elif filters.filter_key == "habits":
        stmt = stmt.where(TaskModel.type == TaskKind.HABIT.value)
    elif filters.filter_key == "someday":
        stmt = stmt.where(
            TaskModel.has_due_date.is_(False),
            TaskModel.nudge_threshold_days.is_not(None),
        )
    elif filters.filter_key == "sweep":
        stmt = stmt.where(
            TaskModel.status.in_(OPEN_STATUS_VALUES),
            (TaskModel.type == TaskKind.HABIT.value)
            | (TaskModel.has_due_date.is_(False) & TaskModel.nudge_threshold_days.is_not(None)),
        )
    elif filters.filter_key in ("overdue", "due_today"):
        start, end = day_bounds(filters.as_of or utcnow())
        stmt = stmt.where(TaskModel.has_due_date.is_(True), TaskModel.due_date.is_not(None))
        if filters.filter_key == "overdue":
            stmt = stmt.where(
                TaskModel.due_date < start,
                TaskModel.status.not_in([status.value for status in CLOSED_STATUSES]),
            )
        else:
            stmt = stmt.where(TaskModel.due_date >= start, TaskModel.due_date < end)

    if filters.has_due_date is not None:
        stmt = stmt.where(TaskModel.has_due_date.is_(filters.has_due_date))

    return stmt


class TaskRepository:
    def __init__(self, session_factory: sessionmaker | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    def list_tasks(self, filters: TaskFilters) -> list[TaskEntity]:
        with self._session_factory() as session:
            stmt = select(TaskModel)
            stmt = _apply_filters(stmt, filters)
            stmt = stmt.order_by(TaskModel.created_at.asc(), TaskModel.id.asc())
            return [_to_entity(task) for task in session.scalars(stmt)]

    def list_children(self, parent_id: str) -> list[TaskEntity]:
        return self.list_tasks(TaskFilters(parent_id=parent_id))

    def get_task(self, task_id: str) -> Optional[TaskEntity]:
        with self._session_factory() as session:
            task = session.get(TaskModel, task_id)
            return _to_entity(task) if task else None

    def get_recurrence(self, recurrence_id: str) -> Optional[RecurrenceEntity]:
        with self._session_factory() as session:
            recurrence = session.get(RecurrenceModel, recurrence_id)
            return _recurrence_to_entity(recurrence) if recurrence else None

    def list_completions(
        self,
        *,
        task_ids: Iterable[str] | None = None,
        recurrence_id: str | None = None,
        since: datetime | None = None,
    ) -> list[CompletionEntity]:
        with self._session_factory() as session:
            stmt = select(CompletionModel)
            if recurrence_id is not None:
                stmt = stmt.join(TaskModel, TaskModel.id == CompletionModel.task_id).where(
                    TaskModel.recurrence_id == recurrence_id
                )
            if task_ids is not None:
                stmt = stmt.where(CompletionModel.task_id.in_(list(task_ids)))
            if since is not None:
                stmt = stmt.where(CompletionModel.completed_at >= since)
            stmt = stmt.order_by(CompletionModel.completed_at.asc())
            return [_completion_to_entity(row) for row in session.scalars(stmt)]

    def add_task(self, task: TaskEntity, recurrence: RecurrenceEntity | None = None) -> TaskEntity:
        with self._session_factory.begin() as session:
            if recurrence is not None:
                session.add(RecurrenceModel(id=recurrence.id, **_recurrence_values(recurrence)))
                session.flush()
            session.add(TaskModel(id=task.id, **_task_values(task)))
        return task

    def apply(self, changes: ChangeSet) -> None:
        """Persist a change set in a single transaction.

        Every updated task must carry the version it was read at. If another
        writer got there first the whole set is rolled back and
        ``ConcurrentUpdate`` is raised. Completions are append-only: they are
        only ever inserted here.
        """
        with self._session_factory() as session:
            try:
                with session.begin():
                    self._apply(session, changes)
            except StaleDataError as exc:
                logger.warning("Change set lost a race and was rolled back: %s", exc)
                raise ConcurrentUpdate(None) from exc
            except ConcurrentUpdate as exc:
                logger.warning("Change set rolled back, task %s changed concurrently", exc.task_id)
                raise
            except Exception:
                logger.exception(
                    "Rolled back change set (%d updated, %d created, %d completions)",
                    len(changes.updated_tasks),
                    len(changes.created_tasks),
                    len(changes.completions),
                )
                raise

    @staticmethod
    def _apply(session: Session, changes: ChangeSet) -> None:
        for task in changes.updated_tasks.values():
            model = session.get(TaskModel, task.id, with_for_update=True)
            if model is None:
                raise NotFound("task", task.id)
            if model.version != task.version:
                raise ConcurrentUpdate(task.id)
            values = _task_values(task)
            values["version"] = task.version + 1
            for key, value in values.items():
                setattr(model, key, value)

        for recurrence in changes.updated_recurrences.values():
            model = session.get(RecurrenceModel, recurrence.id)
            values = _recurrence_values(recurrence)
            if model is None:
                session.add(RecurrenceModel(id=recurrence.id, **values))
                continue
            for key, value in values.items():
                setattr(model, key, value)

        for task in changes.created_tasks:
            session.add(TaskModel(id=task.id, **_task_values(task)))
        session.flush()

        for completion in changes.completions:
            session.add(
                CompletionModel(
                    id=completion.id,
                    task_id=completion.task_id,
                    completed_at=completion.completed_at,
                    was_late=completion.was_late,
                    was_retroactive=completion.was_retroactive,
                )
            )
