from __future__ import annotations

import functools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from datetime import datetime
from uuid import uuid4

from taskcore.domain import nudges, streaks
from taskcore.domain.cascade import (
    Progress,
    all_completed,
    check_parent,
    collect_descendants,
    pending_descendants,
    progress,
)
from taskcore.domain.entities import (
    ChangeSet,
    CompletionEntity,
    CompletionResult,
    Intent,
    RecurrenceEntity,
    SweepReport,
    TargetFrequency,
    TaskEntity,
)
from taskcore.domain.enums import (
    HabitPeriod,
    IntentKind,
    LifecycleEvent,
    TaskKind,
    TaskStatus,
)
from taskcore.domain.errors import ConcurrentUpdate, GracePeriodExpired, InvalidTransition, NotFound
from taskcore.domain.filters import TaskFilters
from taskcore.domain.ports import Clock, EventSink, TaskStore
from taskcore.domain.recurrence import compute_next_due, validate_recurrence
from taskcore.domain.state_machine import can_transition, transition
from taskcore.infra.clock import SystemClock
from taskcore.infra.events import LoggingEventSink

logger = logging.getLogger(__name__)

CONFLICT_ATTEMPTS = 3


def _retry_on_conflict(method):
    """Re-run an event from fresh reads when another event wrote its tasks first."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        for attempt in range(1, CONFLICT_ATTEMPTS + 1):
            try:
                return method(self, *args, **kwargs)
            except ConcurrentUpdate as exc:
                if attempt == CONFLICT_ATTEMPTS:
                    raise
                logger.info(
                    "Task %s changed under %s, retrying (attempt %d)", exc.task_id, method.__name__, attempt + 1
                )

    return wrapper


def _new_id() -> str:
    return str(uuid4())


class _Workspace:
    """Repository reads overlaid with the pending changes of one event."""

    def __init__(self, repo: TaskStore) -> None:
        self._repo = repo
        self._tasks: dict[str, TaskEntity] = {}
        self._recurrences: dict[str, RecurrenceEntity] = {}
        self.changes = ChangeSet()

    def get(self, task_id: str) -> TaskEntity:
        task = self._tasks.get(task_id)
        if task is None:
            task = self._repo.get_task(task_id)
            if task is None:
                raise NotFound("task", task_id)
            self._tasks[task_id] = task
        return task

    def children(self, parent_id: str) -> list[TaskEntity]:
        # Occurrences created during this event are not in the store yet and
        # therefore never count as siblings.
        return [self._tasks.get(child.id, child) for child in self._repo.list_children(parent_id)]

    def recurrence(self, recurrence_id: str) -> RecurrenceEntity:
        recurrence = self._recurrences.get(recurrence_id)
        if recurrence is None:
            recurrence = self._repo.get_recurrence(recurrence_id)
            if recurrence is None:
                raise NotFound("recurrence", recurrence_id)
            self._recurrences[recurrence_id] = recurrence
        return recurrence

    def update(self, task: TaskEntity) -> None:
        self._tasks[task.id] = task
        self.changes.updated_tasks[task.id] = task

    def create(self, task: TaskEntity) -> None:
        self.changes.created_tasks.append(task)

    def update_recurrence(self, recurrence: RecurrenceEntity) -> None:
        self._recurrences[recurrence.id] = recurrence
        self.changes.updated_recurrences[recurrence.id] = recurrence

    def record(self, completion: CompletionEntity) -> None:
        self.changes.completions.append(completion)

    def intent(self, kind: IntentKind, task_id: str, **payload) -> None:
        self.changes.intents.append(Intent(kind=kind, task_id=task_id, payload=payload))


@dataclass(frozen=True)
class _SweepOutcome:
    changes: ChangeSet = field(default_factory=ChangeSet)
    streak_reset: bool = False
    nudged: bool = False


class LifecycleService:
    def __init__(
        self,
        repo: TaskStore,
        clock: Clock | None = None,
        events: EventSink | None = None,
        *,
        sweep_workers: int = 4,
    ) -> None:
        self._repo = repo
        self._clock = clock or SystemClock()
        self._events = events or LoggingEventSink()
        self._sweep_workers = max(int(sweep_workers), 1)

    # -- creation ---------------------------------------------------------

    def create_task(self, data: dict, recurrence: RecurrenceEntity | None = None) -> TaskEntity:
        normalized = self._normalize_data(data)
        now = self._clock.now()
        ws = _Workspace(self._repo)

        task_id = normalized.get("id") or _new_id()
        title = (normalized.get("title") or "").strip()
        if not title:
            raise ValueError("Task title must not be empty")
        threshold = normalized.get("nudge_threshold_days")
        if threshold is not None and threshold <= 0:
            raise ValueError("nudge_threshold_days must be a positive number of days")
        check_parent(task_id, normalized.get("parent_id"), ws.get)

        due_date = normalized.get("due_date")
        if recurrence is not None:
            validate_recurrence(recurrence)
            if due_date is None:
                due_date = recurrence.next_due_date or recurrence.anchor_date
            recurrence = replace(recurrence, next_due_date=due_date, created_at=recurrence.created_at or now)

        kind = normalized.get("kind", TaskKind.STANDARD)
        if kind == TaskKind.PARENT:
            # Parenthood is derived from children, never stored.
            kind = TaskKind.STANDARD
        safe_until = None
        if kind == TaskKind.HABIT and due_date is not None:
            safe_until = streaks.next_safe_until(due_date)

        task = TaskEntity(
            id=task_id,
            owner_id=normalized["owner_id"],
            title=title,
            description=normalized.get("description", ""),
            tags=normalized.get("tags", ""),
            kind=kind,
            status=TaskStatus.READY,
            parent_id=normalized.get("parent_id"),
            due_date=due_date,
            has_due_date=normalized.get("has_due_date", due_date is not None),
            completed_count=0,
            target_frequency=normalized.get("target_frequency"),
            streak_safe_until=safe_until,
            nudge_threshold_days=threshold,
            recurrence_id=recurrence.id if recurrence else normalized.get("recurrence_id"),
            created_at=now,
            updated_at=now,
        )
        created = self._repo.add_task(task, recurrence)
        logger.info("Created task %s (%s) for owner %s", created.id, created.kind, created.owner_id)
        return created

    # -- events -----------------------------------------------------------

    def handle(self, event: LifecycleEvent | str, task_id: str, at: datetime | None = None):
        event = LifecycleEvent(event)
        if event == LifecycleEvent.COMPLETE:
            return self.complete_task(task_id, at)
        if event == LifecycleEvent.UNCOMPLETE:
            return self.uncomplete_task(task_id, at)
        return self._sweep_task(task_id, at or self._clock.now(), None).changes

    @_retry_on_conflict
    def complete_task(
        self,
        task_id: str,
        at: datetime | None = None,
        retroactive: bool = False,
        *,
        allow_expired: bool = False,
    ) -> CompletionResult:
        """Complete a task and everything that follows from it.

        Completing a task with subtasks completes every open descendant at the
        same instant; completing the last open child of a parent completes the
        parent, recursively. Nothing is persisted unless the whole event
        succeeds.
        """
        at = at or self._clock.now()
        ws = _Workspace(self._repo)
        task = ws.get(task_id)

        completion, occurrence = self._complete_one(
            ws, task, at, retroactive=retroactive, allow_expired=allow_expired
        )

        cascaded: list[CompletionEntity] = []
        for child in pending_descendants(collect_descendants(task.id, ws.children)):
            child_completion, _ = self._complete_one(
                ws, ws.get(child.id), at, retroactive=False, allow_expired=True
            )
            cascaded.append(child_completion)
        cascaded.extend(self._cascade_up(ws, ws.get(task.id), at))

        self._commit(ws.changes)
        logger.info(
            "Completed task %s at %s (late=%s, cascaded=%d, next=%s)",
            task.id,
            at.isoformat(),
            completion.was_late,
            len(cascaded),
            occurrence.due_date.isoformat() if occurrence and occurrence.due_date else None,
        )
        return CompletionResult(
            changes=ws.changes,
            completion=completion,
            new_occurrence=occurrence,
            cascaded_completions=tuple(cascaded),
        )

    @_retry_on_conflict
    def uncomplete_task(self, task_id: str, at: datetime | None = None) -> ChangeSet:
        """Reopen a completed task and any ancestor completed on its behalf.

        Completion history, counters and streaks stay untouched.
        """
        at = at or self._clock.now()
        ws = _Workspace(self._repo)
        task = ws.get(task_id)
        if task.status != TaskStatus.COMPLETED:
            raise InvalidTransition(task.id, str(task.status), str(TaskStatus.READY))
        ws.update(transition(task, TaskStatus.READY, at=at))

        seen = {task.id}
        parent_id = task.parent_id
        while parent_id is not None and parent_id not in seen:
            seen.add(parent_id)
            parent = ws.get(parent_id)
            if parent.status != TaskStatus.COMPLETED:
                break
            ws.update(transition(parent, TaskStatus.READY, at=at))
            parent_id = parent.parent_id

        self._commit(ws.changes)
        logger.info("Reopened task %s (%d tasks reopened)", task.id, len(ws.changes.updated_tasks))
        return ws.changes

    def transition_status(
        self, task_id: str, target: TaskStatus | str, reason: str | None = None
    ) -> ChangeSet:
        target = TaskStatus(target)
        if target == TaskStatus.COMPLETED:
            return self.complete_task(task_id).changes

        current = self._repo.get_task(task_id)
        if current is not None and current.status == TaskStatus.COMPLETED and target == TaskStatus.READY:
            return self.uncomplete_task(task_id)
        return self._transition(task_id, target, reason)

    @_retry_on_conflict
    def _transition(self, task_id: str, target: TaskStatus, reason: str | None) -> ChangeSet:
        ws = _Workspace(self._repo)
        task = ws.get(task_id)
        ws.update(transition(task, target, at=self._clock.now(), reason=reason))
        self._commit(ws.changes)
        logger.info("Task %s moved %s -> %s", task.id, task.status, target)
        return ws.changes

    @_retry_on_conflict
    def set_parent(self, task_id: str, new_parent_id: str | None) -> ChangeSet:
        ws = _Workspace(self._repo)
        task = ws.get(task_id)
        if task.parent_id == new_parent_id:
            return ws.changes
        check_parent(task.id, new_parent_id, ws.get)
        ws.update(replace(task, parent_id=new_parent_id, updated_at=self._clock.now()))
        self._commit(ws.changes)
        logger.info("Task %s moved under %s", task.id, new_parent_id)
        return ws.changes

    @_retry_on_conflict
    def snooze_nudge(self, task_id: str, days: int) -> ChangeSet:
        ws = _Workspace(self._repo)
        task = ws.get(task_id)
        ws.update(nudges.snooze(task, days, self._clock.now()))
        self._commit(ws.changes)
        return ws.changes

    # -- sweep ------------------------------------------------------------

    def run_daily_sweep(
        self,
        owner_id: str,
        at: datetime | None = None,
        cancel: threading.Event | None = None,
    ) -> SweepReport:
        """Expire lapsed habit streaks and raise someday nudges for one owner.

        Tasks are evaluated independently on a worker pool; a failure on one
        task is logged and reported without affecting the others.
        """
        at = at or self._clock.now()
        candidates = self._repo.list_tasks(TaskFilters(filter_key="sweep", owner_id=owner_id))
        logger.info("Daily sweep for owner %s at %s: %d candidates", owner_id, at.isoformat(), len(candidates))

        reset: list[str] = []
        nudged: list[str] = []
        failed: list[str] = []
        skipped = 0
        if not candidates:
            return SweepReport()

        workers = min(self._sweep_workers, len(candidates))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sweep") as executor:
            future_to_task = {
                executor.submit(self._sweep_task, task.id, at, cancel): task for task in candidates
            }
            for future in as_completed(future_to_task):
                task = future_to_task[future]
                try:
                    outcome = future.result()
                except Exception:  # noqa: BLE001
                    logger.exception("Sweep failed for task %s", task.id)
                    failed.append(task.id)
                    continue
                if outcome is None:
                    skipped += 1
                    continue
                if outcome.streak_reset:
                    reset.append(task.id)
                if outcome.nudged:
                    nudged.append(task.id)

        report = SweepReport(
            streaks_reset=tuple(sorted(reset)),
            nudges_raised=tuple(sorted(nudged)),
            failed=tuple(sorted(failed)),
            skipped=skipped,
        )
        logger.info(
            "Daily sweep for owner %s done: %d streaks reset, %d nudges, %d failed, %d skipped",
            owner_id,
            len(report.streaks_reset),
            len(report.nudges_raised),
            len(report.failed),
            report.skipped,
        )
        return report

    @_retry_on_conflict
    def _sweep_task(
        self, task_id: str, at: datetime, cancel: threading.Event | None
    ) -> _SweepOutcome | None:
        if cancel is not None and cancel.is_set():
            return None

        ws = _Workspace(self._repo)
        task = ws.get(task_id)
        streak_reset = False
        nudged = False

        expired = streaks.expire_streak(task, at)
        if expired is not None:
            ws.update(expired)
            if task.current_streak > 0:
                streak_reset = True
                ws.intent(IntentKind.STREAK_LOST, task.id, lost_streak=task.current_streak)
            task = expired

        surfaced = nudges.apply_nudge(task, at)
        if surfaced is not None:
            ws.update(surfaced)
            nudged = True
            ws.intent(IntentKind.SURFACE_SUGGESTION, task.id, title=task.title)

        self._commit(ws.changes)
        return _SweepOutcome(changes=ws.changes, streak_reset=streak_reset, nudged=nudged)

    # -- queries ----------------------------------------------------------

    def get_progress(self, task_id: str) -> Progress:
        task = _Workspace(self._repo).get(task_id)
        return progress(self._repo.list_children(task.id))

    def list_overdue(self, owner_id: str, at: datetime | None = None) -> list[TaskEntity]:
        filters = TaskFilters(filter_key="overdue", owner_id=owner_id, as_of=at or self._clock.now())
        return self._repo.list_tasks(filters)

    def list_due_today(self, owner_id: str, at: datetime | None = None) -> list[TaskEntity]:
        filters = TaskFilters(filter_key="due_today", owner_id=owner_id, as_of=at or self._clock.now())
        return self._repo.list_tasks(filters)

    def is_habit_due(self, task_id: str, at: datetime | None = None) -> bool:
        at = at or self._clock.now()
        task = _Workspace(self._repo).get(task_id)
        if not task.is_habit:
            raise ValueError(f"Task {task_id} is not a habit")
        target = task.target_frequency
        if target is None or target.period == HabitPeriod.DAY:
            return True
        since, _ = streaks.period_bounds(target.period, at)
        if task.recurrence_id is not None:
            completions = self._repo.list_completions(recurrence_id=task.recurrence_id, since=since)
        else:
            completions = self._repo.list_completions(task_ids=[task.id], since=since)
        return streaks.is_due_today(task, completions, at)

    # -- internals --------------------------------------------------------

    def _complete_one(
        self,
        ws: _Workspace,
        task: TaskEntity,
        at: datetime,
        *,
        retroactive: bool,
        allow_expired: bool,
    ) -> tuple[CompletionEntity, TaskEntity | None]:
        completed = transition(task, TaskStatus.COMPLETED, at=at)
        was_late = task.has_due_date and task.due_date is not None and at > task.due_date
        was_retroactive = retroactive

        if task.is_habit:
            try:
                outcome = streaks.apply_completion(completed, at)
            except GracePeriodExpired:
                if not allow_expired:
                    logger.info("Rejected streak completion of habit %s at %s", task.id, at.isoformat())
                    raise
                logger.info("Habit %s completed after its grace period; streak not counted", task.id)
            else:
                completed = outcome.task
                was_late = outcome.was_late
                was_retroactive = retroactive or outcome.was_retroactive
                if outcome.was_retroactive:
                    ws.intent(IntentKind.STREAK_SAVED, task.id, streak=completed.current_streak)

        completed = replace(
            completed,
            last_completed_at=at,
            completed_count=task.completed_count + 1,
        )

        occurrence = None
        if task.is_someday:
            # Someday tasks go back into the suggestion pool or retire.
            status = TaskStatus.READY if task.recurrence_id else TaskStatus.ARCHIVED
            completed = replace(completed, status=status)
        elif task.recurrence_id is not None:
            occurrence = self._schedule_next(ws, completed, at)
        ws.update(completed)

        completion = CompletionEntity(
            id=_new_id(),
            task_id=task.id,
            completed_at=at,
            was_late=was_late,
            was_retroactive=was_retroactive,
        )
        ws.record(completion)
        return completion, occurrence

    def _schedule_next(self, ws: _Workspace, task: TaskEntity, at: datetime) -> TaskEntity:
        recurrence = ws.recurrence(task.recurrence_id)
        next_due = compute_next_due(recurrence, at, current_due=task.due_date)
        occurrence = replace(
            task,
            id=_new_id(),
            status=TaskStatus.READY,
            blocked_reason=None,
            due_date=next_due,
            has_due_date=True,
            started_at=None,
            last_completed_at=None,
            completed_count=0,
            streak_safe_until=streaks.next_safe_until(next_due) if task.is_habit else None,
            streak_locked=False,
            last_nudged_at=None,
            created_at=at,
            updated_at=at,
            version=0,
        )
        ws.update_recurrence(replace(recurrence, next_due_date=next_due))
        ws.create(occurrence)
        ws.intent(
            IntentKind.CREATE_OCCURRENCE,
            task.id,
            occurrence_id=occurrence.id,
            due_date=next_due.isoformat(),
        )
        return occurrence

    def _cascade_up(self, ws: _Workspace, task: TaskEntity, at: datetime) -> list[CompletionEntity]:
        cascaded: list[CompletionEntity] = []
        seen = {task.id}
        child = task
        parent_id = task.parent_id
        while parent_id is not None and parent_id not in seen:
            seen.add(parent_id)
            if not all_completed(ws.children(parent_id)):
                break
            parent = ws.get(parent_id)
            if parent.status == TaskStatus.COMPLETED:
                break
            if not can_transition(parent.status, TaskStatus.COMPLETED):
                logger.info("Parent %s left %s although all subtasks are done", parent.id, parent.status)
                break
            completion, _ = self._complete_one(ws, parent, at, retroactive=False, allow_expired=True)
            cascaded.append(completion)
            ws.intent(IntentKind.PARENT_AUTO_COMPLETED, parent.id, child_id=child.id)
            child = parent
            parent_id = parent.parent_id
        return cascaded

    def _commit(self, changes: ChangeSet) -> None:
        if changes.is_empty:
            return
        self._repo.apply(changes)
        for intent in changes.intents:
            self._events.emit(intent)

    def _normalize_data(self, data: dict) -> dict:
        normalized = dict(data)
        if "kind" in normalized and not isinstance(normalized["kind"], TaskKind):
            normalized["kind"] = TaskKind(normalized["kind"])
        target = normalized.get("target_frequency")
        if isinstance(target, dict):
            normalized["target_frequency"] = TargetFrequency(
                count=int(target["count"]), period=HabitPeriod(target["period"])
            )
        return normalized
