from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .enums import (
    FrequencyUnit,
    HabitPeriod,
    IntentKind,
    RecurrenceKind,
    TaskKind,
    TaskStatus,
)


@dataclass(frozen=True)
class TargetFrequency:
    count: int
    period: HabitPeriod


@dataclass(frozen=True)
class Frequency:
    interval: int
    unit: FrequencyUnit
    # 0 = Sunday ... 6 = Saturday
    exclude_weekdays: frozenset[int] = frozenset()


@dataclass(frozen=True)
class TaskEntity:
    id: str
    owner_id: str
    title: str
    created_at: datetime
    updated_at: datetime
    description: str = ""
    tags: str = ""
    kind: TaskKind = TaskKind.STANDARD
    status: TaskStatus = TaskStatus.READY
    blocked_reason: str | None = None
    parent_id: str | None = None
    due_date: Optional[datetime] = None
    has_due_date: bool = True
    started_at: Optional[datetime] = None
    last_completed_at: Optional[datetime] = None
    completed_count: int = 0
    target_frequency: TargetFrequency | None = None
    current_streak: int = 0
    longest_streak: int = 0
    streak_safe_until: Optional[datetime] = None
    streak_locked: bool = False
    nudge_threshold_days: int | None = None
    last_nudged_at: Optional[datetime] = None
    recurrence_id: str | None = None
    # bumped by the store on every write; an update must carry the version it read
    version: int = 0

    @property
    def is_habit(self) -> bool:
        return self.kind == TaskKind.HABIT

    @property
    def is_someday(self) -> bool:
        return not self.has_due_date and self.nudge_threshold_days is not None


@dataclass(frozen=True)
class RecurrenceEntity:
    id: str
    kind: RecurrenceKind
    frequency: Frequency
    next_due_date: Optional[datetime]
    anchor_date: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class CompletionEntity:
    id: str
    task_id: str
    completed_at: datetime
    was_late: bool = False
    was_retroactive: bool = False


@dataclass(frozen=True)
class Intent:
    kind: IntentKind
    task_id: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class ChangeSet:
    """Mutations produced by one lifecycle event, persisted as a single unit."""

    updated_tasks: dict[str, TaskEntity] = field(default_factory=dict)
    created_tasks: list[TaskEntity] = field(default_factory=list)
    updated_recurrences: dict[str, RecurrenceEntity] = field(default_factory=dict)
    completions: list[CompletionEntity] = field(default_factory=list)
    intents: list[Intent] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (
            self.updated_tasks
            or self.created_tasks
            or self.updated_recurrences
            or self.completions
            or self.intents
        )


@dataclass(frozen=True)
class CompletionResult:
    changes: ChangeSet
    completion: CompletionEntity
    new_occurrence: TaskEntity | None = None
    cascaded_completions: tuple[CompletionEntity, ...] = ()


@dataclass(frozen=True)
class SweepReport:
    streaks_reset: tuple[str, ...] = ()
    nudges_raised: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    skipped: int = 0
