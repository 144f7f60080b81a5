from __future__ import annotations

from enum import StrEnum


class TaskStatus(StrEnum):
    READY = "ready"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    COMPLETED = "completed"
    ARCHIVED = "archived"


OPEN_STATUSES = frozenset({TaskStatus.READY, TaskStatus.IN_PROGRESS, TaskStatus.BLOCKED})


class TaskKind(StrEnum):
    STANDARD = "task"
    HABIT = "habit"
    # Derived from the presence of children, never stored.
    PARENT = "parent"


class RecurrenceKind(StrEnum):
    FIXED_SCHEDULE = "fixed_schedule"
    AFTER_COMPLETION = "after_completion"


class FrequencyUnit(StrEnum):
    HOURS = "hours"
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"


class HabitPeriod(StrEnum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class LifecycleEvent(StrEnum):
    COMPLETE = "complete"
    UNCOMPLETE = "uncomplete"
    DAILY_SWEEP = "daily_sweep"


class IntentKind(StrEnum):
    CREATE_OCCURRENCE = "create_occurrence"
    STREAK_SAVED = "streak_saved"
    STREAK_LOST = "streak_lost"
    SURFACE_SUGGESTION = "surface_suggestion"
    PARENT_AUTO_COMPLETED = "parent_auto_completed"
