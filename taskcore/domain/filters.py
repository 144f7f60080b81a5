from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class TaskFilters:
    # "all", "open", "habits", "someday", "sweep" (open habits and someday tasks),
    # "overdue" or "due_today"; the last two are evaluated at ``as_of``
    filter_key: str = "all"
    owner_id: str | None = None
    parent_id: str | None = None
    recurrence_id: str | None = None
    has_due_date: bool | None = None
    as_of: datetime | None = None
