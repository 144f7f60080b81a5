from __future__ import annotations

from datetime import datetime

import pytest

from taskcore.domain.due import is_due_today, is_overdue
from taskcore.domain.entities import TaskEntity
from taskcore.domain.enums import TaskStatus

NOW = datetime(2026, 3, 4, 15, 0)


def _task(due_date: datetime | None, **extra) -> TaskEntity:
    return TaskEntity(
        id="t1",
        owner_id="o",
        title="File taxes",
        created_at=datetime(2026, 3, 1),
        updated_at=datetime(2026, 3, 1),
        due_date=due_date,
        **extra,
    )


def test_overdue_means_due_before_today() -> None:
    assert is_overdue(_task(datetime(2026, 3, 3, 23, 59)), NOW)
    assert not is_overdue(_task(datetime(2026, 3, 4, 8, 0)), NOW)
    assert not is_overdue(_task(datetime(2026, 3, 5, 9, 0)), NOW)
    assert not is_overdue(_task(None), NOW)


@pytest.mark.parametrize("status", [TaskStatus.COMPLETED, TaskStatus.ARCHIVED])
def test_closed_tasks_are_never_overdue(status: TaskStatus) -> None:
    assert not is_overdue(_task(datetime(2026, 2, 1), status=status), NOW)


def test_blocked_tasks_can_be_overdue() -> None:
    assert is_overdue(_task(datetime(2026, 2, 1), status=TaskStatus.BLOCKED, blocked_reason="waiting"), NOW)


def test_due_today_covers_the_whole_day() -> None:
    assert is_due_today(_task(datetime(2026, 3, 4, 0, 0)), NOW)
    assert is_due_today(_task(datetime(2026, 3, 4, 23, 59)), NOW)
    assert is_due_today(_task(datetime(2026, 3, 4, 8, 0), status=TaskStatus.COMPLETED), NOW)
    assert not is_due_today(_task(datetime(2026, 3, 5, 0, 0)), NOW)
    assert not is_due_today(_task(datetime(2026, 3, 4, 8, 0), has_due_date=False), NOW)
