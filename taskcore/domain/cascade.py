from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Iterator

from .entities import TaskEntity
from .enums import TaskKind, TaskStatus
from .errors import CircularParentReference, InvalidTransition, SelfParentError
from .state_machine import can_transition

ChildLoader = Callable[[str], list[TaskEntity]]
TaskLoader = Callable[[str], TaskEntity]


@dataclass(frozen=True)
class Progress:
    completed: int
    total: int

    @property
    def ratio(self) -> float:
        return self.completed / self.total if self.total else 0.0


def effective_kind(task: TaskEntity, children: Iterable[TaskEntity]) -> TaskKind:
    if any(True for _ in children):
        return TaskKind.PARENT
    return TaskKind(task.kind)


def is_done(task: TaskEntity) -> bool:
    """Completed, or a one-off someday task that was retired by completing it."""
    if task.status == TaskStatus.COMPLETED:
        return True
    return task.status == TaskStatus.ARCHIVED and task.is_someday and task.last_completed_at is not None


def progress(children: Iterable[TaskEntity]) -> Progress:
    children = list(children)
    done = sum(1 for child in children if is_done(child))
    return Progress(completed=done, total=len(children))


def all_completed(tasks: Iterable[TaskEntity]) -> bool:
    tasks = list(tasks)
    return bool(tasks) and all(is_done(task) for task in tasks)


def collect_descendants(root_id: str, load_children: ChildLoader) -> list[TaskEntity]:
    """All descendants of ``root_id``, parents before their children."""
    result: list[TaskEntity] = []
    seen = {root_id}
    queue = [root_id]
    while queue:
        current = queue.pop(0)
        for child in load_children(current):
            if child.id in seen:
                continue
            seen.add(child.id)
            result.append(child)
            queue.append(child.id)
    return result


def pending_descendants(descendants: Iterable[TaskEntity]) -> list[TaskEntity]:
    """Descendants still to complete; fails on the first one that refuses Completed."""
    pending = []
    for task in descendants:
        if is_done(task):
            continue
        if not can_transition(task.status, TaskStatus.COMPLETED):
            raise InvalidTransition(task.id, str(task.status), str(TaskStatus.COMPLETED))
        pending.append(task)
    return pending


def ancestor_chain(
    start_id: str, load_task: TaskLoader, *, for_task: str | None = None
) -> Iterator[TaskEntity]:
    """Yield ``start_id`` and each of its ancestors, nearest first.

    ``for_task`` names the task whose new parent is being walked, for the
    error raised when the existing chain already loops.
    """
    seen: set[str] = set()
    current_id: str | None = start_id
    while current_id is not None:
        if current_id in seen:
            raise CircularParentReference(for_task or start_id, start_id, existing_loop=True)
        seen.add(current_id)
        task = load_task(current_id)
        yield task
        current_id = task.parent_id


def check_parent(task_id: str, parent_id: str | None, load_task: TaskLoader) -> None:
    if parent_id is None:
        return
    if parent_id == task_id:
        raise SelfParentError(task_id)
    for ancestor in ancestor_chain(parent_id, load_task, for_task=task_id):
        if ancestor.id == task_id:
            raise CircularParentReference(task_id, parent_id)
