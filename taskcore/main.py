from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime

from taskcore.config import SETTINGS
from taskcore.domain.entities import ChangeSet
from taskcore.domain.enums import TaskStatus
from taskcore.domain.errors import LifecycleError
from taskcore.infra.db import init_db
from taskcore.infra.logging import setup_logging
from taskcore.infra.repository import TaskRepository
from taskcore.services.lifecycle_service import LifecycleService

logger = logging.getLogger(__name__)


def _parse_instant(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO timestamp: {value!r}") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="taskcore", description="Task lifecycle engine")
    sub = parser.add_subparsers(dest="command", required=True)

    sweep = sub.add_parser("sweep", help="expire lapsed streaks and raise someday nudges")
    sweep.add_argument("--owner", required=True)
    sweep.add_argument("--at", type=_parse_instant)

    complete = sub.add_parser("complete", help="complete a task")
    complete.add_argument("task_id")
    complete.add_argument("--at", type=_parse_instant)
    complete.add_argument("--retroactive", action="store_true")
    complete.add_argument(
        "--allow-expired",
        action="store_true",
        help="record the completion even if the streak grace period has passed",
    )

    uncomplete = sub.add_parser("uncomplete", help="reopen a completed task")
    uncomplete.add_argument("task_id")

    move = sub.add_parser("transition", help="change a task's status")
    move.add_argument("task_id")
    move.add_argument("status", choices=[status.value for status in TaskStatus])
    move.add_argument("--reason")

    parent = sub.add_parser("set-parent", help="move a task under another task")
    parent.add_argument("task_id")
    parent.add_argument("parent_id", nargs="?")

    snooze = sub.add_parser("snooze", help="postpone the next nudge of a someday task")
    snooze.add_argument("task_id")
    snooze.add_argument("days", type=int)

    due = sub.add_parser("due", help="list overdue tasks, or tasks due today")
    due.add_argument("--owner", required=True)
    due.add_argument("--at", type=_parse_instant)
    due.add_argument("--today", action="store_true")
    return parser


def _print_changes(changes: ChangeSet) -> None:
    print(
        f"updated={len(changes.updated_tasks)} created={len(changes.created_tasks)} "
        f"completions={len(changes.completions)}"
    )
    for intent in changes.intents:
        print(f"  {intent.kind.value} {intent.task_id}")


def run(args: argparse.Namespace, service: LifecycleService) -> int:
    if args.command == "sweep":
        report = service.run_daily_sweep(args.owner, args.at)
        print(f"streaks reset: {', '.join(report.streaks_reset) or '-'}")
        print(f"nudges raised: {', '.join(report.nudges_raised) or '-'}")
        if report.failed:
            print(f"failed: {', '.join(report.failed)}", file=sys.stderr)
            return 1
        return 0
    if args.command == "complete":
        result = service.complete_task(
            args.task_id, args.at, args.retroactive, allow_expired=args.allow_expired
        )
        _print_changes(result.changes)
        return 0
    if args.command == "uncomplete":
        _print_changes(service.uncomplete_task(args.task_id))
        return 0
    if args.command == "transition":
        _print_changes(service.transition_status(args.task_id, args.status, args.reason))
        return 0
    if args.command == "set-parent":
        _print_changes(service.set_parent(args.task_id, args.parent_id))
        return 0
    if args.command == "snooze":
        _print_changes(service.snooze_nudge(args.task_id, args.days))
        return 0
    if args.command == "due":
        listing = service.list_due_today if args.today else service.list_overdue
        for task in listing(args.owner, args.at):
            print(f"{task.id}\t{task.due_date:%Y-%m-%d %H:%M}\t{task.title}")
        return 0
    return 2


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    try:
        init_db()
    except Exception as exc:  # noqa: BLE001
        logger.error("Database is not reachable: %s", exc)
        print(f"DB error: {exc}", file=sys.stderr)
        return 1

    service = LifecycleService(TaskRepository(), sweep_workers=SETTINGS.sweep_workers)
    try:
        return run(args, service)
    except (LifecycleError, ValueError) as exc:
        logger.warning("%s failed: %s", args.command, exc)
        print(str(exc), file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
