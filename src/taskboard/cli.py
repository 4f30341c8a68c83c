"""Taskboard command line."""

from __future__ import annotations

import argparse
import asyncio
import logging

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from taskboard.backend import SupabaseBackend
from taskboard.exceptions import TaskboardError, ValidationError
from taskboard.logging import configure_logging
from taskboard.models import Notification, TaskPatch
from taskboard.optimistic import UpdateTask
from taskboard.session import TaskboardSession
from taskboard.settings import settings

logger = logging.getLogger(__name__)
console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="taskboard", description="Taskboard CLI")
    parser.add_argument("--user", default=settings.taskboard_user_id, help="Acting user id (TASKBOARD_USER_ID)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("tasks", help="List tasks")
    subparsers.add_parser("notifications", help="List recent notifications")

    read_parser = subparsers.add_parser("read", help="Mark a notification as read")
    read_parser.add_argument("notification_id")

    subparsers.add_parser("read-all", help="Mark all notifications as read")
    subparsers.add_parser("watch", help="Print notifications as they arrive")

    assign_parser = subparsers.add_parser("assign", help="Assign a task")
    assign_parser.add_argument("task_id")
    assign_parser.add_argument("assignee_id", help="User id, or 'none' to unassign")

    status_parser = subparsers.add_parser("status", help="Change a task's status")
    status_parser.add_argument("task_id")
    status_parser.add_argument("status_id")

    return parser


def render_notification(notification: Notification) -> str:
    marker = "[bold blue]●[/bold blue]" if not notification.read else " "
    when = notification.created_at.strftime("%H:%M") if notification.created_at else "--:--"
    actor = notification.actor_name or "Unknown user"
    return f"{marker} {when}  {escape(notification.message)}  [dim]{escape(actor)} · {escape(notification.id)}[/dim]"


async def _print_tasks(session: TaskboardSession) -> None:
    await session.load_reference_data()
    tasks = await session.load_tasks()
    table = Table("ID", "Title", "Status", "Project", "Assignee")
    for task in tasks:
        cells = (task.id, task.title, task.status_name or "-", task.project_name or "-", task.assignee_id or "-")
        table.add_row(*(escape(cell) for cell in cells))
    console.print(table)


async def _watch(session: TaskboardSession) -> None:
    session.on_notification(lambda n: console.print(render_notification(n)))
    console.print(f"Watching notifications for {session.user_id} ({session.unread_count()} unread). Ctrl+C to stop.")
    await asyncio.Event().wait()


async def _update(session: TaskboardSession, task_id: str, patch: TaskPatch) -> None:
    await session.load_reference_data()
    await session.load_task(task_id)
    task = await session.mutate(UpdateTask(task_id=task_id, patch=patch))
    console.print(f"Updated {escape(task.id)}: {escape(task.title)} {escape(f'[{task.status_name or task.status_id}]')}")


async def run(args: argparse.Namespace) -> int:
    if not args.user:
        console.print("[red]No user: pass --user or set TASKBOARD_USER_ID[/red]")
        return 2

    backend = await SupabaseBackend.connect()
    async with TaskboardSession(backend, args.user) as session:
        match args.command:
            case "tasks":
                await _print_tasks(session)
            case "notifications":
                if session.notifications.feed.error:
                    console.print(f"[red]Error loading notifications: {escape(session.notifications.feed.error)}[/red]")
                    return 1
                if not session.list_notifications():
                    console.print("No notifications yet")
                for notification in session.list_notifications():
                    console.print(render_notification(notification))
            case "read":
                await session.mark_read(args.notification_id)
                console.print(f"{session.unread_count()} unread")
            case "read-all":
                await session.mark_all_read()
                console.print("All notifications marked as read")
            case "watch":
                await _watch(session)
            case "assign":
                assignee = None if args.assignee_id.lower() == "none" else args.assignee_id
                await _update(session, args.task_id, TaskPatch(assignee_id=assignee))
            case "status":
                await _update(session, args.task_id, TaskPatch(status_id=args.status_id))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    configure_logging(logging.DEBUG if args.verbose else settings.log_level, force_rich=settings.rich_logs)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130
    except ValidationError as e:
        console.print(f"[red]{escape(e.message)}[/red] {escape(str(e.fields))}")
        return 2
    except TaskboardError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
