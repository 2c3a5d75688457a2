"""tasks-ng CLI entry point."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel

from tasksng import __version__
from tasksng.config import Settings, load_settings
from tasksng.errors import LockTimeoutError, TaskNotFoundError, TaskStoreError
from tasksng.formatters import (
    format_matrix,
    format_sync_result,
    format_sync_state,
    format_task,
    format_task_card,
    format_task_list,
)
from tasksng.parser import TaskStatus
from tasksng.store import TaskStore
from tasksng.sync import SyncController

EXIT_ERROR = 1
EXIT_NOT_FOUND = 3
EXIT_LOCKED = 4


def configure_logging(level: str) -> None:
    """Configure structlog for the application."""
    # Configure stdlib logging
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.WARNING),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def emit(args: argparse.Namespace, data: Any, text: str) -> None:
    """Print ``data`` as JSON with ``--json``, otherwise ``text``."""
    if args.json:
        print(json.dumps(_jsonable(data), indent=2))
    else:
        print(text)


def _jsonable(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, list | tuple):
        return [_jsonable(item) for item in data]
    if isinstance(data, dict):
        return {key: _jsonable(value) for key, value in data.items()}
    if isinstance(data, Path):
        return str(data)
    return data


# -----------------------------------------------------------------------------
# Task commands
# -----------------------------------------------------------------------------


def cmd_list(store: TaskStore, args: argparse.Namespace) -> int:
    tasks = store.list_tasks(
        {
            "status": args.status or [],
            "tags": args.tag or [],
            "section": args.section,
            "quadrant": args.quadrant,
            "include_completed": args.all,
            "flat": args.flat,
        }
    )
    emit(args, tasks, format_task_list(tasks, flat=args.flat))
    return 0


def cmd_show(store: TaskStore, args: argparse.Namespace) -> int:
    task = store.require_task(args.task_id)
    emit(args, task, format_task_card(task))
    return 0


def cmd_add(store: TaskStore, args: argparse.Namespace) -> int:
    data: dict[str, Any] = {
        "description": " ".join(args.description),
        "status": args.status,
        "section": args.section,
        "parent_id": args.parent,
        "tags": args.tag or [],
        "mentions": args.mention or [],
        "modifiers": args.modifier or [],
        "due": args.due,
        "time_spent": args.spent,
    }
    task = store.insert_task({k: v for k, v in data.items() if v is not None})
    emit(args, task, f"Added {format_task(task)}")
    return 0


def cmd_update(store: TaskStore, args: argparse.Namespace) -> int:
    patch: dict[str, Any] = {}
    if args.description:
        patch["description"] = " ".join(args.description)
    for field in ("status", "due", "done"):
        if getattr(args, field) is not None:
            patch[field] = getattr(args, field)
    if args.spent is not None:
        patch["time_spent"] = args.spent
    if args.tag is not None:
        patch["tags"] = args.tag
    if args.mention is not None:
        patch["mentions"] = args.mention
    if args.modifier is not None:
        patch["modifiers"] = args.modifier
    if args.clear_due:
        patch["due"] = None

    task = store.update_task(args.task_id, patch)
    emit(args, task, f"Updated {format_task(task)}")
    return 0


def cmd_set_status(status: TaskStatus):
    def handler(store: TaskStore, args: argparse.Namespace) -> int:
        task = store.update_task(args.task_id, {"status": status})
        emit(args, task, format_task(task))
        return 0

    return handler


def cmd_delete(store: TaskStore, args: argparse.Namespace) -> int:
    removed = store.delete_task(args.task_id)
    emit(
        args,
        {"deleted": args.task_id, "lines": removed},
        f"Deleted {args.task_id} ({len(removed)} line(s))",
    )
    return 0


def cmd_sections(store: TaskStore, args: argparse.Namespace) -> int:
    sections = store.list_sections()
    emit(args, sections, "\n".join(sections) or "No sections.")
    return 0


def cmd_matrix(store: TaskStore, args: argparse.Namespace) -> int:
    matrix = store.eisenhower_matrix(include_completed=args.all)
    emit(args, matrix, format_matrix(matrix))
    return 0


def cmd_backups(store: TaskStore, args: argparse.Namespace) -> int:
    backups = store.list_backups()
    names = [p.name for p in backups]
    emit(args, names, "\n".join(names) or "No backups.")
    return 0


def cmd_restore(store: TaskStore, args: argparse.Namespace) -> int:
    parsed = store.restore_backup(args.name)
    emit(
        args,
        {"restored": args.name, "tasks": len(parsed.tasks)},
        f"Restored {args.name} ({len(parsed.tasks)} task(s))",
    )
    return 0


TASK_COMMANDS = {
    "list": cmd_list,
    "show": cmd_show,
    "add": cmd_add,
    "update": cmd_update,
    "done": cmd_set_status(TaskStatus.COMPLETED),
    "start": cmd_set_status(TaskStatus.IN_PROGRESS),
    "delete": cmd_delete,
    "sections": cmd_sections,
    "matrix": cmd_matrix,
    "backups": cmd_backups,
    "restore": cmd_restore,
}


# -----------------------------------------------------------------------------
# Sync commands
# -----------------------------------------------------------------------------


def run_sync(settings: Settings, args: argparse.Namespace) -> int:
    controller = SyncController(settings)

    if args.sync_command == "status":
        state = controller.get_status()
        emit(args, state, format_sync_state(state))
        return 0

    if args.sync_command == "pull":
        result = controller.pull()
    elif args.sync_command == "push":
        result = controller.push(args.message)
    elif args.sync_command == "run":
        result = controller.sync(args.message)
    else:
        result = controller.init(args.remote_url)

    emit(args, result, format_sync_result(result))
    return 0 if result.success else EXIT_ERROR


# -----------------------------------------------------------------------------
# Argument parsing
# -----------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tasksng",
        description="Manage a markdown task list with safe edits and git sync",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--file",
        type=Path,
        default=None,
        help="Tasks file (default: $TASKS_FILE, XDG data dir, or ~/tasks.md)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Read settings from this .env file",
    )
    parser.add_argument("--json", action="store_true", help="Print JSON output")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")
    statuses = [s.value for s in TaskStatus]

    # list command
    list_parser = subparsers.add_parser("list", help="List tasks")
    list_parser.add_argument("--status", action="append", choices=statuses)
    list_parser.add_argument("--tag", action="append", help="Only tasks with this tag")
    list_parser.add_argument("--section", help="Only tasks in this section")
    list_parser.add_argument("--quadrant", choices=["Q1", "Q2", "Q3", "Q4"])
    list_parser.add_argument(
        "--all", action="store_true", help="Include completed and cancelled tasks"
    )
    list_parser.add_argument(
        "--flat", action="store_true", help="List subtasks as separate entries"
    )

    show_parser = subparsers.add_parser("show", help="Show one task")
    show_parser.add_argument("task_id")

    # add command
    add_parser = subparsers.add_parser("add", help="Add a task")
    add_parser.add_argument("description", nargs="+")
    add_parser.add_argument("--section", help="Section to add the task to")
    add_parser.add_argument("--parent", help="Parent task id")
    add_parser.add_argument("--status", choices=statuses)
    add_parser.add_argument("--tag", action="append")
    add_parser.add_argument("--mention", action="append")
    add_parser.add_argument("--modifier", action="append", help="e.g. urgent, important")
    add_parser.add_argument("--due", help="Due date (YYYY-MM-DD)")
    add_parser.add_argument("--spent", type=int, help="Minutes spent")

    # update command
    update_parser = subparsers.add_parser("update", help="Update a task")
    update_parser.add_argument("task_id")
    update_parser.add_argument("--description", nargs="+")
    update_parser.add_argument("--status", choices=statuses)
    update_parser.add_argument("--tag", action="append", help="Replaces all tags")
    update_parser.add_argument("--mention", action="append", help="Replaces all mentions")
    update_parser.add_argument("--modifier", action="append", help="Replaces all modifiers")
    update_parser.add_argument("--due")
    update_parser.add_argument("--clear-due", action="store_true")
    update_parser.add_argument("--done", help="Completion timestamp")
    update_parser.add_argument("--spent", type=int, help="Minutes spent")

    for name, help_text in (
        ("done", "Mark a task completed"),
        ("start", "Mark a task in progress"),
        ("delete", "Delete a task and its subtasks"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("task_id")

    subparsers.add_parser("sections", help="List sections")

    matrix_parser = subparsers.add_parser("matrix", help="Show the Eisenhower matrix")
    matrix_parser.add_argument("--all", action="store_true")

    subparsers.add_parser("backups", help="List backups, newest first")
    restore_parser = subparsers.add_parser("restore", help="Restore a backup")
    restore_parser.add_argument("name", help="Backup file name")

    # sync command
    sync_parser = subparsers.add_parser("sync", help="Sync the tasks file over git")
    sync_sub = sync_parser.add_subparsers(dest="sync_command", required=True)
    sync_sub.add_parser("status", help="Compare with the remote")
    sync_sub.add_parser("pull", help="Pull remote changes")
    for name, help_text in (("push", "Commit and push"), ("run", "Pull then push")):
        sub = sync_sub.add_parser(name, help=help_text)
        sub.add_argument("-m", "--message", help="Commit message")
    init_parser = sync_sub.add_parser("init", help="Set up the repository and remote")
    init_parser.add_argument("remote_url")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(EXIT_ERROR)

    load_dotenv(args.env_file)
    settings = load_settings(tasks_file=args.file, env_file=args.env_file)
    configure_logging("DEBUG" if args.verbose else settings.log_level)
    log = structlog.get_logger()
    log.debug("config_loaded", tasks_file=str(settings.tasks_file))

    try:
        if args.command == "sync":
            code = run_sync(settings, args)
        else:
            code = TASK_COMMANDS[args.command](TaskStore(settings), args)
    except TaskNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        code = EXIT_NOT_FOUND
    except LockTimeoutError as e:
        print(f"Error: {e}", file=sys.stderr)
        code = EXIT_LOCKED
    except TaskStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        code = EXIT_ERROR

    sys.exit(code)


if __name__ == "__main__":
    main()
