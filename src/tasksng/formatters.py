"""Plain-text formatters for CLI output."""

from datetime import datetime, timezone

from tasksng.parser import EisenhowerMatrix, Quadrant, Task, TaskStatus, get_quadrant_info
from tasksng.parser.extractors import parse_date_value
from tasksng.sync import SyncResult, SyncState, SyncStatus


def format_task(task: Task, indent: int = 0) -> str:
    """Format one task as a single line.

    Args:
        task: Task to format.
        indent: Display depth, two spaces per level.

    Returns:
        Line such as ``"[ ] L3_1a2b3c  Write report  #work  due 2026-02-01"``.
    """
    parts = [f"{'  ' * indent}[{task.checkbox_state.value}] {task.id}  {task.description}"]

    meta = []
    meta.extend(f"#{t}" for t in task.tags)
    meta.extend(f"@{m}" for m in task.mentions)
    meta.extend(f"+{m}" for m in task.modifiers)
    if task.dates.due:
        meta.append(f"due {task.dates.due}")
    if task.time_spent is not None:
        meta.append(_format_minutes(task.time_spent))
    if meta:
        parts.append("  ".join(meta))

    return "  ".join(parts)


def format_task_tree(tasks: list[Task]) -> str:
    """Format tasks with their children indented below them."""
    lines: list[str] = []

    def walk(task: Task, depth: int) -> None:
        lines.append(format_task(task, indent=depth))
        for child in task.children:
            walk(child, depth + 1)

    for task in tasks:
        walk(task, 0)

    if not lines:
        return "No tasks."
    return "\n".join(lines)


def format_task_list(tasks: list[Task], flat: bool = False) -> str:
    """Format a task listing grouped by section."""
    if not tasks:
        return "No tasks."

    sections: dict[str, list[Task]] = {}
    for task in tasks:
        sections.setdefault(task.section, []).append(task)

    blocks = []
    for name, group in sections.items():
        body = (
            "\n".join(format_task(t, indent=t.level) for t in group)
            if flat
            else format_task_tree(group)
        )
        blocks.append(f"## {name}\n{body}")

    blocks.append(f"Total: {len(tasks)} task(s)")
    return "\n\n".join(blocks)


def format_task_card(task: Task) -> str:
    """Format a task with all of its fields."""
    lines = [
        f"{task.id}  (line {task.line_number})",
        f"  Description: {task.description}",
        f"  Status:      {_status_label(task.status)}",
        f"  Section:     {task.section}",
    ]
    if task.parent_id:
        lines.append(f"  Parent:      {task.parent_id}")
    if task.tags:
        lines.append(f"  Tags:        {', '.join(task.tags)}")
    if task.mentions:
        lines.append(f"  Mentions:    {', '.join(task.mentions)}")
    if task.modifiers:
        lines.append(f"  Modifiers:   {', '.join(task.modifiers)}")

    for label, value in (
        ("Due", task.dates.due),
        ("Done", task.dates.done),
        ("Created", task.dates.created),
        ("Paused", task.dates.in_progress),
    ):
        if value:
            lines.append(f"  {label + ':':<12} {_with_relative(value)}")

    if task.time_spent is not None:
        lines.append(f"  Spent:       {_format_minutes(task.time_spent)}")
    if task.children:
        lines.append(f"  Subtasks:    {len(task.children)}")
    return "\n".join(lines)


def format_matrix(matrix: EisenhowerMatrix) -> str:
    """Format the Eisenhower matrix, one block per quadrant."""
    blocks = []
    for quadrant in Quadrant:
        info = get_quadrant_info(quadrant)
        tasks = matrix.get(quadrant)
        header = f"{quadrant.value} {info['name']} ({len(tasks)})"
        body = "\n".join(f"  {format_task(t)}" for t in tasks) or "  -"
        blocks.append(f"{header}\n{body}")
    return "\n\n".join(blocks)


def format_sync_state(state: SyncState) -> str:
    """Format a sync status report."""
    lines = [f"Status: {_sync_icon(state.status)} {state.status.value}"]
    if state.branch or state.remote:
        lines.append(f"Branch: {state.remote or '-'}/{state.branch or '-'}")
    if state.status not in (SyncStatus.NO_REMOTE, SyncStatus.ERROR):
        lines.append(f"Local changes:  {state.local_changes}")
        lines.append(f"Remote changes: {state.remote_changes}")
    lines.append(
        f"Last sync: {_with_relative(state.last_sync) if state.last_sync else 'never'}"
    )
    if state.error:
        lines.append(f"Error: {state.error}")
    return "\n".join(lines)


def format_sync_result(result: SyncResult) -> str:
    """Format the outcome of a sync operation."""
    text = ("OK: " if result.success else "FAILED: ") + result.message
    if result.backup_path:
        text += f"\nBackup: {result.backup_path}"
    if result.conflicts:
        text += f"\nConflicts: {', '.join(result.conflicts)}"
    return text


def _status_label(status: TaskStatus) -> str:
    return status.value.replace("_", " ")


def _sync_icon(status: SyncStatus) -> str:
    """Get marker for sync status."""
    icons = {
        SyncStatus.SYNCED: "=",
        SyncStatus.PENDING: "^",
        SyncStatus.BEHIND: "v",
        SyncStatus.DIVERGED: "<>",
        SyncStatus.SYNCING: "~",
        SyncStatus.ERROR: "!",
        SyncStatus.NO_REMOTE: "-",
    }
    return icons.get(status, "?")


def _format_minutes(minutes: int) -> str:
    hours, rest = divmod(minutes, 60)
    if hours and rest:
        return f"{hours}h{rest:02d}m"
    if hours:
        return f"{hours}h"
    return f"{rest}m"


def _with_relative(value: str) -> str:
    moment = parse_date_value(value)
    if moment is None:
        return value
    return f"{value} ({_relative_time(moment)})"


def _relative_time(dt: datetime) -> str:
    """Format datetime as relative time."""
    seconds = (datetime.now(timezone.utc) - dt).total_seconds()
    suffix = "ago"
    if seconds < 0:
        seconds = -seconds
        suffix = "from now"

    if seconds < 60:
        return "just now"
    elif seconds < 3600:
        return f"{int(seconds / 60)}m {suffix}"
    elif seconds < 86400:
        return f"{int(seconds / 3600)}h {suffix}"
    else:
        return f"{int(seconds / 86400)}d {suffix}"
