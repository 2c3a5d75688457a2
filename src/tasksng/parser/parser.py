"""Parser for the tasks.md format.

Pure functions: no I/O and no state shared between calls.
"""

from collections.abc import Iterable, Iterator
from datetime import datetime, timedelta, timezone

from tasksng.parser.extractors import (
    CHECKBOX_REGEX,
    DEFAULT_SECTION,
    MAX_LEVEL,
    checkbox_to_status,
    generate_task_id,
    get_indent_level,
    match_section,
    parse_date_value,
    scan_tokens,
)
from tasksng.parser.models import CheckboxState, ParsedFile, Task, TaskStatus

CLOSED_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.CANCELLED})


def parse_line(line: str, line_number: int, section: str) -> Task | None:
    """Parse a single line into a Task.

    Args:
        line: Raw line without its trailing newline.
        line_number: 1-based line number in the file.
        section: Name of the nearest preceding section heading.

    Returns:
        Task, or None if the line is not a task or is nested deeper
        than the maximum level.
    """
    match = CHECKBOX_REGEX.match(line)
    if not match:
        return None

    level = get_indent_level(line)
    if level > MAX_LEVEL:
        return None

    checkbox_state = CheckboxState(match.group(2))
    tokens = scan_tokens(line)

    return Task(
        id=generate_task_id(line_number, line),
        line_number=line_number,
        description=tokens.description,
        raw_line=line,
        checkbox_state=checkbox_state,
        status=checkbox_to_status(checkbox_state),
        level=level,
        tags=tokens.tags,
        mentions=tokens.mentions,
        modifiers=tokens.modifiers,
        dates=tokens.dates,
        time_spent=tokens.time_spent,
        is_urgent="urgent" in tokens.modifiers,
        is_important="important" in tokens.modifiers,
        section=section,
    )


def build_task_tree(tasks: list[Task]) -> None:
    """Link tasks to their parents based on indentation.

    Mutates the tasks in place, setting ``parent_id`` and appending to
    ``children``. Uses a stack of open ancestors, so the list must be in
    file order.

    Args:
        tasks: Tasks in strictly ascending line-number order.

    Raises:
        ValueError: If the tasks are not in ascending line order.
    """
    stack: list[Task] = []
    previous = 0

    for task in tasks:
        if task.line_number <= previous:
            raise ValueError(
                f"Tasks must be in file order: line {task.line_number} "
                f"follows line {previous}"
            )
        previous = task.line_number

        while stack and stack[-1].level >= task.level:
            stack.pop()

        if stack:
            parent = stack[-1]
            task.parent_id = parent.id
            parent.children.append(task)

        stack.append(task)


def parse_tasks_file(content: str) -> ParsedFile:
    """Parse the full content of a tasks file.

    Args:
        content: Raw markdown content.

    Returns:
        ParsedFile with the flat task list (tree links set), the section
        names in file order, and the original lines.
    """
    lines = content.split("\n")
    tasks: list[Task] = []
    sections: list[str] = []
    current_section = DEFAULT_SECTION

    for index, line in enumerate(lines):
        heading = match_section(line)
        if heading:
            current_section = heading
            if heading not in sections:
                sections.append(heading)
            continue

        task = parse_line(line, index + 1, current_section)
        if task:
            tasks.append(task)

    build_task_tree(tasks)

    return ParsedFile(
        tasks=tasks,
        sections=sections,
        raw_content=content,
        lines=lines,
    )


def iter_descendants(task: Task) -> Iterator[Task]:
    """Yield every descendant of a task, depth first."""
    for child in task.children:
        yield child
        yield from iter_descendants(child)


def get_top_level_tasks(tasks: Iterable[Task]) -> list[Task]:
    """Get tasks without a parent."""
    return [t for t in tasks if t.parent_id is None]


def filter_by_status(
    tasks: Iterable[Task], statuses: Iterable[TaskStatus | str]
) -> list[Task]:
    """Keep tasks whose status is in ``statuses``."""
    wanted = {TaskStatus(s) for s in statuses}
    return [t for t in tasks if t.status in wanted]


def filter_by_tags(tasks: Iterable[Task], tags: Iterable[str]) -> list[Task]:
    """Keep tasks carrying any of ``tags`` (case-insensitive)."""
    wanted = {t.lower().lstrip("#") for t in tags}
    return [t for t in tasks if wanted.intersection(t.tags)]


def filter_by_section(tasks: Iterable[Task], section: str) -> list[Task]:
    """Keep tasks in ``section`` (case-insensitive)."""
    wanted = section.lower()
    return [t for t in tasks if t.section.lower() == wanted]


def get_active_tasks(tasks: Iterable[Task]) -> list[Task]:
    """Get tasks that are neither completed nor cancelled."""
    return [t for t in tasks if t.status not in CLOSED_STATUSES]


def in_grace_period(
    task: Task,
    hours: float,
    now: datetime | None = None,
) -> bool:
    """Check if a task recently left "in progress" or was closed.

    Consumers keep such tasks visible for a while as if still active.

    Args:
        task: Task to check.
        hours: Length of the window.
        now: Reference time (defaults to the current UTC time).

    Returns:
        True if the ``done`` stamp of a closed task, or the last
        in-progress stamp, lies within the window.
    """
    now = now or datetime.now(timezone.utc)
    window = timedelta(hours=hours)

    stamps = [task.dates.in_progress]
    if task.status in CLOSED_STATUSES:
        stamps.append(task.dates.done)

    for stamp in stamps:
        if not stamp:
            continue
        moment = parse_date_value(stamp)
        if moment is not None and timedelta(0) <= now - moment < window:
            return True
    return False
