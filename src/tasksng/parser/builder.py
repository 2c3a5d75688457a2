"""Task line builder: renders tasks back into markdown lines."""

from collections.abc import Iterable
from typing import Any

from tasksng.parser.extractors import INDENT_WIDTH, MAX_LEVEL
from tasksng.parser.models import CheckboxState, Task, TaskDates

# Serialized order of date tokens
DATE_FIELDS = (
    ("due", "due"),
    ("done", "done"),
    ("created", "created"),
    ("in_progress", "inprogress"),
)


def build_task_line(
    description: str,
    checkbox_state: CheckboxState | str = CheckboxState.OPEN,
    level: int = 0,
    tags: Iterable[str] = (),
    mentions: Iterable[str] = (),
    modifiers: Iterable[str] = (),
    dates: TaskDates | None = None,
    time_spent: int | None = None,
) -> str:
    """Build a task line from its parts.

    Field order is fixed: description, tags, mentions, modifiers, dates,
    time spent.

    Args:
        description: Task text without metadata.
        checkbox_state: Checkbox marker.
        level: Nesting level (0-3).
        tags: Tags without the leading ``#``.
        mentions: Mentions without the leading ``@``.
        modifiers: Modifiers without the leading ``+``.
        dates: Date metadata.
        time_spent: Minutes spent.

    Returns:
        The rendered line, e.g. ``"- [ ] Fix the bug #backend +urgent"``.

    Raises:
        ValueError: If the level is out of range.
    """
    if not 0 <= level <= MAX_LEVEL:
        raise ValueError(f"Level must be between 0 and {MAX_LEVEL}, got {level}")

    state = CheckboxState(checkbox_state)
    parts = [" ".join(description.split())]
    parts.extend(f"#{tag}" for tag in tags)
    parts.extend(f"@{mention}" for mention in mentions)
    parts.extend(f"+{mod}" for mod in modifiers)

    if dates:
        for field, key in DATE_FIELDS:
            value = getattr(dates, field)
            if value:
                parts.append(f"_{key}:{value}")

    if time_spent is not None:
        parts.append(f"_spent:{time_spent}")

    indent = " " * (INDENT_WIDTH * level)
    body = " ".join(p for p in parts if p)
    return f"{indent}- [{state.value}] {body}".rstrip()


def task_to_line(task: Task) -> str:
    """Render a parsed task back into a canonical line."""
    return build_task_line(
        description=task.description,
        checkbox_state=task.checkbox_state,
        level=task.level,
        tags=task.tags,
        mentions=task.mentions,
        modifiers=task.modifiers,
        dates=task.dates,
        time_spent=task.time_spent,
    )


def update_task_line(task: Task, **updates: Any) -> str:
    """Render a task with some fields replaced.

    Keyword arguments match ``build_task_line``; ``None`` values keep the
    task's current value.
    """
    fields: dict[str, Any] = {
        "description": task.description,
        "checkbox_state": task.checkbox_state,
        "level": task.level,
        "tags": task.tags,
        "mentions": task.mentions,
        "modifiers": task.modifiers,
        "dates": task.dates,
        "time_spent": task.time_spent,
    }
    for key, value in updates.items():
        if key not in fields:
            raise TypeError(f"Unknown task field: {key}")
        if value is not None:
            fields[key] = value
    return build_task_line(**fields)


def _check_index(lines: list[str], line_number: int, allow_end: bool = False) -> int:
    index = line_number - 1
    upper = len(lines) if allow_end else len(lines) - 1
    if index < 0 or index > upper:
        raise ValueError(f"Invalid line number: {line_number}")
    return index


def replace_task_line(lines: list[str], line_number: int, new_line: str) -> list[str]:
    """Return a copy of ``lines`` with one line replaced."""
    result = list(lines)
    result[_check_index(result, line_number)] = new_line
    return result


def insert_line(lines: list[str], line_number: int, new_line: str) -> list[str]:
    """Return a copy of ``lines`` with ``new_line`` placed at ``line_number``.

    ``line_number`` may be one past the last line to append.
    """
    result = list(lines)
    result.insert(_check_index(result, line_number, allow_end=True), new_line)
    return result


def delete_line(lines: list[str], line_number: int) -> list[str]:
    """Return a copy of ``lines`` without one line."""
    result = list(lines)
    del result[_check_index(result, line_number)]
    return result


def delete_lines(lines: list[str], line_numbers: Iterable[int]) -> list[str]:
    """Return a copy of ``lines`` without the given lines.

    Lines are removed from the bottom up so earlier line numbers stay valid.
    """
    result = list(lines)
    for line_number in sorted(set(line_numbers), reverse=True):
        del result[_check_index(result, line_number)]
    return result
