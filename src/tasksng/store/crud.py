"""Task store: queries and mutations against the live tasks file.

Every mutation is one read-modify-write under the file lock. Task ids are
derived from line numbers, so they are looked up against the snapshot read
inside the lock and a stale id fails instead of touching the wrong line.
"""

import re
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

import structlog
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
)

from tasksng.config import Settings
from tasksng.errors import TaskFileError, TaskNotFoundError, TaskValidationError
from tasksng.parser import (
    CheckboxState,
    EisenhowerMatrix,
    ParsedFile,
    Quadrant,
    Task,
    TaskDates,
    TaskStatus,
    build_task_line,
    delete_lines,
    filter_by_quadrant,
    filter_by_section,
    filter_by_status,
    filter_by_tags,
    get_top_level_tasks,
    group_by_quadrant,
    in_grace_period,
    insert_line,
    iter_descendants,
    replace_task_line,
    status_to_checkbox,
)
from tasksng.parser.extractors import (
    CHECKBOX_REGEX,
    DATE_VALUE_REGEX,
    DEFAULT_SECTION,
    MAX_LEVEL,
    format_timestamp,
    match_section,
    parse_date_value,
)
from tasksng.parser.parser import CLOSED_STATUSES
from tasksng.store.files import TaskFile

log = structlog.get_logger()

T = TypeVar("T")

_WORD_TOKEN = re.compile(r"^[a-z0-9-]+$")
_MODIFIER_TOKEN = re.compile(r"^[a-z]+(?::[a-z0-9-]+)?$")


def _normalize_tokens(values: list[str], prefix: str, pattern: re.Pattern[str]) -> list[str]:
    result = []
    for value in values:
        token = value.strip().lower().removeprefix(prefix)
        if not pattern.match(token):
            raise ValueError(f"Invalid {prefix} token: {value!r}")
        if token not in result:
            result.append(token)
    return result


def _check_date(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not DATE_VALUE_REGEX.match(value) or parse_date_value(value) is None:
        raise ValueError(f"Invalid date: {value!r}")
    return value


def _check_description(value: str) -> str:
    text = " ".join(value.split())
    if not text:
        raise ValueError("Description cannot be empty")
    return text


class NewTask(BaseModel):
    """Input for creating a task."""

    model_config = ConfigDict(extra="forbid")

    description: str
    status: TaskStatus = TaskStatus.PENDING
    section: str | None = None
    parent_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    mentions: list[str] = Field(default_factory=list)
    modifiers: list[str] = Field(default_factory=list)
    due: str | None = None
    time_spent: int | None = Field(default=None, ge=0)

    @field_validator("description")
    @classmethod
    def check_description(cls, v: str) -> str:
        return _check_description(v)

    @field_validator("due")
    @classmethod
    def check_due(cls, v: str | None) -> str | None:
        return _check_date(v)

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: list[str]) -> list[str]:
        return _normalize_tokens(v, "#", _WORD_TOKEN)

    @field_validator("mentions")
    @classmethod
    def normalize_mentions(cls, v: list[str]) -> list[str]:
        return _normalize_tokens(v, "@", _WORD_TOKEN)

    @field_validator("modifiers")
    @classmethod
    def normalize_modifiers(cls, v: list[str]) -> list[str]:
        return _normalize_tokens(v, "+", _MODIFIER_TOKEN)


class TaskPatch(BaseModel):
    """Partial update of a task.

    Fields left out keep their current value. ``due``, ``done`` and
    ``time_spent`` explicitly set to None are cleared. ``checkbox_state``
    wins over ``status`` when both are given.
    """

    model_config = ConfigDict(extra="forbid")

    description: str | None = None
    status: TaskStatus | None = None
    checkbox_state: CheckboxState | None = None
    tags: list[str] | None = None
    mentions: list[str] | None = None
    modifiers: list[str] | None = None
    due: str | None = None
    done: str | None = None
    time_spent: int | None = Field(default=None, ge=0)

    @field_validator("description")
    @classmethod
    def check_description(cls, v: str | None) -> str | None:
        return None if v is None else _check_description(v)

    @field_validator("due", "done")
    @classmethod
    def check_dates(cls, v: str | None) -> str | None:
        return _check_date(v)

    @field_validator("tags", "mentions")
    @classmethod
    def normalize_words(cls, v: list[str] | None, info: ValidationInfo) -> list[str] | None:
        if v is None:
            return None
        prefix = "#" if info.field_name == "tags" else "@"
        return _normalize_tokens(v, prefix, _WORD_TOKEN)

    @field_validator("modifiers")
    @classmethod
    def normalize_modifiers(cls, v: list[str] | None) -> list[str] | None:
        return None if v is None else _normalize_tokens(v, "+", _MODIFIER_TOKEN)

    def target_state(self, current: CheckboxState) -> CheckboxState:
        """Checkbox state after applying this patch."""
        if self.checkbox_state is not None:
            return self.checkbox_state
        if self.status is not None:
            return status_to_checkbox(self.status)
        return current


class TaskFilters(BaseModel):
    """Filters for listing tasks."""

    model_config = ConfigDict(extra="forbid")

    status: list[TaskStatus] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    section: str | None = None
    quadrant: Quadrant | None = None
    include_completed: bool = False
    flat: bool = False
    grace_period_hours: float | None = Field(default=None, ge=0)


def _validate(model: type[BaseModel], data: Any) -> Any:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate({} if data is None else data)
    except ValidationError as e:
        raise TaskValidationError(str(e)) from e


class TaskStore:
    """Query and mutate one tasks file."""

    def __init__(self, settings: Settings):
        """Initialize the store.

        Args:
            settings: Application settings; the tasks file, lock and
                backup options are taken from here.
        """
        self.settings = settings
        self.file = TaskFile.from_settings(settings)

    @classmethod
    def from_path(cls, path: str | Path, **options: Any) -> "TaskStore":
        """Create a store for ``path`` with optional setting overrides."""
        return cls(Settings(tasks_file=path, **options))

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def read(self) -> ParsedFile:
        """Parse the current file content."""
        return self.file.read()

    def list_tasks(
        self,
        filters: TaskFilters | dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> list[Task]:
        """List tasks matching filters.

        Without an explicit status filter, completed and cancelled tasks
        are hidden unless they closed within the grace period or
        ``include_completed`` is set.

        Args:
            filters: TaskFilters or an equivalent dict.
            now: Reference time for the grace period.

        Returns:
            Top-level matching tasks, or every matching task if ``flat``.

        Raises:
            TaskValidationError: If the filters are malformed.
        """
        filters = _validate(TaskFilters, filters)
        tasks = self.read().tasks

        if filters.status:
            tasks = filter_by_status(tasks, filters.status)
        elif not filters.include_completed:
            hours = filters.grace_period_hours
            if hours is None:
                hours = self.settings.grace_period_hours
            tasks = [
                t for t in tasks
                if t.status not in CLOSED_STATUSES or in_grace_period(t, hours, now)
            ]

        if filters.tags:
            tasks = filter_by_tags(tasks, filters.tags)
        if filters.section:
            tasks = filter_by_section(tasks, filters.section)
        if filters.quadrant:
            tasks = filter_by_quadrant(tasks, filters.quadrant)

        if filters.flat:
            return tasks
        return get_top_level_tasks(tasks)

    def get_task(self, task_id: str) -> Task | None:
        """Look up a task in the current file."""
        return self.read().find(task_id)

    def require_task(self, task_id: str) -> Task:
        """Look up a task, raising if it doesn't exist.

        Raises:
            TaskNotFoundError: If no task has this id.
        """
        task = self.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def list_sections(self) -> list[str]:
        """Section names in file order."""
        return self.read().sections

    def group_by_quadrant(self, tasks: list[Task]) -> EisenhowerMatrix:
        return group_by_quadrant(tasks)

    def eisenhower_matrix(self, include_completed: bool = False) -> EisenhowerMatrix:
        """Group every listed task (children included) by quadrant."""
        tasks = self.list_tasks(
            TaskFilters(include_completed=include_completed, flat=True)
        )
        return group_by_quadrant(tasks)

    def list_backups(self) -> list[Path]:
        """Backup files, newest first."""
        return self.file.backups.list()

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def insert_task(self, data: NewTask | dict[str, Any]) -> Task:
        """Insert a new task.

        The task goes after the parent's last descendant when ``parent_id``
        is set, else after the last task of its section, else right after
        the section heading, else at the end of the file.

        Args:
            data: NewTask or an equivalent dict.

        Returns:
            The task as parsed back from the file.

        Raises:
            TaskValidationError: If the input is invalid or the task would
                be nested deeper than the maximum level.
            TaskNotFoundError: If ``parent_id`` does not exist.
        """
        new = _validate(NewTask, data)

        def mutate(parsed: ParsedFile) -> tuple[list[str], int]:
            level = 0
            parent = None
            if new.parent_id:
                parent = parsed.find(new.parent_id)
                if parent is None:
                    raise TaskNotFoundError(new.parent_id)
                level = parent.level + 1
                if level > MAX_LEVEL:
                    raise TaskValidationError(
                        f"Maximum nesting depth ({MAX_LEVEL}) exceeded"
                    )

            checkbox_state = status_to_checkbox(new.status)
            dates = TaskDates(due=new.due)
            if checkbox_state == CheckboxState.DONE:
                dates.done = format_timestamp()

            line = build_task_line(
                description=new.description,
                checkbox_state=checkbox_state,
                level=level,
                tags=new.tags,
                mentions=new.mentions,
                modifiers=new.modifiers,
                dates=dates,
                time_spent=new.time_spent,
            )
            line_number = find_insert_position(
                parsed, new.section or DEFAULT_SECTION, parent
            )
            if "\r\n" in parsed.raw_content:
                line += "\r"
            return insert_line(parsed.lines, line_number, line), line_number

        parsed, line_number = self._mutate(mutate)
        task = self._task_at(parsed, line_number)
        log.info("task_inserted", task_id=task.id, line=line_number, level=task.level)
        return task

    def update_task(self, task_id: str, patch: TaskPatch | dict[str, Any]) -> Task:
        """Update one task's line.

        Args:
            task_id: Id from the current snapshot.
            patch: TaskPatch or an equivalent dict.

        Returns:
            The task as parsed back from the file.

        Raises:
            TaskNotFoundError: If the id is not in the current file.
            TaskValidationError: If the patch is invalid or breaks a rule
                (leaving a task completed while it has open children, or
                starting a second in-progress task when only one is allowed).
        """
        patch = _validate(TaskPatch, patch)

        def mutate(parsed: ParsedFile) -> tuple[list[str], int]:
            task = parsed.find(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            line = self._apply_patch(parsed, task, patch)
            if task.raw_line.endswith("\r"):
                line += "\r"
            return replace_task_line(parsed.lines, task.line_number, line), task.line_number

        parsed, line_number = self._mutate(mutate)
        task = self._task_at(parsed, line_number)
        log.info("task_updated", task_id=task_id, new_id=task.id, status=task.status.value)
        return task

    def delete_task(self, task_id: str) -> list[int]:
        """Delete a task and all of its descendants.

        Returns:
            The removed line numbers, ascending.

        Raises:
            TaskNotFoundError: If the id is not in the current file.
        """

        def mutate(parsed: ParsedFile) -> tuple[list[str], list[int]]:
            task = parsed.find(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            removed = [task.line_number]
            removed.extend(d.line_number for d in iter_descendants(task))
            return delete_lines(parsed.lines, removed), sorted(removed)

        _, removed = self._mutate(mutate)
        log.info("task_deleted", task_id=task_id, lines=len(removed))
        return removed

    def restore_backup(self, name: str) -> ParsedFile:
        """Replace the tasks file with a backup.

        The current content is backed up first, so a restore can be undone.

        Raises:
            TaskValidationError: If ``name`` is not a backup file name.
            TaskFileError: If the backup cannot be read or the write fails.
        """
        try:
            content = self.file.backups.read(name)
        except ValueError as e:
            raise TaskValidationError(str(e)) from e
        except OSError as e:
            raise TaskFileError(f"Failed to read backup {name} ({e})", self.file.path) from e

        self.file.write(content)
        log.info("backup_restored", name=name)
        return self.read()

    def _task_at(self, parsed: ParsedFile, line_number: int) -> Task:
        for task in parsed.tasks:
            if task.line_number == line_number:
                return task
        raise TaskFileError(f"No task at line {line_number} after write", self.file.path)

    def _mutate(self, fn: Callable[[ParsedFile], tuple[list[str], T]]) -> tuple[ParsedFile, T]:
        """Run one read-modify-write cycle under the lock.

        ``fn`` gets the snapshot read inside the lock and returns the new
        line array plus a value handed back to the caller. If it raises,
        the file is not touched.
        """
        with self.file.locked():
            parsed = self.file.read()
            lines, result = fn(parsed)
            self.file.replace("\n".join(lines))
            return self.file.read(), result

    def _apply_patch(self, parsed: ParsedFile, task: Task, patch: TaskPatch) -> str:
        fields_set = patch.model_fields_set
        state = patch.target_state(task.checkbox_state)
        dates = task.dates.model_copy()

        if "due" in fields_set:
            dates.due = patch.due
        if "done" in fields_set:
            dates.done = patch.done

        if state == CheckboxState.DONE:
            open_children = [c for c in task.children if c.status not in CLOSED_STATUSES]
            if open_children:
                raise TaskValidationError(
                    f"Cannot complete task {task.id}: "
                    f"{len(open_children)} subtask(s) not completed"
                )
        if state == CheckboxState.DONE and not dates.done:
            dates.done = format_timestamp()
        if (
            task.checkbox_state == CheckboxState.DONE
            and state != CheckboxState.DONE
            and "done" not in fields_set
        ):
            dates.done = None

        if task.checkbox_state == CheckboxState.IN_PROGRESS and state != CheckboxState.IN_PROGRESS:
            dates.in_progress = format_timestamp()

        if (
            self.settings.single_in_progress
            and state == CheckboxState.IN_PROGRESS
            and task.checkbox_state != CheckboxState.IN_PROGRESS
        ):
            active = next(
                (
                    t for t in parsed.tasks
                    if t.id != task.id and t.checkbox_state == CheckboxState.IN_PROGRESS
                ),
                None,
            )
            if active is not None:
                raise TaskValidationError(
                    f"Cannot start task: another task is already in progress ({active.id})"
                )

        time_spent = patch.time_spent if "time_spent" in fields_set else task.time_spent

        return build_task_line(
            description=patch.description or task.description,
            checkbox_state=state,
            level=task.level,
            tags=task.tags if patch.tags is None else patch.tags,
            mentions=task.mentions if patch.mentions is None else patch.mentions,
            modifiers=task.modifiers if patch.modifiers is None else patch.modifiers,
            dates=dates,
            time_spent=time_spent,
        )


def find_insert_position(parsed: ParsedFile, section: str, parent: Task | None = None) -> int:
    """Find the 1-based line number for a new task.

    Args:
        parsed: Current snapshot.
        section: Section to insert into when there is no parent.
        parent: Parent task, if the new task is nested.

    Returns:
        Line number the new line should occupy.
    """
    lines = parsed.lines

    if parent is not None:
        last = max(
            (d.line_number for d in iter_descendants(parent)),
            default=parent.line_number,
        )
        return last + 1

    wanted = section.lower()
    in_section = False
    heading_line = None
    last_task_line = None
    for index, line in enumerate(lines):
        name = match_section(line)
        if name is not None:
            if name.lower() == wanted:
                in_section = True
                heading_line = index + 1
                continue
            if in_section:
                break
        if in_section and CHECKBOX_REGEX.match(line):
            last_task_line = index + 1

    if last_task_line is not None:
        return last_task_line + 1
    if heading_line is not None:
        return heading_line + 1

    # Tasks above the first heading belong to the default section
    is_unsorted = wanted == DEFAULT_SECTION.lower()
    if is_unsorted and parsed.sections:
        unsorted = [t for t in parsed.tasks if t.section == DEFAULT_SECTION]
        if unsorted:
            return unsorted[-1].line_number + 1
        first_heading = next(i for i, line in enumerate(lines) if match_section(line))
        return first_heading + 1
    if is_unsorted and parsed.tasks:
        return parsed.tasks[-1].line_number + 1

    # End of file, keeping a trailing newline last
    if lines and lines[-1] == "":
        return len(lines)
    return len(lines) + 1
