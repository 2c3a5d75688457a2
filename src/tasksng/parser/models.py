"""Pydantic models for the tasks.md format."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class CheckboxState(str, Enum):
    """Checkbox marker between the brackets of a task line."""

    OPEN = " "
    IN_PROGRESS = "/"
    DONE = "x"
    CANCELLED = "-"
    DEFERRED = ">"
    BLOCKED = "?"


class TaskStatus(str, Enum):
    """Semantic task status derived from the checkbox marker."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DEFERRED = "deferred"
    BLOCKED = "blocked"


class Quadrant(str, Enum):
    """Eisenhower matrix quadrant."""

    Q1 = "Q1"  # urgent + important
    Q2 = "Q2"  # important only
    Q3 = "Q3"  # urgent only
    Q4 = "Q4"  # neither


class TaskDates(BaseModel):
    """Date metadata carried by `_key:value` tokens."""

    due: str | None = None
    done: str | None = None
    created: str | None = None
    in_progress: str | None = None


class Task(BaseModel):
    """A task line parsed from the tasks file.

    The id is derived from the line number and raw content, so it is only
    valid against the snapshot it was read from.
    """

    id: str
    line_number: int
    description: str
    raw_line: str
    checkbox_state: CheckboxState
    status: TaskStatus
    level: int = Field(default=0, ge=0, le=3)
    parent_id: str | None = None
    children: list[Task] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    mentions: list[str] = Field(default_factory=list)
    modifiers: list[str] = Field(default_factory=list)
    dates: TaskDates = Field(default_factory=TaskDates)
    time_spent: int | None = Field(default=None, ge=0)
    is_urgent: bool = False
    is_important: bool = False
    section: str = "Unsorted"


class ParsedFile(BaseModel):
    """Snapshot of a whole tasks file."""

    tasks: list[Task] = Field(default_factory=list)
    sections: list[str] = Field(default_factory=list)
    raw_content: str = ""
    lines: list[str] = Field(default_factory=list)

    def find(self, task_id: str) -> Task | None:
        """Look up a task by id in this snapshot."""
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None


class EisenhowerMatrix(BaseModel):
    """Tasks grouped by urgency and importance."""

    Q1: list[Task] = Field(default_factory=list)
    Q2: list[Task] = Field(default_factory=list)
    Q3: list[Task] = Field(default_factory=list)
    Q4: list[Task] = Field(default_factory=list)

    def get(self, quadrant: Quadrant | str) -> list[Task]:
        """Return the task list for a quadrant."""
        return getattr(self, Quadrant(quadrant).value)
