"""Eisenhower matrix helpers: classify tasks by urgency and importance."""

from collections.abc import Iterable

from tasksng.parser.models import EisenhowerMatrix, Quadrant, Task

QUADRANT_INFO: dict[Quadrant, dict[str, str]] = {
    Quadrant.Q1: {
        "name": "Do First",
        "action": "Do",
        "description": "Urgent and Important - Crisis, deadlines, problems",
    },
    Quadrant.Q2: {
        "name": "Schedule",
        "action": "Schedule",
        "description": "Important but not Urgent - Planning, prevention, improvement",
    },
    Quadrant.Q3: {
        "name": "Delegate",
        "action": "Delegate",
        "description": "Urgent but not Important - Interruptions, some meetings",
    },
    Quadrant.Q4: {
        "name": "Eliminate",
        "action": "Skip",
        "description": "Neither Urgent nor Important - Time wasters, busy work",
    },
}

_ORDER = {Quadrant.Q1: 0, Quadrant.Q2: 1, Quadrant.Q3: 2, Quadrant.Q4: 3}


def get_quadrant(task: Task) -> Quadrant:
    """Get the Eisenhower quadrant of a task."""
    if task.is_urgent and task.is_important:
        return Quadrant.Q1
    if task.is_important:
        return Quadrant.Q2
    if task.is_urgent:
        return Quadrant.Q3
    return Quadrant.Q4


def group_by_quadrant(tasks: Iterable[Task]) -> EisenhowerMatrix:
    """Group tasks into the four quadrants, keeping their order."""
    matrix = EisenhowerMatrix()
    for task in tasks:
        matrix.get(get_quadrant(task)).append(task)
    return matrix


def filter_by_quadrant(tasks: Iterable[Task], quadrant: Quadrant | str) -> list[Task]:
    """Keep tasks in one quadrant."""
    wanted = Quadrant(quadrant)
    return [t for t in tasks if get_quadrant(t) == wanted]


def get_quadrant_info(quadrant: Quadrant | str) -> dict[str, str]:
    """Display name, action and description of a quadrant."""
    return dict(QUADRANT_INFO[Quadrant(quadrant)])


def sort_by_eisenhower(tasks: Iterable[Task]) -> list[Task]:
    """Sort tasks Q1 first, Q4 last; stable within a quadrant."""
    return sorted(tasks, key=lambda t: _ORDER[get_quadrant(t)])
