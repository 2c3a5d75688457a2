"""tasks.md parsing and serialization."""

from tasksng.parser.builder import (
    build_task_line,
    delete_line,
    delete_lines,
    insert_line,
    replace_task_line,
    task_to_line,
    update_task_line,
)
from tasksng.parser.eisenhower import (
    filter_by_quadrant,
    get_quadrant,
    get_quadrant_info,
    group_by_quadrant,
    sort_by_eisenhower,
)
from tasksng.parser.extractors import (
    checkbox_to_status,
    extract_checkbox_state,
    extract_dates,
    extract_description,
    extract_mentions,
    extract_modifiers,
    extract_tags,
    extract_time_spent,
    generate_task_id,
    get_indent_level,
    is_task_line,
    short_hash,
    status_to_checkbox,
)
from tasksng.parser.models import (
    CheckboxState,
    EisenhowerMatrix,
    ParsedFile,
    Quadrant,
    Task,
    TaskDates,
    TaskStatus,
)
from tasksng.parser.parser import (
    build_task_tree,
    filter_by_section,
    filter_by_status,
    filter_by_tags,
    get_active_tasks,
    get_top_level_tasks,
    in_grace_period,
    iter_descendants,
    parse_line,
    parse_tasks_file,
)

__all__ = [
    # Models
    "CheckboxState",
    "TaskStatus",
    "TaskDates",
    "Task",
    "ParsedFile",
    "Quadrant",
    "EisenhowerMatrix",
    # Parser
    "parse_line",
    "parse_tasks_file",
    "build_task_tree",
    "iter_descendants",
    "get_top_level_tasks",
    "filter_by_status",
    "filter_by_tags",
    "filter_by_section",
    "get_active_tasks",
    "in_grace_period",
    # Builder
    "build_task_line",
    "task_to_line",
    "update_task_line",
    "replace_task_line",
    "insert_line",
    "delete_line",
    "delete_lines",
    # Extractors
    "checkbox_to_status",
    "status_to_checkbox",
    "generate_task_id",
    "short_hash",
    "extract_tags",
    "extract_mentions",
    "extract_modifiers",
    "extract_dates",
    "extract_time_spent",
    "extract_description",
    "extract_checkbox_state",
    "get_indent_level",
    "is_task_line",
    # Eisenhower
    "get_quadrant",
    "group_by_quadrant",
    "filter_by_quadrant",
    "get_quadrant_info",
    "sort_by_eisenhower",
]
