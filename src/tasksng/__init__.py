"""tasks-ng: a markdown task list with safe concurrent edits and git sync."""

__version__ = "0.1.0"

from tasksng.config import Settings, load_settings
from tasksng.errors import (
    LockTimeoutError,
    SyncConflictError,
    SyncError,
    TaskFileError,
    TaskNotFoundError,
    TaskStoreError,
    TaskValidationError,
)
from tasksng.store import NewTask, TaskFilters, TaskPatch, TaskStore
from tasksng.sync import SyncController, SyncResult, SyncState, SyncStatus

__all__ = [
    "__version__",
    "Settings",
    "load_settings",
    "TaskStore",
    "NewTask",
    "TaskPatch",
    "TaskFilters",
    "SyncController",
    "SyncState",
    "SyncStatus",
    "SyncResult",
    "TaskStoreError",
    "TaskNotFoundError",
    "TaskValidationError",
    "TaskFileError",
    "LockTimeoutError",
    "SyncError",
    "SyncConflictError",
]
