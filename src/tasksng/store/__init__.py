"""Filesystem layer: locking, backups, atomic writes and task mutations."""

from tasksng.store.backups import BackupManager
from tasksng.store.crud import NewTask, TaskFilters, TaskPatch, TaskStore, find_insert_position
from tasksng.store.files import TaskFile
from tasksng.store.lock import FileLock, with_lock

__all__ = [
    "BackupManager",
    "FileLock",
    "NewTask",
    "TaskFile",
    "TaskFilters",
    "TaskPatch",
    "TaskStore",
    "find_insert_position",
    "with_lock",
]
