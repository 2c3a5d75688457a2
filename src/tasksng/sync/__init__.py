"""Git-backed sync of the tasks file."""

from tasksng.sync.controller import SyncController
from tasksng.sync.git_ops import GitOperations
from tasksng.sync.runner import CommandResult, CommandRunner, GitRunner
from tasksng.sync.state import SyncResult, SyncState, SyncStateStore, SyncStatus

__all__ = [
    "CommandResult",
    "CommandRunner",
    "GitOperations",
    "GitRunner",
    "SyncController",
    "SyncResult",
    "SyncState",
    "SyncStateStore",
    "SyncStatus",
]
