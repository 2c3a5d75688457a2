"""Exceptions raised by the task store and sync controller."""

from pathlib import Path


class TaskStoreError(Exception):
    """Base class for task store errors."""


class TaskNotFoundError(TaskStoreError):
    """Raised when a task id is not in the current snapshot.

    Ids are derived from line numbers, so an id read earlier may have gone
    stale after another write.
    """

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class TaskValidationError(TaskStoreError):
    """Raised when a mutation or filter breaks a task rule."""


class LockTimeoutError(TaskStoreError):
    """Raised when the file lock cannot be acquired in time."""

    def __init__(self, lock_path: Path, waited: float):
        self.lock_path = lock_path
        self.waited = waited
        super().__init__(
            f"Could not acquire lock {lock_path} within {waited:.1f}s"
        )


class TaskFileError(TaskStoreError):
    """Raised when reading or writing the tasks file fails."""

    def __init__(self, message: str, path: Path):
        self.path = path
        super().__init__(f"{message}: {path}")


class SyncError(Exception):
    """Base class for sync errors."""

    reason = "error"


class SyncUnavailableError(SyncError):
    """Raised when there is no repository or no remote to sync with."""

    reason = "no-remote"


class SyncConflictError(SyncError):
    """Raised when a rebase or stash restore cannot complete cleanly.

    Always carries the path of the backup written before giving up.
    """

    reason = "conflict"

    def __init__(self, message: str, backup_path: Path):
        self.backup_path = backup_path
        super().__init__(message)


class SyncRejectedError(SyncError):
    """Raised when the remote refuses a push because it is ahead."""

    reason = "rejected"
