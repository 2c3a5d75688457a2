"""Reading and atomically writing the tasks file."""

import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import structlog

from tasksng.config import Settings
from tasksng.errors import TaskFileError
from tasksng.parser import ParsedFile, parse_tasks_file
from tasksng.store.backups import BACKUP_DIR_NAME, MAX_BACKUPS, BackupManager
from tasksng.store.lock import LOCK_TIMEOUT, MAX_WAIT, POLL_INTERVAL, FileLock

log = structlog.get_logger()


class TaskFile:
    """One tasks file on disk, with its lock and backups.

    Writes go to a temp file in the same directory which is then renamed
    over the target, so readers see either the old or the new content.
    """

    def __init__(
        self,
        path: str | Path,
        backup_dir: Path | None = None,
        backup_keep: int = MAX_BACKUPS,
        lock_stale_timeout: float = LOCK_TIMEOUT,
        lock_poll_interval: float = POLL_INTERVAL,
        lock_max_wait: float = MAX_WAIT,
    ):
        self.path = Path(path)
        self.backups = BackupManager(
            backup_dir or self.path.parent / BACKUP_DIR_NAME,
            keep=backup_keep,
        )
        self._lock_options = {
            "stale_timeout": lock_stale_timeout,
            "poll_interval": lock_poll_interval,
            "max_wait": lock_max_wait,
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> "TaskFile":
        """Create the TaskFile described by application settings."""
        return cls(
            settings.tasks_file,
            backup_dir=settings.backup_dir,
            backup_keep=settings.backup_keep,
            lock_stale_timeout=settings.lock_stale_timeout,
            lock_poll_interval=settings.lock_poll_interval,
            lock_max_wait=settings.lock_max_wait,
        )

    def exists(self) -> bool:
        return self.path.is_file()

    def read_raw(self) -> str:
        """Read the file content, or an empty string if it doesn't exist.

        Line endings are returned as stored, so CRLF files keep their
        carriage returns through a read-modify-write.

        Raises:
            TaskFileError: If the file exists but cannot be read.
        """
        try:
            return self.path.read_bytes().decode("utf-8")
        except FileNotFoundError:
            return ""
        except (OSError, UnicodeDecodeError) as e:
            raise TaskFileError(f"Failed to read tasks file ({e})", self.path) from e

    def read(self) -> ParsedFile:
        """Read and parse the file."""
        return parse_tasks_file(self.read_raw())

    def lock(self) -> FileLock:
        """A new, unacquired lock for this file."""
        return FileLock(self.path, **self._lock_options)

    @contextmanager
    def locked(self) -> Iterator[FileLock]:
        """Hold the file lock for the duration of the block."""
        with self.lock() as lock:
            yield lock

    def write(self, content: str, skip_backup: bool = False) -> Path | None:
        """Lock the file and replace its content.

        Returns:
            Path of the backup taken, if any.

        Raises:
            LockTimeoutError: If the lock could not be acquired.
            TaskFileError: If the write failed.
        """
        with self.locked():
            return self.replace(content, skip_backup=skip_backup)

    def replace(self, content: str, skip_backup: bool = False) -> Path | None:
        """Replace the file content. The caller must hold the lock.

        The current content is backed up first unless it is empty or
        ``skip_backup`` is set.

        Returns:
            Path of the backup taken, if any.

        Raises:
            TaskFileError: If the write failed. The file is left untouched.
        """
        backup_path = None
        if not skip_backup:
            current = self.read_raw()
            if current:
                try:
                    backup_path = self.backups.create(current)
                except OSError as e:
                    raise TaskFileError(f"Failed to back up tasks file ({e})", self.path) from e

        self._atomic_write(content)
        log.debug("tasks_file_written", path=str(self.path), size=len(content))
        return backup_path

    def _atomic_write(self, content: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
            )
        except OSError as e:
            raise TaskFileError(f"Failed to create temp file ({e})", self.path) from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            if self.path.exists():
                os.chmod(tmp_path, self.path.stat().st_mode & 0o777)
            os.replace(tmp_path, self.path)
        except OSError as e:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise TaskFileError(f"Failed to write tasks file ({e})", self.path) from e
