"""Sentinel-file mutex for writes to the tasks file.

The lock is a file named ``.{basename}.lock`` next to the guarded file,
created with ``O_CREAT | O_EXCL`` so only one process can hold it. A
sentinel older than the stale timeout is removed and acquisition retried.
"""

import json
import os
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import structlog

from tasksng.errors import LockTimeoutError

log = structlog.get_logger()

T = TypeVar("T")

LOCK_TIMEOUT = 10.0
POLL_INTERVAL = 0.05
MAX_WAIT = 15.0


def lock_path_for(file_path: str | Path) -> Path:
    """Sentinel path guarding ``file_path``."""
    path = Path(file_path)
    return path.parent / f".{path.name}.lock"


class FileLock:
    """Cooperative cross-process lock backed by a sentinel file."""

    def __init__(
        self,
        file_path: str | Path,
        stale_timeout: float = LOCK_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
        max_wait: float = MAX_WAIT,
    ):
        """Initialize the lock for a file.

        Args:
            file_path: File to guard; the sentinel lives beside it.
            stale_timeout: Age in seconds after which a sentinel is stale.
            poll_interval: Seconds between acquisition attempts.
            max_wait: Maximum seconds to wait before giving up.
        """
        self.file_path = Path(file_path)
        self.lock_path = lock_path_for(self.file_path)
        self.stale_timeout = stale_timeout
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self._token: dict[str, int] | None = None

    @property
    def acquired(self) -> bool:
        """Whether this instance currently holds the lock."""
        return self._token is not None

    def acquire(self) -> None:
        """Acquire the lock, polling until ``max_wait`` runs out.

        Raises:
            LockTimeoutError: If the lock is still held after ``max_wait``.
        """
        if self._token is not None:
            raise RuntimeError(f"Lock already held by this instance: {self.lock_path}")

        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        start = time.monotonic()

        while True:
            token = {"pid": os.getpid(), "timestamp": int(time.time() * 1000)}
            try:
                fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                if self._remove_if_stale():
                    continue
                waited = time.monotonic() - start
                if waited >= self.max_wait:
                    log.warning(
                        "lock_timeout",
                        lock_path=str(self.lock_path),
                        waited=round(waited, 3),
                    )
                    raise LockTimeoutError(self.lock_path, waited) from None
                time.sleep(self.poll_interval)
                continue

            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(token, f)
            self._token = token
            log.debug("lock_acquired", lock_path=str(self.lock_path))
            return

    def release(self) -> None:
        """Release the lock.

        Safe to call more than once. A sentinel that was already removed, or
        that now belongs to another process after going stale, is left alone.
        """
        token, self._token = self._token, None
        if token is None:
            return

        current = self.read_info()
        if current is not None and current != token:
            log.warning(
                "lock_lost",
                lock_path=str(self.lock_path),
                holder_pid=current.get("pid"),
            )
            return

        try:
            self.lock_path.unlink(missing_ok=True)
        except OSError as e:
            log.debug("lock_release_failed", lock_path=str(self.lock_path), error=str(e))
        else:
            log.debug("lock_released", lock_path=str(self.lock_path))

    def read_info(self) -> dict[str, Any] | None:
        """Read the sentinel body, or None if missing or unreadable."""
        try:
            data = json.loads(self.lock_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        return data if isinstance(data, dict) else None

    def _remove_if_stale(self) -> bool:
        """Remove the sentinel if it is stale.

        Returns:
            True if the caller should retry immediately (sentinel removed or
            already gone), False if a live lock is held.
        """
        try:
            stat = self.lock_path.stat()
        except FileNotFoundError:
            return True

        info = self.read_info()
        now_ms = time.time() * 1000
        if info is not None and isinstance(info.get("timestamp"), int | float):
            age = (now_ms - info["timestamp"]) / 1000
        else:
            # Body not written yet or corrupt: fall back to the file age
            age = (now_ms - stat.st_mtime * 1000) / 1000

        if age <= self.stale_timeout:
            return False

        try:
            current = self.lock_path.stat()
            # Another process may have replaced the sentinel since we looked
            if (current.st_ino, current.st_mtime_ns) != (stat.st_ino, stat.st_mtime_ns):
                return True
            self.lock_path.unlink()
        except FileNotFoundError:
            return True

        log.warning(
            "lock_stale_removed",
            lock_path=str(self.lock_path),
            age=round(age, 3),
            holder_pid=info.get("pid") if info else None,
        )
        return True

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


def with_lock(file_path: str | Path, fn: Callable[[], T], **lock_options: Any) -> T:
    """Run ``fn`` while holding the lock for ``file_path``.

    Args:
        file_path: File whose sentinel lock to hold.
        fn: Callable to run.
        **lock_options: Passed to FileLock.

    Returns:
        Whatever ``fn`` returns.

    Raises:
        LockTimeoutError: If the lock could not be acquired.
    """
    with FileLock(file_path, **lock_options):
        return fn()
