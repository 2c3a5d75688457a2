"""Tests for the sentinel-file lock."""

import json
import multiprocessing
import os
import time
from pathlib import Path

import pytest

from tasksng.errors import LockTimeoutError
from tasksng.store.lock import FileLock, lock_path_for, with_lock


def _hold_lock(path, acquired, release):
    lock = FileLock(path, max_wait=5.0)
    lock.acquire()
    acquired.set()
    release.wait(10)
    lock.release()


def write_sentinel(lock_path: Path, pid: int, timestamp_ms: int) -> None:
    lock_path.write_text(json.dumps({"pid": pid, "timestamp": timestamp_ms}), encoding="utf-8")


class TestFileLock:
    """Test acquiring and releasing the lock."""

    def test_sentinel_location(self, tmp_path):
        """Test that the sentinel sits beside the file."""
        assert lock_path_for(tmp_path / "tasks.md") == tmp_path / ".tasks.md.lock"

    def test_acquire_writes_body(self, tmp_path):
        """Test that the sentinel holds pid and timestamp."""
        lock = FileLock(tmp_path / "tasks.md")
        lock.acquire()
        try:
            info = lock.read_info()
            assert info["pid"] == os.getpid()
            assert isinstance(info["timestamp"], int)
            assert lock.acquired
        finally:
            lock.release()
        assert not lock.lock_path.exists()
        assert not lock.acquired

    def test_release_is_idempotent(self, tmp_path):
        """Test that releasing twice is harmless."""
        lock = FileLock(tmp_path / "tasks.md")
        lock.acquire()
        lock.release()
        lock.release()
        assert not lock.lock_path.exists()

    def test_context_manager(self, tmp_path):
        """Test that the lock is released on exceptions."""
        lock = FileLock(tmp_path / "tasks.md")
        with pytest.raises(KeyError):
            with lock:
                assert lock.lock_path.exists()
                raise KeyError("boom")
        assert not lock.lock_path.exists()

    def test_double_acquire_raises(self, tmp_path):
        """Test that one instance cannot acquire twice."""
        with FileLock(tmp_path / "tasks.md") as lock:
            with pytest.raises(RuntimeError):
                lock.acquire()

    def test_creates_parent_directory(self, tmp_path):
        """Test acquiring a lock for a file in a missing directory."""
        with FileLock(tmp_path / "new" / "tasks.md") as lock:
            assert lock.lock_path.exists()


class TestContention:
    """Test waiting, timeouts and stale sentinels."""

    def test_live_lock_times_out(self, tmp_path):
        """Test that a fresh sentinel blocks until max_wait."""
        path = tmp_path / "tasks.md"
        write_sentinel(lock_path_for(path), 99999, int(time.time() * 1000))

        lock = FileLock(path, poll_interval=0.01, max_wait=0.2)
        start = time.monotonic()
        with pytest.raises(LockTimeoutError) as exc_info:
            lock.acquire()
        assert time.monotonic() - start >= 0.2
        assert exc_info.value.lock_path == lock.lock_path
        assert lock_path_for(path).exists()

    def test_stale_lock_by_timestamp(self, tmp_path):
        """Test that an old sentinel is removed and the lock taken."""
        path = tmp_path / "tasks.md"
        write_sentinel(lock_path_for(path), 99999, int(time.time() * 1000) - 60_000)

        lock = FileLock(path, stale_timeout=10.0, max_wait=1.0)
        lock.acquire()
        assert lock.read_info()["pid"] == os.getpid()
        lock.release()

    def test_stale_lock_with_corrupt_body(self, tmp_path):
        """Test that an unreadable sentinel falls back to its mtime."""
        path = tmp_path / "tasks.md"
        sentinel = lock_path_for(path)
        sentinel.write_text("not json", encoding="utf-8")
        old = time.time() - 60
        os.utime(sentinel, (old, old))

        with FileLock(path, stale_timeout=10.0, max_wait=1.0) as lock:
            assert lock.read_info()["pid"] == os.getpid()

    def test_fresh_corrupt_lock_is_kept(self, tmp_path):
        """Test that a new sentinel without a body is not stale."""
        path = tmp_path / "tasks.md"
        lock_path_for(path).write_text("", encoding="utf-8")

        with pytest.raises(LockTimeoutError):
            FileLock(path, poll_interval=0.01, max_wait=0.1).acquire()

    def test_release_keeps_foreign_sentinel(self, tmp_path):
        """Test that a sentinel taken over by another holder is not removed."""
        path = tmp_path / "tasks.md"
        lock = FileLock(path)
        lock.acquire()
        write_sentinel(lock.lock_path, 12345, int(time.time() * 1000))

        lock.release()
        assert lock.lock_path.exists()
        assert lock.read_info()["pid"] == 12345

    def test_other_process_blocks(self, tmp_path):
        """Test mutual exclusion across processes."""
        path = tmp_path / "tasks.md"
        ctx = multiprocessing.get_context("spawn")
        acquired = ctx.Event()
        release = ctx.Event()
        proc = ctx.Process(target=_hold_lock, args=(str(path), acquired, release))
        proc.start()
        try:
            assert acquired.wait(30)
            with pytest.raises(LockTimeoutError):
                FileLock(path, poll_interval=0.01, max_wait=0.2).acquire()
        finally:
            release.set()
            proc.join(30)

        assert proc.exitcode == 0
        with FileLock(path, max_wait=1.0):
            pass


class TestWithLock:
    """Test the with_lock helper."""

    def test_returns_result(self, tmp_path):
        """Test that the callable runs under the lock."""
        path = tmp_path / "tasks.md"

        def body():
            assert lock_path_for(path).exists()
            return 42

        assert with_lock(path, body) == 42
        assert not lock_path_for(path).exists()

    def test_passes_options(self, tmp_path):
        """Test that lock options reach the lock."""
        path = tmp_path / "tasks.md"
        write_sentinel(lock_path_for(path), 99999, int(time.time() * 1000))
        with pytest.raises(LockTimeoutError):
            with_lock(path, lambda: None, poll_interval=0.01, max_wait=0.05)
