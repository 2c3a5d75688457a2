"""Sync status models and the persisted sync state file."""

import json
import os
import tempfile
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, Field

from tasksng.parser.extractors import format_timestamp, parse_date_value

log = structlog.get_logger()

STATE_FILE_NAME = ".tasks-sync-state.json"

# An operation recorded as running for longer than this is assumed dead
IN_FLIGHT_EXPIRY = timedelta(minutes=2)


class SyncStatus(str, Enum):
    """Relationship between the local and remote copies."""

    SYNCED = "synced"
    PENDING = "pending"
    BEHIND = "behind"
    DIVERGED = "diverged"
    SYNCING = "syncing"
    ERROR = "error"
    NO_REMOTE = "no-remote"


class SyncState(BaseModel):
    """Snapshot returned by a status check."""

    status: SyncStatus = SyncStatus.ERROR
    last_sync: str | None = None
    local_changes: int = Field(default=0, ge=0)
    remote_changes: int = Field(default=0, ge=0)
    branch: str | None = None
    remote: str | None = None
    error: str | None = None


class SyncResult(BaseModel):
    """Outcome of pull, push, sync or init.

    ``reason`` classifies failures: ``conflict``, ``no-remote``,
    ``rejected``, ``timeout`` or ``error``.
    """

    success: bool
    message: str
    backup_path: Path | None = None
    conflicts: list[str] = Field(default_factory=list)
    reason: str | None = None


def classify(local_changes: int, remote_changes: int) -> SyncStatus:
    """Map change counts on each side to a status."""
    if local_changes > 0 and remote_changes > 0:
        return SyncStatus.DIVERGED
    if local_changes > 0:
        return SyncStatus.PENDING
    if remote_changes > 0:
        return SyncStatus.BEHIND
    return SyncStatus.SYNCED


class SyncStateStore:
    """Read-merge-write access to ``.tasks-sync-state.json``.

    Keys are camelCase (``lastSync``, ``status``, ``error``, ``startedAt``)
    so other tools reading the same directory understand the file.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def read(self) -> dict[str, Any]:
        """Read the saved state, or an empty dict if missing or corrupt."""
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            log.warning("sync_state_unreadable", path=str(self.path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def update(self, **fields: Any) -> dict[str, Any]:
        """Merge ``fields`` into the saved state and write it back."""
        state = self.read()
        state.update(fields)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".sync-state.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(state, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        return state

    @property
    def last_sync(self) -> str | None:
        return self.read().get("lastSync")

    def mark_started(self, operation: str) -> None:
        """Record an operation as in flight."""
        self.update(
            status=SyncStatus.SYNCING.value,
            operation=operation,
            startedAt=format_timestamp(),
            error=None,
        )

    def mark_finished(self, result: SyncResult) -> None:
        """Record the outcome of an operation.

        ``lastSync`` only moves forward on a clean success.
        """
        fields: dict[str, Any] = {"startedAt": None, "operation": None}
        if result.success:
            fields.update(status=None, error=None)
            if not result.conflicts:
                fields["lastSync"] = format_timestamp()
        else:
            fields.update(status=SyncStatus.ERROR.value, error=result.message)
        self.update(**fields)

    def in_flight(self, now: datetime | None = None) -> bool:
        """Whether an operation is recorded as running and not yet expired."""
        state = self.read()
        if state.get("status") != SyncStatus.SYNCING.value:
            return False
        started = parse_date_value(state.get("startedAt") or "")
        if started is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now - started < IN_FLIGHT_EXPIRY
