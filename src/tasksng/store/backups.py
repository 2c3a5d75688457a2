"""Timestamped backups of the tasks file."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from pathlib import Path

import structlog

from tasksng.parser.extractors import format_timestamp

log = structlog.get_logger()

BACKUP_DIR_NAME = ".task-backups"
MAX_BACKUPS = 50

BACKUP_NAME_REGEX = re.compile(r"^tasks-[0-9TZ-]+\.md$")


def backup_name(moment: datetime) -> str:
    """File name for a backup taken at ``moment``.

    ``:`` and ``.`` in the ISO timestamp become ``-`` so names are valid
    on every filesystem and sort chronologically.
    """
    stamp = format_timestamp(moment).replace(":", "-").replace(".", "-")
    return f"tasks-{stamp}.md"


class BackupManager:
    """Creates, lists, prunes and reads backups in one directory."""

    def __init__(self, backup_dir: Path, keep: int = MAX_BACKUPS):
        self.backup_dir = Path(backup_dir)
        self.keep = keep

    def create(self, content: str, now: datetime | None = None) -> Path:
        """Write ``content`` to a new backup file and prune old ones.

        Args:
            content: File content to save.
            now: Backup time (defaults to the current UTC time).

        Returns:
            Path of the new backup.
        """
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        moment = now or datetime.now(timezone.utc)

        while True:
            path = self.backup_dir / backup_name(moment)
            try:
                with path.open("x", encoding="utf-8") as f:
                    f.write(content)
                break
            except FileExistsError:
                moment += timedelta(milliseconds=1)

        log.debug("backup_created", path=str(path), size=len(content))
        self.prune()
        return path

    def prune(self, keep: int | None = None) -> list[Path]:
        """Delete the oldest backups beyond the retention count.

        Failures are logged and skipped.

        Returns:
            Paths that were removed.
        """
        keep = self.keep if keep is None else keep
        backups = self._sorted_paths()
        excess = backups[: max(len(backups) - keep, 0)]

        removed = []
        for path in excess:
            try:
                path.unlink()
            except OSError as e:
                log.warning("backup_prune_failed", path=str(path), error=str(e))
                continue
            removed.append(path)

        if removed:
            log.debug("backup_pruned", removed=len(removed), kept=keep)
        return removed

    def list(self) -> list[Path]:
        """Backup files, newest first."""
        return list(reversed(self._sorted_paths()))

    def path_for(self, name: str) -> Path:
        """Resolve a backup name to its path.

        Raises:
            ValueError: If ``name`` is not a backup file name.
        """
        if "/" in name or "\\" in name or not BACKUP_NAME_REGEX.match(name):
            raise ValueError(f"Invalid backup name: {name}")
        return self.backup_dir / name

    def read(self, name: str) -> str:
        """Read the content of one backup.

        Raises:
            ValueError: If ``name`` is not a backup file name.
            FileNotFoundError: If the backup does not exist.
        """
        return self.path_for(name).read_text(encoding="utf-8")

    def _sorted_paths(self) -> list[Path]:
        if not self.backup_dir.is_dir():
            return []
        return sorted(
            p for p in self.backup_dir.iterdir()
            if p.is_file() and BACKUP_NAME_REGEX.match(p.name)
        )
