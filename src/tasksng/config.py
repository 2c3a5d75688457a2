"""Configuration management for tasks-ng."""

import os
import sys
from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_DIR_NAME = "tasks-ng"
TASKS_FILE_NAME = "tasks.md"


def xdg_data_home() -> Path:
    """XDG data directory (``$XDG_DATA_HOME`` or ``~/.local/share``)."""
    value = os.environ.get("XDG_DATA_HOME")
    return Path(value) if value else Path.home() / ".local" / "share"


def default_tasks_file() -> Path:
    """Path of the XDG tasks file: ``$XDG_DATA_HOME/tasks-ng/tasks.md``."""
    return xdg_data_home() / APP_DIR_NAME / TASKS_FILE_NAME


def legacy_tasks_file() -> Path:
    """Legacy tasks file location in the home directory."""
    return Path.home() / TASKS_FILE_NAME


def resolve_tasks_file() -> Path:
    """Pick the tasks file when none is configured.

    The XDG location wins if the file exists there, otherwise the legacy
    home-directory file is used. ``TASKS_FILE`` is handled by Settings.
    """
    xdg_file = default_tasks_file()
    if xdg_file.exists():
        return xdg_file
    return legacy_tasks_file()


class Settings(BaseSettings):
    """tasks-ng configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    tasks_file: Path = Field(
        default_factory=resolve_tasks_file,
        validate_default=True,
        description="Markdown file holding the task list (env: TASKS_FILE)",
    )

    @field_validator("tasks_file", mode="before")
    @classmethod
    def resolve_path(cls, v: str | Path) -> Path:
        """Expand and resolve the tasks file path."""
        return Path(v).expanduser().resolve()

    # Locking
    lock_stale_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds after which a lock sentinel is considered stale",
    )
    lock_poll_interval: float = Field(
        default=0.05,
        gt=0,
        description="Seconds between lock acquisition attempts",
    )
    lock_max_wait: float = Field(
        default=15.0,
        ge=0,
        description="Maximum seconds to wait for the lock",
    )

    # Backups
    backup_keep: int = Field(
        default=50,
        ge=1,
        description="Number of backups to retain",
    )

    # Sync
    git_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds before a git command is killed",
    )
    sync_remote: str = Field(
        default="origin",
        description="Preferred git remote name",
    )

    # Task rules
    single_in_progress: bool = Field(
        default=False,
        description="Allow only one in-progress task at a time",
    )
    grace_period_hours: float = Field(
        default=12.0,
        ge=0,
        description="Hours a closed or paused task stays visible in listings",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging level",
    )

    @property
    def tasks_dir(self) -> Path:
        """Directory containing the tasks file."""
        return self.tasks_file.parent

    @property
    def backup_dir(self) -> Path:
        """Path to the backup directory beside the tasks file."""
        return self.tasks_dir / ".task-backups"

    @property
    def lock_path(self) -> Path:
        """Path to the lock sentinel file."""
        return self.tasks_dir / f".{self.tasks_file.name}.lock"

    @property
    def sync_state_path(self) -> Path:
        """Path to the persisted sync state."""
        return self.tasks_dir / ".tasks-sync-state.json"

    @property
    def conflict_dir(self) -> Path:
        """Path to backups written when a sync hits a conflict."""
        return self.tasks_dir / ".sync-conflicts"

    def ensure_dirs(self) -> None:
        """Create the tasks directory if it doesn't exist."""
        self.tasks_dir.mkdir(parents=True, exist_ok=True)


def load_settings(
    tasks_file: Path | None = None,
    env_file: Path | None = None,
) -> Settings:
    """Load settings from environment and .env file.

    Args:
        tasks_file: Optional tasks file override.
        env_file: Optional .env file to read instead of ``./.env``.

    Returns:
        Validated Settings instance.

    Raises:
        SystemExit: If the configuration is invalid.
    """
    overrides: dict = {}
    if tasks_file is not None:
        overrides["tasks_file"] = tasks_file

    try:
        if env_file and env_file.exists():
            # _env_file is a valid pydantic-settings parameter
            return Settings(_env_file=env_file, **overrides)  # type: ignore[call-arg]
        return Settings(**overrides)

    except ValidationError as e:
        _print_config_help(e)
        sys.exit(1)


def _print_config_help(error: ValidationError) -> None:
    """Print a helpful message for invalid configuration."""
    print("\n" + "=" * 60, file=sys.stderr)
    print("tasks-ng Configuration Error", file=sys.stderr)
    print("=" * 60 + "\n", file=sys.stderr)

    for item in error.errors():
        field = ".".join(str(part) for part in item["loc"])
        print(f"  {field.upper()}: {item['msg']}", file=sys.stderr)

    print(file=sys.stderr)
    print("Example .env file:", file=sys.stderr)
    print("-" * 40, file=sys.stderr)
    print("TASKS_FILE=~/notes/tasks.md", file=sys.stderr)
    print("LOCK_MAX_WAIT=15", file=sys.stderr)
    print("BACKUP_KEEP=50", file=sys.stderr)
    print("SYNC_REMOTE=origin", file=sys.stderr)
    print("-" * 40, file=sys.stderr)
    print(file=sys.stderr)
