"""Command execution for the sync controller."""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import git
import structlog
from git.exc import GitCommandNotFound

log = structlog.get_logger()

DEFAULT_TIMEOUT = 30.0
EXIT_NOT_FOUND = 127


@dataclass
class CommandResult:
    """Outcome of one command."""

    stdout: str
    stderr: str
    exit_code: int
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


class CommandRunner(Protocol):
    """Runs a git command in the tasks directory.

    ``args`` excludes the ``git`` executable itself. Implementations never
    raise on a non-zero exit.
    """

    def run(self, args: list[str]) -> CommandResult: ...


class GitRunner:
    """CommandRunner backed by GitPython's command wrapper."""

    def __init__(self, cwd: str | Path, timeout: float = DEFAULT_TIMEOUT):
        """Initialize the runner.

        Args:
            cwd: Working directory for every command.
            timeout: Seconds before a command is killed.
        """
        self.cwd = Path(cwd)
        self.timeout = timeout
        self._git = git.Git(str(self.cwd))

    def run(self, args: list[str]) -> CommandResult:
        command = ["git", *args]
        try:
            status, stdout, stderr = self._git.execute(
                command,
                with_extended_output=True,
                with_exceptions=False,
                kill_after_timeout=self.timeout,
                env={"GIT_TERMINAL_PROMPT": "0"},
            )
        except GitCommandNotFound as e:
            log.warning("git_not_found", cwd=str(self.cwd), error=str(e))
            return CommandResult("", str(e), EXIT_NOT_FOUND)

        timed_out = stderr.startswith("Timeout:")
        if timed_out:
            log.warning("git_timeout", args=args, timeout=self.timeout)
        return CommandResult(stdout, stderr, status, timed_out)
