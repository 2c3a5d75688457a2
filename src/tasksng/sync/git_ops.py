"""Git operations used by the sync controller."""

from collections.abc import Iterable

import structlog
from git.exc import GitCommandError

from tasksng.sync.runner import CommandResult, CommandRunner

log = structlog.get_logger()

TIMEOUT_MARKER = "Timeout:"
REJECTED_MARKERS = ("[rejected]", "non-fast-forward", "fetch first", "Updates were rejected")


def exclude_pathspecs(patterns: Iterable[str]) -> list[str]:
    """Turn path patterns into git exclude pathspecs, limited to ``.``."""
    return [".", *(f":(exclude){p}" for p in patterns)]


def is_timeout(error: GitCommandError) -> bool:
    """Whether a git failure was the runner killing a slow command."""
    return TIMEOUT_MARKER in str(error.stderr)


class GitOperations:
    """Typed git commands over a CommandRunner.

    Every command that fails raises ``GitCommandError`` with the exit code
    and output, unless noted otherwise.
    """

    def __init__(self, runner: CommandRunner):
        """Initialize with a command runner.

        Args:
            runner: Runner executing git in the tasks directory.
        """
        self.runner = runner

    def _run(self, *args: str, check: bool = True) -> CommandResult:
        result = self.runner.run(list(args))
        if check and not result.ok:
            log.debug(
                "git_command_failed",
                args=list(args),
                exit_code=result.exit_code,
                stderr=result.stderr.strip()[:200],
            )
            raise GitCommandError(
                ["git", *args], result.exit_code, result.stderr, result.stdout
            )
        return result

    # -------------------------------------------------------------------------
    # Repository and remotes
    # -------------------------------------------------------------------------

    def is_repo(self) -> bool:
        return self._run("rev-parse", "--git-dir", check=False).ok

    def init(self) -> None:
        self._run("init")

    def has_head(self) -> bool:
        """Whether the repository has at least one commit."""
        return self._run("rev-parse", "--verify", "--quiet", "HEAD", check=False).ok

    def current_branch(self) -> str | None:
        """Name of the checked-out branch, or None when detached."""
        result = self._run("symbolic-ref", "--short", "HEAD", check=False)
        if not result.ok:
            return None
        return result.stdout.strip() or None

    def remotes(self) -> list[str]:
        output = self._run("remote").stdout
        return [line.strip() for line in output.splitlines() if line.strip()]

    def pick_remote(self, preferred: str = "origin") -> str | None:
        """The preferred remote if configured, else the first one."""
        remotes = self.remotes()
        if preferred in remotes:
            return preferred
        return remotes[0] if remotes else None

    def set_remote(self, name: str, url: str) -> bool:
        """Point ``name`` at ``url``, adding the remote if needed.

        Returns:
            True if the remote was added, False if its URL was updated.
        """
        if name in self.remotes():
            self._run("remote", "set-url", name, url)
            return False
        self._run("remote", "add", name, url)
        return True

    def remote_branch_exists(self, remote: str, branch: str) -> bool:
        ref = f"refs/remotes/{remote}/{branch}"
        return self._run("rev-parse", "--verify", "--quiet", ref, check=False).ok

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def has_local_changes(self, excludes: Iterable[str] = ()) -> bool:
        """Whether the working tree has uncommitted or untracked changes."""
        output = self._run(
            "status", "--porcelain", "--", *exclude_pathspecs(excludes)
        ).stdout
        return bool(output.strip())

    def count_commits(self, revision_range: str) -> int:
        output = self._run("rev-list", "--count", revision_range).stdout
        try:
            return int(output.strip())
        except ValueError:
            return 0

    def conflicted_files(self) -> list[str]:
        """Paths with unresolved merge conflicts."""
        result = self._run("diff", "--name-only", "--diff-filter=U", check=False)
        return [line for line in result.stdout.splitlines() if line.strip()]

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def fetch(self, remote: str) -> None:
        self._run("fetch", remote)

    def stash_push(self, message: str, excludes: Iterable[str] = ()) -> bool:
        """Stash tracked and untracked changes.

        Returns:
            True if a stash entry was created.
        """
        result = self._run(
            "stash", "push", "--include-untracked", "-m", message,
            "--", *exclude_pathspecs(excludes),
        )
        return "No local changes to save" not in result.stdout

    def stash_pop(self) -> None:
        self._run("stash", "pop")

    def reset_to_head(self, excludes: Iterable[str] = ()) -> None:
        """Put tracked files back to HEAD in the index and working tree.

        Unmerged entries left by a failed merge are resolved to HEAD. Paths
        matching ``excludes`` and untracked files are not touched.
        """
        pathspecs = exclude_pathspecs(excludes)
        self._run("reset", "--quiet", "HEAD", "--", *pathspecs)
        self._run("checkout", "HEAD", "--", *pathspecs)

    def rebase(self, upstream: str) -> None:
        self._run("rebase", upstream)

    def rebase_abort(self) -> None:
        self._run("rebase", "--abort")

    def checkout_branch(self, branch: str, start_point: str) -> None:
        """Create or reset ``branch`` at ``start_point`` and check it out."""
        self._run("checkout", "-B", branch, start_point)

    def add_all(self, excludes: Iterable[str] = ()) -> None:
        self._run("add", "-A", "--", *exclude_pathspecs(excludes))

    def commit(self, message: str) -> None:
        self._run("commit", "-m", message)

    def push(self, remote: str, branch: str) -> None:
        self._run("push", remote, branch)
