"""Multi-device sync of the tasks file over git.

Conflicts are never merged line by line: the local copy is saved to
``.sync-conflicts/`` and the operation reports failure, leaving resolution
to the user. Working-tree steps run under the tasks file lock so no task
write lands halfway through a stash or rebase; network steps run unlocked.
"""

from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

import structlog
from git.exc import GitCommandError

from tasksng.config import Settings
from tasksng.errors import (
    LockTimeoutError,
    SyncConflictError,
    SyncError,
    SyncRejectedError,
    SyncUnavailableError,
    TaskStoreError,
)
from tasksng.parser.extractors import format_timestamp
from tasksng.store.files import TaskFile
from tasksng.sync.git_ops import REJECTED_MARKERS, GitOperations, is_timeout
from tasksng.sync.runner import CommandRunner, GitRunner
from tasksng.sync.state import SyncResult, SyncState, SyncStateStore, SyncStatus, classify

log = structlog.get_logger()

STASH_MESSAGE = "Auto-stash before sync"


class SyncController:
    """Pull, push and inspect the git repository holding the tasks file."""

    def __init__(
        self,
        settings: Settings,
        runner: CommandRunner | None = None,
    ):
        """Initialize the controller.

        Args:
            settings: Application settings.
            runner: Command runner; defaults to a GitRunner in the tasks
                directory.
        """
        self.settings = settings
        self.runner = runner or GitRunner(settings.tasks_dir, timeout=settings.git_timeout)
        self.git = GitOperations(self.runner)
        self.file = TaskFile.from_settings(settings)
        self.state_store = SyncStateStore(settings.sync_state_path)

    @property
    def excludes(self) -> list[str]:
        """Sidecar files that must never be committed or stashed."""
        name = self.settings.tasks_file.name
        return [
            self.settings.lock_path.name,
            f".{name}.*.tmp",
            self.settings.backup_dir.name,
            self.settings.conflict_dir.name,
            self.settings.sync_state_path.name,
            ".sync-state.*.tmp",
        ]

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def get_status(self, now: datetime | None = None) -> SyncState:
        """Compare the local branch with its remote counterpart.

        Fetches first when possible; a failed fetch still reports the local
        view. Never raises.
        """
        state = SyncState(last_sync=self.state_store.last_sync)

        try:
            if not self.git.is_repo():
                state.status = SyncStatus.NO_REMOTE
                state.error = "Not a git repository"
                return state

            state.branch = self.git.current_branch()
            state.remote = self.git.pick_remote(self.settings.sync_remote)
            if not state.remote:
                state.status = SyncStatus.NO_REMOTE
                state.error = "No remote configured"
                return state

            try:
                self.git.fetch(state.remote)
            except GitCommandError as e:
                log.warning("sync_fetch_failed", remote=state.remote, error=str(e))

            if state.branch and self.git.has_head():
                upstream = f"{state.remote}/{state.branch}"
                if self.git.remote_branch_exists(state.remote, state.branch):
                    state.local_changes = self.git.count_commits(f"{upstream}..HEAD")
                    state.remote_changes = self.git.count_commits(f"HEAD..{upstream}")
                else:
                    state.local_changes = self.git.count_commits("HEAD")

            if self.git.has_local_changes(self.excludes):
                state.local_changes += 1

            state.status = classify(state.local_changes, state.remote_changes)

        except GitCommandError as e:
            log.warning("sync_status_failed", error=str(e))
            state.status = SyncStatus.ERROR
            state.error = str(e)
            return state

        if self.state_store.in_flight(now or datetime.now(timezone.utc)):
            state.status = SyncStatus.SYNCING
        return state

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def pull(self) -> SyncResult:
        """Rebase local commits onto the remote branch.

        Uncommitted changes are backed up and stashed first, then restored.
        """
        return self._run_operation("pull", self._pull)

    def push(self, message: str | None = None) -> SyncResult:
        """Commit uncommitted changes and push. Never forces."""
        return self._run_operation("push", lambda: self._push(message))

    def sync(self, message: str | None = None) -> SyncResult:
        """Pull, then push. Stops at the first failure."""

        def run() -> SyncResult:
            pulled = self._pull()
            if pulled.conflicts:
                return pulled.model_copy(
                    update={"success": False, "message": f"{pulled.message} Push skipped."}
                )
            pushed = self._push(message)
            return SyncResult(
                success=True,
                message="Sync complete",
                backup_path=pulled.backup_path or pushed.backup_path,
            )

        return self._run_operation("sync", run)

    def init(self, remote_url: str) -> SyncResult:
        """Make the tasks directory a repository with a remote.

        Runs ``git init`` if needed, then adds the configured remote or
        updates its URL.
        """
        remote_url = remote_url.strip()
        if not remote_url:
            return SyncResult(success=False, message="Remote URL is required", reason="error")

        name = self.settings.sync_remote
        try:
            self.settings.ensure_dirs()
            if not self.git.is_repo():
                self.git.init()
                log.info("sync_repo_initialized", path=str(self.settings.tasks_dir))
            added = self.git.set_remote(name, remote_url)
        except (GitCommandError, OSError) as e:
            log.warning("sync_init_failed", error=str(e))
            return SyncResult(success=False, message=f"Init failed: {e}", reason="error")

        verb = "Added" if added else "Updated"
        log.info("sync_remote_configured", remote=name, added=added)
        return SyncResult(success=True, message=f"{verb} remote {name}: {remote_url}")

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _run_operation(self, operation: str, fn: Callable[[], SyncResult]) -> SyncResult:
        """Run one operation, record it in the state file, map errors."""
        self.state_store.mark_started(operation)
        try:
            result = fn()
        except SyncError as e:
            result = SyncResult(
                success=False,
                message=str(e),
                backup_path=getattr(e, "backup_path", None),
                reason=e.reason,
            )
        except LockTimeoutError as e:
            result = SyncResult(success=False, message=str(e), reason="timeout")
        except (TaskStoreError, OSError) as e:
            result = SyncResult(
                success=False,
                message=f"{operation.capitalize()} failed: {e}",
                reason="error",
            )
        except GitCommandError as e:
            reason = "timeout" if is_timeout(e) else "error"
            result = SyncResult(
                success=False,
                message=f"{operation.capitalize()} failed: {e}",
                reason=reason,
            )

        if result.success:
            log.info(f"sync_{operation}_succeeded", message=result.message)
        else:
            log.warning(
                f"sync_{operation}_failed",
                reason=result.reason,
                message=result.message,
                backup_path=str(result.backup_path) if result.backup_path else None,
            )
        self.state_store.mark_finished(result)
        return result

    def _target(self) -> tuple[str, str]:
        if not self.git.is_repo():
            raise SyncUnavailableError("Not a git repository")
        remote = self.git.pick_remote(self.settings.sync_remote)
        if not remote:
            raise SyncUnavailableError("No remote configured")
        branch = self.git.current_branch()
        if not branch:
            raise SyncError("Could not determine remote or branch")
        return remote, branch

    def _pull(self) -> SyncResult:
        remote, branch = self._target()
        self.git.fetch(remote)
        upstream = f"{remote}/{branch}"

        with self.file.locked():
            backup_path = None
            stashed = False
            if self.git.has_local_changes(self.excludes):
                backup_path = self._conflict_backup()
                stashed = self.git.stash_push(STASH_MESSAGE, self.excludes)

            if not self.git.has_head():
                if self.git.remote_branch_exists(remote, branch):
                    self.git.checkout_branch(branch, upstream)
            elif self.git.remote_branch_exists(remote, branch):
                try:
                    self.git.rebase(upstream)
                except GitCommandError as e:
                    if is_timeout(e):
                        raise
                    self._abort_rebase(stashed)
                    if backup_path is None:
                        backup_path = self._conflict_backup()
                    raise SyncConflictError(
                        "Pull failed - conflicts detected", backup_path
                    ) from e

            if stashed:
                try:
                    self.git.stash_pop()
                except GitCommandError:
                    conflicts = self.git.conflicted_files()
                    if backup_path is None:
                        backup_path = self._conflict_backup()
                    # The stash entry stays as a second copy of the local work
                    self.git.reset_to_head(self.excludes)
                    log.warning("sync_local_changes_discarded", backup_path=str(backup_path))
                    return SyncResult(
                        success=True,
                        message=(
                            "Pulled changes but local changes could not be merged. "
                            "Backup saved."
                        ),
                        backup_path=backup_path,
                        conflicts=conflicts or [self.settings.tasks_file.name],
                        reason="conflict",
                    )

        return SyncResult(success=True, message="Successfully pulled changes")

    def _push(self, message: str | None) -> SyncResult:
        remote, branch = self._target()

        with self.file.locked():
            if self.git.has_local_changes(self.excludes):
                self.git.add_all(self.excludes)
                self.git.commit(message or f"Sync: {format_timestamp()}")

        try:
            self.git.push(remote, branch)
        except GitCommandError as e:
            if is_timeout(e):
                raise
            if any(marker in str(e.stderr) for marker in REJECTED_MARKERS):
                raise SyncRejectedError(
                    "Push failed - remote has changes. Pull first."
                ) from e
            raise

        return SyncResult(success=True, message="Successfully pushed changes")

    def _abort_rebase(self, stashed: bool) -> None:
        try:
            self.git.rebase_abort()
        except GitCommandError as e:
            log.debug("sync_rebase_abort_failed", error=str(e))
        if stashed:
            try:
                self.git.stash_pop()
            except GitCommandError as e:
                log.warning("sync_stash_restore_failed", error=str(e))

    def _conflict_backup(self) -> Path:
        """Copy the current tasks file into the conflict directory."""
        conflict_dir = self.settings.conflict_dir
        conflict_dir.mkdir(parents=True, exist_ok=True)
        stamp = format_timestamp().replace(":", "-").replace(".", "-")
        path = conflict_dir / f"{self.settings.tasks_file.name}.conflict-{stamp}"
        path.write_text(self.file.read_raw(), encoding="utf-8")
        log.info("sync_conflict_backup", path=str(path))
        return path
