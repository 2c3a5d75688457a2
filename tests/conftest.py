"""Shared fixtures for the tasks-ng test suite."""

from pathlib import Path

import pytest

from tasksng.config import Settings
from tasksng.store import TaskStore
from tasksng.sync.runner import CommandResult

SAMPLE_TASKS = """# Tasks

## Inbox
- [ ] Write report #work _due:2026-02-01
    - [ ] Collect numbers @alice
    - [x] Draft outline _done:2026-01-10T09:00:00.000Z
- [/] Fix login bug #backend +urgent +important _spent:45

## Later
- [ ] Plan vacation +important
- [-] Old idea
"""


@pytest.fixture
def tasks_path(tmp_path: Path) -> Path:
    """Path of a tasks file inside a temporary directory."""
    return tmp_path / "tasks.md"


@pytest.fixture
def settings(tasks_path: Path) -> Settings:
    """Settings pointing at the temporary tasks file."""
    return Settings(tasks_file=tasks_path, lock_max_wait=5.0)


@pytest.fixture
def store(settings: Settings) -> TaskStore:
    """Task store over an empty temporary directory."""
    return TaskStore(settings)


@pytest.fixture
def sample_store(store: TaskStore, tasks_path: Path) -> TaskStore:
    """Task store over a file holding SAMPLE_TASKS."""
    tasks_path.write_text(SAMPLE_TASKS, encoding="utf-8")
    return store


class FakeRunner:
    """CommandRunner returning canned results by argument prefix.

    The longest matching prefix wins; unmatched commands succeed with no
    output. Every call is recorded in ``calls``.
    """

    def __init__(self, responses: dict[tuple[str, ...], CommandResult] | None = None):
        self.calls: list[list[str]] = []
        self.responses = dict(responses or {})

    def run(self, args: list[str]) -> CommandResult:
        self.calls.append(list(args))
        matches = [p for p in self.responses if tuple(args[: len(p)]) == p]
        if not matches:
            return CommandResult("", "", 0)
        return self.responses[max(matches, key=len)]

    def called(self, *prefix: str) -> bool:
        """Whether any recorded call starts with ``prefix``."""
        return any(tuple(call[: len(prefix)]) == prefix for call in self.calls)


def ok(stdout: str = "") -> CommandResult:
    return CommandResult(stdout, "", 0)


def fail(stderr: str = "error", exit_code: int = 1) -> CommandResult:
    return CommandResult("", stderr, exit_code)


def repo_responses(**overrides: CommandResult) -> dict[tuple[str, ...], CommandResult]:
    """Responses of a clean checkout of ``main`` tracking ``origin/main``.

    Keyword overrides use these keys: ``status``, ``local``, ``remote``,
    ``fetch``, ``rebase``, ``stash_pop``, ``push``.
    """
    responses = {
        ("rev-parse", "--git-dir"): ok(".git"),
        ("rev-parse", "--verify", "--quiet", "HEAD"): ok("abc123"),
        ("rev-parse", "--verify", "--quiet", "refs/remotes/origin/main"): ok("def456"),
        ("symbolic-ref", "--short", "HEAD"): ok("main\n"),
        ("remote",): ok("origin\n"),
        ("status",): ok(""),
        ("rev-list", "--count", "origin/main..HEAD"): ok("0\n"),
        ("rev-list", "--count", "HEAD..origin/main"): ok("0\n"),
        ("stash", "push"): ok("Saved working directory and index state On main"),
    }
    keys = {
        "status": ("status",),
        "local": ("rev-list", "--count", "origin/main..HEAD"),
        "remote": ("rev-list", "--count", "HEAD..origin/main"),
        "fetch": ("fetch",),
        "rebase": ("rebase", "origin/main"),
        "stash_pop": ("stash", "pop"),
        "push": ("push",),
    }
    for name, result in overrides.items():
        responses[keys[name]] = result
    return responses
