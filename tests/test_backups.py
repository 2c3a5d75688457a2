"""Tests for tasks file backups."""

from datetime import datetime, timedelta, timezone

import pytest

from tasksng.store.backups import BackupManager, backup_name

MOMENT = datetime(2026, 2, 1, 10, 20, 30, 123000, tzinfo=timezone.utc)


class TestBackupName:
    """Test backup file naming."""

    def test_name(self):
        """Test that separators are replaced with dashes."""
        assert backup_name(MOMENT) == "tasks-2026-02-01T10-20-30-123Z.md"

    def test_names_sort_chronologically(self):
        """Test that name order matches time order."""
        names = [backup_name(MOMENT + timedelta(seconds=s)) for s in (0, 9, 10, 3600)]
        assert sorted(names) == names


class TestBackupManager:
    """Test creating, listing and pruning backups."""

    def test_create(self, tmp_path):
        """Test that a backup holds the content."""
        manager = BackupManager(tmp_path / "backups")
        path = manager.create("- [ ] Task\n", now=MOMENT)
        assert path.name == "tasks-2026-02-01T10-20-30-123Z.md"
        assert path.read_text(encoding="utf-8") == "- [ ] Task\n"

    def test_same_millisecond(self, tmp_path):
        """Test that a name collision moves to the next millisecond."""
        manager = BackupManager(tmp_path)
        first = manager.create("one", now=MOMENT)
        second = manager.create("two", now=MOMENT)
        assert first != second
        assert second.name == "tasks-2026-02-01T10-20-30-124Z.md"
        assert first.read_text(encoding="utf-8") == "one"

    def test_prune_keeps_newest(self, tmp_path):
        """Test that only the newest backups are kept."""
        manager = BackupManager(tmp_path, keep=3)
        paths = [
            manager.create(str(i), now=MOMENT + timedelta(minutes=i)) for i in range(5)
        ]
        assert manager.list() == list(reversed(paths[2:]))

    def test_prune_explicit_keep(self, tmp_path):
        """Test pruning with an explicit retention count."""
        manager = BackupManager(tmp_path, keep=10)
        for i in range(4):
            manager.create(str(i), now=MOMENT + timedelta(minutes=i))
        removed = manager.prune(keep=1)
        assert len(removed) == 3
        assert len(manager.list()) == 1

    def test_ignores_other_files(self, tmp_path):
        """Test that unrelated files are neither listed nor pruned."""
        (tmp_path / "notes.txt").write_text("keep me", encoding="utf-8")
        manager = BackupManager(tmp_path, keep=1)
        manager.create("a", now=MOMENT)
        manager.create("b", now=MOMENT + timedelta(minutes=1))
        assert len(manager.list()) == 1
        assert (tmp_path / "notes.txt").exists()

    def test_list_missing_dir(self, tmp_path):
        """Test listing when no backup was ever taken."""
        assert BackupManager(tmp_path / "missing").list() == []

    def test_read(self, tmp_path):
        """Test reading a backup by name."""
        manager = BackupManager(tmp_path)
        path = manager.create("content", now=MOMENT)
        assert manager.read(path.name) == "content"

    @pytest.mark.parametrize(
        "name",
        ["../tasks.md", "tasks-2026.md/x", "notes.txt", "tasks-..\\x.md", ""],
    )
    def test_rejects_bad_names(self, tmp_path, name):
        """Test that names outside the backup pattern are refused."""
        with pytest.raises(ValueError):
            BackupManager(tmp_path).path_for(name)

    def test_read_missing(self, tmp_path):
        """Test reading a backup that does not exist."""
        with pytest.raises(FileNotFoundError):
            BackupManager(tmp_path).read("tasks-2026-02-01T10-20-30-123Z.md")
