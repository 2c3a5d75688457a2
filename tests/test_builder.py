"""Tests for the task line builder."""

import pytest

from tasksng.parser import (
    CheckboxState,
    TaskDates,
    build_task_line,
    delete_line,
    delete_lines,
    insert_line,
    parse_line,
    replace_task_line,
    task_to_line,
    update_task_line,
)


def semantics(task):
    """Fields that must survive a parse/serialize/parse cycle."""
    return (
        task.description,
        task.checkbox_state,
        task.level,
        task.tags,
        task.mentions,
        task.modifiers,
        task.dates,
        task.time_spent,
    )


class TestBuildTaskLine:
    """Test rendering a line from fields."""

    def test_minimal(self):
        """Test a bare description."""
        assert build_task_line("Buy milk") == "- [ ] Buy milk"

    def test_field_order(self):
        """Test that metadata follows the fixed order."""
        line = build_task_line(
            "Fix bug",
            checkbox_state=CheckboxState.IN_PROGRESS,
            tags=["backend"],
            mentions=["bob"],
            modifiers=["urgent"],
            dates=TaskDates(due="2026-02-01", created="2026-01-01"),
            time_spent=30,
        )
        assert line == (
            "- [/] Fix bug #backend @bob +urgent _due:2026-02-01 _created:2026-01-01 _spent:30"
        )

    def test_in_progress_date_key(self):
        """Test that the in-progress stamp uses the inprogress key."""
        line = build_task_line("T", dates=TaskDates(in_progress="2026-01-01T00:00:00.000Z"))
        assert line == "- [ ] T _inprogress:2026-01-01T00:00:00.000Z"

    def test_indent(self):
        """Test four spaces per level."""
        assert build_task_line("Sub", level=2) == "        - [ ] Sub"

    def test_level_out_of_range(self):
        """Test that levels beyond 3 are rejected."""
        with pytest.raises(ValueError):
            build_task_line("Too deep", level=4)

    def test_zero_time_spent(self):
        """Test that zero minutes are still written."""
        assert build_task_line("T", time_spent=0) == "- [ ] T _spent:0"


class TestRoundTrip:
    """Test that serializing a parsed line keeps its meaning."""

    @pytest.mark.parametrize(
        "line",
        [
            "- [ ] Write report #work _due:2026-02-01",
            "    - [x] **Bold** done thing @Alice #A #b _done:2026-01-05T10:00:00.000Z",
            "- [/] Mixed +urgent order _spent:15 #tag @who +priority:high",
            "            - [?] Deep blocked _review:2026-03-01 note",
            "- [>] Glued#not-a-tag and #a#b",
        ],
    )
    def test_semantics_preserved(self, line):
        """Test parse(serialize(parse(line))) matches parse(line)."""
        first = parse_line(line, 1, "Unsorted")
        again = parse_line(task_to_line(first), 1, "Unsorted")
        assert semantics(again) == semantics(first)

    def test_canonical_line_is_stable(self):
        """Test that a canonical line serializes to itself."""
        line = "- [ ] Write report #work @bob +urgent _due:2026-02-01 _spent:5"
        assert task_to_line(parse_line(line, 1, "Unsorted")) == line


class TestUpdateTaskLine:
    """Test rendering a task with replaced fields."""

    def test_replaces_fields(self):
        """Test replacing state and tags while keeping the rest."""
        task = parse_line("    - [ ] Task #old _due:2026-02-01", 1, "Unsorted")
        line = update_task_line(task, checkbox_state="x", tags=["new"])
        assert line == "    - [x] Task #new _due:2026-02-01"

    def test_none_keeps_value(self):
        """Test that None leaves a field alone."""
        task = parse_line("- [ ] Task #keep", 1, "Unsorted")
        assert update_task_line(task, tags=None) == "- [ ] Task #keep"

    def test_unknown_field(self):
        """Test that unknown fields are rejected."""
        task = parse_line("- [ ] Task", 1, "Unsorted")
        with pytest.raises(TypeError):
            update_task_line(task, priority="high")


class TestLineHelpers:
    """Test line array splicing."""

    lines = ["one", "two", "three"]

    def test_replace(self):
        """Test replacing a line returns a new list."""
        result = replace_task_line(self.lines, 2, "TWO")
        assert result == ["one", "TWO", "three"]
        assert self.lines == ["one", "two", "three"]

    def test_insert_and_append(self):
        """Test inserting in the middle and at the end."""
        assert insert_line(self.lines, 1, "zero") == ["zero", "one", "two", "three"]
        assert insert_line(self.lines, 4, "four") == ["one", "two", "three", "four"]

    def test_delete(self):
        """Test deleting one and several lines."""
        assert delete_line(self.lines, 1) == ["two", "three"]
        assert delete_lines(self.lines, [1, 3]) == ["two"]

    @pytest.mark.parametrize("line_number", [0, 4, -1])
    def test_out_of_range(self, line_number):
        """Test that invalid line numbers raise."""
        with pytest.raises(ValueError):
            replace_task_line(self.lines, line_number, "x")
        with pytest.raises(ValueError):
            delete_line(self.lines, line_number)

    def test_insert_out_of_range(self):
        """Test that inserting past the end raises."""
        with pytest.raises(ValueError):
            insert_line(self.lines, 5, "x")
