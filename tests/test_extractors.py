"""Tests for line metadata extraction."""

import pytest

from tasksng.parser import (
    CheckboxState,
    TaskStatus,
    checkbox_to_status,
    extract_checkbox_state,
    extract_dates,
    extract_description,
    extract_mentions,
    extract_modifiers,
    extract_tags,
    extract_time_spent,
    generate_task_id,
    get_indent_level,
    is_task_line,
    short_hash,
    status_to_checkbox,
)
from tasksng.parser.extractors import format_timestamp, match_section, parse_date_value


class TestStatusMapping:
    """Test checkbox marker <-> status mapping."""

    @pytest.mark.parametrize(
        ("marker", "status"),
        [
            (" ", TaskStatus.PENDING),
            ("/", TaskStatus.IN_PROGRESS),
            ("x", TaskStatus.COMPLETED),
            ("-", TaskStatus.CANCELLED),
            (">", TaskStatus.DEFERRED),
            ("?", TaskStatus.BLOCKED),
        ],
    )
    def test_both_directions(self, marker, status):
        """Test that each marker maps to one status and back."""
        assert checkbox_to_status(marker) == status
        assert status_to_checkbox(status) == CheckboxState(marker)

    def test_unknown_marker_raises(self):
        """Test that an illegal marker is rejected."""
        with pytest.raises(ValueError):
            checkbox_to_status("q")

    def test_unknown_status_raises(self):
        """Test that an unknown status is rejected."""
        with pytest.raises(ValueError):
            status_to_checkbox("finished")


class TestTaskId:
    """Test task id generation."""

    def test_short_hash_known_values(self):
        """Test hash values for short strings."""
        assert short_hash("") == "000000"
        assert short_hash("a") == "000061"
        assert short_hash("ab") == "000c21"

    def test_short_hash_shape(self):
        """Test that hashes are six hex characters."""
        value = short_hash("- [ ] A much longer line #with @tokens +urgent")
        assert len(value) == 6
        int(value, 16)

    def test_short_hash_handles_non_ascii(self):
        """Test that hashing works over characters outside the BMP."""
        assert len(short_hash("- [ ] Emoji \U0001f600 task")) == 6

    def test_generate_task_id(self):
        """Test the id format."""
        assert generate_task_id(3, "a") == "L3_000061"

    def test_id_depends_on_content(self):
        """Test that a changed line changes the id."""
        assert generate_task_id(1, "- [ ] a") != generate_task_id(1, "- [x] a")


class TestTokens:
    """Test tag, mention and modifier extraction."""

    def test_tags(self):
        """Test tag extraction is lowercased and de-duplicated."""
        assert extract_tags("- [ ] Task #Work #home #work") == ["work", "home"]

    def test_mentions(self):
        """Test mention extraction."""
        assert extract_mentions("- [ ] Ask @Alice and @bob-smith") == ["alice", "bob-smith"]

    def test_email_is_not_a_mention(self):
        """Test that tokens must start a word."""
        line = "- [ ] Mail bob@example.com about page#anchor"
        assert extract_mentions(line) == []
        assert extract_tags(line) == []
        assert extract_description(line) == "Mail bob@example.com about page#anchor"

    def test_modifiers(self):
        """Test plain and keyed modifiers."""
        line = "- [ ] Ship +urgent +priority:high +Important"
        assert extract_modifiers(line) == ["urgent", "priority:high", "important"]

    def test_glued_tags(self):
        """Test that tags glued together are all found."""
        assert extract_tags("- [ ] #a#b") == ["a", "b"]


class TestDates:
    """Test date and time-spent extraction."""

    def test_known_dates(self):
        """Test that every known key is extracted."""
        line = (
            "- [x] Task _due:2026-02-01 _done:2026-02-02T10:20:30.123Z "
            "_created:2026-01-01 _inprogress:2026-01-15T08:00:00Z"
        )
        dates = extract_dates(line)
        assert dates.due == "2026-02-01"
        assert dates.done == "2026-02-02T10:20:30.123Z"
        assert dates.created == "2026-01-01"
        assert dates.in_progress == "2026-01-15T08:00:00Z"

    def test_unknown_key_stays_in_description(self):
        """Test that unknown date keys are not surfaced but kept as text."""
        line = "- [ ] Task _review:2026-03-01"
        dates = extract_dates(line)
        assert dates.model_dump() == {
            "due": None,
            "done": None,
            "created": None,
            "in_progress": None,
        }
        assert extract_description(line) == "Task _review:2026-03-01"

    def test_time_spent(self):
        """Test time spent extraction."""
        assert extract_time_spent("- [ ] Task _spent:90") == 90
        assert extract_time_spent("- [ ] Task") is None

    def test_first_value_wins(self):
        """Test that a repeated key keeps its first value."""
        assert extract_dates("- [ ] T _due:2026-01-01 _due:2026-12-31").due == "2026-01-01"


class TestDescription:
    """Test description cleanup."""

    def test_strips_everything(self):
        """Test that checkbox, tokens and bold markers are removed."""
        line = "- [ ] **Write**   report #work @bob +urgent _due:2026-02-01 _spent:30"
        assert extract_description(line) == "Write report"

    def test_nested_line(self):
        """Test that indentation is not part of the description."""
        assert extract_description("        - [/] Sub task") == "Sub task"


class TestLineShape:
    """Test indentation and checkbox detection."""

    def test_indent_level(self):
        """Test levels from leading spaces."""
        assert get_indent_level("- [ ] a") == 0
        assert get_indent_level("    - [ ] a") == 1
        assert get_indent_level("      - [ ] a") == 1
        assert get_indent_level("            - [ ] a") == 3

    def test_is_task_line(self):
        """Test task line detection."""
        assert is_task_line("- [ ] Task")
        assert is_task_line("    - [x] Done")
        assert not is_task_line("* [ ] Star bullet")
        assert not is_task_line("-[ ] Missing space")
        assert not is_task_line("- [q] Bad marker")
        assert not is_task_line("\t- [ ] Tab indent")

    def test_checkbox_state(self):
        """Test marker extraction."""
        assert extract_checkbox_state("- [>] Later") == CheckboxState.DEFERRED
        assert extract_checkbox_state("Plain text") is None

    def test_match_section(self):
        """Test level 2 and 3 headings."""
        assert match_section("## Inbox") == "Inbox"
        assert match_section("### Sub section ") == "Sub section"
        assert match_section("# Title") is None
        assert match_section("#### Deep") is None
        assert match_section("- [ ] ## not a heading") is None


class TestTimestamps:
    """Test timestamp helpers."""

    def test_format_timestamp_shape(self):
        """Test the UTC millisecond format."""
        value = format_timestamp()
        assert len(value) == 24
        assert value.endswith("Z")
        assert value[10] == "T"

    def test_parse_date_only(self):
        """Test that date-only values are midnight UTC."""
        moment = parse_date_value("2026-02-01")
        assert moment is not None
        assert moment.isoformat() == "2026-02-01T00:00:00+00:00"

    def test_parse_round_trip(self):
        """Test that formatted timestamps parse back."""
        moment = parse_date_value("2026-02-01T10:20:30.123Z")
        assert format_timestamp(moment) == "2026-02-01T10:20:30.123Z"

    def test_parse_invalid(self):
        """Test that garbage returns None."""
        assert parse_date_value("2026-13-45") is None
        assert parse_date_value("") is None
