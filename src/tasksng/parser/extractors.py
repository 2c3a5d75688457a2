"""Pure extraction functions for task line metadata.

Every function takes a string and returns a fresh value. The compiled
patterns are only used through ``findall``/``sub``/``match``, which keep no
state between calls.
"""

import re
from datetime import datetime, timezone
from typing import NamedTuple

from tasksng.parser.models import CheckboxState, TaskDates, TaskStatus

MAX_LEVEL = 3
INDENT_WIDTH = 4
DEFAULT_SECTION = "Unsorted"

# Tokens only count when they start a word (line start or after whitespace),
# so e-mail addresses and URL fragments are left in the description.
_BOUNDARY = r"(?<!\S)"
_DATE_VALUE = (
    r"\d{4}-\d{2}-\d{2}"
    r"(?:T\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?"
)

CHECKBOX_REGEX = re.compile(r"^( *)- \[([ /x\->?])\]\s*")
TAG_REGEX = re.compile(_BOUNDARY + r"#([a-z0-9-]+)", re.IGNORECASE)
MENTION_REGEX = re.compile(_BOUNDARY + r"@([a-z0-9-]+)", re.IGNORECASE)
MODIFIER_REGEX = re.compile(
    _BOUNDARY + r"\+([a-z]+(?::[a-z0-9-]+)?)", re.IGNORECASE
)
DATE_REGEX = re.compile(
    _BOUNDARY + r"_([a-z]+):(" + _DATE_VALUE + r")", re.IGNORECASE
)
TIME_SPENT_REGEX = re.compile(_BOUNDARY + r"_spent:(\d+)", re.IGNORECASE)
DATE_VALUE_REGEX = re.compile(r"^" + _DATE_VALUE + r"$", re.IGNORECASE)
SECTION_H2_REGEX = re.compile(r"^##\s+(.+)$")
SECTION_H3_REGEX = re.compile(r"^###\s+(.+)$")

# Token key -> TaskDates field
DATE_KEYS = {
    "due": "due",
    "done": "done",
    "created": "created",
    "inprogress": "in_progress",
}

_STATUS_BY_CHECKBOX = {
    CheckboxState.OPEN: TaskStatus.PENDING,
    CheckboxState.IN_PROGRESS: TaskStatus.IN_PROGRESS,
    CheckboxState.DONE: TaskStatus.COMPLETED,
    CheckboxState.CANCELLED: TaskStatus.CANCELLED,
    CheckboxState.DEFERRED: TaskStatus.DEFERRED,
    CheckboxState.BLOCKED: TaskStatus.BLOCKED,
}
_CHECKBOX_BY_STATUS = {status: box for box, status in _STATUS_BY_CHECKBOX.items()}


def checkbox_to_status(state: CheckboxState | str) -> TaskStatus:
    """Map a checkbox marker to its semantic status.

    Args:
        state: Checkbox marker or its single-character value.

    Returns:
        TaskStatus for the marker.

    Raises:
        ValueError: If the marker is not one of the six legal states.
    """
    return _STATUS_BY_CHECKBOX[CheckboxState(state)]


def status_to_checkbox(status: TaskStatus | str) -> CheckboxState:
    """Map a semantic status to its checkbox marker.

    Raises:
        ValueError: If the status is unknown.
    """
    return _CHECKBOX_BY_STATUS[TaskStatus(status)]


def short_hash(text: str) -> str:
    """Six hex characters of a 32-bit rolling hash of ``text``.

    Runs over UTF-16 code units so ids agree with other readers of the
    same file.
    """
    value = 0
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        value = (value * 31 + unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return format(abs(value), "x").zfill(6)[:6]


def generate_task_id(line_number: int, raw_line: str) -> str:
    """Build a task id of the form ``L{line}_{hash}``."""
    return f"L{line_number}_{short_hash(raw_line)}"


class LineTokens(NamedTuple):
    """Everything the extractor finds on one line."""

    description: str
    tags: list[str]
    mentions: list[str]
    modifiers: list[str]
    dates: TaskDates
    time_spent: int | None


def scan_tokens(line: str) -> LineTokens:
    """Split a line into its description and metadata tokens.

    Removing a token can put whitespace in front of text that was glued to
    it (``#a#b``), so removal repeats until nothing more matches. This keeps
    re-parsing a serialized line stable.
    """
    text = CHECKBOX_REGEX.sub("", line, count=1)
    tags: list[str] = []
    mentions: list[str] = []
    modifiers: list[str] = []
    dates: dict[str, str] = {}
    spent: int | None = None

    while True:
        before = text
        text = text.replace("**", "")

        tags.extend(TAG_REGEX.findall(text))
        text = TAG_REGEX.sub("", text)
        mentions.extend(MENTION_REGEX.findall(text))
        text = MENTION_REGEX.sub("", text)
        modifiers.extend(MODIFIER_REGEX.findall(text))
        text = MODIFIER_REGEX.sub("", text)

        for key, value in DATE_REGEX.findall(text):
            field = DATE_KEYS.get(key.lower())
            if field and field not in dates:
                dates[field] = value
        text = DATE_REGEX.sub(_drop_known_date, text)

        match = TIME_SPENT_REGEX.search(text)
        if match and spent is None:
            spent = int(match.group(1))
        text = TIME_SPENT_REGEX.sub("", text)

        if text == before:
            break

    return LineTokens(
        description=" ".join(text.split()),
        tags=_unique_lower(tags),
        mentions=_unique_lower(mentions),
        modifiers=_unique_lower(modifiers),
        dates=TaskDates(**dates),
        time_spent=spent,
    )


def _drop_known_date(match: re.Match[str]) -> str:
    # unknown keys stay in the description text
    return "" if match.group(1).lower() in DATE_KEYS else match.group(0)


def _unique_lower(values: list[str]) -> list[str]:
    return list(dict.fromkeys(v.lower() for v in values))


def extract_tags(line: str) -> list[str]:
    """Extract ``#tag`` tokens, lowercased and de-duplicated."""
    return scan_tokens(line).tags


def extract_mentions(line: str) -> list[str]:
    """Extract ``@mention`` tokens, lowercased and de-duplicated."""
    return scan_tokens(line).mentions


def extract_modifiers(line: str) -> list[str]:
    """Extract ``+modifier`` and ``+modifier:value`` tokens."""
    return scan_tokens(line).modifiers


def extract_dates(line: str) -> TaskDates:
    """Extract known ``_key:date`` tokens. Unknown keys are ignored."""
    return scan_tokens(line).dates


def extract_time_spent(line: str) -> int | None:
    """Extract minutes from the first ``_spent:N`` token."""
    return scan_tokens(line).time_spent


def extract_description(line: str) -> str:
    """Strip the checkbox and all metadata tokens from a line."""
    return scan_tokens(line).description


def get_indent_level(line: str) -> int:
    """Nesting level from leading spaces (4 per level)."""
    spaces = len(line) - len(line.lstrip(" "))
    return spaces // INDENT_WIDTH


def is_task_line(line: str) -> bool:
    """Check if a line starts with a task checkbox."""
    return CHECKBOX_REGEX.match(line) is not None


def extract_checkbox_state(line: str) -> CheckboxState | None:
    """Return the checkbox marker of a task line, or None."""
    match = CHECKBOX_REGEX.match(line)
    if not match:
        return None
    return CheckboxState(match.group(2))


def match_section(line: str) -> str | None:
    """Return the section name if the line is a ``##``/``###`` heading."""
    match = SECTION_H2_REGEX.match(line) or SECTION_H3_REGEX.match(line)
    if not match:
        return None
    name = match.group(1).strip()
    return name or None


def format_timestamp(moment: datetime | None = None) -> str:
    """Format a UTC timestamp as ``YYYY-MM-DDTHH:MM:SS.sssZ``."""
    moment = (moment or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def parse_date_value(value: str) -> datetime | None:
    """Parse a date token value into an aware datetime.

    Date-only values are read as midnight UTC. Returns None for values that
    do not parse.
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment
