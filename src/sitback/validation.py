"""Input validation mirroring the storage check constraints."""

from __future__ import annotations

import re
from datetime import datetime

from sitback.errors import ValidationError
from sitback.models import TodoStatus

TAG_NAME_PATTERN = re.compile(r"^[a-z0-9]+$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIMESTAMP_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$")
MIN_PRIORITY = 1
MAX_PRIORITY = 5


def normalize_tag_name(value: str) -> str:
    """Trim and lowercase one tag segment, rejecting anything non-alphanumeric."""

    name = value.strip().lower()
    if not name:
        raise ValidationError("Tag name must not be empty", field="name")
    if not TAG_NAME_PATTERN.match(name):
        raise ValidationError(
            f"Tag name must be lowercase alphanumeric, got {value!r}",
            field="name",
        )
    return name


def normalize_tag_path(path: str) -> list[str]:
    """Split a slash-separated tag path into validated segments."""

    segments = [segment.strip() for segment in path.split("/")]
    if not segments or any(not segment for segment in segments):
        raise ValidationError(
            f"Tag path must not contain empty segments: {path!r}",
            field="tag_path",
        )
    normalized = [segment.lower() for segment in segments]
    if any(not TAG_NAME_PATTERN.match(segment) for segment in normalized):
        raise ValidationError(
            f"Tag path segments must be lowercase alphanumeric: {path!r}",
            field="tag_path",
        )
    return normalized


def validate_description(value: str) -> str:
    description = value.strip()
    if not description:
        raise ValidationError("Description must be non-empty text", field="description")
    return description


def validate_assignee(value: str) -> str:
    assignee = value.strip()
    if not assignee:
        raise ValidationError("Assignee must be non-empty text", field="assignee")
    return assignee


def validate_priority(value: int | None) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Priority must be an integer, got {value!r}", field="priority")
    if value < MIN_PRIORITY or value > MAX_PRIORITY:
        raise ValidationError(
            f"Priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}, got {value}",
            field="priority",
        )
    return value


def validate_due_date(value: str | None) -> str | None:
    """Accept ``YYYY-MM-DD`` calendar dates only."""

    if value is None:
        return None
    candidate = value.strip()
    if not DATE_PATTERN.match(candidate):
        raise ValidationError(f"Invalid date {value!r}, expected YYYY-MM-DD", field="due_date")
    try:
        datetime.strptime(candidate, "%Y-%m-%d")
    except ValueError as error:
        raise ValidationError(f"Invalid calendar date {value!r}", field="due_date") from error
    return candidate


def validate_timestamp(value: str | None, *, field: str = "assignee_lease") -> str | None:
    """Accept ``YYYY-MM-DD HH:MM:SS`` timestamps only."""

    if value is None:
        return None
    candidate = value.strip()
    if not TIMESTAMP_PATTERN.match(candidate):
        raise ValidationError(
            f"Invalid timestamp {value!r}, expected YYYY-MM-DD HH:MM:SS",
            field=field,
        )
    try:
        datetime.strptime(candidate, "%Y-%m-%d %H:%M:%S")
    except ValueError as error:
        raise ValidationError(f"Invalid timestamp {value!r}", field=field) from error
    return candidate


def validate_status(value: TodoStatus | str) -> TodoStatus:
    try:
        return TodoStatus(value)
    except ValueError as error:
        allowed = ", ".join(status.value for status in TodoStatus)
        raise ValidationError(
            f"Invalid status {value!r}, expected one of: {allowed}",
            field="status",
        ) from error


def validate_positive_int(value: int, *, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer, got {value!r}", field=field)
    return value


def dedupe_ids(values: tuple[int, ...] | list[int], *, field: str) -> list[int]:
    """Validate ids and drop repeats, keeping first-seen order."""

    deduped: list[int] = []
    seen: set[int] = set()
    for value in values:
        validate_positive_int(value, field=field)
        if value in seen:
            continue
        seen.add(value)
        deduped.append(value)
    return deduped
