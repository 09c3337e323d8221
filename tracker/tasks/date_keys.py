"""
Tool: Date Keys
Purpose: Canonical YYYY-MM-DD keys for recurrence instances

Occurrence state is keyed by calendar date. Older records were sometimes
keyed by full ISO timestamps ("2024-01-05T00:00:00.000Z") or other date
strings. Rather than rewriting stored data on every read, lookups normalize
each stored key and compare it with the canonical target.

Usage:
    from tracker.tasks.date_keys import normalize_date_key, find_by_any_key

    normalize_date_key("2024-01-05T00:00:00.000Z")  # "2024-01-05" (in UTC)
    find_by_any_key(task.recurrence_instances, "2024-01-05")

Dependencies:
    - python-dateutil (general date parsing)
"""

import re
from datetime import date, datetime
from typing import Mapping, Optional, TypeVar

from dateutil import parser as date_parser

CANONICAL_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

V = TypeVar("V")


def is_canonical(raw: str) -> bool:
    return bool(CANONICAL_DATE_RE.match(raw))


def format_date_key(value: date) -> str:
    """Format a date (or the local calendar date of a datetime) as YYYY-MM-DD."""
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def normalize_date_key(raw: str) -> str:
    """
    Canonicalize a date string to YYYY-MM-DD.

    Canonical input is returned as-is. Anything else is parsed as a general
    date; timezone-aware values are converted to local time first. Input that
    cannot be parsed is returned unchanged - this never raises.
    """
    if is_canonical(raw):
        return raw

    try:
        parsed = date_parser.parse(raw)
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone()
    except (ValueError, OverflowError, TypeError):
        return raw

    return format_date_key(parsed)


def to_date_key(value: "str | date | datetime") -> str:
    """Accept a date, datetime or string and return its canonical key."""
    if isinstance(value, (date, datetime)):
        return format_date_key(value)
    return normalize_date_key(value)


def parse_date_key(key: str) -> date:
    """Parse a canonical key. Raises ValueError for anything else."""
    return date.fromisoformat(key)


def matching_keys(mapping: Mapping[str, object], target: str) -> list[str]:
    """All keys of `mapping` that normalize to `target`, in mapping order."""
    return [key for key in mapping if key == target or normalize_date_key(key) == target]


def find_by_any_key(mapping: Mapping[str, V], target: str) -> Optional[V]:
    """
    Look up `target` in `mapping`, tolerating non-canonical stored keys.

    Args:
        mapping: Date-keyed map (e.g. recurrence instances)
        target: Canonical YYYY-MM-DD key

    Returns:
        The value stored under `target`, else the value of the first key whose
        normalized form equals `target`, else None
    """
    if target in mapping:
        return mapping[target]

    for key, value in mapping.items():
        if normalize_date_key(key) == target:
            return value

    return None


__all__ = [
    "CANONICAL_DATE_RE",
    "is_canonical",
    "format_date_key",
    "normalize_date_key",
    "to_date_key",
    "parse_date_key",
    "matching_keys",
    "find_by_any_key",
]
