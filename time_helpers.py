"""
Time parsing, formatting and quick-range helpers.

All timestamps exchanged with the ScoutAPM API are ISO 8601 strings in UTC
with a literal Z suffix, e.g. 2025-01-15T12:00:00Z.

Quick ranges are short human tokens ("30min", "3hrs", "7days") that resolve
to a (from, to) window ending at a given time, or now.
"""
from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

_RANGE_PATTERN = re.compile(r"^(\d+)\s*(min|mins|hr|hrs|hour|hours|day|days)$")

_UNIT_SECONDS = {
    "min": 60,
    "mins": 60,
    "hr": 3600,
    "hrs": 3600,
    "hour": 3600,
    "hours": 3600,
    "day": 86400,
    "days": 86400,
}

_RANGE_EXAMPLES = "30min, 60min, 1hr, 3hrs, 6hrs, 12hrs, 1day, 3days, 7days"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_time(text: str) -> datetime:
    """
    Parse an ISO 8601 timestamp into an aware UTC datetime.

    Accepts a Z / z suffix or an explicit offset. A timestamp without any
    offset is taken to already be UTC.
    """
    if not isinstance(text, str) or not text.strip():
        raise ValueError(f"Invalid ISO 8601 time {text!r}")
    raw = text.strip()
    if raw[-1] in "Zz":
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        raise ValueError(
            f"Invalid ISO 8601 time {text!r} — use e.g. 2025-01-15T12:00:00Z"
        ) from None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_time(value: datetime) -> str:
    """Render a datetime as YYYY-MM-DDTHH:MM:SSZ in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def make_duration(from_text: str, to_text: str) -> dict[str, datetime]:
    """Return {"start": datetime, "end": datetime} parsed from two ISO strings."""
    return {"start": parse_time(from_text), "end": parse_time(to_text)}


def parse_range(token: str | None) -> int | None:
    """
    Convert a quick-range token to a duration in seconds.

    Returns None for an empty token (no range requested). Matching is
    case-insensitive and ignores surrounding whitespace, so " 3HRS " and
    "1 day" are both accepted.
    """
    if token is None:
        return None
    cleaned = token.strip().lower()
    if not cleaned:
        return None
    match = _RANGE_PATTERN.match(cleaned)
    if not match:
        raise ValueError(
            f"Invalid range format {token!r}. Examples: {_RANGE_EXAMPLES}"
        )
    amount, unit = match.groups()
    return int(amount) * _UNIT_SECONDS[unit]


def calculate_range(
    time_range: str | int | None,
    to_time: str | None = None,
) -> dict[str, str | None]:
    """
    Resolve a quick range into concrete {"from", "to"} ISO strings.

    Without a range the "to" value is passed through untouched and "from"
    is None. A bare integer (or digit string) means that many days.
    The window ends at to_time when given, otherwise now.
    """
    if time_range is None or (isinstance(time_range, str) and not time_range.strip()):
        return {"from": None, "to": to_time}

    if isinstance(time_range, int) or time_range.strip().isdigit():
        seconds = int(time_range) * 86400
    else:
        seconds = parse_range(time_range)  # type: ignore[assignment]

    end = parse_time(to_time) if to_time else utcnow()
    start = end - timedelta(seconds=seconds)
    return {"from": format_time(start), "to": format_time(end)}
