from __future__ import annotations

from datetime import datetime, timezone

import pytest

import time_helpers
from time_helpers import calculate_range, format_time, make_duration, parse_range, parse_time


def test_parse_time_accepts_z_suffix():
    assert parse_time("2025-01-15T12:00:00Z") == datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def test_parse_time_converts_offsets_to_utc():
    parsed = parse_time("2025-01-15T14:00:00+02:00")
    assert parsed == datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)
    assert parsed.utcoffset().total_seconds() == 0


def test_parse_time_treats_naive_as_utc():
    assert parse_time("2025-01-15T12:00:00") == datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("bad", ["", "   ", "yesterday", "2025-13-45T00:00:00Z"])
def test_parse_time_rejects_garbage(bad):
    with pytest.raises(ValueError, match="Invalid ISO 8601 time"):
        parse_time(bad)


def test_format_time_round_trips_utc_strings():
    text = "2025-01-15T12:00:00Z"
    assert format_time(parse_time(text)) == text


def test_format_time_normalises_offsets():
    dt = parse_time("2025-01-15T07:30:00-05:00")
    assert format_time(dt) == "2025-01-15T12:30:00Z"


def test_make_duration():
    duration = make_duration("2025-01-15T00:00:00Z", "2025-01-15T06:00:00Z")
    assert (duration["end"] - duration["start"]).total_seconds() == 6 * 3600


@pytest.mark.parametrize(
    "token, seconds",
    [
        ("30min", 1800),
        ("60mins", 3600),
        ("1hr", 3600),
        ("3hrs", 10800),
        ("12hours", 43200),
        ("1day", 86400),
        ("7days", 604800),
        (" 3HRS ", 10800),
        ("1 day", 86400),
    ],
)
def test_parse_range_values(token, seconds):
    assert parse_range(token) == seconds


@pytest.mark.parametrize("token", [None, "", "   "])
def test_parse_range_empty_means_no_range(token):
    assert parse_range(token) is None


@pytest.mark.parametrize("token", ["invalid", "3", "3weeks", "-1day", "day"])
def test_parse_range_rejects_unknown_tokens(token):
    with pytest.raises(ValueError, match="Invalid range format"):
        parse_range(token)


def test_calculate_range_with_explicit_end():
    window = calculate_range("1day", "2025-01-15T12:00:00Z")
    assert window == {"from": "2025-01-14T12:00:00Z", "to": "2025-01-15T12:00:00Z"}


def test_calculate_range_ends_now_by_default(monkeypatch):
    monkeypatch.setattr(
        time_helpers, "utcnow", lambda: datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)
    )
    window = calculate_range("3hrs")
    assert window == {"from": "2025-03-01T06:00:00Z", "to": "2025-03-01T09:00:00Z"}


def test_calculate_range_bare_integer_means_days():
    assert calculate_range(2, "2025-01-15T00:00:00Z")["from"] == "2025-01-13T00:00:00Z"
    assert calculate_range("2", "2025-01-15T00:00:00Z")["from"] == "2025-01-13T00:00:00Z"


def test_calculate_range_without_range_passes_to_through():
    assert calculate_range("", "2025-01-15T00:00:00Z") == {
        "from": None,
        "to": "2025-01-15T00:00:00Z",
    }
    assert calculate_range(None) == {"from": None, "to": None}
