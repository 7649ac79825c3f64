"""
Input validation for ScoutAPM client calls and MCP tool arguments.

Every check here runs before a request is built, so a bad argument never
costs a network round trip. Invalid input raises ValueError (pydantic's
ValidationError is a ValueError subclass) with a user-friendly message.

Rules enforced here:
  - metric_type / insight_type / pagination_direction: fixed allow-lists
  - Time ranges: from before to, max 2 weeks for metric and list queries
  - Trace queries: from no older than 7 days
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import ClassVar
from urllib.parse import urlparse

from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator

import time_helpers
from time_helpers import parse_time

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

VALID_METRICS: tuple[str, ...] = (
    "apdex",
    "response_time",
    "response_time_95th",
    "errors",
    "throughput",
    "queue_time",
)

VALID_INSIGHTS: tuple[str, ...] = ("n_plus_one", "memory_bloat", "slow_query")

VALID_PAGINATION_DIRECTIONS: tuple[str, ...] = ("forward", "backward")

_MAX_RANGE_DAYS = 14
_MAX_TRACE_AGE_DAYS = 7


# ---------------------------------------------------------------------------
# Plain validators
# ---------------------------------------------------------------------------


def validate_time_range(
    from_time: str,
    to_time: str,
    max_days: int | None = _MAX_RANGE_DAYS,
) -> None:
    """Raise ValueError unless from < to and the span fits within max_days."""
    start = parse_time(from_time)
    end = parse_time(to_time)
    if start >= end:
        raise ValueError("from_time must be before to_time")
    if max_days is not None and end - start > timedelta(days=max_days):
        if max_days == 14:
            raise ValueError("Time range cannot exceed 2 weeks")
        raise ValueError(f"Time range cannot exceed {max_days} days")


def validate_trace_age(
    from_time: str,
    max_age_days: int = _MAX_TRACE_AGE_DAYS,
    now: datetime | None = None,
) -> None:
    """
    Raise ValueError if from_time lies more than max_age_days before now.

    Compared at whole-second precision, since API timestamps carry no
    fractional seconds.
    """
    reference = now or time_helpers.utcnow()
    cutoff = (reference - timedelta(days=max_age_days)).replace(microsecond=0)
    if parse_time(from_time) < cutoff:
        raise ValueError(f"from_time cannot be older than {max_age_days} days")


def _check_choice(value: str, allowed: tuple[str, ...], field: str) -> str:
    value = str(value).strip()
    if value not in allowed:
        raise ValueError(f"Invalid {field}. Must be one of: {', '.join(allowed)}")
    return value


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class TimeRangeQuery(BaseModel):
    """
    Optional from/to window.

    Both bounds are optional; the ordering and span checks only apply once
    both are known. Subclasses tune the span limit via max_span_days.

    Used directly by: list_endpoints, list_error_groups.
    Extended by: MetricQuery, TraceWindowQuery, InsightsHistoryQuery.
    """

    max_span_days: ClassVar[int | None] = _MAX_RANGE_DAYS

    from_time: str | None = Field(default=None)
    to_time: str | None = Field(default=None)

    @field_validator("from_time", "to_time", mode="before")
    @classmethod
    def _parse_timestamp(cls, v: object) -> str | None:
        if v is None:
            return None
        text = str(v).strip()
        if not text:
            return None
        parse_time(text)
        return text

    @model_validator(mode="after")
    def _validate_window(self) -> "TimeRangeQuery":
        if self.from_time and self.to_time:
            validate_time_range(self.from_time, self.to_time, self.max_span_days)
        return self


class MetricQuery(TimeRangeQuery):
    """Validated metric series request — used by get_metric and get_endpoint_metrics."""

    metric_type: str

    @field_validator("metric_type")
    @classmethod
    def _validate_metric(cls, v: str) -> str:
        return _check_choice(v, VALID_METRICS, "metric_type")


class TraceWindowQuery(TimeRangeQuery):
    """
    Trace listing window: ScoutAPM only keeps traces for 7 days.

    Pass context={"now": datetime} to age-check against the same instant
    the window was computed from.
    """

    @model_validator(mode="after")
    def _validate_age(self, info: ValidationInfo) -> "TraceWindowQuery":
        if self.from_time:
            now = (info.context or {}).get("now")
            validate_trace_age(self.from_time, now=now)
        return self


class InsightQuery(BaseModel):
    """Validated insight type plus optional item limit."""

    insight_type: str
    limit: int | None = Field(default=None, ge=1)

    @field_validator("insight_type")
    @classmethod
    def _validate_insight(cls, v: str) -> str:
        return _check_choice(v, VALID_INSIGHTS, "insight_type")


class InsightsHistoryQuery(TimeRangeQuery):
    """
    Cursor-paginated insight history.

    History windows are not capped at two weeks; only ordering is checked.
    """

    max_span_days: ClassVar[int | None] = None

    limit: int | None = Field(default=None, ge=1)
    pagination_cursor: int | None = Field(default=None)
    pagination_direction: str | None = Field(default=None)
    pagination_page: int | None = Field(default=None, ge=1)

    @field_validator("pagination_direction")
    @classmethod
    def _validate_direction(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return _check_choice(v, VALID_PAGINATION_DIRECTIONS, "pagination_direction")


class ScoutURLQuery(BaseModel):
    """A ScoutAPM dashboard URL supplied by the user."""

    url: str = Field(..., min_length=1, max_length=2000)

    @field_validator("url")
    @classmethod
    def _validate_url(cls, v: str) -> str:
        v = v.strip()
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("url must be a full http(s) ScoutAPM URL")
        return v
