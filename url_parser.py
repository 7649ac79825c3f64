"""
ScoutAPM dashboard URL parsing and endpoint-ID decoding.

Dashboard URLs follow a handful of fixed path shapes:

  /apps/{app_id}
  /apps/{app_id}/endpoints/{endpoint_id}
  /apps/{app_id}/endpoints/{endpoint_id}/trace/{trace_id}
  /apps/{app_id}/error_groups/{error_id}
  /apps/{app_id}/insights[/{insight_type}]

Endpoint IDs are base64url-encoded "Controller/Action" style names.
Nothing in this module touches the network.
"""
from __future__ import annotations

import base64
import binascii
import re
from enum import Enum
from typing import Any
from urllib.parse import parse_qsl, urlparse

from pydantic import BaseModel

_URLSAFE_B64 = re.compile(r"^[A-Za-z0-9_-]+={0,2}$")
_STANDARD_B64 = re.compile(r"^[A-Za-z0-9+/]+={0,2}$")


class UrlType(str, Enum):
    APP = "app"
    ENDPOINT = "endpoint"
    TRACE = "trace"
    ERROR_GROUP = "error_group"
    INSIGHT = "insight"
    UNKNOWN = "unknown"


class ParsedURL(BaseModel):
    """Identifiers extracted from a ScoutAPM URL. Absent fields stay None."""

    url_type: UrlType | None = None
    app_id: int | None = None
    endpoint_id: str | None = None
    trace_id: int | None = None
    error_id: int | None = None
    insight_type: str | None = None
    query_params: dict[str, str] | None = None
    decoded_endpoint: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """JSON-friendly dict without the absent fields."""
        return self.model_dump(mode="json", exclude_none=True)


def _segment_after(parts: list[str], marker: str) -> str | None:
    index = parts.index(marker)
    return parts[index + 1] if index + 1 < len(parts) else None


def _numeric_id(value: str | None, name: str) -> int:
    if value is None or not value.isdigit():
        raise ValueError(f"Invalid {name} in ScoutAPM URL: {value!r}")
    return int(value)


def parse_scout_url(url: str) -> ParsedURL:
    """
    Classify a ScoutAPM URL and extract its identifiers.

    A URL with no "apps" segment yields an empty ParsedURL. A missing or
    non-numeric app, trace or error-group id raises ValueError.
    """
    parsed = urlparse(url)
    parts = [p for p in parsed.path.split("/") if p]

    if "apps" not in parts:
        return ParsedURL()

    result = ParsedURL(app_id=_numeric_id(_segment_after(parts, "apps"), "app id"))

    # Marker precedence matters: a trace URL also contains "endpoints"
    if "trace" in parts:
        result.url_type = UrlType.TRACE
        if "endpoints" in parts:
            result.endpoint_id = _segment_after(parts, "endpoints")
            result.trace_id = _numeric_id(_segment_after(parts, "trace"), "trace id")
    elif "endpoints" in parts:
        result.url_type = UrlType.ENDPOINT
        result.endpoint_id = _segment_after(parts, "endpoints")
    elif "error_groups" in parts:
        result.url_type = UrlType.ERROR_GROUP
        result.error_id = _numeric_id(_segment_after(parts, "error_groups"), "error group id")
    elif "insights" in parts:
        result.url_type = UrlType.INSIGHT
        result.insight_type = _segment_after(parts, "insights")
    elif len(parts) == 2 and parts[0] == "apps":
        result.url_type = UrlType.APP
    else:
        result.url_type = UrlType.UNKNOWN

    if parsed.query:
        result.query_params = dict(parse_qsl(parsed.query, keep_blank_values=True))

    if result.endpoint_id:
        result.decoded_endpoint = decode_endpoint_id(result.endpoint_id)

    return result


def _decode_utf8(raw: bytes) -> str | None:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return None


def decode_endpoint_id(endpoint_id: str) -> str:
    """
    Best-effort decode of a base64 endpoint ID into its readable name.

    Tries URL-safe base64 first, then standard base64. When neither yields
    valid UTF-8 the original ID is returned unchanged. Never raises.
    """
    token = endpoint_id.strip()
    padded = token + "=" * (-len(token) % 4)

    try:
        if _URLSAFE_B64.match(token):
            decoded = _decode_utf8(base64.urlsafe_b64decode(padded))
            if decoded is not None:
                return decoded
        if _STANDARD_B64.match(token):
            decoded = _decode_utf8(base64.b64decode(padded, validate=True))
            if decoded is not None:
                return decoded
    except (binascii.Error, ValueError):
        return endpoint_id
    return endpoint_id


def get_endpoint_id(endpoint: dict[str, Any]) -> str:
    """Return the endpoint ID from an endpoint record's "link" ("" if absent)."""
    link = endpoint.get("link") or ""
    parts = [p for p in link.split("/") if p]
    return parts[-1] if parts else ""
