"""
Shared helpers for MCP tool modules.

Contains:
  - JSON rendering of tool results
  - User-friendly error formatting
  - Conversion of failures into MCP tool errors (isError results)

All tool modules import from here. No tool-specific logic belongs in this file.
"""
from __future__ import annotations

import json
from typing import Any

import structlog
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import ValidationError

from credentials import MissingAPIKeyError
from scout_client import (
    ScoutAPMAPIError,
    ScoutAPMAuthError,
    ScoutAPMError,
    ScoutAPMNotFoundError,
    ScoutAPMSSLError,
)

log = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Result rendering
# ---------------------------------------------------------------------------


def to_json_text(data: Any) -> str:
    """Render a tool result as indented JSON text."""
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


# ---------------------------------------------------------------------------
# Error formatting
# ---------------------------------------------------------------------------


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    msg = str(first.get("msg", "invalid value"))
    return msg.removeprefix("Value error, ")


def user_friendly_error(exc: Exception) -> str:
    """Convert internal exceptions to helpful, non-leaking user messages."""
    if isinstance(exc, MissingAPIKeyError):
        return str(exc)
    if isinstance(exc, ScoutAPMAuthError):
        return "Authentication failed — check your ScoutAPM API key (API_KEY or SCOUT_APM_API_KEY)."
    if isinstance(exc, ScoutAPMNotFoundError):
        return "Resource not found in ScoutAPM (HTTP 404). Check the app, endpoint, trace or error id."
    if isinstance(exc, ScoutAPMAPIError):
        status = f"HTTP {exc.status_code}" if exc.status_code else "no status"
        return f"ScoutAPM API error ({status}): {exc.message}"
    if isinstance(exc, ScoutAPMSSLError):
        return str(exc)
    if isinstance(exc, ScoutAPMError):
        return str(exc)
    if isinstance(exc, ValidationError):
        return f"Invalid input: {_validation_message(exc)}"
    if isinstance(exc, ValueError):
        return f"Invalid input: {exc}"
    return f"An unexpected error occurred ({type(exc).__name__}). Please try again."


def tool_failure(tool_name: str, exc: Exception) -> ToolError:
    """
    Log a tool failure and build the ToolError to raise in its place.

    FastMCP turns a raised ToolError into a result with isError=true, so
    the session keeps running.

        except Exception as exc:
            raise tool_failure("get_app", exc) from exc
    """
    log.error(f"tool.{tool_name}.error", error_type=type(exc).__name__)
    return ToolError(user_friendly_error(exc))
