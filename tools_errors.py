"""
Error group tools — list_error_groups, get_error_group, get_error_group_errors.
"""
from __future__ import annotations

import structlog

from server_config import mcp, settings
from scout_client import ScoutAPMClient
from shared_helpers import to_json_text, tool_failure

log = structlog.get_logger(__name__)


@mcp.tool()
async def list_error_groups(
    app_id: int,
    from_time: str = "",
    to_time: str = "",
    endpoint: str = "",
) -> str:
    """
    List error groups for an application (up to 100, last 30 days).

    Args:
        app_id: ScoutAPM application ID.
        from_time: Start time, ISO 8601.
        to_time: End time, ISO 8601.
        endpoint: Optional base64 endpoint ID to filter by.
    """
    log.info(
        "tool.list_error_groups",
        app_id=app_id,
        from_time=from_time,
        to_time=to_time,
        filtered=bool(endpoint),
    )

    try:
        async with ScoutAPMClient(settings) as client:
            groups = await client.list_error_groups(
                app_id,
                from_time=from_time or None,
                to_time=to_time or None,
                endpoint=endpoint or None,
            )
    except Exception as exc:
        raise tool_failure("list_error_groups", exc) from exc

    return to_json_text(groups)


@mcp.tool()
async def get_error_group(app_id: int, error_id: int) -> str:
    """
    Get details for one error group.

    Args:
        app_id: ScoutAPM application ID.
        error_id: Error group ID.
    """
    log.info("tool.get_error_group", app_id=app_id, error_id=error_id)

    try:
        async with ScoutAPMClient(settings) as client:
            group = await client.get_error_group(app_id, error_id)
    except Exception as exc:
        raise tool_failure("get_error_group", exc) from exc

    return to_json_text(group)


@mcp.tool()
async def get_error_group_errors(app_id: int, error_id: int) -> str:
    """
    List individual errors (up to 100) within an error group.

    Args:
        app_id: ScoutAPM application ID.
        error_id: Error group ID.
    """
    log.info("tool.get_error_group_errors", app_id=app_id, error_id=error_id)

    try:
        async with ScoutAPMClient(settings) as client:
            errors = await client.get_error_group_errors(app_id, error_id)
    except Exception as exc:
        raise tool_failure("get_error_group_errors", exc) from exc

    return to_json_text(errors)
