"""
Insight tools — get_all_insights, get_insight_by_type, get_insights_history,
get_insights_history_by_type.

Insight types: n_plus_one, memory_bloat, slow_query.
"""
from __future__ import annotations

import structlog

from server_config import mcp, settings
from scout_client import ScoutAPMClient
from shared_helpers import to_json_text, tool_failure

log = structlog.get_logger(__name__)


@mcp.tool()
async def get_all_insights(app_id: int, limit: int | None = None) -> str:
    """
    Get current performance insights (N+1 queries, memory bloat, slow
    queries) for an application.

    Args:
        app_id: ScoutAPM application ID.
        limit: Maximum items per insight type.
    """
    log.info("tool.get_all_insights", app_id=app_id, limit=limit)

    try:
        async with ScoutAPMClient(settings) as client:
            insights = await client.get_all_insights(app_id, limit=limit)
    except Exception as exc:
        raise tool_failure("get_all_insights", exc) from exc

    return to_json_text(insights)


@mcp.tool()
async def get_insight_by_type(
    app_id: int,
    insight_type: str,
    limit: int | None = None,
) -> str:
    """
    Get current insights of one type.

    Args:
        app_id: ScoutAPM application ID.
        insight_type: One of n_plus_one, memory_bloat, slow_query.
        limit: Maximum number of items.
    """
    log.info("tool.get_insight_by_type", app_id=app_id, insight_type=insight_type)

    try:
        async with ScoutAPMClient(settings) as client:
            insights = await client.get_insight_by_type(app_id, insight_type, limit=limit)
    except Exception as exc:
        raise tool_failure("get_insight_by_type", exc) from exc

    return to_json_text(insights)


@mcp.tool()
async def get_insights_history(
    app_id: int,
    from_time: str = "",
    to_time: str = "",
    limit: int | None = None,
    pagination_cursor: int | None = None,
    pagination_direction: str = "",
    pagination_page: int | None = None,
) -> str:
    """
    Get historical insights with cursor-based pagination.

    Args:
        app_id: ScoutAPM application ID.
        from_time: Start time, ISO 8601.
        to_time: End time, ISO 8601.
        limit: Maximum number of items.
        pagination_cursor: Cursor (insight ID) to page from.
        pagination_direction: "forward" or "backward".
        pagination_page: Page number (1 or greater).

    Returns the full API response, including pagination metadata.
    """
    log.info(
        "tool.get_insights_history",
        app_id=app_id,
        from_time=from_time,
        to_time=to_time,
        limit=limit,
        pagination_page=pagination_page,
    )

    try:
        async with ScoutAPMClient(settings) as client:
            history = await client.get_insights_history(
                app_id,
                from_time=from_time or None,
                to_time=to_time or None,
                limit=limit,
                pagination_cursor=pagination_cursor,
                pagination_direction=pagination_direction or None,
                pagination_page=pagination_page,
            )
    except Exception as exc:
        raise tool_failure("get_insights_history", exc) from exc

    return to_json_text(history)


@mcp.tool()
async def get_insights_history_by_type(
    app_id: int,
    insight_type: str,
    from_time: str = "",
    to_time: str = "",
    limit: int | None = None,
    pagination_cursor: int | None = None,
    pagination_direction: str = "",
    pagination_page: int | None = None,
) -> str:
    """
    Get historical insights of one type with cursor-based pagination.

    Args:
        app_id: ScoutAPM application ID.
        insight_type: One of n_plus_one, memory_bloat, slow_query.
        from_time: Start time, ISO 8601.
        to_time: End time, ISO 8601.
        limit: Maximum number of items.
        pagination_cursor: Cursor (insight ID) to page from.
        pagination_direction: "forward" or "backward".
        pagination_page: Page number (1 or greater).
    """
    log.info(
        "tool.get_insights_history_by_type",
        app_id=app_id,
        insight_type=insight_type,
        pagination_page=pagination_page,
    )

    try:
        async with ScoutAPMClient(settings) as client:
            history = await client.get_insights_history_by_type(
                app_id,
                insight_type,
                from_time=from_time or None,
                to_time=to_time or None,
                limit=limit,
                pagination_cursor=pagination_cursor,
                pagination_direction=pagination_direction or None,
                pagination_page=pagination_page,
            )
    except Exception as exc:
        raise tool_failure("get_insights_history_by_type", exc) from exc

    return to_json_text(history)
