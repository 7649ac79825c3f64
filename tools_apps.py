"""
Application and metric tools — list_apps, get_app, list_metrics, get_metric.
"""
from __future__ import annotations

import structlog

from server_config import mcp, settings
from scout_client import ScoutAPMClient
from shared_helpers import to_json_text, tool_failure

log = structlog.get_logger(__name__)


@mcp.tool()
async def list_apps(active_since: str = "") -> str:
    """
    List ScoutAPM applications available to this API key.

    Args:
        active_since: Optional ISO 8601 time (e.g. "2025-01-01T00:00:00Z").
                      Only apps that reported data at or after it are listed.

    Returns a JSON array of apps (id, name, last_reported_at, ...).
    """
    log.info("tool.list_apps", active_since=active_since)

    try:
        async with ScoutAPMClient(settings) as client:
            apps = await client.list_apps(active_since or None)
    except Exception as exc:
        raise tool_failure("list_apps", exc) from exc

    return to_json_text(apps)


@mcp.tool()
async def get_app(app_id: int) -> str:
    """
    Get details for one ScoutAPM application.

    Args:
        app_id: ScoutAPM application ID (from list_apps).
    """
    log.info("tool.get_app", app_id=app_id)

    try:
        async with ScoutAPMClient(settings) as client:
            app = await client.get_app(app_id)
    except Exception as exc:
        raise tool_failure("get_app", exc) from exc

    return to_json_text(app)


@mcp.tool()
async def list_metrics(app_id: int) -> str:
    """
    List the metric types available for an application.

    Args:
        app_id: ScoutAPM application ID.
    """
    log.info("tool.list_metrics", app_id=app_id)

    try:
        async with ScoutAPMClient(settings) as client:
            metrics = await client.list_metrics(app_id)
    except Exception as exc:
        raise tool_failure("list_metrics", exc) from exc

    return to_json_text(metrics)


@mcp.tool()
async def get_metric(
    app_id: int,
    metric_type: str,
    from_time: str = "",
    to_time: str = "",
    time_range: str = "",
) -> str:
    """
    Get time-series data for one application metric.

    Args:
        app_id: ScoutAPM application ID.
        metric_type: One of apdex, response_time, response_time_95th,
                     errors, throughput, queue_time.
        from_time: Start time, ISO 8601 (e.g. "2025-01-15T00:00:00Z").
        to_time: End time, ISO 8601. Defaults to now when time_range is given.
        time_range: Quick range instead of from_time (e.g. "30min", "3hrs",
                    "1day", "7days"). The window may not exceed 2 weeks.

    Returns {metric_type: [[timestamp, value], ...]} as JSON.
    """
    log.info(
        "tool.get_metric",
        app_id=app_id,
        metric_type=metric_type,
        from_time=from_time,
        to_time=to_time,
        time_range=time_range,
    )

    try:
        async with ScoutAPMClient(settings) as client:
            series = await client.get_metric(
                app_id,
                metric_type,
                from_time=from_time or None,
                to_time=to_time or None,
                time_range=time_range or None,
            )
    except Exception as exc:
        raise tool_failure("get_metric", exc) from exc

    return to_json_text(series)
