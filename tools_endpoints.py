"""
Endpoint and trace tools — list_endpoints, get_endpoint, get_endpoint_metrics,
list_endpoint_traces, fetch_trace.
"""
from __future__ import annotations

from typing import Any

import structlog

from server_config import mcp, settings
from scout_client import ScoutAPMClient
from shared_helpers import to_json_text, tool_failure, user_friendly_error
from url_parser import decode_endpoint_id, get_endpoint_id

log = structlog.get_logger(__name__)

# Window searched when a trace or URL needs its endpoint record.
ENDPOINT_LOOKUP_RANGE = "7days"


async def find_endpoint(
    client: ScoutAPMClient,
    app_id: int,
    endpoint_id: str,
) -> dict[str, Any] | None:
    """Return the endpoint record with this ID from the last 7 days, or None."""
    endpoints = await client.list_endpoints(app_id, time_range=ENDPOINT_LOOKUP_RANGE)
    for endpoint in endpoints:
        if get_endpoint_id(endpoint) == endpoint_id:
            return endpoint
    return None


async def trace_with_endpoint(
    client: ScoutAPMClient,
    app_id: int,
    trace_id: int,
    endpoint_id: str | None = None,
    include_endpoint: bool = False,
) -> dict[str, Any]:
    """
    Fetch a trace and, when asked, the endpoint it belongs to.

    Endpoint lookup failures are reported in the result (endpoint_error)
    rather than failing the trace fetch.
    """
    trace = await client.fetch_trace(app_id, trace_id)
    result: dict[str, Any] = {"trace": trace}

    metric_name = trace.get("metric_name") if isinstance(trace, dict) else None
    if metric_name:
        result["trace_metric_name"] = metric_name

    if not (include_endpoint and endpoint_id):
        return result

    try:
        endpoint = await find_endpoint(client, app_id, endpoint_id)
    except Exception as exc:
        log.warning(
            "tool.fetch_trace.endpoint_lookup_failed",
            app_id=app_id,
            error_type=type(exc).__name__,
        )
        result["endpoint_error"] = f"Failed to fetch endpoint: {user_friendly_error(exc)}"
    else:
        if endpoint is None:
            result["endpoint_error"] = "Endpoint not found in the last 7 days"
        else:
            result["endpoint"] = endpoint
    result["decoded_endpoint"] = decode_endpoint_id(endpoint_id)
    return result


@mcp.tool()
async def list_endpoints(
    app_id: int,
    from_time: str = "",
    to_time: str = "",
    time_range: str = "",
) -> str:
    """
    List endpoints (controller actions, jobs) for an application with their
    performance summaries.

    Args:
        app_id: ScoutAPM application ID.
        from_time: Start time, ISO 8601.
        to_time: End time, ISO 8601.
        time_range: Quick range (e.g. "3hrs", "1day", "7days"). With no
                    times and no range, the last 7 days are listed.
    """
    log.info(
        "tool.list_endpoints",
        app_id=app_id,
        from_time=from_time,
        to_time=to_time,
        time_range=time_range,
    )

    try:
        async with ScoutAPMClient(settings) as client:
            endpoints = await client.list_endpoints(
                app_id,
                from_time=from_time or None,
                to_time=to_time or None,
                time_range=time_range or None,
            )
    except Exception as exc:
        raise tool_failure("list_endpoints", exc) from exc

    return to_json_text(endpoints)


@mcp.tool()
async def get_endpoint(app_id: int, endpoint_id: str) -> str:
    """
    Get details for one endpoint.

    Args:
        app_id: ScoutAPM application ID.
        endpoint_id: Base64 endpoint ID (the last segment of an endpoint's
                     link, or taken from a ScoutAPM URL).
    """
    log.info("tool.get_endpoint", app_id=app_id)

    try:
        async with ScoutAPMClient(settings) as client:
            endpoint = await client.get_endpoint(app_id, endpoint_id)
    except Exception as exc:
        raise tool_failure("get_endpoint", exc) from exc

    return to_json_text(endpoint)


@mcp.tool()
async def get_endpoint_metrics(
    app_id: int,
    endpoint_id: str,
    metric_type: str,
    from_time: str = "",
    to_time: str = "",
    time_range: str = "",
) -> str:
    """
    Get time-series data for one metric on one endpoint.

    Args:
        app_id: ScoutAPM application ID.
        endpoint_id: Base64 endpoint ID.
        metric_type: One of apdex, response_time, response_time_95th,
                     errors, throughput, queue_time.
        from_time: Start time, ISO 8601.
        to_time: End time, ISO 8601.
        time_range: Quick range (e.g. "30min", "1day"). At most 2 weeks.
    """
    log.info(
        "tool.get_endpoint_metrics",
        app_id=app_id,
        metric_type=metric_type,
        time_range=time_range,
    )

    try:
        async with ScoutAPMClient(settings) as client:
            points = await client.get_endpoint_metrics(
                app_id,
                endpoint_id,
                metric_type,
                from_time=from_time or None,
                to_time=to_time or None,
                time_range=time_range or None,
            )
    except Exception as exc:
        raise tool_failure("get_endpoint_metrics", exc) from exc

    return to_json_text(points)


@mcp.tool()
async def list_endpoint_traces(
    app_id: int,
    endpoint_id: str,
    from_time: str = "",
    to_time: str = "",
    time_range: str = "",
) -> str:
    """
    List recent traces (up to 100) for an endpoint.

    Args:
        app_id: ScoutAPM application ID.
        endpoint_id: Base64 endpoint ID.
        from_time: Start time, ISO 8601. Cannot be older than 7 days.
        to_time: End time, ISO 8601.
        time_range: Quick range (e.g. "3hrs", "1day").
    """
    log.info(
        "tool.list_endpoint_traces",
        app_id=app_id,
        from_time=from_time,
        to_time=to_time,
        time_range=time_range,
    )

    try:
        async with ScoutAPMClient(settings) as client:
            traces = await client.list_endpoint_traces(
                app_id,
                endpoint_id,
                from_time=from_time or None,
                to_time=to_time or None,
                time_range=time_range or None,
            )
    except Exception as exc:
        raise tool_failure("list_endpoint_traces", exc) from exc

    return to_json_text(traces)


@mcp.tool()
async def fetch_trace(
    app_id: int,
    trace_id: int,
    endpoint_id: str = "",
    include_endpoint: bool = False,
) -> str:
    """
    Fetch one trace with its span tree.

    Args:
        app_id: ScoutAPM application ID.
        trace_id: Trace ID (from list_endpoint_traces or a trace URL).
        endpoint_id: Base64 endpoint ID the trace belongs to. Needed only
                     with include_endpoint.
        include_endpoint: Also look up the endpoint record (last 7 days).

    Returns {"trace": ..., "trace_metric_name": ...} as JSON, plus
    "endpoint" / "decoded_endpoint" when include_endpoint is set.
    """
    log.info(
        "tool.fetch_trace",
        app_id=app_id,
        trace_id=trace_id,
        include_endpoint=include_endpoint,
    )

    try:
        async with ScoutAPMClient(settings) as client:
            result = await trace_with_endpoint(
                client,
                app_id,
                trace_id,
                endpoint_id=endpoint_id or None,
                include_endpoint=include_endpoint,
            )
    except Exception as exc:
        raise tool_failure("fetch_trace", exc) from exc

    return to_json_text(result)
