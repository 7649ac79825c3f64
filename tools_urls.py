"""
URL and schema tools — parse_scout_url, fetch_scout_url, fetch_openapi_schema.

parse_scout_url never touches the network. fetch_scout_url parses a
ScoutAPM dashboard URL and fetches whatever it points at.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml

import url_parser
from query_validator import ScoutURLQuery
from server_config import mcp, settings
from scout_client import ScoutAPMClient
from shared_helpers import to_json_text, tool_failure
from tools_endpoints import find_endpoint, trace_with_endpoint
from url_parser import ParsedURL, UrlType

log = structlog.get_logger(__name__)

DEFAULT_LOCAL_SCHEMA = "tmp/scoutapm_openapi.yaml"
_PREVIEW_CHARS = 500


# ---------------------------------------------------------------------------
# URL dispatch
# ---------------------------------------------------------------------------


async def _fetch_parsed(
    client: ScoutAPMClient,
    url: str,
    parsed: ParsedURL,
    include_endpoint: bool,
) -> Any:
    """Fetch the resource a parsed URL points at."""
    app_id = parsed.app_id

    if parsed.url_type == UrlType.TRACE:
        if parsed.trace_id is None:
            raise ValueError("Trace URL must include the endpoint and trace id")
        return await trace_with_endpoint(
            client,
            app_id,
            parsed.trace_id,
            endpoint_id=parsed.endpoint_id,
            include_endpoint=include_endpoint,
        )

    if parsed.url_type == UrlType.ENDPOINT:
        if not parsed.endpoint_id:
            raise ValueError("Endpoint URL must include an endpoint id")
        endpoint = await find_endpoint(client, app_id, parsed.endpoint_id)
        if endpoint is None:
            raise ValueError(
                "Endpoint not found in the last 7 days. "
                "Try using list_endpoints with a longer time range."
            )
        return {"endpoint": endpoint, "decoded_endpoint": parsed.decoded_endpoint}

    if parsed.url_type == UrlType.ERROR_GROUP:
        return {"error_group": await client.get_error_group(app_id, parsed.error_id)}

    if parsed.url_type == UrlType.INSIGHT:
        if parsed.insight_type:
            insight = await client.get_insight_by_type(app_id, parsed.insight_type)
            return {"insight": insight, "insight_type": parsed.insight_type}
        return {"insights": await client.get_all_insights(app_id)}

    if parsed.url_type == UrlType.APP:
        return {"app": await client.get_app(app_id)}

    raise ValueError(f"Unknown or unsupported ScoutAPM URL format: {url}")


@mcp.tool()
async def parse_scout_url(url: str) -> str:
    """
    Parse a ScoutAPM dashboard URL into its parts without fetching anything.

    Args:
        url: Full ScoutAPM URL, e.g.
             https://scoutapm.com/apps/123/endpoints/<id>/trace/456

    Returns url_type (app, endpoint, trace, error_group, insight, unknown),
    app_id, endpoint_id, trace_id, error_id, insight_type, query_params and
    decoded_endpoint, as JSON. Absent parts are omitted.
    """
    log.info("tool.parse_scout_url")

    try:
        query = ScoutURLQuery(url=url)
        parsed = url_parser.parse_scout_url(query.url)
    except Exception as exc:
        raise tool_failure("parse_scout_url", exc) from exc

    return to_json_text(parsed.as_dict())


@mcp.tool()
async def fetch_scout_url(url: str, include_endpoint: bool = False) -> str:
    """
    Fetch the data behind a ScoutAPM dashboard URL.

    Supports app, endpoint, trace, error group and insight URLs.

    Args:
        url: Full ScoutAPM URL.
        include_endpoint: For trace URLs, also return the endpoint record.

    Returns {"url", "parsed", "data"} as JSON.
    """
    log.info("tool.fetch_scout_url", include_endpoint=include_endpoint)

    try:
        query = ScoutURLQuery(url=url)
        parsed = url_parser.parse_scout_url(query.url)
        if parsed.app_id is None:
            raise ValueError(f"Unknown or unsupported ScoutAPM URL format: {query.url}")

        log.info("tool.fetch_scout_url.parsed", url_type=parsed.url_type, app_id=parsed.app_id)
        async with ScoutAPMClient(settings) as client:
            data = await _fetch_parsed(client, query.url, parsed, include_endpoint)
    except Exception as exc:
        raise tool_failure("fetch_scout_url", exc) from exc

    return to_json_text({"url": query.url, "parsed": parsed.as_dict(), "data": data})


# ---------------------------------------------------------------------------
# OpenAPI schema
# ---------------------------------------------------------------------------


def _path_count(document: Any) -> int | None:
    if isinstance(document, dict) and isinstance(document.get("paths"), dict):
        return len(document["paths"])
    return None


def validate_schema(content: str) -> dict[str, Any]:
    """Parse schema YAML and report its version and info block."""
    try:
        document = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        return {"valid_yaml": False, "validation_error": str(exc)}

    report: dict[str, Any] = {"valid_yaml": True}
    if isinstance(document, dict):
        report["openapi_version"] = document.get("openapi")
        report["info"] = document.get("info")
    return report


def compare_schema(content: str, local_path: Path) -> dict[str, Any]:
    """Compare fetched schema text against a local copy."""
    if not local_path.is_file():
        return {"local_file_exists": False, "local_file_path": str(local_path)}

    local_content = local_path.read_text(encoding="utf-8")
    report: dict[str, Any] = {
        "local_file_exists": True,
        "local_file_path": str(local_path),
        "local_file_length": len(local_content),
        "content_matches": local_content == content,
    }

    try:
        remote_doc = yaml.safe_load(content)
        local_doc = yaml.safe_load(local_content)
    except yaml.YAMLError as exc:
        report["comparison_error"] = str(exc)
        return report

    report["structure_matches"] = remote_doc == local_doc
    report["remote_paths_count"] = _path_count(remote_doc)
    report["local_paths_count"] = _path_count(local_doc)
    return report


@mcp.tool()
async def fetch_openapi_schema(
    validate_yaml: bool = False,
    compare_with_local: bool = False,
    local_path: str = "",
) -> str:
    """
    Download the ScoutAPM API OpenAPI schema.

    Args:
        validate_yaml: Parse the YAML and report openapi_version and info.
        compare_with_local: Compare against a local copy of the schema.
        local_path: Local schema path. Defaults to tmp/scoutapm_openapi.yaml.

    Returns fetch status, content type, length and a short preview, as JSON.
    """
    log.info(
        "tool.fetch_openapi_schema",
        validate_yaml=validate_yaml,
        compare_with_local=compare_with_local,
    )

    try:
        async with ScoutAPMClient(settings) as client:
            schema = await client.fetch_openapi_schema()

        content = schema["content"]
        result: dict[str, Any] = {
            "fetched": True,
            "content_type": schema["content_type"],
            "status": schema["status"],
            "content_length": len(content),
        }
        if validate_yaml:
            result["validation"] = validate_schema(content)
        if compare_with_local:
            result["comparison"] = compare_schema(
                content, Path(local_path or DEFAULT_LOCAL_SCHEMA)
            )
        result["content_preview"] = content[:_PREVIEW_CHARS]
    except Exception as exc:
        raise tool_failure("fetch_openapi_schema", exc) from exc

    return to_json_text(result)
