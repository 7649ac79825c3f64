"""
ScoutAPM MCP Server.

Exposes ScoutAPM application performance data to MCP clients (IDE
assistants, Claude Desktop) over stdio. Every tool is read-only.

Tools exposed:
  list_apps                     — applications visible to the API key
  get_app                       — one application
  list_metrics                  — metric types available for an app
  get_metric                    — time series for one app metric
  list_endpoints                — endpoints with performance summaries
  get_endpoint                  — one endpoint
  get_endpoint_metrics          — time series for one endpoint metric
  list_endpoint_traces          — recent traces for an endpoint
  fetch_trace                   — one trace, optionally with its endpoint
  list_error_groups             — error groups for an app
  get_error_group               — one error group
  get_error_group_errors        — individual errors in a group
  get_all_insights              — N+1, memory bloat and slow query insights
  get_insight_by_type           — insights of one type
  get_insights_history          — historical insights, paginated
  get_insights_history_by_type  — historical insights of one type
  parse_scout_url               — split a ScoutAPM URL into its ids
  fetch_scout_url               — fetch whatever a ScoutAPM URL points at
  fetch_openapi_schema          — download the API's OpenAPI schema

Run this script directly (stdio transport):
  python scout_apm_mcp_server.py

Or verify the API key:
  python scout_apm_mcp_server.py --check
"""
from __future__ import annotations

import sys

import anyio
import structlog

from server_config import mcp, settings

# Importing the tool modules registers their tools on the shared server.
import tools_apps  # noqa: F401
import tools_endpoints  # noqa: F401
import tools_errors  # noqa: F401
import tools_insights  # noqa: F401
import tools_urls  # noqa: F401
from scout_client import ScoutAPMClient
from shared_helpers import user_friendly_error
from stdio_transport import run_stdio

log = structlog.get_logger(__name__)


async def check_connection() -> int:
    """List apps once to prove the API key works. Returns a process exit code."""
    log.info("startup.checking_connection")
    try:
        async with ScoutAPMClient(settings) as client:
            apps = await client.list_apps()
    except Exception as exc:
        log.error("startup.check_failed", error_type=type(exc).__name__)
        print(f"Connection FAILED — {user_friendly_error(exc)}", file=sys.stderr)
        return 1

    print(f"Connection OK — ScoutAPM API key works ({len(apps)} apps visible).")
    print("You can now add this server to your MCP client.")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv

    if args and args[0] == "--check":
        return anyio.run(check_connection)

    log.info("startup.starting_mcp_server", api_base=settings.scout_api_base)
    anyio.run(run_stdio, mcp)
    return 0


if __name__ == "__main__":
    sys.exit(main())
