"""
Shared server state for the tool modules: settings, logging and the
FastMCP instance ("scout-apm") every tools_*.py module registers on.

Importing this module has side effects: .env is loaded from the project
directory and logging is configured. It imports only config.py and
logging_config.py, so tool modules can import it without cycles.
"""
from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv

# MCP clients launch the server from arbitrary working directories
load_dotenv(Path(__file__).parent / ".env")

from mcp.server.fastmcp import FastMCP

from config import APP_NAME, get_settings
from logging_config import configure_logging

settings = get_settings()

# A relative LOG_FILE is anchored at the project directory
_log_file = str(Path(__file__).parent / settings.log_file) if settings.log_file else None
configure_logging(settings.log_level, _log_file)

mcp = FastMCP(
    APP_NAME,
    instructions=(
        "Read-only access to ScoutAPM application performance data: apps, "
        "metrics, endpoints, traces, error groups and insights. "
        "Start with list_apps to find an app_id, or pass a ScoutAPM dashboard "
        "URL to parse_scout_url / fetch_scout_url. Times are ISO 8601 UTC; "
        "quick ranges like 30min, 3hrs, 1day, 7days are accepted where noted."
    ),
)
