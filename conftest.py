"""Root conftest — ensures project root is on sys.path for pytest.

Also injects a dummy ScoutAPM API key so tool modules can build a client
during collection, and turns off the log file so test runs don't write
under logs/. The key is never used for real API calls — tests replace the
HTTP layer with httpx.MockTransport or a fake client.
"""
from __future__ import annotations

import os
import sys
from pathlib import Path

# Must happen before any local imports so tool modules can be collected.
sys.path.insert(0, str(Path(__file__).parent))

os.environ.setdefault("API_KEY", "test-api-key")
os.environ["LOG_FILE"] = ""
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.pop("SCOUT_API_BASE", None)
os.environ.pop("OP_ENV_ENTRY_PATH", None)
