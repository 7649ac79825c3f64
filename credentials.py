"""
ScoutAPM API key resolution.

Sources are tried in order and the first non-empty value wins:
  1. An explicit api_key argument
  2. API_KEY, then SCOUT_APM_API_KEY (environment or .env, via Settings)
  3. 1Password CLI using OP_ENV_ENTRY_PATH (op://Vault/Item)
  4. 1Password CLI using an explicit vault and item

The key is never logged; logging_config redacts api_key fields regardless.
"""
from __future__ import annotations

import re
import subprocess

import structlog

from config import Settings

log = structlog.get_logger(__name__)

_OP_ENTRY_PATTERN = re.compile(r"^op://([^/]+)/(.+)$")
_OP_TIMEOUT_SECONDS = 15


class MissingAPIKeyError(RuntimeError):
    """Raised when no source yields an API key."""


def _op_read(vault: str, item: str, field: str) -> str | None:
    """Read one field via the 1Password CLI. Returns None on any failure."""
    reference = f"op://{vault}/{item}/{field}"
    try:
        completed = subprocess.run(
            ["op", "read", reference],
            capture_output=True,
            text=True,
            timeout=_OP_TIMEOUT_SECONDS,
            check=False,
        )
    except FileNotFoundError:
        log.warning("credentials.op.not_installed")
        return None
    except subprocess.TimeoutExpired:
        log.warning("credentials.op.timeout", vault=vault, item=item)
        return None

    if completed.returncode != 0:
        log.warning(
            "credentials.op.failed",
            vault=vault,
            item=item,
            returncode=completed.returncode,
        )
        return None

    value = completed.stdout.strip()
    return value or None


def get_api_key(
    settings: Settings,
    api_key: str | None = None,
    op_vault: str | None = None,
    op_item: str | None = None,
    op_field: str | None = None,
) -> str:
    """
    Return the ScoutAPM API key from the first source that has one.

    Raises:
        MissingAPIKeyError: No source produced a non-empty key.
    """
    if api_key and api_key.strip():
        return api_key.strip()

    for secret in (settings.api_key, settings.scout_apm_api_key):
        if secret is not None and secret.get_secret_value().strip():
            return secret.get_secret_value().strip()

    field = op_field or settings.scout_op_field

    if settings.op_env_entry_path:
        match = _OP_ENTRY_PATTERN.match(settings.op_env_entry_path.strip())
        if match:
            value = _op_read(match.group(1), match.group(2), field)
            if value:
                log.info("credentials.resolved", source="op_env_entry_path")
                return value
        else:
            log.warning("credentials.op_env_entry_path.malformed")

    if op_vault and op_item:
        value = _op_read(op_vault, op_item, field)
        if value:
            log.info("credentials.resolved", source="op_vault_item")
            return value

    raise MissingAPIKeyError(
        "API_KEY not found. Set API_KEY or SCOUT_APM_API_KEY, "
        "or provide OP_ENV_ENTRY_PATH (op://Vault/Item) for 1Password integration."
    )
