"""
structlog setup for the ScoutAPM MCP server.

stdout is the MCP protocol channel, so log lines go to stderr and, when
LOG_FILE is set, to a file as well. Output is one JSON object per line.

Two layers keep the ScoutAPM API key out of the logs:
  - keys named like credentials (api_key, x-scout-api, ...) are replaced
    with [REDACTED] whatever their value
  - any string value containing a registered secret (see register_secret)
    has that secret masked, which covers keys echoed back inside exception
    messages or URLs
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import structlog

REDACTED = "[REDACTED]"

# Compared against lower-cased event_dict keys
_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "api_key",
        "scout_apm_api_key",
        "x-scout-api",
        "x_scout_api",
        "authorization",
        "password",
        "token",
        "secret",
        "headers",
    }
)

# Standard library loggers that are chatty at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "mcp")

_secrets: set[str] = set()


def register_secret(value: str | None) -> None:
    """Mask value wherever it shows up inside a logged string from now on."""
    if value and len(value) >= 4:
        _secrets.add(value)


def _mask(text: str) -> str:
    for secret in _secrets:
        if secret in text:
            text = text.replace(secret, REDACTED)
    return text


def scrub_sensitive(
    logger: Any,  # noqa: ANN401
    method: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """structlog processor: redact credential fields and registered secrets."""
    for key, value in list(event_dict.items()):
        if key.lower() in _SENSITIVE_KEYS:
            event_dict[key] = REDACTED
        elif _secrets and isinstance(value, str):
            event_dict[key] = _mask(value)
    return event_dict


def _handlers(formatter: logging.Formatter, log_file: str | None) -> list[logging.Handler]:
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [stderr_handler]

    if log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError:
            # Unwritable location: stderr only
            return handlers
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    return handlers


def configure_logging(log_level: str = "INFO", log_file: str | None = None) -> None:
    """
    Route structlog and standard library logging through one JSON formatter.

    Call once, before the first log call.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
        log_file:  Optional extra destination; its directory is created.
    """
    # Also applied to foreign (stdlib) records, so httpx and mcp log lines
    # get the same redaction
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        scrub_sensitive,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.ExceptionRenderer(),
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(),
        ],
    )

    root = logging.getLogger()
    root.handlers = _handlers(formatter, log_file)
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
