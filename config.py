"""
Application configuration loaded from environment variables.

The API key itself is NOT a required setting here — it is resolved per client
construction by credentials.get_api_key(), which also knows how to ask the
1Password CLI. Everything in this file may come from the shell or from .env.

Environment variables recognised (see .env.example):
  API_KEY / SCOUT_APM_API_KEY  — ScoutAPM API key (sent as X-SCOUT-API header)
  OP_ENV_ENTRY_PATH            — 1Password entry, e.g. op://Vault/Item
  SCOUT_OP_FIELD               — 1Password field holding the key (default: API_KEY)
  SCOUT_API_BASE               — API base URL (default: https://scoutapm.com/api/v0)
  SSL_CERT_FILE                — optional CA bundle overriding the system trust store
  LOG_LEVEL / LOG_FILE         — logging
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_NAME = "scout-apm"
APP_VERSION = "0.1.0"


class Settings(BaseSettings):
    """Application settings. Loaded once at startup; never mutated at runtime."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Credentials (all optional here; see credentials.get_api_key)
    # -------------------------------------------------------------------------
    api_key: SecretStr | None = Field(default=None, description="ScoutAPM API key")
    scout_apm_api_key: SecretStr | None = Field(
        default=None, description="ScoutAPM API key (alternate variable name)"
    )
    op_env_entry_path: str | None = Field(
        default=None, description="1Password entry path, op://Vault/Item"
    )
    scout_op_field: str = Field(default="API_KEY", min_length=1)

    # -------------------------------------------------------------------------
    # API endpoint
    # -------------------------------------------------------------------------
    scout_api_base: str = Field(
        default="https://scoutapm.com/api/v0",
        description="ScoutAPM REST API base URL (no trailing slash)",
    )

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------
    http_connect_timeout: float = Field(default=10.0, ge=1.0, le=30.0)
    http_read_timeout: float = Field(default=10.0, ge=1.0, le=60.0)
    ssl_cert_file: str | None = Field(default=None)

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_level: str = Field(default="INFO")
    log_file: str | None = Field(default="logs/mcp_server.log")

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return upper

    @field_validator("scout_api_base")
    @classmethod
    def _require_https(cls, v: str) -> str:
        if not v.startswith("https://"):
            raise ValueError("The ScoutAPM API base URL must use HTTPS")
        return v.rstrip("/")

    @field_validator(
        "api_key",
        "scout_apm_api_key",
        "op_env_entry_path",
        "ssl_cert_file",
        "log_file",
        mode="before",
    )
    @classmethod
    def _blank_is_none(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return the singleton Settings instance.

    Cached after first call. Raises ValidationError if a value is invalid —
    fail fast at startup, not mid-request.
    """
    return Settings()
