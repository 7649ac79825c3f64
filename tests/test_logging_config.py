from __future__ import annotations

import logging_config
from logging_config import REDACTED, register_secret, scrub_sensitive


def test_credential_fields_are_redacted():
    event = scrub_sensitive(
        None,
        "info",
        {"event": "scout.request", "API_KEY": "abc", "X-Scout-Api": "abc", "path": "/apps"},
    )
    assert event["API_KEY"] == REDACTED
    assert event["X-Scout-Api"] == REDACTED
    assert event["path"] == "/apps"


def test_registered_secret_is_masked_inside_values(monkeypatch):
    monkeypatch.setattr(logging_config, "_secrets", set())
    register_secret("sk-live-1234")

    event = scrub_sensitive(
        None,
        "error",
        {"event": "scout.request.failed", "error": "bad key sk-live-1234 rejected", "count": 3},
    )

    assert event["error"] == f"bad key {REDACTED} rejected"
    assert event["count"] == 3


def test_short_or_empty_secrets_are_ignored(monkeypatch):
    monkeypatch.setattr(logging_config, "_secrets", set())
    register_secret("")
    register_secret(None)
    register_secret("ab")
    assert logging_config._secrets == set()
