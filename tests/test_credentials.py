from __future__ import annotations

import subprocess

import pytest

import credentials
from config import Settings
from credentials import MissingAPIKeyError, get_api_key


def make_settings(**overrides) -> Settings:
    values = {
        "api_key": None,
        "scout_apm_api_key": None,
        "op_env_entry_path": None,
        "log_file": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeCompleted:
    def __init__(self, returncode: int = 0, stdout: str = "") -> None:
        self.returncode = returncode
        self.stdout = stdout


def test_explicit_key_wins():
    settings = make_settings(api_key="from-env")
    assert get_api_key(settings, api_key="  explicit  ") == "explicit"


def test_api_key_before_scout_apm_api_key():
    settings = make_settings(api_key="primary", scout_apm_api_key="secondary")
    assert get_api_key(settings) == "primary"


def test_blank_api_key_falls_back_to_scout_apm_api_key():
    settings = make_settings(api_key="   ", scout_apm_api_key="secondary")
    assert get_api_key(settings) == "secondary"


def test_op_env_entry_path(monkeypatch):
    calls = []

    def fake_run(args, **kwargs):
        calls.append(args)
        return FakeCompleted(stdout="op-secret\n")

    monkeypatch.setattr(credentials.subprocess, "run", fake_run)
    settings = make_settings(op_env_entry_path="op://Engineering/Scout APM")

    assert get_api_key(settings) == "op-secret"
    assert calls == [["op", "read", "op://Engineering/Scout APM/API_KEY"]]


def test_op_vault_and_item_with_custom_field(monkeypatch):
    calls = []

    def fake_run(args, **kwargs):
        calls.append(args)
        return FakeCompleted(stdout="vault-secret")

    monkeypatch.setattr(credentials.subprocess, "run", fake_run)
    key = get_api_key(make_settings(), op_vault="Ops", op_item="Scout", op_field="token")

    assert key == "vault-secret"
    assert calls == [["op", "read", "op://Ops/Scout/token"]]


def test_missing_op_cli_raises_missing_key(monkeypatch):
    def fake_run(args, **kwargs):
        raise FileNotFoundError("op")

    monkeypatch.setattr(credentials.subprocess, "run", fake_run)
    settings = make_settings(op_env_entry_path="op://Vault/Item")

    with pytest.raises(MissingAPIKeyError, match="API_KEY not found"):
        get_api_key(settings)


def test_op_failure_and_timeout_are_not_fatal_until_exhausted(monkeypatch):
    results = iter(
        [
            FakeCompleted(returncode=1),
            subprocess.TimeoutExpired(cmd="op", timeout=15),
        ]
    )

    def fake_run(args, **kwargs):
        outcome = next(results)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(credentials.subprocess, "run", fake_run)
    settings = make_settings(op_env_entry_path="op://Vault/Item")

    with pytest.raises(MissingAPIKeyError):
        get_api_key(settings, op_vault="Vault", op_item="Item")


def test_malformed_op_path_is_ignored():
    settings = make_settings(op_env_entry_path="Vault/Item")
    with pytest.raises(MissingAPIKeyError):
        get_api_key(settings)


def test_no_sources_raises():
    with pytest.raises(MissingAPIKeyError, match="SCOUT_APM_API_KEY"):
        get_api_key(make_settings())
