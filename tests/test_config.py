"""
Unit tests for environment-driven configuration.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from ecobee_connect import config as config_mod
from ecobee_connect.api_auth.errors import ConfigurationError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in (
        "ECOBEE_API_BASE_URL",
        "ECOBEE_APP_ID",
        "ECOBEE_TOKEN_STORE_PATH",
        "ECOBEE_TIMEOUT_SECONDS",
        "ECOBEE_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    assert config_mod.get_api_base_url() == "https://api.ecobee.com"
    assert config_mod.get_authorize_url() == "https://api.ecobee.com/authorize"
    assert config_mod.get_token_url() == "https://api.ecobee.com/token"
    assert config_mod.get_app_id() is None
    assert config_mod.get_token_store_path() == Path.home() / ".ecobee" / "tokens.json"
    assert config_mod.get_timeout_seconds() == 30.0
    assert config_mod.get_log_level() == "INFO"


def test_base_url_override_drives_every_endpoint(monkeypatch) -> None:
    monkeypatch.setenv("ECOBEE_API_BASE_URL", "http://localhost:8080/")

    assert config_mod.get_token_url() == "http://localhost:8080/token"
    assert config_mod.get_thermostat_summary_url() == "http://localhost:8080/1/thermostatSummary"
    assert config_mod.get_thermostat_url("http://stub") == "http://stub/1/thermostat"


def test_blank_values_count_as_unset(monkeypatch) -> None:
    monkeypatch.setenv("ECOBEE_API_BASE_URL", "   ")
    monkeypatch.setenv("ECOBEE_APP_ID", "")
    assert config_mod.get_api_base_url() == "https://api.ecobee.com"
    assert config_mod.get_app_id() is None


def test_require_app_id_prefers_argument_then_env(monkeypatch) -> None:
    with pytest.raises(ConfigurationError):
        config_mod.require_app_id()
    with pytest.raises(ConfigurationError):
        config_mod.require_app_id("   ")

    monkeypatch.setenv("ECOBEE_APP_ID", "from-env")
    assert config_mod.require_app_id() == "from-env"
    assert config_mod.require_app_id(" from-arg ") == "from-arg"


def test_token_store_path(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("ECOBEE_TOKEN_STORE_PATH", str(tmp_path / "a.json"))
    assert config_mod.get_token_store_path() == tmp_path / "a.json"
    assert config_mod.require_token_store_path() == tmp_path / "a.json"
    assert config_mod.require_token_store_path(str(tmp_path / "b.json")) == tmp_path / "b.json"
    with pytest.raises(ConfigurationError):
        config_mod.require_token_store_path("  ")


@pytest.mark.parametrize("raw", ["abc", "0", "-3"])
def test_invalid_timeout_is_configuration_error(monkeypatch, raw: str) -> None:
    monkeypatch.setenv("ECOBEE_TIMEOUT_SECONDS", raw)
    with pytest.raises(ConfigurationError):
        config_mod.get_timeout_seconds()


def test_timeout_override(monkeypatch) -> None:
    monkeypatch.setenv("ECOBEE_TIMEOUT_SECONDS", "2.5")
    assert config_mod.get_timeout_seconds() == 2.5
