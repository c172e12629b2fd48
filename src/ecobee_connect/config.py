"""
ecobee API URL and environment configuration.

Loads .env and exposes the API base URL and derived endpoint URLs. All values
can be overridden via environment variables (e.g. to point at a stub server).

Environment variables:
  - ECOBEE_API_BASE_URL       (optional, default: https://api.ecobee.com)
  - ECOBEE_APP_ID             (application key from the ecobee developer portal)
  - ECOBEE_TOKEN_STORE_PATH   (optional, default: ~/.ecobee/tokens.json)
  - ECOBEE_TIMEOUT_SECONDS    (optional, default: 30)
  - ECOBEE_LOG_LEVEL          (optional, default: INFO)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .api_auth.errors import ConfigurationError


_DEFAULT_API_BASE = "https://api.ecobee.com"
_DEFAULT_TIMEOUT_SECONDS = 30.0


def _load_dotenv(log: Optional[logging.LoggerAdapter] = None) -> None:
    """
    Load a .env file into the process environment (if one exists).

    Search order:
    1. Current working directory (.env)
    2. The project root, i.e. two levels up from this file
       (src/ecobee_connect/config.py → project root)

    Shell / CI environment variables already set take priority: we always
    call load_dotenv() with override=False so existing values are never
    overwritten.
    """
    cwd_env = Path.cwd() / ".env"
    #   config.py → ecobee_connect/ → src/ → project root
    package_root_env = Path(__file__).resolve().parents[2] / ".env"

    env_file: Optional[Path] = None
    if cwd_env.is_file():
        env_file = cwd_env
    elif package_root_env.is_file():
        env_file = package_root_env

    if env_file is None:
        return

    loaded = load_dotenv(env_file, override=False)
    if log is not None:
        if loaded:
            log.debug("loaded .env from %s (shell vars take precedence)", env_file)
        else:
            log.debug(
                ".env found at %s but all variables were already set in the environment",
                env_file,
            )


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    """Get environment variable, stripped; return default if unset or empty."""
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    return value or default


# Load .env on module import so getters see env vars.
_load_dotenv()


def get_api_base_url() -> str:
    """Return API base URL (used for /authorize, /token and /1/...)."""
    return _get_env("ECOBEE_API_BASE_URL", _DEFAULT_API_BASE) or _DEFAULT_API_BASE


def get_authorize_url(base_url: Optional[str] = None) -> str:
    """Return full PIN authorize endpoint URL."""
    return f"{(base_url or get_api_base_url()).rstrip('/')}/authorize"


def get_token_url(base_url: Optional[str] = None) -> str:
    """Return full token endpoint URL."""
    return f"{(base_url or get_api_base_url()).rstrip('/')}/token"


def get_thermostat_summary_url(base_url: Optional[str] = None) -> str:
    return f"{(base_url or get_api_base_url()).rstrip('/')}/1/thermostatSummary"


def get_thermostat_url(base_url: Optional[str] = None) -> str:
    return f"{(base_url or get_api_base_url()).rstrip('/')}/1/thermostat"


def get_app_id() -> Optional[str]:
    """Return the ecobee application key, or None if not configured."""
    return _get_env("ECOBEE_APP_ID")


def require_app_id(app_id: Optional[str] = None) -> str:
    """Return `app_id` (or ECOBEE_APP_ID); raise ConfigurationError if neither is set."""
    value = (app_id or "").strip() or get_app_id()
    if not value:
        raise ConfigurationError("ecobee application id is required (--app or ECOBEE_APP_ID)")
    return value


def get_token_store_path() -> Path:
    """
    Return path to the persistent token store.

    Uses ECOBEE_TOKEN_STORE_PATH if set. Default: ~/.ecobee/tokens.json
    """
    override = _get_env("ECOBEE_TOKEN_STORE_PATH")
    if override is not None:
        return Path(override).expanduser()
    return Path.home() / ".ecobee" / "tokens.json"


def require_token_store_path(path: Optional[str] = None) -> Path:
    """Return `path` if given, else the configured store path; raise if it resolves to nothing."""
    if path is not None:
        if not path.strip():
            raise ConfigurationError("token store path is required (--store or ECOBEE_TOKEN_STORE_PATH)")
        return Path(path.strip()).expanduser()
    return get_token_store_path()


def get_timeout_seconds() -> float:
    """Return HTTP timeout in seconds (ECOBEE_TIMEOUT_SECONDS, default 30)."""
    raw = _get_env("ECOBEE_TIMEOUT_SECONDS")
    if raw is None:
        return _DEFAULT_TIMEOUT_SECONDS
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigurationError(f"ECOBEE_TIMEOUT_SECONDS must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigurationError(f"ECOBEE_TIMEOUT_SECONDS must be positive, got {raw!r}")
    return value


def get_log_level() -> str:
    return _get_env("ECOBEE_LOG_LEVEL", "INFO") or "INFO"
