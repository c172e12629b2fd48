"""
Shared plumbing for the ecobee CLIs: run-id logging, common arguments, and
error to exit code mapping.
"""

from __future__ import annotations

import argparse
import logging
import sys
import uuid
from typing import Callable, Optional

import requests

from . import config as config_mod
from .api_auth.auth import _sanitize_text
from .api_auth.errors import (
    ApiError,
    AuthorizationError,
    ConfigurationError,
    DecodeError,
    StorageError,
)

EXIT_OK = 0
EXIT_CONFIG = 2
EXIT_AUTHORIZATION = 3
EXIT_STORAGE = 4
EXIT_TIMEOUT = 5
EXIT_TRANSPORT = 6
EXIT_RESPONSE = 7
EXIT_INTERRUPTED = 130

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [run=%(run_id)s] %(message)s"


class _RunIdFilter(logging.Filter):
    """Stamps `run_id` on records created before the record factory was installed."""

    def __init__(self, run_id: str) -> None:
        super().__init__()
        self.run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 - logging uses `filter` name
        if not hasattr(record, "run_id"):
            record.run_id = self.run_id
        return True


def _install_run_id_factory(run_id: str) -> None:
    # Wrap the factory that was active before any of ours, so repeated calls replace
    # the run id instead of stacking wrappers.
    current = logging.getLogRecordFactory()
    base = getattr(current, "_ecobee_base_factory", current)

    def record_factory(*args, **kwargs):  # type: ignore[no-untyped-def]
        record = base(*args, **kwargs)
        if not hasattr(record, "run_id"):
            record.run_id = run_id
        return record

    record_factory._ecobee_base_factory = base  # type: ignore[attr-defined]
    logging.setLogRecordFactory(record_factory)


def configure_logging(*, run_id: str, level: str) -> logging.LoggerAdapter:
    """
    Set up logging for one CLI run and return the `ecobee_connect` logger.

    The root logger is only configured (format with `[run=...]`) if nothing else
    has configured it; otherwise just its level is set. Every record, including
    those from requests/urllib3, carries `run_id` so the log lines of one
    register or refresh sequence can be grepped together. Calling this again
    switches to the new run id.
    """
    numeric_level = logging.getLevelName((level or "INFO").strip().upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=numeric_level, format=_LOG_FORMAT)
    else:
        root.setLevel(numeric_level)

    _install_run_id_factory(run_id)
    for handler in root.handlers:
        for old in [f for f in handler.filters if isinstance(f, _RunIdFilter)]:
            handler.removeFilter(old)
        handler.addFilter(_RunIdFilter(run_id))

    # No LoggerAdapter `extra`: run_id already comes from the factory, and a second
    # copy makes logging raise KeyError ("Attempt to overwrite 'run_id'").
    return logging.LoggerAdapter(logging.getLogger("ecobee_connect"), {})


def add_common_arguments(p: argparse.ArgumentParser) -> None:
    p.add_argument("--app", default=None, help="ecobee application key (default: ECOBEE_APP_ID).")
    p.add_argument(
        "--store",
        default=None,
        help="Persistent token store path (default: ECOBEE_TOKEN_STORE_PATH or ~/.ecobee/tokens.json).",
    )
    p.add_argument("--timeout-seconds", default=None, help="HTTP timeout in seconds (default: 30).")
    p.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help='Logging verbosity (default: ECOBEE_LOG_LEVEL or "INFO").',
    )


def resolve_timeout(args: argparse.Namespace) -> float:
    if args.timeout_seconds is None:
        return config_mod.get_timeout_seconds()
    try:
        value = float(args.timeout_seconds)
    except ValueError as e:
        raise ConfigurationError(f"--timeout-seconds must be a number, got {args.timeout_seconds!r}") from e
    if value <= 0:
        raise ConfigurationError("--timeout-seconds must be positive")
    return value


def run(args: argparse.Namespace, body: Callable[[argparse.Namespace, logging.LoggerAdapter], int]) -> int:
    """
    Configure logging, run `body`, and translate failures into exit codes.

    Error messages are sanitized before they reach the terminal or the log.
    """
    log: Optional[logging.LoggerAdapter] = None
    try:
        run_id = uuid.uuid4().hex[:12]
        log = configure_logging(run_id=run_id, level=args.log_level or config_mod.get_log_level())
        return body(args, log)
    except KeyboardInterrupt:
        _log(log).warning("interrupted by user")
        print("Interrupted.", file=sys.stderr)
        return EXIT_INTERRUPTED
    except ConfigurationError as e:
        return _fail(log, "configuration error", e, EXIT_CONFIG)
    except AuthorizationError as e:
        code = _fail(log, "authorization error", e, EXIT_AUTHORIZATION)
        if e.requires_reauthorization:
            print("The stored grant is no longer valid; run ecobee-register again.", file=sys.stderr)
        return code
    except StorageError as e:
        return _fail(log, "token store error", e, EXIT_STORAGE)
    except requests.exceptions.Timeout as e:
        return _fail(log, "request timed out", e, EXIT_TIMEOUT)
    except requests.exceptions.RequestException as e:
        return _fail(log, "transport error", e, EXIT_TRANSPORT)
    except (DecodeError, ApiError) as e:
        return _fail(log, "unexpected response", e, EXIT_RESPONSE)


def _log(log: Optional[logging.LoggerAdapter]) -> logging.Logger | logging.LoggerAdapter:
    return log if log is not None else logging.getLogger("ecobee_connect")


def _fail(log: Optional[logging.LoggerAdapter], what: str, e: BaseException, code: int) -> int:
    message = _sanitize_text(str(e))
    _log(log).error("%s: %s", what, message)
    print(f"Error: {message}", file=sys.stderr)
    return code
