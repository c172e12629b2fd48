#!/usr/bin/env python3
"""
Register this application with an ecobee account (CLI).

Runs the PIN workflow once and writes the resulting tokens to a persistent
store, which the other tools (and `Client`) then reuse across restarts.

    ecobee-register --app <application key> --store ~/.ecobee/tokens.json

Steps:
  1. request a PIN and print it
  2. wait for the user to add the PIN under "My Apps" in the ecobee portal
  3. redeem the authorization code; while ecobee still reports
     `authorization_pending`, wait and try again (bounded)
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Callable, Optional

import requests

from .. import cli
from .. import config as config_mod
from .errors import AuthorizationError, ConfigurationError
from .pin import PinAuthenticator
from .store import PersistentStore

_DEFAULT_POLL_INTERVAL_SECONDS = 30.0
_DEFAULT_MAX_ATTEMPTS = 10


def register(
    *,
    app_id: str,
    store_path: Path,
    log: logging.LoggerAdapter,
    timeout: Optional[float] = None,
    api_base_url: Optional[str] = None,
    poll_interval: Optional[float] = None,
    max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
    prompt: Optional[Callable[[str], str]] = None,
    sleep: Optional[Callable[[float], None]] = None,
    session: Optional[requests.Session] = None,
) -> PersistentStore:
    """
    Run the PIN workflow and return the initialized persistent store.

    Raises AuthorizationError if ecobee refuses the grant or approval does not
    arrive within `max_attempts` finalize calls.
    """
    prompt = prompt or input
    sleep = sleep or time.sleep
    store = PersistentStore(store_path)
    authenticator = PinAuthenticator(
        app_id,
        session=session,
        authorize_url=config_mod.get_authorize_url(api_base_url),
        token_url=config_mod.get_token_url(api_base_url),
        timeout=timeout,
    )

    pin = authenticator.request_pin()
    challenge = authenticator.challenge
    print(f"Register with this PIN: {pin}")
    if challenge is not None and challenge.expires_in_minutes:
        print(f"The PIN expires in {challenge.expires_in_minutes} minutes.")
    prompt("Press Enter once the PIN has been added under 'My Apps'. ")

    interval = poll_interval
    if interval is None:
        interval = float(challenge.interval_seconds) if challenge and challenge.interval_seconds else _DEFAULT_POLL_INTERVAL_SECONDS

    attempt = 1
    while True:
        try:
            authenticator.finalize(store)
            break
        except AuthorizationError as e:
            if not e.is_pending and e.code != "slow_down":
                raise
            if attempt >= max_attempts:
                log.warning("PIN still not approved after %s attempts", attempt)
                raise
            if e.code == "slow_down":
                interval *= 2
            log.info("PIN not approved yet (attempt %s/%s); retrying in %.0fs", attempt, max_attempts, interval)
            sleep(interval)
            attempt += 1

    log.info("persistent store initialized at %s", store.path)
    return store


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="ecobee-register",
        description="Authorize this application with an ecobee account via PIN and persist the tokens.",
    )
    cli.add_common_arguments(p)
    p.add_argument(
        "--poll-interval",
        type=float,
        default=None,
        help="Seconds between finalize attempts while approval is pending (default: ecobee's interval or 30).",
    )
    p.add_argument(
        "--max-attempts",
        type=int,
        default=_DEFAULT_MAX_ATTEMPTS,
        help=f"Finalize attempts before giving up (default: {_DEFAULT_MAX_ATTEMPTS}).",
    )
    return p.parse_args(argv)


def _main(args: argparse.Namespace, log: logging.LoggerAdapter) -> int:
    app_id = config_mod.require_app_id(args.app)
    store_path = config_mod.require_token_store_path(args.store)
    if args.max_attempts < 1:
        raise ConfigurationError("--max-attempts must be at least 1")

    log.info("starting PIN registration")
    store = register(
        app_id=app_id,
        store_path=store_path,
        log=log,
        timeout=cli.resolve_timeout(args),
        poll_interval=args.poll_interval,
        max_attempts=args.max_attempts,
    )
    print(f"Created persistent store at {store.path}")
    return cli.EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    return cli.run(args, _main)


if __name__ == "__main__":
    raise SystemExit(main())
