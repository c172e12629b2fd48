#!/usr/bin/env python3
"""
List the thermostats registered to an ecobee account (CLI).

Opens the persistent store written by `ecobee-register`, refreshing the access
token if it has expired, and prints the thermostat summary revisions as JSON.

    ecobee-thermostats --app <application key> --store ~/.ecobee/tokens.json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from typing import Optional

from .. import cli
from .. import config as config_mod
from ..api_auth.store import PersistentStore
from .client import Client


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="ecobee-thermostats",
        description="Print the ecobee thermostat summary for the registered account.",
    )
    cli.add_common_arguments(p)
    p.add_argument("--pretty", action="store_true", help="Pretty-print JSON output.")
    return p.parse_args(argv)


def _main(args: argparse.Namespace, log: logging.LoggerAdapter) -> int:
    app_id = config_mod.require_app_id(args.app)
    store = PersistentStore.open(config_mod.require_token_store_path(args.store))

    with Client(app_id, store, timeout=cli.resolve_timeout(args)) as client:
        summary = client.thermostat_summary()

    log.info("thermostat summary received (count=%s)", summary.thermostat_count)
    out = {
        "thermostatCount": summary.thermostat_count,
        "revisions": [asdict(r) for r in summary.revisions()],
    }
    if args.pretty:
        print(json.dumps(out, indent=2, ensure_ascii=False, sort_keys=True))
    else:
        print(json.dumps(out, ensure_ascii=False))
    return cli.EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    return cli.run(args, _main)


if __name__ == "__main__":
    raise SystemExit(main())
