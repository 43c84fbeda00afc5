#!/usr/bin/env python3
"""
Run one recurring due-processing pass and print the JSON result.

Usage:
    python scripts/run_due_rules.py [--config PATH] [--secret S] [--create-tables]
    python -m scripts.run_due_rules ...

Loads settings (ledger_config.get_settings), initialises logging and the
database engine, then calls the due-processing trigger exactly as a cron job
would.  The secret defaults to the configured cron secret.

Exit status:
    0  pass completed (per-rule failures are listed under "failedRules")
    2  ledger error (forbidden, rate limited, fail-fast rule failure, ...);
       the {"error": {...}} payload is printed
"""

import argparse
import json
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from ledger_config import get_settings
from ledger_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from ledger_kernel.db.immutability import register_immutability_listeners
from ledger_kernel.domain.clock import SystemClock
from ledger_kernel.exceptions import LedgerError, error_payload
from ledger_kernel.logging_config import configure_logging, get_logger
from ledger_recurring.models import register_recurring_immutability_listeners
from ledger_recurring.orchestrator import RecurringOrchestrator

logger = get_logger("scripts.run_due_rules")

MODEL_PACKAGES = ("ledger_recurring.models",)

EXIT_OK = 0
EXIT_LEDGER_ERROR = 2


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Post every recurring occurrence that has come due.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Settings YAML (default: ledger_config/settings.yaml).",
    )
    parser.add_argument(
        "--secret",
        default=None,
        help="Cron secret to present (default: the configured secret).",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before running.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_settings(args.config)
    configure_logging(level=settings.log_level)

    init_engine_from_url(settings.database_url)
    if args.create_tables:
        create_tables(model_packages=MODEL_PACKAGES)
    register_immutability_listeners()
    register_recurring_immutability_listeners()

    session_factory = get_session_factory()
    bootstrap_session = session_factory()
    try:
        trigger = RecurringOrchestrator.from_session(
            bootstrap_session, clock=SystemClock(), settings=settings,
        ).create_trigger(session_factory)
    finally:
        bootstrap_session.close()

    secret = args.secret if args.secret is not None else settings.cron_secret
    try:
        result = trigger.run(cron_secret=secret)
    except LedgerError as exc:
        logger.error("run_due_rules_failed", extra={"error_code": exc.code})
        print(json.dumps(error_payload(exc)))
        return EXIT_LEDGER_ERROR

    print(json.dumps(result))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
