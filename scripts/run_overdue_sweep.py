#!/usr/bin/env python3
"""
Run the overdue-fine sweep against the configured database.

Every ACTIVE loan past its due date is fined for the days not yet charged
up to ``--as-of``.  Running the sweep twice for the same date issues
nothing the second time.

Usage:
    python3 scripts/run_overdue_sweep.py [--config PATH] [--as-of YYYY-MM-DD] [--rate 0.50]

Examples:
    # Nightly run with the shipped configuration
    python3 scripts/run_overdue_sweep.py

    # Back-fill a specific date at a one-off rate
    python3 scripts/run_overdue_sweep.py --as-of 2024-03-01 --rate 0.25
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from datetime import date
from decimal import Decimal
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Accrue overdue fines on every overdue loan.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration YAML (default: library_config/sets/default.yaml).",
    )
    parser.add_argument(
        "--as-of",
        type=lambda s: date.fromisoformat(s),
        default=None,
        help="Sweep cutoff date (YYYY-MM-DD), not later than today. Default: today.",
    )
    parser.add_argument(
        "--rate",
        type=Decimal,
        default=None,
        help="Daily fine rate. Default: fines.daily_rate from the config.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from library_config import ConfigurationError, get_active_config
    from library_kernel.db.engine import (
        create_tables,
        get_session_factory,
        init_engine_from_url,
    )
    from library_kernel.domain.clock import SystemClock
    from library_kernel.exceptions import LibraryKernelError
    import library_services  # noqa: F401  (registers services tables)
    from library_services.lifecycle_orchestrator import LifecycleOrchestrator

    try:
        config = get_active_config(args.config)
    except (FileNotFoundError, ConfigurationError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )
    create_tables()

    clock = SystemClock()
    orchestrator = LifecycleOrchestrator.from_config(
        config, get_session_factory(), clock=clock
    )
    as_of = args.as_of or clock.today()

    try:
        result = orchestrator.run_overdue_sweep(as_of, daily_fine_rate=args.rate)
    except LibraryKernelError as exc:
        print(f"Sweep failed [{exc.code}]: {exc}", file=sys.stderr)
        return 1

    payload = asdict(result)
    payload["records_failed"] = result.records_failed
    print(json.dumps(payload, default=str, indent=2))
    return 1 if result.failed_record_ids else 0


if __name__ == "__main__":
    sys.exit(main())
