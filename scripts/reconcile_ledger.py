#!/usr/bin/env python3
"""
Check every worker's maintained balance against its ledger.

Usage:
    python scripts/reconcile_ledger.py
    python scripts/reconcile_ledger.py --config path/to/config.yaml
    python scripts/reconcile_ledger.py --database-url sqlite:///payroll.db

For each worker the script compares:
  1. WorkerAccount.balance (the running total LedgerStore maintains)
  2. The signed sum of the worker's LedgerEntry rows
  3. The balance_after of the worker's last entry

Exits 0 when all three agree for every worker, 1 on any mismatch.
"""

from __future__ import annotations

import argparse
import logging
import sys
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

W = 80


def _fmt(v) -> str:
    d = Decimal(str(v))
    return f"{d:,.2f}"


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration YAML (defaults to payroll_config/sets/default.yaml)",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override the database URL from the configuration",
    )
    parser.add_argument(
        "--all",
        action="store_true",
        help="List consistent workers too, not only mismatches",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.disable(logging.CRITICAL)

    from payroll_config import get_active_config
    from payroll_kernel.db.engine import init_engine_from_url, session_scope
    from payroll_kernel.selectors.ledger_selector import LedgerSelector

    config = get_active_config(args.config)
    url = args.database_url or config.database.url

    try:
        init_engine_from_url(url, echo=False)
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    with session_scope() as session:
        reports = LedgerSelector(session).reconcile_all()

    if not reports:
        print("  No workers found.")
        return 0

    mismatches = [r for r in reports if not r.is_consistent]

    print()
    print("=" * W)
    print("LEDGER RECONCILIATION".center(W))
    print("=" * W)
    print()
    print(f"  {'Worker':<12} {'Maintained':>14} {'Ledger sum':>14} {'Last after':>14} {'Entries':>9}  OK")
    print(f"  {'-'*12} {'-'*14} {'-'*14} {'-'*14} {'-'*9}  --")

    for report in reports:
        if report.is_consistent and not args.all:
            continue
        entries = f"{report.maintained_entry_count}/{report.ledger_entry_count}"
        flag = "ok" if report.is_consistent else "!!"
        print(
            f"  {report.worker_code:<12} {_fmt(report.maintained_balance):>14} "
            f"{_fmt(report.ledger_sum):>14} {_fmt(report.last_balance_after):>14} "
            f"{entries:>9}  {flag}"
        )

    print()
    print(f"  Workers checked: {len(reports)}  Mismatches: {len(mismatches)}")
    print()
    return 1 if mismatches else 0


if __name__ == "__main__":
    sys.exit(main())
