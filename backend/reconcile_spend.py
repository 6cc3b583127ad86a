#!/usr/bin/env python3
"""
Recompute budget spend from the expense ledger.

Spend records are updated one row at a time when expenses are created and
deleted, so a crash part way through can leave them out of step with the
ledger. This script reports every drifted record and, unless --check is
given, overwrites it with the value recomputed from the ledger.

Usage:
    python reconcile_spend.py                   # repair everything
    python reconcile_spend.py --check           # report only, exit 1 on drift
    python reconcile_spend.py --user 3 --year 2025 --month 6
"""

import argparse
import sys

from database import SessionLocal, engine, init_db
from utils.budgets import reconcile_spend
from utils.errors import AccumulatorDriftDetected


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Reconcile budget spend against the expense ledger")
    parser.add_argument("--user", type=int, help="Only reconcile this user ID")
    parser.add_argument("--month", type=int, choices=range(1, 13), metavar="1-12")
    parser.add_argument("--year", type=int)
    parser.add_argument("--check", action="store_true", help="Report drift without repairing it")
    args = parser.parse_args(argv)

    if args.month and not args.year:
        parser.error("--month requires --year")

    init_db(engine)
    db = SessionLocal()
    try:
        drifts = reconcile_spend(db, args.user, args.month, args.year, repair=not args.check)

        for drift in drifts:
            print(
                f"user {drift.user_id} {drift.category} {drift.month:02d}/{drift.year}: "
                f"recorded {drift.recorded:.2f}, ledger {drift.expected:.2f}"
                f"{' (repaired)' if drift.repaired else ''}"
            )

        if not drifts:
            print("✅ Spend records match the ledger")
            return 0

        if args.check:
            error = AccumulatorDriftDetected(drifts)
            print(f"❌ {error.detail}")
            return 1

        print(f"\n✅ Repaired {len(drifts)} spend record(s)")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
