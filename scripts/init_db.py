#!/usr/bin/env python3
"""
Create (or recreate) the approval workflow schema.

Usage:
  python3 scripts/init_db.py [--db-url URL] [--drop]

The database URL defaults to $DATABASE_URL, then to a local SQLite file.
"""

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DEFAULT_DB_URL = os.environ.get("DATABASE_URL", "sqlite:///travel_workflow.db")


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create the approval workflow tables")
    p.add_argument("--db-url", default=DEFAULT_DB_URL, help="Database URL")
    p.add_argument(
        "--drop",
        action="store_true",
        help="Drop every table first (destroys all data)",
    )
    return p.parse_args()


def main() -> int:
    args = _parse_args()

    from travel_kernel.db.engine import create_tables, drop_tables, init_engine_from_url

    print()
    print(f"  [1/2] Connecting to {args.db_url} ...")
    try:
        init_engine_from_url(args.db_url)
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    if args.drop:
        print("  Dropping tables...")
        drop_tables()

    print("  [2/2] Creating tables...")
    create_tables()

    print()
    print("  Done.")
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
