#!/usr/bin/env python3
"""
Create the positions, trades and audit_log tables.

    python scripts/init_db.py            # create missing tables
    python scripts/init_db.py --reset    # drop and recreate (paper/dry-run only)
"""
import argparse
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from config.settings import get_settings
from src.models.base import Base, engine
# Registers the tables on Base.metadata
from src.models import audit_log, positions, trades  # noqa: F401

EXPECTED_TABLES = {"positions", "trades", "audit_log"}

def init_database(bind=engine, reset=False):
    """Create (or recreate) all tables and report what exists afterwards."""
    print(f"🪙 Initializing {bind.url.render_as_string(hide_password=True)}")

    try:
        if reset:
            Base.metadata.drop_all(bind=bind)
            print("  ✓ Dropped existing tables")
        Base.metadata.create_all(bind=bind)
    except SQLAlchemyError as e:
        print(f"  ✗ {e}")
        return False

    tables = set(inspect(bind).get_table_names())
    missing = EXPECTED_TABLES - tables
    for table in sorted(tables):
        print(f"    - {table}")
    if missing:
        print(f"  ✗ Missing tables: {', '.join(sorted(missing))}")
        return False

    print("✅ Database ready")
    return True

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the bot's database tables")
    parser.add_argument("--reset", action="store_true", help="Drop all tables first")
    args = parser.parse_args()

    if args.reset and not get_settings().DRY_RUN_MODE and get_settings().SWAP_MODE != "dry_run":
        confirm = input("Dropping tables with paper trading history. Type 'reset' to continue: ")
        if confirm != "reset":
            sys.exit(1)

    sys.exit(0 if init_database(reset=args.reset) else 1)
