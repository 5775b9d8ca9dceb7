#!/usr/bin/env python3
"""
Initialize the Library Ledger database.

This script:
1. Creates all database tables
2. Optionally loads Faker-generated sample data
3. Verifies the availability counters agree with the loans

Usage:
    python scripts/init_database.py [--drop-existing] [--sample-data] [--seed N]
"""

import argparse
import logging
import sys

from sqlalchemy import inspect

from library_ledger.database import LoanLedger, get_db_manager
from library_ledger.database.schema import Base
from library_ledger.database.seed import seed_database

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main():
    """Main entry point for database initialization."""
    parser = argparse.ArgumentParser(description="Initialize the Library Ledger database")
    parser.add_argument(
        "--drop-existing",
        action="store_true",
        help="Drop existing tables before creating new ones",
    )
    parser.add_argument(
        "--sample-data",
        action="store_true",
        help="Load sample data after creating tables",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Random seed for the sample data (default: 42)",
    )
    parser.add_argument(
        "--database-url",
        help="Override the configured database URL",
    )

    args = parser.parse_args()

    logger.info("Initializing database manager...")
    db_manager = get_db_manager(args.database_url)

    if not db_manager.verify_connection():
        logger.error("Failed to connect to database")
        sys.exit(1)

    try:
        db_manager.init_database(drop_existing=args.drop_existing)

        tables = set(inspect(db_manager.engine).get_table_names())
        missing_tables = set(Base.metadata.tables) - tables
        if missing_tables:
            logger.error("Missing expected tables: %s", ", ".join(sorted(missing_tables)))
            sys.exit(1)
        logger.info("Tables: %s", ", ".join(sorted(tables)))

        if args.sample_data:
            logger.info("Loading sample data...")
            with db_manager.session_scope() as session:
                seed_database(session, seed=args.seed)

        with db_manager.session_scope() as session:
            drift = LoanLedger(session).audit_availability()
        if drift:
            logger.warning(
                "%d book(s) have an availability counter that disagrees with their loans",
                len(drift),
            )
        else:
            logger.info("Availability counters agree with the loan records")

        logger.info("Database initialization complete")

    except Exception:
        logger.exception("Database initialization failed")
        sys.exit(1)
    finally:
        db_manager.close()


if __name__ == "__main__":
    main()
