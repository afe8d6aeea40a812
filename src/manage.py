"""RxGate database management CLI.

Provides commands to create and drop the consults database schema.

Usage:
    python src/manage.py setup-db   # Create all tables
    python src/manage.py drop-db    # Drop all tables
"""

import argparse
import sys


def setup_databases():
    """Create the consults schema, unique natural-key indexes included."""
    from consults.domain import consults
    from consults.utils.db import setup_db

    print("Initializing consults domain...")
    consults.init()
    print("Creating consults database schema...")
    setup_db(consults)
    print("Done.")


def drop_databases():
    from consults.domain import consults
    from consults.utils.db import drop_db

    print("Initializing consults domain...")
    consults.init()
    print("Dropping consults database schema...")
    drop_db(consults)
    print("Done.")


def main():
    parser = argparse.ArgumentParser(description="RxGate database management")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_databases()
    elif args.command == "drop-db":
        drop_databases()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
