"""Checkout database management CLI.

Creates and drops the checkout schema through the domain's configured
providers (sqlite / postgresql; in-memory providers need nothing).

Usage:
    python src/manage.py setup-db   # Create all tables
    python src/manage.py drop-db    # Drop all tables
"""

import argparse
import sys


def setup_database():
    """Create the checkout database schema."""
    from checkout.domain import checkout
    from checkout.utils.db import setup_db

    print("Initializing checkout domain...")
    checkout.init()
    print("Creating checkout database schema...")
    providers = setup_db(checkout)
    print(f"  checkout schema ready ({', '.join(providers) or 'no database providers'}).")
    print("Done.")


def drop_database():
    """Drop the checkout database schema."""
    from checkout.domain import checkout
    from checkout.utils.db import drop_db

    print("Initializing checkout domain...")
    checkout.init()
    print("Dropping checkout database schema...")
    providers = drop_db(checkout)
    print(f"  checkout schema dropped ({', '.join(providers) or 'no database providers'}).")
    print("Done.")


def main():
    parser = argparse.ArgumentParser(description="Checkout database management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
