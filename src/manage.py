"""Marketplace database management CLI.

Creates or drops the tables of every SQL provider configured for the
marketplace domain. Memory providers are skipped.

Usage:
    python src/manage.py setup-db
    python src/manage.py drop-db
    python src/manage.py --env production setup-db
"""

import argparse
import os
import sys


def _domain(env):
    if env:
        os.environ["PROTEAN_ENV"] = env

    from marketplace.domain import marketplace

    marketplace.init()
    return marketplace


def setup_databases(env=None):
    from marketplace.utils.db import setup_db

    touched = setup_db(_domain(env))
    print(f"Created schema for: {', '.join(touched) or 'no SQL providers'}")


def drop_databases(env=None):
    from marketplace.utils.db import drop_db

    touched = drop_db(_domain(env))
    print(f"Dropped schema for: {', '.join(touched) or 'no SQL providers'}")


def main():
    parser = argparse.ArgumentParser(description="Marketplace database management")
    parser.add_argument("--env", help="Config overlay to use (sets PROTEAN_ENV)")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_databases(args.env)
    elif args.command == "drop-db":
        drop_databases(args.env)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
