"""Storefront database management CLI.

Creates and drops the SQL schemas used by the storefront: Protean's SQL
providers (when configured) and the stock counter table (when
STOCK_STORE_ADAPTER=sql).

Usage:
    python -m storefront.manage setup-db   # Create all tables
    python -m storefront.manage drop-db    # Drop all tables
"""

import argparse
import sys


def setup_databases():
    from storefront.domain import storefront
    from storefront.utils.db import setup_db

    print("Initializing storefront domain...")
    storefront.init()
    created = setup_db(storefront)
    print(f"  Created: {', '.join(created) if created else 'nothing (no SQL stores configured)'}")
    print("Done.")


def drop_databases():
    from storefront.domain import storefront
    from storefront.utils.db import drop_db

    print("Initializing storefront domain...")
    storefront.init()
    dropped = drop_db(storefront)
    print(f"  Dropped: {', '.join(dropped) if dropped else 'nothing (no SQL stores configured)'}")
    print("Done.")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Storefront database management")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    args = parser.parse_args(argv)

    from storefront.utils.logging import configure_logging

    configure_logging()

    if args.command == "setup-db":
        setup_databases()
    elif args.command == "drop-db":
        drop_databases()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
