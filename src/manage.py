"""Logistics database management CLI.

Provides commands to create and drop the database schema and to close
billing cycles whose period has ended.

Usage:
    python src/manage.py setup-db               # Create all tables
    python src/manage.py drop-db                # Drop all tables
    python src/manage.py close-billing-cycles   # Close expired open cycles
"""

import argparse
import sys


def _domain():
    from logistics.domain import logistics

    print("Initializing logistics domain...")
    logistics.init()
    return logistics


def setup_database():
    from logistics.utils.db import setup_db

    domain = _domain()
    print("Creating logistics database schema...")
    setup_db(domain)
    print("Done.")


def drop_database():
    from logistics.utils.db import drop_db

    domain = _domain()
    print("Dropping logistics database schema...")
    drop_db(domain)
    print("Done.")


def close_billing_cycles():
    from logistics.billing.aggregator import BillingCycleAggregator

    domain = _domain()
    with domain.domain_context():
        closed = BillingCycleAggregator().close_expired_cycles()
    for cycle in closed:
        print(f"  closed {cycle.cycle_id} ({cycle.period_display})")
    print(f"Done. {len(closed)} cycle(s) closed.")


def main():
    parser = argparse.ArgumentParser(description="Logistics database management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("close-billing-cycles", help="Close billing cycles whose period has ended")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "close-billing-cycles":
        close_billing_cycles()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
