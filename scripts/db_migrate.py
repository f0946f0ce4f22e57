#!/usr/bin/env python3
"""Upgrade the invoicing database to an Alembic revision.

The DSN defaults to ``DATABASE_URL`` (or ``config.json``)::

    python scripts/db_migrate.py --revision head
"""

from __future__ import annotations

import argparse
import asyncio

from dotenv import load_dotenv

from invoicing.app.db.migrate import run_migrations


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run invoicing migrations")
    parser.add_argument("--dsn", help="Database URL (overrides DATABASE_URL)")
    parser.add_argument("--revision", default="head", help="Target revision")
    args = parser.parse_args(argv)
    load_dotenv()
    asyncio.run(run_migrations(args.dsn, args.revision))


if __name__ == "__main__":
    main()
