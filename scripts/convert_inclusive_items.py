#!/usr/bin/env python3
"""Convert catalog items priced inclusive of tax to exclusive rates.

Every item flagged ``Inclusive`` is rewritten through the rate normalizer and
flagged ``Exclusive``. Use ``--dry-run`` to list the changes without writing::

    python scripts/convert_inclusive_items.py --dry-run
"""

from __future__ import annotations

import argparse
import asyncio

from dotenv import load_dotenv

from invoicing.app.db import dispose_engine, get_session
from invoicing.app.services.catalog import convert_inclusive_items


async def _run(dry_run: bool) -> int:
    try:
        async with get_session() as session:
            changes = await convert_inclusive_items(session, dry_run=dry_run)
    finally:
        await dispose_engine()
    for change in changes:
        print(f"{change.item_id} {change.name}: {change.old_rate} -> {change.new_rate}")
    verb = "Would update" if dry_run else "Updated"
    print(f"{verb} {len(changes)} items.")
    return len(changes)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--dry-run", action="store_true", help="Print changes without writing them"
    )
    args = parser.parse_args(argv)
    load_dotenv()
    asyncio.run(_run(args.dry_run))


if __name__ == "__main__":
    main()
