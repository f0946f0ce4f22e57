"""Stock ledger adjustments for catalog items.

Every change to ``Item.quantity_in_stock`` goes through :func:`adjust_stock`.
Invoices consume stock (``CONSUME``), deletions, cancellations and purchase
receipts restore it (``RESTORE``). Negative stock is a legitimate backorder
and is only logged.
"""

from __future__ import annotations

import logging
from typing import Iterable, Literal, Mapping

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import NotFoundError, integrity_warning
from ..models import Item

logger = logging.getLogger(__name__)

Direction = Literal[1, -1]

CONSUME: Direction = -1
RESTORE: Direction = 1


def _line_values(line: object) -> tuple[int | None, int]:
    if isinstance(line, Mapping):
        return line.get("item_id"), int(line.get("quantity") or 0)
    return getattr(line, "item_id", None), int(getattr(line, "quantity", 0) or 0)


async def adjust_stock(
    session: AsyncSession,
    lines: Iterable[object],
    direction: Direction,
) -> dict[int, int]:
    """Apply ``direction * quantity`` to the stock of every line's item.

    Parameters
    ----------
    session:
        Session whose transaction the updates join. Nothing is committed here.
    lines:
        Mappings or ORM rows exposing ``item_id`` and ``quantity``. Lines
        without an ``item_id`` (free text lines) are skipped.
    direction:
        ``-1`` to consume stock, ``+1`` to restore or receive it.

    Returns
    -------
    dict
        Resulting stock per item id, after the last update touching it.
    """

    if direction not in (CONSUME, RESTORE):
        raise ValueError(f"direction must be +1 or -1, got {direction!r}")

    resulting: dict[int, int] = {}
    for line in lines:
        item_id, quantity = _line_values(line)
        if item_id is None or quantity == 0:
            continue
        # Single UPDATE ... RETURNING keeps the increment atomic in the store.
        result = await session.execute(
            update(Item)
            .where(Item.id == item_id)
            .values(quantity_in_stock=Item.quantity_in_stock + direction * quantity)
            .returning(Item.quantity_in_stock)
            .execution_options(synchronize_session=False)
        )
        stock = result.scalar_one_or_none()
        if stock is None:
            raise NotFoundError(
                f"Item {item_id} not found", details={"item_id": item_id}
            )
        resulting[item_id] = stock
        if stock < 0:
            integrity_warning(
                "stock below zero", item=item_id, stock=stock, delta=direction * quantity
            )
    logger.debug("stock adjusted direction=%s items=%s", direction, resulting)
    return resulting


async def replace_stock(
    session: AsyncSession,
    old_lines: Iterable[object],
    new_lines: Iterable[object],
    *,
    direction: Direction = CONSUME,
) -> None:
    """Fully revert ``old_lines`` and then apply ``new_lines``.

    The two sets are never diffed: the old quantities are put back first, the
    new quantities are taken afterwards, so swapped items are counted once each.
    """

    await adjust_stock(session, old_lines, -direction)
    await adjust_stock(session, new_lines, direction)


__all__ = ["CONSUME", "RESTORE", "adjust_stock", "replace_stock"]
