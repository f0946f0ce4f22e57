"""Catalog helpers that keep item rates in the canonical exclusive form."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ValidationError
from ..models import Item
from ..tax.normalize import normalize_rate
from ..utils.money import to_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateChange:
    item_id: int
    name: str
    old_rate: Decimal
    new_rate: Decimal


async def create_item(session: AsyncSession, payload: Mapping[str, Any]) -> Item:
    """Create a catalog item, storing the rate exclusive of tax.

    ``price_type`` describes how ``rate`` was entered; the stored item is
    always ``Exclusive``.
    """

    try:
        rate = to_decimal(payload.get("rate"))
        tax_slab = to_decimal(payload.get("tax_slab"))
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if rate < 0 or tax_slab < 0:
        raise ValidationError("rate and tax_slab cannot be negative")
    if not payload.get("name") or not payload.get("hsn_code"):
        raise ValidationError("name and hsn_code are required")

    item = Item(
        name=payload["name"],
        hsn_code=payload["hsn_code"],
        rate=normalize_rate(rate, tax_slab, payload.get("price_type") or "Exclusive"),
        price_type="Exclusive",
        tax_slab=tax_slab,
        units=payload.get("units") or "per piece",
        quantity_in_stock=int(payload.get("quantity_in_stock") or 0),
    )
    session.add(item)
    await session.commit()
    return item


async def convert_inclusive_items(
    session: AsyncSession, *, dry_run: bool = False
) -> list[RateChange]:
    """Rewrite every ``Inclusive`` item to its exclusive rate.

    With ``dry_run`` the planned changes are returned and nothing is written.
    """

    rows = await session.scalars(select(Item).where(Item.price_type == "Inclusive"))
    changes = []
    for item in rows:
        new_rate = normalize_rate(item.rate, item.tax_slab, "Inclusive")
        change = RateChange(item.id, item.name, Decimal(item.rate), new_rate)
        changes.append(change)
        if not dry_run:
            item.rate = new_rate
            item.price_type = "Exclusive"
        logger.info("item %s %s: %s -> %s", change.item_id, change.name, change.old_rate, new_rate)
    if dry_run:
        await session.rollback()
    else:
        await session.commit()
    return changes
