"""Purchase bills received from suppliers.

Receiving a bill adds its quantities to stock; editing reverts the old bill
before receiving the new lines; deleting takes the quantities back out.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..cache import ResponseCache, invalidate_views
from ..errors import NotFoundError, ValidationError
from ..models import Item, Purchase, PurchaseLine, Supplier, utcnow
from ..utils.money import q2, to_decimal
from . import stock

logger = logging.getLogger(__name__)


async def _prepare_lines(
    session: AsyncSession, items: Sequence[Mapping[str, Any]] | None
) -> list[dict[str, Any]]:
    if not items:
        raise ValidationError("Purchase must contain at least one item")
    ids = {int(line["item_id"]) for line in items if line.get("item_id") is not None}
    if len(ids) == 0 or any(line.get("item_id") is None for line in items):
        raise ValidationError("Each line must reference an item")
    found = set(await session.scalars(select(Item.id).where(Item.id.in_(ids))))
    missing = sorted(ids - found)
    if missing:
        raise ValidationError("Unknown catalog item", details={"item_ids": missing})

    prepared = []
    for position, line in enumerate(items):
        try:
            quantity = int(line.get("quantity") or 0)
            price = to_decimal(line.get("purchase_price"))
        except (TypeError, ValueError) as exc:
            raise ValidationError(str(exc), details={"line": position}) from exc
        if quantity <= 0:
            raise ValidationError("Quantity must be positive", details={"line": position})
        if price < 0:
            raise ValidationError("Purchase price cannot be negative", details={"line": position})
        prepared.append(
            {"item_id": int(line["item_id"]), "quantity": quantity, "purchase_price": q2(price)}
        )
    return prepared


async def _supplier(session: AsyncSession, supplier_id: int | None) -> Supplier:
    if supplier_id is None:
        raise ValidationError("supplier_id is required")
    supplier = await session.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFoundError(f"Supplier {supplier_id} not found", details={"supplier_id": supplier_id})
    return supplier


async def _load(session: AsyncSession, purchase_id: int) -> Purchase:
    purchase = await session.scalar(
        select(Purchase)
        .where(Purchase.id == purchase_id)
        .execution_options(populate_existing=True)
    )
    if purchase is None:
        raise NotFoundError(f"Purchase {purchase_id} not found", details={"purchase_id": purchase_id})
    return purchase


def serialize_purchase(purchase: Purchase) -> dict[str, Any]:
    return {
        "id": purchase.id,
        "supplier_id": purchase.supplier_id,
        "supplier_name": purchase.supplier.name if purchase.supplier else None,
        "purchase_date": purchase.purchase_date.isoformat() if purchase.purchase_date else None,
        "notes": purchase.notes,
        "lines": [
            {
                "item_id": line.item_id,
                "quantity": line.quantity,
                "purchase_price": float(line.purchase_price),
            }
            for line in purchase.lines
        ],
        "total": float(sum(line.purchase_price * line.quantity for line in purchase.lines)),
    }


async def create_purchase(
    session: AsyncSession,
    payload: Mapping[str, Any],
    *,
    cache: ResponseCache | None = None,
) -> Purchase:
    """Record a purchase bill and receive its quantities into stock."""

    supplier = await _supplier(session, payload.get("supplier_id"))
    lines = await _prepare_lines(session, payload.get("items"))
    try:
        purchase = Purchase(
            supplier_id=supplier.id,
            purchase_date=payload.get("purchase_date") or utcnow(),
            notes=payload.get("notes"),
            lines=[PurchaseLine(**line) for line in lines],
        )
        session.add(purchase)
        await session.flush()
        purchase_id = purchase.id
        await stock.adjust_stock(session, lines, stock.RESTORE)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("purchase recorded id=%s supplier=%s", purchase_id, supplier.id)
    await invalidate_views(cache, "dashboard")
    return await _load(session, purchase_id)


async def update_purchase(
    session: AsyncSession,
    purchase_id: int,
    payload: Mapping[str, Any],
    *,
    cache: ResponseCache | None = None,
) -> Purchase:
    """Replace a bill's lines: old quantities leave stock, new ones arrive."""

    purchase = await _load(session, purchase_id)
    old_lines = [{"item_id": l.item_id, "quantity": l.quantity} for l in purchase.lines]
    if payload.get("supplier_id") is not None:
        await _supplier(session, payload["supplier_id"])
    lines = await _prepare_lines(session, payload.get("items"))
    try:
        await stock.replace_stock(session, old_lines, lines, direction=stock.RESTORE)
        purchase.lines.clear()
        await session.flush()
        purchase.lines.extend(PurchaseLine(**line) for line in lines)
        if payload.get("supplier_id") is not None:
            purchase.supplier_id = payload["supplier_id"]
        for key in ("purchase_date", "notes"):
            if payload.get(key) is not None:
                setattr(purchase, key, payload[key])
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    await invalidate_views(cache, "dashboard")
    return await _load(session, purchase_id)


async def delete_purchase(
    session: AsyncSession,
    purchase_id: int,
    *,
    cache: ResponseCache | None = None,
) -> dict[str, int]:
    """Delete a bill and take its quantities back out of stock."""

    purchase = await _load(session, purchase_id)
    try:
        await stock.adjust_stock(session, purchase.lines, stock.CONSUME)
        await session.delete(purchase)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info("purchase deleted id=%s", purchase_id)
    await invalidate_views(cache, "dashboard")
    return {"deleted_id": purchase_id}


async def list_purchases(session: AsyncSession) -> list[Purchase]:
    rows = await session.scalars(
        select(Purchase).order_by(Purchase.purchase_date.desc(), Purchase.id.desc())
    )
    return list(rows)


__all__ = [
    "create_purchase",
    "delete_purchase",
    "list_purchases",
    "serialize_purchase",
    "update_purchase",
]
