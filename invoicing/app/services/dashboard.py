"""Dashboard summary: invoice counts, revenue, outstanding balance and cash."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..cache import ResponseCache
from ..models import CashDrawer, Invoice, InvoiceStatus
from ..utils.money import ZERO, q2
from .cash_drawer import DRAWER_ID

CACHE_KEY = "dashboard:summary"


async def summary(session: AsyncSession, *, cache: ResponseCache | None = None) -> dict[str, Any]:
    if cache is not None:
        cached = await cache.get_json(CACHE_KEY)
        if cached is not None:
            return cached

    active = Invoice.status == InvoiceStatus.ACTIVE.value
    row = (
        await session.execute(
            select(
                func.count(Invoice.id),
                func.coalesce(func.sum(Invoice.grand_total), 0),
                func.coalesce(func.sum(Invoice.paid_amount), 0),
                func.coalesce(func.sum(Invoice.balance), 0),
            ).where(active)
        )
    ).one()
    cancelled = await session.scalar(
        select(func.count(Invoice.id)).where(Invoice.status == InvoiceStatus.CANCELLED.value)
    )
    unpaid = await session.scalar(
        select(func.count(Invoice.id)).where(active, Invoice.balance > 0)
    )
    cash = await session.scalar(select(CashDrawer.total_cash).where(CashDrawer.id == DRAWER_ID))

    count, revenue, received, outstanding = row
    data = {
        "invoices": int(count),
        "cancelled": int(cancelled or 0),
        "unpaid_invoices": int(unpaid or 0),
        "revenue": float(q2(Decimal(str(revenue or ZERO)))),
        "received": float(q2(Decimal(str(received or ZERO)))),
        "outstanding": float(q2(Decimal(str(outstanding or ZERO)))),
        "cash_on_hand": int(cash or 0),
    }
    if cache is not None:
        await cache.set_json(CACHE_KEY, data)
    return data
