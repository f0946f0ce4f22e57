"""Cash drawer routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .cache import ResponseCache
from .db import session_dep
from .deps.collaborators import get_cache
from .errors import ConflictError
from .schemas import CashAdjustIn, CashSaleIn, ChangeIn
from .services import cash_drawer
from .utils.responses import ok

router = APIRouter(prefix="/api/cash-drawer")


@router.get("")
async def get_drawer(limit: int = 20, session: AsyncSession = Depends(session_dep)):
    """Return current counts, the total and the latest transactions."""

    drawer = await cash_drawer.get_drawer(session)
    transactions = await cash_drawer.list_transactions(session, limit=limit)
    data = cash_drawer.serialize_drawer(drawer)
    data["transactions"] = [cash_drawer.serialize_transaction(t) for t in transactions]
    return ok(data)


@router.post("/sale", status_code=201)
async def record_sale(
    body: CashSaleIn,
    session: AsyncSession = Depends(session_dep),
    cache: ResponseCache | None = Depends(get_cache),
):
    txn = await cash_drawer.record_sale(
        session, body.invoice_id, body.amount_received, body.tendered, cache=cache
    )
    return ok(cash_drawer.serialize_transaction(txn))


@router.post("/adjust", status_code=201)
async def adjust(
    body: CashAdjustIn,
    session: AsyncSession = Depends(session_dep),
    cache: ResponseCache | None = Depends(get_cache),
):
    txn = await cash_drawer.adjust(
        session, body.direction, body.denominations, body.reason, cache=cache
    )
    return ok(cash_drawer.serialize_transaction(txn))


@router.post("/change")
async def propose_change(body: ChangeIn, session: AsyncSession = Depends(session_dep)):
    """Preview the change breakdown from the drawer plus ``tendered``."""

    drawer = await cash_drawer.get_drawer(session)
    breakdown = cash_drawer.propose_change(body.amount, drawer.denominations, body.tendered)
    if breakdown is None:
        raise ConflictError(
            "Exact change cannot be made from the drawer",
            details={"amount": str(body.amount)},
        )
    return ok({"amount": float(body.amount), "breakdown": {str(k): v for k, v in breakdown.items()}})
