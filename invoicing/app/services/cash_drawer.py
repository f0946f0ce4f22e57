"""Cash drawer ledger.

There is exactly one drawer row. Its total is always recomputed from the
denomination counts, and every movement appends a :class:`CashTransaction`
with before/after snapshots. Concurrent writers are detected through the
drawer's version column and reported as :class:`ConflictError`.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Literal, Mapping

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ..cache import ResponseCache, invalidate_views
from ..errors import ConflictError, NotFoundError, ValidationError, integrity_warning
from ..models import CashDrawer, CashTransaction, Invoice
from ..routes_metrics import cash_drawer_transactions_total
from ..utils.money import ZERO, q2, to_decimal
from .change_maker import FACE_VALUES, make_change, normalize_counts, total_of

logger = logging.getLogger(__name__)

DRAWER_ID = 1

AdjustDirection = Literal["add", "remove"]


def _as_json(counts: Mapping[int, int]) -> dict[str, int]:
    return {str(value): int(counts.get(value, 0)) for value in FACE_VALUES}


def _tendered(denominations: Mapping[object, object] | None, label: str) -> dict[int, int]:
    try:
        counts = normalize_counts(denominations)
    except (TypeError, ValueError) as exc:
        raise ValidationError(str(exc), details={label: denominations}) from exc
    if any(count < 0 for count in counts.values()):
        raise ValidationError("Denomination counts cannot be negative", details={label: denominations})
    if not any(counts.values()):
        raise ValidationError(f"{label} must contain at least one note or coin")
    return counts


def _whole_rupees(amount: Decimal, label: str) -> None:
    if amount != amount.to_integral_value():
        raise ValidationError(
            "Cash amounts must be whole rupees", details={label: str(amount)}
        )


async def get_drawer(session: AsyncSession) -> CashDrawer:
    """Return the drawer row, creating an empty one on first access."""

    drawer = await session.get(CashDrawer, DRAWER_ID, populate_existing=True)
    if drawer is not None:
        return drawer
    session.add(CashDrawer(id=DRAWER_ID, denominations=_as_json({}), total_cash=0))
    try:
        await session.commit()
    except IntegrityError:
        # Another request created it first.
        await session.rollback()
    drawer = await session.get(CashDrawer, DRAWER_ID, populate_existing=True)
    if drawer is None:
        raise ConflictError("Cash drawer could not be created; retry")
    return drawer


async def _commit(session: AsyncSession) -> None:
    try:
        await session.commit()
    except StaleDataError as exc:
        await session.rollback()
        raise ConflictError("Cash drawer was changed by another request; retry") from exc
    except Exception:
        await session.rollback()
        raise


def _record(
    session: AsyncSession,
    drawer: CashDrawer,
    after: Mapping[int, int],
    **fields: Any,
) -> CashTransaction:
    """Move ``drawer`` to ``after`` and append the matching transaction."""

    before = normalize_counts(drawer.denominations)
    before_total = total_of(before)
    after_total = total_of(after)
    delta = after_total - before_total

    txn = CashTransaction(
        drawer_id=drawer.id,
        direction="credit" if delta >= 0 else "debit",
        amount=abs(delta),
        before_total=before_total,
        after_total=after_total,
        before_denoms=_as_json(before),
        after_denoms=_as_json(after),
        **fields,
    )
    # Assign new objects so the JSON column change is detected.
    drawer.denominations = _as_json(after)
    drawer.total_cash = after_total
    session.add(txn)
    return txn


def serialize_drawer(drawer: CashDrawer) -> dict[str, Any]:
    return {
        "denominations": _as_json(normalize_counts(drawer.denominations)),
        "total_cash": drawer.total_cash,
        "version": drawer.version,
    }


def serialize_transaction(txn: CashTransaction) -> dict[str, Any]:
    return {
        "id": txn.id,
        "type": txn.type,
        "direction": txn.direction,
        "method": txn.method,
        "amount": txn.amount,
        "signed_amount": txn.signed_amount,
        "denominations": txn.denominations,
        "change_given": txn.change_given,
        "reason": txn.reason,
        "before_total": txn.before_total,
        "after_total": txn.after_total,
        "before_denoms": txn.before_denoms,
        "after_denoms": txn.after_denoms,
        "invoice_id": txn.invoice_id,
        "created_at": txn.created_at.isoformat() if txn.created_at else None,
    }


def propose_change(
    amount: Any,
    drawer_counts: Mapping[object, object] | None,
    tendered: Mapping[object, object] | None = None,
) -> dict[int, int] | None:
    """Preview the change breakdown for ``amount`` without touching the drawer."""

    amount = to_decimal(amount)
    _whole_rupees(amount, "amount")
    available = normalize_counts(drawer_counts)
    for value, count in normalize_counts(tendered).items():
        available[value] += count
    return make_change(amount, available)


async def record_sale(
    session: AsyncSession,
    invoice_id: int | None,
    amount_received: Any,
    tendered: Mapping[object, object] | None,
    *,
    cache: ResponseCache | None = None,
) -> CashTransaction:
    """Take cash for a sale, hand back exact change and settle the invoice.

    Parameters
    ----------
    session:
        Active :class:`~sqlalchemy.ext.asyncio.AsyncSession`.
    invoice_id:
        Invoice being paid; its ``paid_amount`` and ``balance`` are updated.
    amount_received:
        Amount of the sale settled in cash.
    tendered:
        Notes and coins handed over, ``{face_value: count}``.

    Raises
    ------
    ValidationError
        Nothing tendered, less than ``amount_received``, or an amount in
        paise (notes and coins only settle whole rupees).
    ConflictError
        Exact change cannot be made from the drawer plus the tendered cash, or
        the drawer changed concurrently. Nothing is written in either case.
    """

    try:
        amount = to_decimal(amount_received)
    except ValueError as exc:
        raise ValidationError("amount_received must be a number") from exc
    if amount <= 0:
        raise ValidationError("amount_received must be positive")
    _whole_rupees(amount, "amount_received")
    counts = _tendered(tendered, "tendered")
    tendered_total = total_of(counts)
    if tendered_total < amount:
        raise ValidationError(
            "Tendered cash is less than the amount received",
            details={"tendered": tendered_total, "amount_received": str(amount)},
        )

    drawer = await get_drawer(session)
    invoice = None
    if invoice_id is not None:
        invoice = await session.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found", details={"invoice_id": invoice_id})
        if invoice.is_cancelled:
            raise ConflictError("Cannot take payment for a cancelled invoice", details={"invoice_id": invoice_id})

    available = normalize_counts(drawer.denominations)
    for value, count in counts.items():
        available[value] += count
    change_due = Decimal(tendered_total) - amount
    change = make_change(change_due, available)
    if change is None:
        raise ConflictError(
            "Exact change cannot be made from the drawer",
            details={"change_due": str(change_due), "available": _as_json(available)},
        )
    after = {value: available[value] - change.get(value, 0) for value in FACE_VALUES}

    txn = _record(
        session,
        drawer,
        after,
        type="sale",
        method="Cash",
        denominations=_as_json(counts),
        change_given=_as_json(change),
        invoice_id=invoice_id,
    )
    if invoice is not None:
        invoice.paid_amount = q2(Decimal(invoice.paid_amount or 0) + amount)
        invoice.balance = max(ZERO, Decimal(invoice.grand_total) - invoice.paid_amount)
        invoice.payment_method = "Cash"
    await _commit(session)

    cash_drawer_transactions_total.labels(type="sale").inc()
    logger.info(
        "cash sale invoice=%s received=%s change=%s total=%s",
        invoice_id,
        amount,
        change_due,
        txn.after_total,
    )
    await invalidate_views(cache, "invoices", "dashboard")
    return txn


async def adjust(
    session: AsyncSession,
    direction: AdjustDirection,
    denominations: Mapping[object, object] | None,
    reason: str | None = None,
    *,
    cache: ResponseCache | None = None,
) -> CashTransaction:
    """Add or remove cash by hand (float top-up, shortage write-off).

    A removal always takes exactly the requested total or fails with
    :class:`ConflictError`. A denomination that would go negative is clamped
    at zero (with a warning) and the difference is made up from the other
    notes on hand; if no exact make-up exists the removal is rejected and
    nothing is written.
    """

    if direction not in ("add", "remove"):
        raise ValidationError("direction must be add or remove", details={"direction": direction})
    counts = _tendered(denominations, "denominations")
    drawer = await get_drawer(session)
    before = normalize_counts(drawer.denominations)

    if direction == "add":
        after = {value: before[value] + counts[value] for value in FACE_VALUES}
        moved = counts
    else:
        requested = total_of(counts)
        if requested > drawer.total_cash:
            raise ConflictError(
                "Removal exceeds cash on hand",
                details={"requested": requested, "on_hand": drawer.total_cash},
            )
        after = {}
        for value in FACE_VALUES:
            remaining = before[value] - counts[value]
            if remaining < 0:
                integrity_warning(
                    "denomination removal clamped at zero",
                    denomination=value,
                    on_hand=before[value],
                    requested=counts[value],
                )
                remaining = 0
            after[value] = remaining
        shortfall = requested - (total_of(before) - total_of(after))
        if shortfall:
            # Make up clamped notes from the other denominations still on hand.
            cover = make_change(shortfall, after)
            if cover is None:
                raise ConflictError(
                    "Removal cannot be funded from the notes on hand",
                    details={"requested": requested, "shortfall": shortfall, "on_hand": _as_json(before)},
                )
            for value, count in cover.items():
                after[value] -= count
        moved = {value: before[value] - after[value] for value in FACE_VALUES}

    txn = _record(
        session,
        drawer,
        after,
        type=f"adjust-{direction}",
        denominations=_as_json(moved),
        reason=reason,
    )
    await _commit(session)

    cash_drawer_transactions_total.labels(type=txn.type).inc()
    logger.info("cash drawer %s amount=%s reason=%r", direction, txn.amount, reason)
    await invalidate_views(cache, "dashboard")
    return txn


async def list_transactions(session: AsyncSession, limit: int = 50) -> list[CashTransaction]:
    rows = await session.scalars(
        select(CashTransaction).order_by(CashTransaction.id.desc()).limit(limit)
    )
    return list(rows)


__all__ = [
    "DRAWER_ID",
    "adjust",
    "get_drawer",
    "list_transactions",
    "propose_change",
    "record_sale",
    "serialize_drawer",
    "serialize_transaction",
]
