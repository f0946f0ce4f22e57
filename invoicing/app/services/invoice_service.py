"""Invoice lifecycle: create, update, cancel, delete, payments and reprints.

Every mutating function runs inside the caller's session and commits once at
the end. Any failure rolls the whole operation back, so stock, numbering and
totals never diverge. Response caches for invoice and dashboard views are
invalidated after a successful commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, get_settings

from ..cache import ResponseCache, invalidate_views
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import (
    Customer,
    CustomerType,
    Invoice,
    InvoiceLine,
    InvoiceStatus,
    Item,
    utcnow,
)
from ..routes_metrics import (
    invoice_number_conflicts_total,
    invoices_created_total,
    invoices_deleted_total,
)
from ..tax.gst_engine import TaxTotals, compute_totals
from ..utils import invoice_counter
from ..utils.money import ZERO, q2, to_decimal
from ..utils.portal_token import check_token, issue_token
from . import stock

logger = logging.getLogger(__name__)

GUEST_NAME = "Walk-in Customer"
ARTIFACT_FORMATS = ("a4", "thermal")
VIEW_PATTERNS = ("invoices", "dashboard")

_Q4 = Decimal("0.0001")


@dataclass
class Allocation:
    """Amount applied to one invoice by a payment."""

    invoice_id: int
    number: str
    applied: Decimal
    balance: Decimal


@dataclass
class PaymentResult:
    allocations: list[Allocation] = field(default_factory=list)
    unallocated: Decimal = ZERO

    @property
    def applied(self) -> Decimal:
        return sum((a.applied for a in self.allocations), ZERO)


# ---------------------------------------------------------------------------
# helpers


def _money(payload: Mapping[str, Any], key: str) -> Decimal:
    try:
        value = to_decimal(payload.get(key))
    except ValueError as exc:
        raise ValidationError(f"{key} must be a number", details={key: payload.get(key)}) from exc
    if value < 0:
        raise ValidationError(f"{key} cannot be negative", details={key: str(value)})
    return value


def _quantity(raw: Any, position: int) -> int:
    try:
        value = to_decimal(raw)
    except ValueError:
        value = None
    if value is None or value <= 0 or value != value.to_integral_value():
        raise ValidationError(
            "Quantity must be a positive whole number",
            details={"line": position, "quantity": raw},
        )
    return int(value)


async def _prepare_lines(
    session: AsyncSession, items: Sequence[Mapping[str, Any]] | None
) -> list[dict[str, Any]]:
    """Validate ``items`` and snapshot catalog data onto each line.

    No writes happen here; a failure leaves the store untouched.
    """

    if not items:
        raise ValidationError("Invoice must contain at least one item")

    ids = set()
    for position, line in enumerate(items):
        if line.get("item_id") is None:
            raise ValidationError("Each line must reference an item", details={"line": position})
        ids.add(int(line["item_id"]))

    rows = await session.scalars(select(Item).where(Item.id.in_(ids)))
    catalog = {item.id: item for item in rows}
    missing = sorted(ids - catalog.keys())
    if missing:
        raise ValidationError("Unknown catalog item", details={"item_ids": missing})

    prepared = []
    for position, line in enumerate(items):
        item = catalog[int(line["item_id"])]
        quantity = _quantity(line.get("quantity"), position)
        try:
            rate = to_decimal(line.get("rate"), default=Decimal(item.rate))
            discount = to_decimal(line.get("discount"))
        except ValueError as exc:
            raise ValidationError(str(exc), details={"line": position}) from exc
        if rate < 0:
            raise ValidationError("Rate cannot be negative", details={"line": position})
        if discount < 0:
            raise ValidationError("Discount cannot be negative", details={"line": position})
        discount_type = line.get("discount_type") or "flat"
        if discount_type not in ("flat", "percent"):
            raise ValidationError(
                "discount_type must be flat or percent", details={"line": position}
            )
        price_type = line.get("price_type") or item.price_type or "Exclusive"
        if price_type not in ("Exclusive", "Inclusive"):
            raise ValidationError(
                "price_type must be Exclusive or Inclusive", details={"line": position}
            )
        prepared.append(
            {
                "item_id": item.id,
                "name": line.get("name") or item.name,
                "hsn_code": item.hsn_code,
                "units": item.units,
                "rate": rate,
                "price_type": price_type,
                "tax_slab": Decimal(item.tax_slab or 0),
                "quantity": quantity,
                "discount": discount,
                "discount_type": discount_type,
            }
        )
    return prepared


async def _resolve_buyer(
    session: AsyncSession, customer_id: int | None, settings: Settings
) -> tuple[Customer | None, str, CustomerType]:
    """Return the customer, the buyer state and the classification.

    Guests take the seller's own state so the sale is always intra-state.
    """

    if customer_id is None:
        return None, settings.seller_state, CustomerType.B2C
    customer = await session.get(Customer, customer_id)
    if customer is None:
        raise ValidationError("Customer not found", details={"customer_id": customer_id})
    return customer, customer.state, customer.classification


def _build_lines(prepared: Iterable[Mapping[str, Any]], totals: TaxTotals) -> list[InvoiceLine]:
    return [
        InvoiceLine(
            position=position,
            taxable_value=split.taxable_value.quantize(_Q4),
            cgst=split.cgst.quantize(_Q4),
            sgst=split.sgst.quantize(_Q4),
            igst=split.igst.quantize(_Q4),
            **line,
        )
        for position, (line, split) in enumerate(zip(prepared, totals.lines))
    ]


def _apply_totals(
    invoice: Invoice,
    totals: TaxTotals,
    *,
    discount: Decimal,
    shipping: Decimal,
    paid: Decimal,
) -> None:
    """Write computed totals onto ``invoice``.

    ``grand_total = total_amount - discount + shipping``; the invoice-level
    discount applies after tax, line discounts were applied before it.
    """

    total_amount = totals.total
    grand_total = q2(total_amount - discount + shipping)
    if grand_total < 0:
        raise ValidationError(
            "Discount exceeds invoice total",
            details={"total_amount": str(total_amount), "discount": str(discount)},
        )
    invoice.subtotal = totals.subtotal
    invoice.cgst = totals.cgst
    invoice.sgst = totals.sgst
    invoice.igst = totals.igst
    invoice.total_tax = totals.total_tax
    invoice.total_amount = total_amount
    invoice.discount = q2(discount)
    invoice.shipping_charges = q2(shipping)
    invoice.grand_total = grand_total
    invoice.paid_amount = q2(paid)
    invoice.balance = max(ZERO, grand_total - invoice.paid_amount)


def _settle(invoice: Invoice, paid: Decimal) -> None:
    invoice.paid_amount = q2(paid)
    invoice.balance = max(ZERO, Decimal(invoice.grand_total) - invoice.paid_amount)


async def _load(session: AsyncSession, invoice_id: int) -> Invoice:
    invoice = await session.scalar(
        select(Invoice)
        .where(Invoice.id == invoice_id)
        .execution_options(populate_existing=True)
    )
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found", details={"invoice_id": invoice_id})
    return invoice


def _is_number_conflict(exc: IntegrityError) -> bool:
    return "number" in str(exc.orig).lower()


def _float(value: Any) -> float | None:
    return None if value is None else float(value)


def _date(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def serialize_invoice(invoice: Invoice) -> dict[str, Any]:
    """Return a JSON-ready view of ``invoice`` and its lines."""

    customer = invoice.customer
    return {
        "id": invoice.id,
        "number": invoice.number,
        "invoice_date": _date(invoice.invoice_date),
        "customer_id": invoice.customer_id,
        "customer_name": customer.display_name if customer else (invoice.guest_name or GUEST_NAME),
        "customer_gstin": customer.gstin if customer else None,
        "customer_state": customer.state if customer else None,
        "subtotal": float(invoice.subtotal),
        "cgst": float(invoice.cgst),
        "sgst": float(invoice.sgst),
        "igst": float(invoice.igst),
        "total_tax": float(invoice.total_tax),
        "total_amount": float(invoice.total_amount),
        "discount": float(invoice.discount),
        "shipping_charges": float(invoice.shipping_charges),
        "grand_total": float(invoice.grand_total),
        "paid_amount": float(invoice.paid_amount),
        "balance": float(invoice.balance),
        "payment_method": invoice.payment_method,
        "payment_status": invoice.payment_status.value,
        "billing_type": invoice.billing_type,
        "export_info": invoice.export_info,
        "status": invoice.status,
        "pdf_path": invoice.pdf_path,
        "lines": [
            {
                "item_id": line.item_id,
                "name": line.name,
                "hsn_code": line.hsn_code,
                "units": line.units,
                "rate": float(line.rate),
                "price_type": line.price_type,
                "tax_slab": float(line.tax_slab),
                "quantity": line.quantity,
                "discount": float(line.discount),
                "discount_type": line.discount_type,
                "taxable_value": _float(line.taxable_value),
                "cgst": _float(line.cgst),
                "sgst": _float(line.sgst),
                "igst": _float(line.igst),
            }
            for line in invoice.lines
        ],
    }


# ---------------------------------------------------------------------------
# lifecycle


async def create_invoice(
    session: AsyncSession,
    payload: Mapping[str, Any],
    *,
    settings: Settings | None = None,
    cache: ResponseCache | None = None,
) -> Invoice:
    """Create an invoice, consume stock and return the persisted row.

    Parameters
    ----------
    session:
        Active :class:`~sqlalchemy.ext.asyncio.AsyncSession`.
    payload:
        Mapping with ``items`` (``item_id``, ``quantity`` and optional
        ``rate``, ``price_type``, ``discount``, ``discount_type``) and optional
        ``customer_id``, ``guest_name``, ``discount``, ``shipping_charges``,
        ``paid_amount``, ``payment_method``, ``billing_type``,
        ``export_info`` and ``invoice_date``.
    settings:
        Seller configuration; defaults to :func:`config.get_settings`.
    cache:
        Response cache whose invoice and dashboard views are invalidated.

    Raises
    ------
    ValidationError
        Empty or invalid lines, unknown item or customer.
    ConflictError
        No free invoice number within ``settings.invoice_number_retries``.
    """

    settings = settings or get_settings()
    lines = await _prepare_lines(session, payload.get("items"))
    customer, buyer_state, classification = await _resolve_buyer(
        session, payload.get("customer_id"), settings
    )
    customer_id = customer.id if customer else None
    totals = compute_totals(lines, buyer_state, settings.seller_state)
    discount = _money(payload, "discount")
    shipping = _money(payload, "shipping_charges")
    paid = _money(payload, "paid_amount")

    for attempt in range(1, settings.invoice_number_retries + 1):
        try:
            number = await invoice_counter.next_invoice_number(session, classification.value)
            invoice = Invoice(
                number=number,
                customer_id=customer_id,
                guest_name=None if customer_id else (payload.get("guest_name") or GUEST_NAME),
                payment_method=payload.get("payment_method"),
                billing_type=payload.get("billing_type"),
                export_info=payload.get("export_info"),
                invoice_date=payload.get("invoice_date") or utcnow(),
                status=InvoiceStatus.ACTIVE.value,
                lines=_build_lines(lines, totals),
            )
            _apply_totals(invoice, totals, discount=discount, shipping=shipping, paid=paid)
            session.add(invoice)
            await session.flush()
            invoice_id, grand_total = invoice.id, invoice.grand_total
            await stock.adjust_stock(session, lines, stock.CONSUME)
            await session.commit()
            break
        except IntegrityError as exc:
            await session.rollback()
            if not _is_number_conflict(exc):
                raise
            invoice_number_conflicts_total.inc()
            logger.warning("invoice number collision attempt=%d: %s", attempt, exc.orig)
        except Exception:
            await session.rollback()
            raise
    else:
        raise ConflictError(
            "Could not allocate a unique invoice number",
            details={"attempts": settings.invoice_number_retries},
        )

    invoices_created_total.inc()
    logger.info(
        "invoice created number=%s grand_total=%s",
        number,
        grand_total,
        extra={"context": {"invoice": number}},
    )
    await invalidate_views(cache, *VIEW_PATTERNS)
    return await _load(session, invoice_id)


async def update_invoice(
    session: AsyncSession,
    invoice_id: int,
    payload: Mapping[str, Any],
    *,
    settings: Settings | None = None,
    cache: ResponseCache | None = None,
) -> Invoice:
    """Replace the lines and charges of an existing invoice.

    The old quantities go back to stock before totals are recomputed and the
    new quantities are taken, all in one transaction. The invoice keeps its
    number, so the buyer may change only within the same B2B/B2C
    classification.
    """

    settings = settings or get_settings()
    invoice = await _load(session, invoice_id)
    if invoice.is_cancelled:
        raise ConflictError("Cancelled invoices cannot be edited", details={"invoice_id": invoice_id})

    number = invoice.number
    old_lines = [{"item_id": l.item_id, "quantity": l.quantity} for l in invoice.lines]
    lines = await _prepare_lines(session, payload.get("items"))
    customer_id = payload.get("customer_id", invoice.customer_id)
    customer, buyer_state, classification = await _resolve_buyer(session, customer_id, settings)
    series = invoice_counter.build_series(classification.value)
    if number.rsplit("-", 1)[0] != series:
        # The number series is the invoice's B2B/B2C filing; it cannot move.
        raise ValidationError(
            "Changing the buyer between B2B and B2C requires cancelling and re-issuing the invoice",
            details={"number": number, "classification": classification.value},
        )

    def _field(key: str) -> Decimal:
        return _money(payload, key) if payload.get(key) is not None else Decimal(getattr(invoice, key))

    discount = _field("discount")
    shipping = _field("shipping_charges")
    paid = _field("paid_amount")

    try:
        totals = compute_totals(lines, buyer_state, settings.seller_state)
        invoice.lines.clear()
        await session.flush()
        invoice.lines.extend(_build_lines(lines, totals))
        invoice.customer_id = customer.id if customer else None
        invoice.customer = customer
        if customer is None:
            invoice.guest_name = payload.get("guest_name") or invoice.guest_name or GUEST_NAME
        for key in ("payment_method", "billing_type", "export_info", "invoice_date"):
            if payload.get(key) is not None:
                setattr(invoice, key, payload[key])
        _apply_totals(invoice, totals, discount=discount, shipping=shipping, paid=paid)
        await stock.replace_stock(session, old_lines, lines)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info("invoice updated number=%s", number, extra={"context": {"invoice": number}})
    await invalidate_views(cache, *VIEW_PATTERNS)
    return await _load(session, invoice_id)


def _remove_artifact(path: str | None) -> None:
    if not path:
        return
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("could not remove artifact %s: %s", path, exc)


async def delete_invoice(
    session: AsyncSession,
    invoice_id: int,
    *,
    cache: ResponseCache | None = None,
) -> dict[str, int]:
    """Delete an invoice, restoring its stock unless it was cancelled."""

    invoice = await _load(session, invoice_id)
    pdf_path = invoice.pdf_path
    try:
        if not invoice.is_cancelled:
            await stock.adjust_stock(session, invoice.lines, stock.RESTORE)
        await session.delete(invoice)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    _remove_artifact(pdf_path)
    invoices_deleted_total.labels(action="delete").inc()
    logger.info("invoice deleted id=%s", invoice_id)
    await invalidate_views(cache, *VIEW_PATTERNS)
    return {"deleted_id": invoice_id}


async def cancel_invoice(
    session: AsyncSession,
    invoice_id: int,
    *,
    cache: ResponseCache | None = None,
) -> Invoice:
    """Mark an invoice cancelled and restore its stock exactly once."""

    invoice = await _load(session, invoice_id)
    if invoice.is_cancelled:
        raise ConflictError("Invoice already cancelled", details={"invoice_id": invoice_id})
    number = invoice.number
    try:
        await stock.adjust_stock(session, invoice.lines, stock.RESTORE)
        invoice.status = InvoiceStatus.CANCELLED.value
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    invoices_deleted_total.labels(action="cancel").inc()
    logger.info("invoice cancelled number=%s", number)
    await invalidate_views(cache, *VIEW_PATTERNS)
    return await _load(session, invoice_id)


async def get_invoice(session: AsyncSession, invoice_id: int) -> Invoice:
    return await _load(session, invoice_id)


async def list_invoices(
    session: AsyncSession,
    *,
    customer_type: str | None = None,
    cache: ResponseCache | None = None,
) -> list[dict[str, Any]]:
    """Return serialized invoices newest first, optionally only ``B2B``/``B2C``."""

    if customer_type is not None:
        customer_type = customer_type.upper()
        if customer_type not in CustomerType.__members__:
            raise ValidationError("customer_type must be B2B or B2C")
    key = f"invoices:list:{customer_type or 'all'}"
    if cache is not None:
        cached = await cache.get_json(key)
        if cached is not None:
            return cached

    stmt = select(Invoice).order_by(Invoice.invoice_date.desc(), Invoice.id.desc())
    if customer_type:
        stmt = stmt.where(Invoice.number.like(f"{customer_type}-%"))
    rows = await session.scalars(stmt)
    data = [serialize_invoice(invoice) for invoice in rows]
    if cache is not None:
        await cache.set_json(key, data)
    return data


# ---------------------------------------------------------------------------
# payments


def _payment_amount(amount: Any) -> Decimal:
    try:
        value = to_decimal(amount)
    except ValueError as exc:
        raise ValidationError("Payment amount must be a number") from exc
    if value <= 0:
        raise ValidationError("Payment amount must be positive", details={"amount": str(value)})
    return q2(value)


def _allocate(invoices: Iterable[Invoice], amount: Decimal, method: str | None) -> PaymentResult:
    """Apply ``amount`` across ``invoices`` in the given order."""

    result = PaymentResult()
    remaining = amount
    for invoice in invoices:
        if remaining <= 0:
            break
        if invoice.is_cancelled or Decimal(invoice.balance) <= 0:
            continue
        applied = min(Decimal(invoice.balance), remaining)
        _settle(invoice, Decimal(invoice.paid_amount) + applied)
        if method:
            invoice.payment_method = method
        remaining -= applied
        result.allocations.append(
            Allocation(
                invoice_id=invoice.id,
                number=invoice.number,
                applied=applied,
                balance=invoice.balance,
            )
        )
    result.unallocated = remaining
    return result


async def record_payment(
    session: AsyncSession,
    invoice_id: int,
    amount: Any,
    method: str | None = None,
    *,
    cache: ResponseCache | None = None,
) -> PaymentResult:
    """Apply a payment to one invoice; any excess is reported as unallocated."""

    value = _payment_amount(amount)
    invoice = await _load(session, invoice_id)
    if invoice.is_cancelled:
        raise ConflictError("Cannot record payment on a cancelled invoice", details={"invoice_id": invoice_id})
    result = _allocate([invoice], value, method)
    await session.commit()
    await invalidate_views(cache, *VIEW_PATTERNS)
    return result


async def record_customer_payment(
    session: AsyncSession,
    customer_id: int,
    amount: Any,
    method: str | None = None,
    *,
    cache: ResponseCache | None = None,
) -> PaymentResult:
    """Spread a customer payment over their open invoices, oldest first."""

    value = _payment_amount(amount)
    if await session.get(Customer, customer_id) is None:
        raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    rows = await session.scalars(
        select(Invoice)
        .where(
            Invoice.customer_id == customer_id,
            Invoice.status == InvoiceStatus.ACTIVE.value,
            Invoice.balance > 0,
        )
        .order_by(Invoice.invoice_date.asc(), Invoice.id.asc())
    )
    result = _allocate(list(rows), value, method)
    await session.commit()
    if result.unallocated > 0:
        logger.info(
            "customer payment left unallocated customer=%s amount=%s",
            customer_id,
            result.unallocated,
        )
    await invalidate_views(cache, *VIEW_PATTERNS)
    return result


# ---------------------------------------------------------------------------
# artifacts and portal


def _check_format(fmt: str) -> str:
    if fmt not in ARTIFACT_FORMATS:
        raise ValidationError("format must be a4 or thermal", details={"format": fmt})
    return fmt


async def reprint_invoice(
    session: AsyncSession,
    invoice_id: int,
    fmt: str = "a4",
    *,
    renderer,
) -> str:
    """Render the stored invoice and remember the artifact path.

    Totals are passed through as stored; nothing is recomputed.
    """

    _check_format(fmt)
    invoice = await _load(session, invoice_id)
    path = renderer.render(serialize_invoice(invoice), fmt)
    invoice.pdf_path = path
    await session.commit()
    return path


async def create_portal_link(
    session: AsyncSession,
    invoice_id: int,
    *,
    base_url: str,
    settings: Settings | None = None,
) -> dict[str, str]:
    """Issue a public, time-boxed link for ``invoice_id``."""

    settings = settings or get_settings()
    invoice = await _load(session, invoice_id)
    token, expires = issue_token(settings.portal_token_ttl_days)
    invoice.portal_token = token
    invoice.portal_token_expires = expires
    await session.commit()
    url = f"{base_url.rstrip('/')}/api/public/invoices/{invoice_id}?token={token}"
    return {"url": url, "token": token, "expires_at": expires.isoformat()}


async def get_public_invoice(
    session: AsyncSession, invoice_id: int, token: str | None
) -> dict[str, Any]:
    """Return the invoice for a portal visitor holding a valid token."""

    invoice = await _load(session, invoice_id)
    check_token(invoice.portal_token, invoice.portal_token_expires, token)
    data = serialize_invoice(invoice)
    data.pop("pdf_path", None)
    data["outstanding"] = float(invoice.balance)
    return data


async def public_artifact(
    session: AsyncSession,
    invoice_id: int,
    token: str | None,
    fmt: str = "a4",
    *,
    renderer,
) -> str:
    """Render an artifact on demand for a portal visitor."""

    _check_format(fmt)
    invoice = await _load(session, invoice_id)
    check_token(invoice.portal_token, invoice.portal_token_expires, token)
    return renderer.render(serialize_invoice(invoice), fmt)


__all__ = [
    "Allocation",
    "PaymentResult",
    "cancel_invoice",
    "create_invoice",
    "create_portal_link",
    "delete_invoice",
    "get_invoice",
    "get_public_invoice",
    "list_invoices",
    "public_artifact",
    "record_customer_payment",
    "record_payment",
    "reprint_invoice",
    "serialize_invoice",
    "update_invoice",
]
