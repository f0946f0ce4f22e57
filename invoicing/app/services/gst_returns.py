"""GST return aggregation (GSTR-1, GSTR-3B, document and HSN summaries).

Each invoice in the period is resolved once into an :class:`InvoiceTaxView`:
``stored`` when every line carries its persisted tax breakup, ``derived``
when the breakup has to be recomputed from the line snapshot. Buckets and
summaries then read only from the views. Amounts stay unrounded while they
are accumulated and are rounded to paise when the report is emitted.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Iterable, Literal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, get_settings

from ..errors import ValidationError, integrity_warning
from ..models import Invoice, InvoiceStatus
from ..tax.gst_engine import compute_line
from ..tax.states import is_interstate, state_code
from ..utils.money import ZERO, q2

logger = logging.getLogger(__name__)

Source = Literal["stored", "derived"]


@dataclass(frozen=True)
class LineView:
    hsn_code: str
    name: str
    quantity: int
    rate: Decimal
    taxable_value: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal


@dataclass(frozen=True)
class InvoiceTaxView:
    """Per-line tax split of one invoice and where it came from."""

    source: Source
    invoice: Invoice
    interstate: bool
    pos: str
    lines: tuple[LineView, ...]

    def _sum(self, attr: str) -> Decimal:
        return sum((getattr(line, attr) for line in self.lines), ZERO)

    @property
    def taxable_value(self) -> Decimal:
        return self._sum("taxable_value")

    @property
    def cgst(self) -> Decimal:
        return self._sum("cgst")

    @property
    def sgst(self) -> Decimal:
        return self._sum("sgst")

    @property
    def igst(self) -> Decimal:
        return self._sum("igst")

    def by_rate(self) -> dict[Decimal, list[LineView]]:
        grouped: dict[Decimal, list[LineView]] = defaultdict(list)
        for line in self.lines:
            grouped[line.rate].append(line)
        return dict(grouped)


def resolve_tax_view(invoice: Invoice, seller_state: str) -> InvoiceTaxView:
    """Build the tax view for ``invoice``, deriving splits when not stored."""

    buyer_state = invoice.customer.state if invoice.customer else seller_state
    interstate = is_interstate(buyer_state, seller_state)
    pos = state_code(buyer_state) or state_code(seller_state) or ""

    if invoice.lines and all(line.has_breakup for line in invoice.lines):
        source: Source = "stored"
        splits = [
            (Decimal(l.taxable_value), Decimal(l.cgst), Decimal(l.sgst), Decimal(l.igst))
            for l in invoice.lines
        ]
    else:
        source = "derived"
        splits = []
        for line in invoice.lines:
            tax = compute_line(
                {
                    "rate": line.rate,
                    "quantity": line.quantity,
                    "tax_slab": line.tax_slab,
                    "price_type": line.price_type,
                    "discount": line.discount,
                    "discount_type": line.discount_type,
                },
                interstate=interstate,
            )
            splits.append((tax.taxable_value, tax.cgst, tax.sgst, tax.igst))

    lines = tuple(
        LineView(
            hsn_code=line.hsn_code or "NA",
            name=line.name or "",
            quantity=int(line.quantity or 0),
            rate=Decimal(line.tax_slab or 0),
            taxable_value=taxable,
            cgst=cgst,
            sgst=sgst,
            igst=igst,
        )
        for line, (taxable, cgst, sgst, igst) in zip(invoice.lines, splits)
    )
    return InvoiceTaxView(source, invoice, interstate, pos, lines)


def _is_export(invoice: Invoice) -> bool:
    info = invoice.export_info or {}
    return bool(info.get("is_export"))


def _rate(value: Decimal) -> Decimal:
    if value == value.to_integral_value():
        return value.quantize(Decimal("1"))
    return q2(value)


def _invoice_entry(view: InvoiceTaxView) -> dict[str, Any]:
    invoice = view.invoice
    items = []
    for num, (rate, lines) in enumerate(sorted(view.by_rate().items()), start=1):
        items.append(
            {
                "num": num,
                "itm_det": {
                    "rt": _rate(rate),
                    "txval": q2(sum((l.taxable_value for l in lines), ZERO)),
                    "iamt": q2(sum((l.igst for l in lines), ZERO)),
                    "camt": q2(sum((l.cgst for l in lines), ZERO)),
                    "samt": q2(sum((l.sgst for l in lines), ZERO)),
                },
            }
        )
    return {
        "inum": invoice.number,
        "idt": invoice.invoice_date.date().isoformat(),
        "val": q2(Decimal(invoice.grand_total)),
        "pos": view.pos,
        "rchrg": "N",
        "inv_typ": "R",
        "itms": items,
    }


class _Totals:
    """Unrounded running totals of taxable value and tax components."""

    __slots__ = ("taxable_value", "cgst", "sgst", "igst")

    def __init__(self) -> None:
        self.taxable_value = ZERO
        self.cgst = ZERO
        self.sgst = ZERO
        self.igst = ZERO

    def add(self, source) -> None:
        self.taxable_value += source.taxable_value
        self.cgst += source.cgst
        self.sgst += source.sgst
        self.igst += source.igst

    def rounded(self) -> dict[str, Decimal]:
        return {
            "taxable_value": q2(self.taxable_value),
            "cgst": q2(self.cgst),
            "sgst": q2(self.sgst),
            "igst": q2(self.igst),
            "total_tax": q2(self.cgst + self.sgst + self.igst),
        }


def build_gstr1(
    views: Iterable[InvoiceTaxView], settings: Settings, start: date
) -> tuple[dict[str, Any], dict[str, Decimal]]:
    """Bucket ``views`` into b2b, b2cl, b2cs and exp sections.

    Returns the GSTR-1 payload and the unrounded-then-rounded taxable value
    per bucket, which must add up to the period summary.
    """

    seller_code = state_code(settings.seller_state)
    threshold = Decimal(settings.b2cl_threshold)
    b2b: dict[str, list] = {}
    b2cl: dict[str, list] = {}
    b2cs: dict[tuple[str, Decimal], _Totals] = {}
    exp: dict[str, list] = {}
    bucket_taxable: dict[str, Decimal] = {"b2b": ZERO, "b2cl": ZERO, "b2cs": ZERO, "exp": ZERO}
    gross = ZERO

    for view in views:
        invoice = view.invoice
        gross += Decimal(invoice.grand_total)
        customer = invoice.customer
        if _is_export(invoice):
            exp_typ = "WPAY" if (invoice.export_info or {}).get("with_tax") else "WOPAY"
            entry = _invoice_entry(view)
            entry.pop("pos")
            info = invoice.export_info or {}
            entry.update(
                {
                    "sbnum": info.get("shipping_bill_no"),
                    "sbdt": info.get("shipping_bill_date"),
                    "sbpcode": info.get("port_code"),
                }
            )
            exp.setdefault(exp_typ, []).append(entry)
            bucket_taxable["exp"] += view.taxable_value
        elif customer is not None and customer.gstin:
            b2b.setdefault(customer.gstin, []).append(_invoice_entry(view))
            bucket_taxable["b2b"] += view.taxable_value
        elif Decimal(invoice.grand_total) > threshold:
            b2cl.setdefault(view.pos, []).append(_invoice_entry(view))
            bucket_taxable["b2cl"] += view.taxable_value
        else:
            for rate, lines in view.by_rate().items():
                totals = b2cs.setdefault((view.pos, rate), _Totals())
                for line in lines:
                    totals.add(line)
            bucket_taxable["b2cs"] += view.taxable_value

    b2cs_rows = []
    for (pos, rate), totals in sorted(b2cs.items()):
        rounded = totals.rounded()
        b2cs_rows.append(
            {
                "sply_ty": "INTRA" if pos == seller_code else "INTER",
                "pos": pos,
                "typ": "OE",
                "rt": _rate(rate),
                "txval": rounded["taxable_value"],
                "iamt": rounded["igst"],
                "camt": rounded["cgst"],
                "samt": rounded["sgst"],
            }
        )

    payload = {
        "gstin": settings.seller_gstin,
        "ret_period": start.strftime("%m%Y"),
        "gt": q2(gross),
        "cur_gt": q2(gross),
        "b2b": [{"ctin": ctin, "inv": inv} for ctin, inv in b2b.items()],
        "b2cl": [{"pos": pos, "inv": inv} for pos, inv in sorted(b2cl.items())],
        "b2cs": b2cs_rows,
        "exp": [{"exp_typ": typ, "inv": inv} for typ, inv in sorted(exp.items())],
    }
    reconciliation = {key: q2(value) for key, value in bucket_taxable.items()}
    reconciliation["taxable_value"] = q2(sum(bucket_taxable.values(), ZERO))
    return payload, reconciliation


def build_summary(views: list[InvoiceTaxView]) -> dict[str, Any]:
    """Sum-reduce the period, independent of any bucketing."""

    totals = _Totals()
    for view in views:
        totals.add(view)
    return {"total_invoices": len(views), "totals": totals.rounded()}


def build_gstr3b(views: Iterable[InvoiceTaxView]) -> dict[str, Decimal]:
    taxable = _Totals()
    zero_rated = _Totals()
    for view in views:
        (zero_rated if _is_export(view.invoice) else taxable).add(view)
    return {
        "outward_taxable_supplies": q2(taxable.taxable_value),
        "zero_rated_supplies": q2(zero_rated.taxable_value),
        "igst": q2(taxable.igst + zero_rated.igst),
        "cgst": q2(taxable.cgst + zero_rated.cgst),
        "sgst": q2(taxable.sgst + zero_rated.sgst),
        "exempt_nil": ZERO,
    }


def build_doc_summary(views: list[InvoiceTaxView], cancelled: int) -> dict[str, Any]:
    documents = []
    for view in views:
        invoice = view.invoice
        customer = invoice.customer
        documents.append(
            {
                "date": invoice.invoice_date.date().isoformat(),
                "number": invoice.number,
                "type": "B2B" if customer is not None and customer.gstin else "B2C",
                "party": {
                    "name": customer.display_name if customer else (invoice.guest_name or "Walk-in Customer"),
                    "gstin": (customer.gstin if customer else None) or "",
                    "state": (customer.state if customer else None) or "",
                },
                "place_of_supply": view.pos,
                "taxable_value": q2(view.taxable_value),
                "igst": q2(view.igst),
                "cgst": q2(view.cgst),
                "sgst": q2(view.sgst),
                "total": q2(Decimal(invoice.grand_total)),
                "status": invoice.status,
            }
        )
    numbers = sorted(doc["number"] for doc in documents)
    return {
        "documents": documents,
        "total_count": len(documents),
        "cancelled_count": cancelled,
        "first_number": numbers[0] if numbers else None,
        "last_number": numbers[-1] if numbers else None,
        "total_amount": q2(sum((Decimal(v.invoice.grand_total) for v in views), ZERO)),
    }


def build_hsn_summary(views: Iterable[InvoiceTaxView]) -> dict[str, Any]:
    """Group every line by HSN code; the reported rate is the highest seen."""

    rows: dict[str, dict[str, Any]] = {}
    for view in views:
        for line in view.lines:
            row = rows.get(line.hsn_code)
            if row is None:
                row = rows[line.hsn_code] = {
                    "hsn": line.hsn_code,
                    "description": line.name,
                    "quantity": 0,
                    "totals": _Totals(),
                    "rate": line.rate,
                }
            elif line.rate != row["rate"]:
                integrity_warning(
                    "tax rate drift within HSN code",
                    hsn=line.hsn_code,
                    rates=sorted({str(row["rate"]), str(line.rate)}),
                    invoice=view.invoice.number,
                )
                row["rate"] = max(row["rate"], line.rate)
            row["quantity"] += line.quantity
            row["totals"].add(line)

    out = []
    for hsn in sorted(rows):
        row = rows[hsn]
        rounded = row["totals"].rounded()
        out.append(
            {
                "hsn": hsn,
                "description": row["description"],
                "quantity": row["quantity"],
                "rate": _rate(row["rate"]),
                "taxable_value": rounded["taxable_value"],
                "igst": rounded["igst"],
                "cgst": rounded["cgst"],
                "sgst": rounded["sgst"],
            }
        )
    return {"count": len(out), "rows": out}


def _check_stored_totals(view: InvoiceTaxView) -> None:
    stored = Decimal(view.invoice.subtotal or 0)
    if abs(q2(view.taxable_value) - stored) > Decimal("0.01"):
        integrity_warning(
            "invoice subtotal differs from its lines",
            invoice=view.invoice.number,
            stored=str(stored),
            lines=str(q2(view.taxable_value)),
        )


async def generate_returns(
    session: AsyncSession,
    start: date,
    end: date,
    *,
    settings: Settings | None = None,
) -> dict[str, Any]:
    """Generate GSTR-1, GSTR-3B, document and HSN summaries for a period.

    Parameters
    ----------
    session:
        Active :class:`~sqlalchemy.ext.asyncio.AsyncSession`.
    start, end:
        Inclusive date range; the whole of ``end`` is covered.
    settings:
        Seller GSTIN, home state and B2C-large threshold.
    """

    if start > end:
        raise ValidationError(
            "from must not be after to", details={"from": start.isoformat(), "to": end.isoformat()}
        )
    settings = settings or get_settings()
    lower = datetime.combine(start, time.min)
    upper = datetime.combine(end, time.max)
    in_period = (Invoice.invoice_date >= lower, Invoice.invoice_date <= upper)

    rows = await session.scalars(
        select(Invoice)
        .where(*in_period, Invoice.status != InvoiceStatus.CANCELLED.value)
        .order_by(Invoice.invoice_date, Invoice.id)
    )
    cancelled = await session.scalar(
        select(func.count(Invoice.id)).where(
            *in_period, Invoice.status == InvoiceStatus.CANCELLED.value
        )
    )

    views = [resolve_tax_view(invoice, settings.seller_state) for invoice in rows]
    for view in views:
        _check_stored_totals(view)
    derived = sum(1 for view in views if view.source == "derived")
    logger.info(
        "gst returns %s..%s invoices=%d derived=%d", start, end, len(views), derived
    )

    gstr1, reconciliation = build_gstr1(views, settings, start)
    return {
        "period": {"from": start.isoformat(), "to": end.isoformat()},
        "gstr1": gstr1,
        "summary": build_summary(views),
        "reconciliation": reconciliation,
        "gstr3b": build_gstr3b(views),
        "doc_summary": build_doc_summary(views, int(cancelled or 0)),
        "hsn_summary": build_hsn_summary(views),
    }


__all__ = [
    "InvoiceTaxView",
    "LineView",
    "build_gstr1",
    "build_hsn_summary",
    "build_summary",
    "generate_returns",
    "resolve_tax_view",
]
