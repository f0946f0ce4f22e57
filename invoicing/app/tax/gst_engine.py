from __future__ import annotations

"""GST calculation for invoice lines.

This module centralises GST handling for invoices: inclusive/exclusive
pricing, pre-tax line discounts and the CGST/SGST versus IGST split. Line
values are kept unrounded; figures are rounded to ₹0.01 once, when totals are
aggregated.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Literal, Mapping

from ..utils.money import ZERO, q2, to_decimal
from .states import is_interstate

PriceType = Literal["Exclusive", "Inclusive"]
DiscountType = Literal["flat", "percent"]

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class LineTax:
    """Unrounded tax split for one invoice line."""

    taxable_value: Decimal
    cgst: Decimal = ZERO
    sgst: Decimal = ZERO
    igst: Decimal = ZERO

    @property
    def tax(self) -> Decimal:
        return self.cgst + self.sgst + self.igst

    @property
    def total(self) -> Decimal:
        return self.taxable_value + self.tax


@dataclass
class TaxTotals:
    """Per-line splits plus totals rounded once at aggregation."""

    interstate: bool
    lines: list[LineTax] = field(default_factory=list)
    subtotal: Decimal = ZERO
    cgst: Decimal = ZERO
    sgst: Decimal = ZERO
    igst: Decimal = ZERO

    @property
    def total_tax(self) -> Decimal:
        return self.cgst + self.sgst + self.igst

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.total_tax


def unit_taxable(rate: Decimal, tax_slab: Decimal, price_type: str) -> Decimal:
    """Return the exclusive unit value for ``rate`` quoted as ``price_type``."""

    if price_type == "Inclusive":
        return rate / (1 + tax_slab / HUNDRED)
    return rate


def line_discount(value: Decimal, discount: Decimal, discount_type: str) -> Decimal:
    """Return the discount amount for a line worth ``value`` before tax."""

    if discount <= 0:
        return ZERO
    if discount_type == "percent":
        amount = value * discount / HUNDRED
    else:
        amount = discount
    return min(amount, value)


def compute_line(line: Mapping[str, object], *, interstate: bool) -> LineTax:
    """Split a single line into taxable value and GST components.

    ``line`` should define ``quantity``, ``tax_slab`` and either ``rate`` or
    ``taxable_value`` (an exclusive unit value). ``price_type``, ``discount``
    and ``discount_type`` are optional.
    """

    quantity = to_decimal(line.get("quantity"))
    tax_slab = to_decimal(line.get("tax_slab"))
    if line.get("taxable_value") is not None:
        unit = to_decimal(line["taxable_value"])
    else:
        unit = unit_taxable(
            to_decimal(line.get("rate")),
            tax_slab,
            str(line.get("price_type") or "Exclusive"),
        )

    gross = unit * quantity
    taxable = gross - line_discount(
        gross,
        to_decimal(line.get("discount")),
        str(line.get("discount_type") or "flat"),
    )
    tax = taxable * tax_slab / HUNDRED
    if interstate:
        return LineTax(taxable_value=taxable, igst=tax)
    half = tax / 2
    return LineTax(taxable_value=taxable, cgst=half, sgst=half)


def compute_totals(
    lines: Iterable[Mapping[str, object]],
    buyer_state: str | None,
    seller_state: str | None,
) -> TaxTotals:
    """Compute per-line splits and rounded totals for ``lines``.

    Examples
    --------
    >>> totals = compute_totals(
    ...     [{"rate": 100, "quantity": 2, "tax_slab": 18}], "33-TN", "33-TN"
    ... )
    >>> totals.subtotal, totals.cgst, totals.sgst, totals.total
    (Decimal('200.00'), Decimal('18.00'), Decimal('18.00'), Decimal('236.00'))
    """

    interstate = is_interstate(buyer_state, seller_state)
    splits = [compute_line(line, interstate=interstate) for line in lines]

    # Sum unrounded, round once.
    return TaxTotals(
        interstate=interstate,
        lines=splits,
        subtotal=q2(sum((s.taxable_value for s in splits), ZERO)),
        cgst=q2(sum((s.cgst for s in splits), ZERO)),
        sgst=q2(sum((s.sgst for s in splits), ZERO)),
        igst=q2(sum((s.igst for s in splits), ZERO)),
    )
