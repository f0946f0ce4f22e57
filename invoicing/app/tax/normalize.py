from __future__ import annotations

"""Canonical catalog rates.

The catalog stores every rate exclusive of tax. Rates typed in inclusive of
tax are converted once, at item creation or by the data migration.
"""

from decimal import Decimal

from ..utils.money import q2, to_decimal


def normalize_rate(
    rate: object,
    tax_slab: object = 0,
    input_type: str = "Exclusive",
) -> Decimal:
    """Return ``rate`` as a canonical exclusive rate rounded to paise.

    Parameters
    ----------
    rate:
        Entered unit price.
    tax_slab:
        GST slab as a percentage, e.g. ``18``.
    input_type:
        ``"Inclusive"`` when ``rate`` already contains tax. Any other value
        leaves the rate as is, so the function is idempotent on exclusive
        rates.
    """

    value = to_decimal(rate)
    slab = to_decimal(tax_slab)
    if input_type == "Inclusive" and slab > 0:
        return q2(value / (1 + slab / Decimal("100")))
    return q2(value)
