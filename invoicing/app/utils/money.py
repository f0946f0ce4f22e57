"""Currency coercion helpers.

Monetary values arrive as strings, floats or ``None`` from payloads and older
rows. They are coerced to :class:`~decimal.Decimal` once at the boundary and
kept exact until a figure is reported.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

ROUND = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: object, default: Decimal = ZERO) -> Decimal:
    """Return ``value`` as a ``Decimal``; blanks and ``None`` become ``default``."""

    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"not a number: {value!r}") from exc


def q2(value: Decimal) -> Decimal:
    """Round to paise using half-up rounding."""

    return value.quantize(ROUND, rounding=ROUND_HALF_UP)
