"""Utilities for managing invoice counters."""

from sqlalchemy import Integer, cast, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Invoice

_UPSERT = text(
    """
    INSERT INTO invoice_counters (series, current)
    VALUES (:series, :issued + 1)
    ON CONFLICT (series)
    DO UPDATE SET current = CASE
        WHEN invoice_counters.current > :issued THEN invoice_counters.current
        ELSE :issued
    END + 1
    RETURNING current
    """
)


def build_series(customer_type: str | None) -> str:
    """Return the number prefix for a buyer classification, e.g. ``B2B``."""

    return (customer_type or "B2C").strip().upper()


def format_number(series: str, seq: int) -> str:
    """Format ``seq`` as ``SERIES-NN`` with at least two digits."""

    return f"{series}-{seq:02d}"


async def last_issued(session: AsyncSession, series: str) -> int:
    """Return the highest numeric suffix already issued under ``series``."""

    suffix = func.substr(Invoice.number, len(series) + 2)
    result = await session.scalar(
        select(func.max(cast(suffix, Integer))).where(
            Invoice.number.like(f"{series}-%")
        )
    )
    return int(result or 0)


async def next_invoice_number(session: AsyncSession, customer_type: str | None) -> str:
    """Return the next invoice number for ``customer_type``.

    The counter row for the series is created if missing and incremented in a
    single upsert, so concurrent callers serialise on the row instead of
    reading the same last number. The counter never falls behind numbers
    already present in ``invoices``. The increment joins the caller's
    transaction; a rollback releases the number again.
    """

    series = build_series(customer_type)
    issued = await last_issued(session, series)
    result = await session.execute(_UPSERT, {"series": series, "issued": issued})
    current = result.scalar_one()
    return format_number(series, current)
