"""Change-making for the cash drawer.

Pure functions, no I/O. ``make_change`` proposes which notes and coins to hand
back for an amount, limited to what is physically available.
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Callable, Mapping

# Indian note and coin face values, largest first.
FACE_VALUES: tuple[int, ...] = (500, 200, 100, 50, 20, 10, 5, 2, 1)

# Mid-value notes handed out first to keep the drawer liquid.
PREFERRED_SMALL: tuple[int, ...] = (20, 10)

Breakdown = dict[int, int]


def normalize_counts(denominations: Mapping[object, object] | None) -> Breakdown:
    """Return ``{face_value: count}`` for every known face value.

    Keys may be ints or digit strings (JSON columns store strings). Unknown
    face values raise ``ValueError``; missing ones count as zero.
    """

    counts = {value: 0 for value in FACE_VALUES}
    for key, count in (denominations or {}).items():
        value = int(key)
        if value not in counts:
            raise ValueError(f"unknown denomination: {key!r}")
        counts[value] += int(count or 0)
    return counts


def total_of(denominations: Mapping[object, object] | None) -> int:
    """Return the cash value of ``denominations``."""

    return sum(value * count for value, count in normalize_counts(denominations).items())


def _greedy(amount: int, available: Breakdown, order: tuple[int, ...]) -> Breakdown | None:
    remaining = amount
    picked: Breakdown = {}
    for value in order:
        if remaining <= 0:
            break
        take = min(remaining // value, available.get(value, 0))
        if take > 0:
            picked[value] = take
            remaining -= take * value
    return picked if remaining == 0 else None


def single_denomination(amount: int, available: Breakdown) -> Breakdown | None:
    """Pay ``amount`` with one face value when enough units are on hand."""

    for value in FACE_VALUES:
        if amount % value == 0 and available.get(value, 0) >= amount // value:
            return {value: amount // value}
    return None


def prefer_small(amount: int, available: Breakdown) -> Breakdown | None:
    """Greedy pass trying 20s and 10s before the remaining values."""

    rest = tuple(v for v in FACE_VALUES if v not in PREFERRED_SMALL)
    return _greedy(amount, available, PREFERRED_SMALL + rest)


def largest_first(amount: int, available: Breakdown) -> Breakdown | None:
    """Standard greedy pass, largest face value first."""

    return _greedy(amount, available, FACE_VALUES)


def exact_search(amount: int, available: Breakdown) -> Breakdown | None:
    """Bounded search used when the greedy passes miss an exact combination.

    Walks face values largest first, trying the most units first, and prunes
    branches whose remaining stock cannot cover the rest of the amount.
    """

    values = tuple(v for v in FACE_VALUES if available.get(v, 0) > 0)
    counts = tuple(available[v] for v in values)
    reach = [0] * (len(values) + 1)
    for i in range(len(values) - 1, -1, -1):
        reach[i] = reach[i + 1] + values[i] * counts[i]

    @lru_cache(maxsize=None)
    def search(index: int, remaining: int) -> tuple[int, ...] | None:
        if remaining == 0:
            return ()
        if index == len(values) or reach[index] < remaining:
            return None
        value = values[index]
        for take in range(min(counts[index], remaining // value), -1, -1):
            rest = search(index + 1, remaining - take * value)
            if rest is not None:
                return (take,) + rest
        return None

    found = search(0, amount)
    if found is None:
        return None
    return {value: take for value, take in zip(values, found) if take}


PASSES: tuple[Callable[[int, Breakdown], Breakdown | None], ...] = (
    single_denomination,
    prefer_small,
    largest_first,
    exact_search,
)


def make_change(
    amount: int | Decimal, available: Mapping[object, object] | None
) -> Breakdown | None:
    """Return a breakdown paying exactly ``amount`` from ``available``.

    ``available`` is the drawer stock plus anything just tendered. Passes are
    tried in order: a single face value, the prefer-small greedy pass, the
    largest-first greedy pass and finally a bounded exact search. Zero change
    is ``{}``. ``None`` means no exact breakdown exists; a partial breakdown
    is never returned.

    Examples
    --------
    >>> make_change(30, {"20": 1, "10": 1})
    {20: 1, 10: 1}
    >>> make_change(60, {"50": 1, "20": 3})
    {20: 3}
    >>> make_change(3, {"2": 2}) is None
    True
    """

    amount = Decimal(amount)
    if amount < 0 or amount != amount.to_integral_value():
        return None
    due = int(amount)
    if due == 0:
        return {}
    stock = normalize_counts(available)
    if sum(v * c for v, c in stock.items()) < due:
        return None
    for attempt in PASSES:
        breakdown = attempt(due, stock)
        if breakdown is not None:
            return breakdown
    return None


__all__ = [
    "FACE_VALUES",
    "PREFERRED_SMALL",
    "make_change",
    "normalize_counts",
    "total_of",
]
