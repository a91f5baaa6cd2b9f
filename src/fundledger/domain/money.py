"""Decimal helpers for cent-precision money."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# Store-side comparisons run on SQLite REAL storage; half a cent absorbs float noise.
STORE_EPSILON = Decimal("0.005")

Number = Union[Decimal, int, float, str]


def to_money(value: Number | None) -> Decimal:
    """Quantize *value* to cents using half-up rounding."""

    if value is None:
        return ZERO
    if isinstance(value, float):
        value = repr(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money_sum(values: Iterable[Number]) -> Decimal:
    return to_money(sum((to_money(v) for v in values), ZERO))


def within_tolerance(actual: Number, expected: Number, tolerance: Number = CENT) -> bool:
    """Return True when two amounts differ by no more than *tolerance*."""

    return abs(to_money(actual) - to_money(expected)) <= Decimal(str(tolerance))


def split_evenly(total: Number, parts: int) -> list[Decimal]:
    """Split *total* into *parts* cent amounts; the last part takes the remainder."""

    if parts <= 0:
        raise ValueError("parts must be positive")
    amount = to_money(total)
    share = (amount / parts).quantize(CENT, rounding=ROUND_HALF_UP)
    shares = [share] * (parts - 1)
    shares.append(amount - share * (parts - 1))
    return shares
