# Overview: Monetary rounding helpers shared by document totals, balances, and reports.

"""
Money arithmetic.

Amounts are stored as floats (the schema mirrors the legacy database), but
every computation goes through Decimal and is rounded half-up to two places
at each aggregation step. Rounding only at the end drifts from what the
documents printed so far, so callers must round intermediate sums too.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    # str() first so 0.1 becomes Decimal("0.1"), not its binary expansion
    return Decimal(str(value))


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable) -> Decimal:
    return round_money(sum((to_decimal(v) for v in values), ZERO))


def as_float(value) -> float:
    return float(round_money(value))
