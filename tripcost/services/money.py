"""Money / rounding helpers.

Centralized so expense costs, report totals and usage sums use identical
rounding semantics.
"""

from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP


def round2(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def round_distance(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.001"), rounding=ROUND_HALF_UP))


def compute_total_cost(distance: float, rate: float) -> float:
    """Expense cost: distance (km) times rate (currency per km)."""
    return round2(Decimal(str(distance)) * Decimal(str(rate)))
