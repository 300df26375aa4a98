"""
Order sizing against exchange market limits
"""

import math
from decimal import Decimal, ROUND_DOWN, ROUND_UP
from typing import Optional

from ..data.models import MarketLimits


class SizingError(ValueError):
    """Raised when no valid order quantity can be derived"""
    pass


def compute_notional(margin: float, leverage: float) -> float:
    """Position value in quote currency"""
    return margin * leverage


def cap_notional(notional: float, balance: float, fraction: float = 0.5) -> float:
    """Limit a single position to a fraction of the account balance"""
    max_allowed = balance * fraction
    return max_allowed if notional > max_allowed else notional


def _is_valid(quantity: float) -> bool:
    return math.isfinite(quantity) and quantity > 0


def round_to_step(quantity: float, step: Decimal, rounding: str = ROUND_DOWN) -> float:
    """Snap a quantity onto the exchange amount grid"""
    if step <= 0:
        return quantity
    units = (Decimal(str(quantity)) / step).quantize(Decimal(1), rounding=rounding)
    return float(units * step)


def size_order(notional: float, price: float, limits: Optional[MarketLimits] = None) -> float:
    """
    Convert a target notional into an order quantity.

    The raw quantity is raised to the market's minimum amount and minimum
    cost, then rounded to the amount step. Rounding goes down unless a
    minimum was applied or rounding down would break the minimum cost, in
    which case it goes up so the minimum holds.
    """
    if not price or not math.isfinite(price) or price <= 0:
        raise SizingError(f"Invalid price: {price}")

    quantity = notional / price
    if not _is_valid(quantity):
        raise SizingError(f"Invalid quantity calculated: {quantity} (notional: {notional}, price: {price})")

    if limits is None:
        return quantity

    raised = False
    if limits.min_amount and quantity < limits.min_amount:
        quantity = limits.min_amount
        raised = True

    if limits.min_cost and quantity * price < limits.min_cost:
        quantity = limits.min_cost / price
        raised = True

    if limits.amount_step:
        rounded = round_to_step(quantity, limits.amount_step, ROUND_UP if raised else ROUND_DOWN)
        # rounding down must not drop the order back under the minimum cost
        if limits.min_cost and rounded * price < limits.min_cost:
            rounded = round_to_step(quantity, limits.amount_step, ROUND_UP)
        quantity = rounded

    if not _is_valid(quantity):
        raise SizingError(f"Invalid quantity after adjustment: {quantity}")
    return quantity
