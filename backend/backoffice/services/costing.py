# Overview: Weighted-average cost computation (pure, no I/O).

"""
Costing rules (authoritative)

- Money is integer cents; the stored scale is 2 decimal places.
- Weighted-average cost (WAC) of a product after receiving a lot:
      (stock * cost + qty * unit_cost) / (stock + qty)
  rounded to the nearest cent, half-up, so repeated postings do not drift.
- If stock + qty == 0 the product had no valued stock; the lot cost wins.
- Selling price is never averaged: a purchase line carrying a sell price
  replaces the product price outright.
"""

from __future__ import annotations


def _round_half_up_div(numerator: int, denominator: int) -> int:
    # Both operands are non-negative here
    return (numerator + denominator // 2) // denominator


def compute_weighted_average_cost(
    current_stock: int,
    current_cost_cents: int,
    incoming_qty: int,
    incoming_unit_cost_cents: int,
) -> int:
    """
    Blend the cost of an incoming lot into the cost of the units on hand.

    Args:
        current_stock: Units on hand before the lot (>= 0)
        current_cost_cents: Current weighted-average unit cost (>= 0)
        incoming_qty: Units in the lot (> 0)
        incoming_unit_cost_cents: Unit cost of the lot (>= 0)

    Returns:
        New weighted-average unit cost in cents

    Raises:
        ValueError: If an argument is out of range
    """
    if current_stock < 0:
        raise ValueError("current_stock must be >= 0")
    if current_cost_cents < 0:
        raise ValueError("current_cost_cents must be >= 0")
    if incoming_qty <= 0:
        raise ValueError("incoming_qty must be > 0")
    if incoming_unit_cost_cents < 0:
        raise ValueError("incoming_unit_cost_cents must be >= 0")

    total_units = current_stock + incoming_qty
    if total_units == 0:
        return incoming_unit_cost_cents

    total_value = current_stock * current_cost_cents + incoming_qty * incoming_unit_cost_cents
    return _round_half_up_div(total_value, total_units)


def resolve_sell_price(current_price_cents: int, line_sell_price_cents: int | None) -> tuple[int, bool]:
    """
    Apply the replace-if-present selling price policy.

    Returns (new_price_cents, changed).
    """
    if line_sell_price_cents is None:
        return current_price_cents, False
    if line_sell_price_cents == current_price_cents:
        return current_price_cents, False
    return line_sell_price_cents, True
