"""percolator/risk/margin.py

Margin and liquidation math on scaled integers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from percolator.errors import ValidationError
from percolator.execution.models import Side
from percolator.fixed_point import BPS_DENOMINATOR, SCALE, apply_bps, mul_div
from percolator.ingestion.route_layout import RouteHeader


def calculate_position_value(quantity: int, price: int) -> int:
    """Notional value of quantity at price, both scaled by SCALE."""
    return mul_div(quantity, price, SCALE)


def calculate_required_margin(position_value: int, initial_margin_bps: int) -> int:
    """Initial margin required for a position value."""
    return apply_bps(position_value, initial_margin_bps)


def calculate_liquidation_price(entry_price: int, side: Side, maintenance_margin_bps: int) -> int:
    """
    Price at which equity falls to the maintenance margin.

    Long: entry * (1 - mm). Short: entry * (1 + mm). The bps are applied in
    the numerator so a sub-100% margin never truncates to zero.

    The result truncates toward zero. A long is strictly below entry and a
    short strictly above it only when entry_price * maintenance_margin_bps
    >= 10_000; below that the margin term truncates away and the result
    equals entry_price.

    Args:
        entry_price: Scaled entry price
        side: Position side
        maintenance_margin_bps: Maintenance margin in basis points

    Returns:
        Scaled liquidation price

    Raises:
        ValidationError: If maintenance_margin_bps is outside 0..10_000
    """
    if not 0 <= maintenance_margin_bps <= BPS_DENOMINATOR:
        raise ValidationError(
            f"maintenance_margin_bps must be within 0..{BPS_DENOMINATOR}, got {maintenance_margin_bps}",
            {"maintenance_margin_bps": maintenance_margin_bps},
        )
    if side is Side.BID:
        return mul_div(entry_price, BPS_DENOMINATOR - maintenance_margin_bps, BPS_DENOMINATOR)
    return mul_div(entry_price, BPS_DENOMINATOR + maintenance_margin_bps, BPS_DENOMINATOR)


@dataclass(frozen=True)
class MarginRequirement:
    position_value: int
    initial_margin: int
    liquidation_price: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position_value": self.position_value,
            "initial_margin": self.initial_margin,
            "liquidation_price": self.liquidation_price,
        }


def route_margin_requirement(header: RouteHeader, side: Side, quantity: int, entry_price: int) -> MarginRequirement:
    """Margin and liquidation figures for an order using the route's margin parameters."""
    value = calculate_position_value(quantity, entry_price)
    return MarginRequirement(
        position_value=value,
        initial_margin=calculate_required_margin(value, header.initial_margin_bps),
        liquidation_price=calculate_liquidation_price(entry_price, side, header.maintenance_margin_bps),
    )
