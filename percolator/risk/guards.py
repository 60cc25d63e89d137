"""percolator/risk/guards.py

Stateless validation predicates for caps, price bands and warmup gating.

The predicates are pure. check_warmup_guards is the only one that reads
from the ledger, and it issues exactly one account read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from solders.pubkey import Pubkey

from percolator.addresses.seeds import find_route_state_address
from percolator.config.settings import ProtocolConfig
from percolator.errors import (
    NotFoundError,
    PercolatorError,
    ValidationError,
    WARMUP_SHORT_LEVERAGE_CAP,
    WARMUP_SHORTS_DISABLED,
)
from percolator.execution.models import Side
from percolator.fixed_point import BPS_DENOMINATOR, mul_div
from percolator.ingestion.accounts import AccountReader
from percolator.ingestion.route_layout import RouteHeader, decode_route_header

logger = logging.getLogger(__name__)


def validate_cap_expiry(expiry: int, now: int) -> bool:
    """A cap is live only strictly before its expiry."""
    return now < expiry


def validate_cap_debit(debit: int, cap_max: int, cap_used: int) -> bool:
    """Debit may use up the remaining cap exactly, never more."""
    return debit <= cap_max - cap_used


def price_band_bounds(oracle_price: int, band_bps: int) -> Tuple[int, int]:
    """
    Compute (lower, upper) around the oracle price.

    Both bounds come straight from oracle_price with one truncating division
    each, so fractional basis points are never dropped before use.
    """
    if band_bps < 0:
        raise ValidationError(f"band_bps cannot be negative, got {band_bps}", {"band_bps": band_bps})
    upper = mul_div(oracle_price, BPS_DENOMINATOR + band_bps, BPS_DENOMINATOR)
    lower = mul_div(oracle_price, BPS_DENOMINATOR, BPS_DENOMINATOR + band_bps)
    return lower, upper


def validate_price_bands(price: int, oracle_price: int, band_bps: int) -> bool:
    lower, upper = price_band_bounds(oracle_price, band_bps)
    return lower <= price <= upper


def validate_route_price(header: RouteHeader, price: int, oracle_price: int) -> bool:
    """Band check using the route's own price_band_bps."""
    return validate_price_bands(price, oracle_price, header.price_band_bps)


@dataclass(frozen=True)
class WarmupDecision:
    allowed: bool
    reason: Optional[str] = None
    reason_code: Optional[str] = None


def evaluate_warmup(header: RouteHeader, side: Side, leverage: Union[int, float]) -> WarmupDecision:
    """Apply warmup rules to an already decoded route header."""
    if not header.warmup_enabled or not side.is_short:
        return WarmupDecision(allowed=True)

    if not header.short_enabled:
        return WarmupDecision(
            allowed=False,
            reason="Shorts disabled during warmup period",
            reason_code=WARMUP_SHORTS_DISABLED,
        )
    if leverage > header.short_leverage_cap:
        return WarmupDecision(
            allowed=False,
            reason=f"Short leverage capped at {header.short_leverage_cap}x during warmup",
            reason_code=WARMUP_SHORT_LEVERAGE_CAP,
        )
    return WarmupDecision(allowed=True)


def check_warmup_guards(
    config: ProtocolConfig,
    reader: AccountReader,
    route: Pubkey,
    side: Side,
    leverage: Union[int, float],
) -> Tuple[Optional[WarmupDecision], Optional[PercolatorError]]:
    """
    Check warmup gating for an order on a route.

    Args:
        config: Protocol configuration
        reader: Account reader used for the single header fetch
        route: Market id of the route
        side: Order side
        leverage: Requested leverage

    Returns:
        Tuple of (decision, error). On NotFound, network or decode failure
        decision is None and error is set.
    """
    try:
        route_state, _ = find_route_state_address(config, route)
        data = reader.fetch_account(route_state)
        header = decode_route_header(data)
    except NotFoundError as e:
        logger.warning(f"[guards] Route header {route} not found")
        return None, e.at_step("check_warmup_guards")
    except PercolatorError as e:
        logger.warning(f"[guards] Route header {route} unreadable: {e}")
        return None, e.at_step("check_warmup_guards")

    decision = evaluate_warmup(header, side, leverage)
    if not decision.allowed:
        logger.warning(f"[guards] REJECT {decision.reason_code}: {decision.reason}")
    return decision, None
