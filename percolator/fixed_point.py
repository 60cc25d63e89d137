"""percolator/fixed_point.py

Fixed-point conversion and integer arithmetic for prices and quantities.

All on-chain amounts are integers scaled by SCALE. Division truncates toward
zero, the same as the programs' own integer math, because floor versus round
changes settlement outcomes.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Union

from percolator.errors import ValidationError


# 6 decimal places, identical to the ledger programs
SCALE = 1_000_000
SCALE_DECIMALS = 6
BPS_DENOMINATOR = 10_000
U64_MAX = 2**64 - 1
U32_MAX = 2**32 - 1

Numeric = Union[int, str, float, Decimal]


def to_fixed(value: Numeric) -> int:
    """Convert a human-entered decimal into a scaled integer.

    Digits beyond SCALE_DECIMALS are truncated toward zero. Floats are read
    through their shortest repr so 0.1 converts to 100_000, not 99_999.

    Raises:
        ValidationError: If the value is negative, not finite, or unparsable.
    """
    if isinstance(value, bool):
        raise ValidationError(f"expected a decimal amount, got {value!r}")
    try:
        dec = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValidationError(f"cannot parse amount {value!r}") from e

    if not dec.is_finite():
        raise ValidationError(f"amount must be finite, got {value!r}")
    if dec < 0:
        raise ValidationError(f"amount must be non-negative, got {value!r}")

    scaled = (dec * SCALE).to_integral_value(rounding=ROUND_DOWN)
    return int(scaled)


def from_fixed(scaled: int) -> Decimal:
    """Scaled integer back to a Decimal for display."""
    return Decimal(scaled) / Decimal(SCALE)


def div_trunc(a: int, b: int) -> int:
    """Integer division truncating toward zero."""
    if b == 0:
        raise ZeroDivisionError("division by zero in fixed-point math")
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


def mul_div(a: int, b: int, c: int) -> int:
    """Compute a * b / c with a single truncation at the end."""
    return div_trunc(a * b, c)


def apply_bps(value: int, bps: int) -> int:
    return mul_div(value, bps, BPS_DENOMINATOR)


def require_u64(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if not 0 <= value <= U64_MAX:
        raise ValidationError(f"{name} {value} does not fit in u64")
    return value


def require_u32(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if not 0 <= value <= U32_MAX:
        raise ValidationError(f"{name} {value} does not fit in u32")
    return value
