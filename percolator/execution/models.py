"""percolator/execution/models.py

Order-side and status enums, the order parameters the saga consumes, and
the injectable clock and random sources.
"""

import secrets
import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Callable, Optional, Union


RandomSource = Callable[[int], bytes]
Clock = Callable[[], int]


def now_ms() -> int:
    """Wall-clock time in milliseconds."""
    return time.time_ns() // 1_000_000


def default_random_source(n: int) -> bytes:
    return secrets.token_bytes(n)


class Side(IntEnum):
    """Order side as encoded on the wire (u8)."""
    BID = 0  # long
    ASK = 1  # short

    @property
    def is_short(self) -> bool:
        return self is Side.ASK


class HoldStatus(Enum):
    """Hold lifecycle. Transitions after submission belong to the ledger."""
    PENDING = "Pending"
    COMMITTED = "Committed"
    CANCELLED = "Cancelled"
    EXPIRED = "Expired"


@dataclass(frozen=True)
class PlaceOrderParams:
    """
    Human-entered order parameters.

    Attributes:
        side: BID (long) or ASK (short)
        quantity: Decimal quantity, converted to fixed point by the saga
        limit_price: Decimal limit price; None for a market order (encoded as 0)
        instrument_index: Instrument slot within the route
        leverage: Requested leverage; enables the warmup guard when set
        commitment_hash: Optional 32-byte commitment, generated when absent
    """
    side: Side
    quantity: Union[int, str, Decimal]
    limit_price: Optional[Union[int, str, Decimal]] = None
    instrument_index: int = 0
    leverage: Optional[Union[int, float]] = None
    commitment_hash: Optional[bytes] = None
