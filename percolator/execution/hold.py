"""percolator/execution/hold.py

Hold reservations: time-bound locks on order intent.

The hold id is 32 random bytes so nobody can predict or front-run it before
submission. The hold account itself lives at a derived address keyed by that
id. This module also builds the commit and cancel-hold drafts that reference
a hold.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Tuple

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID

from percolator.addresses.seeds import (
    find_escrow_address,
    find_hold_address,
    find_position_address,
    find_route_state_address,
    find_vault_address,
)
from percolator.config.settings import ProtocolConfig
from percolator.errors import PercolatorError, ValidationError
from percolator.execution.drafts import (
    DraftKind,
    OperationDraft,
    encode_cancel_hold,
    encode_commit,
    encode_reserve,
    readonly,
    writable,
)
from percolator.execution.models import (
    HoldStatus,
    RandomSource,
    Side,
    default_random_source,
)
from percolator.fixed_point import require_u32, require_u64

logger = logging.getLogger(__name__)


HOLD_ID_LEN = 32
COMMITMENT_HASH_LEN = 32


@dataclass(frozen=True)
class HoldReceipt:
    """
    Client-side record of a hold reservation.

    status is the intended status only; once the draft is submitted the
    ledger owns the real one.
    """
    hold_id: Pubkey
    hold_address: Pubkey
    route_id: Pubkey
    instrument_index: int
    side: Side
    quantity: int
    limit_price: int
    ttl_ms: int
    commitment_hash: bytes
    draft: OperationDraft
    status: HoldStatus = HoldStatus.PENDING

    def with_status(self, status: HoldStatus) -> "HoldReceipt":
        return replace(self, status=status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hold_id": str(self.hold_id),
            "hold_address": str(self.hold_address),
            "route_id": str(self.route_id),
            "instrument_index": self.instrument_index,
            "side": self.side.name,
            "quantity": self.quantity,
            "limit_price": self.limit_price,
            "ttl_ms": self.ttl_ms,
            "commitment_hash": self.commitment_hash.hex(),
            "status": self.status.value,
        }


def _random_bytes(random_source: RandomSource, n: int, name: str) -> bytes:
    value = random_source(n)
    if not isinstance(value, (bytes, bytearray)) or len(value) != n:
        raise ValidationError(f"random source returned a bad {name}; expected {n} bytes")
    return bytes(value)


def reserve(
    config: ProtocolConfig,
    user: Pubkey,
    route: Pubkey,
    instrument_index: int,
    side: Side,
    quantity: int,
    limit_price: int,
    ttl_ms: int,
    commitment_hash: Optional[bytes] = None,
    random_source: RandomSource = default_random_source,
) -> Tuple[Optional[HoldReceipt], Optional[PercolatorError]]:
    """
    Build a reserve draft for a new hold.

    Args:
        config: Protocol configuration
        user: Order owner and fee payer
        route: Route (market id) to reserve on
        instrument_index: Instrument slot within the route (u16)
        side: BID or ASK
        quantity: Scaled quantity, must be > 0
        limit_price: Scaled limit price, 0 for market
        ttl_ms: Hold lifetime, at most config.max_hold_ttl_ms
        commitment_hash: 32 opaque bytes, generated when None
        random_source: Callable(n) -> n secure random bytes

    Returns:
        Tuple of (receipt, error). Exactly one is None.
    """
    try:
        if not isinstance(side, Side):
            raise ValidationError(f"side must be a Side, got {side!r}")
        require_u64("quantity", quantity)
        require_u64("limit_price", limit_price)
        if quantity <= 0:
            raise ValidationError("quantity must be > 0", {"quantity": quantity})
        require_u32("ttl_ms", ttl_ms)
        if not 0 < ttl_ms <= config.max_hold_ttl_ms:
            raise ValidationError(
                f"hold ttl_ms must be within 1..{config.max_hold_ttl_ms}, got {ttl_ms}",
                {"ttl_ms": ttl_ms},
            )

        if commitment_hash is None:
            commitment_hash = _random_bytes(random_source, COMMITMENT_HASH_LEN, "commitment_hash")
        elif not isinstance(commitment_hash, (bytes, bytearray)) or len(commitment_hash) != COMMITMENT_HASH_LEN:
            raise ValidationError(
                f"commitment_hash must be {COMMITMENT_HASH_LEN} bytes, got {commitment_hash!r}"
            )
        hold_id = Pubkey.from_bytes(_random_bytes(random_source, HOLD_ID_LEN, "hold_id"))

        hold_address, _ = find_hold_address(config, hold_id)
        route_state, _ = find_route_state_address(config, route)
        # position seeds also range-check instrument_index as u16
        find_position_address(config, user, route, instrument_index)

        instruction = Instruction(
            program_id=config.market_program_id,
            data=encode_reserve(
                bytes(hold_id),
                instrument_index,
                int(side),
                quantity,
                limit_price,
                ttl_ms,
                bytes(commitment_hash),
            ),
            accounts=[
                writable(user, signer=True),
                writable(route_state),
                writable(hold_address),
                readonly(SYSTEM_PROGRAM_ID),
            ],
        )
    except PercolatorError as e:
        logger.warning(f"[hold] Reserve rejected: {e}")
        return None, e.at_step("reserve")

    receipt = HoldReceipt(
        hold_id=hold_id,
        hold_address=hold_address,
        route_id=route,
        instrument_index=instrument_index,
        side=side,
        quantity=quantity,
        limit_price=limit_price,
        ttl_ms=ttl_ms,
        commitment_hash=bytes(commitment_hash),
        draft=OperationDraft(kind=DraftKind.RESERVE, instruction=instruction),
    )
    logger.info(f"[hold] Prepared hold {hold_id} qty={quantity} side={side.name} ttl={ttl_ms}ms")
    return receipt, None


def build_commit(
    config: ProtocolConfig,
    user: Pubkey,
    hold: HoldReceipt,
    cap_address: Pubkey,
    quote_mint: Pubkey,
) -> Tuple[Optional[OperationDraft], Optional[PercolatorError]]:
    """Build the commit draft that turns a hold into a position using a cap."""
    try:
        hold_address, _ = find_hold_address(config, hold.hold_id)
        route_state, _ = find_route_state_address(config, hold.route_id)
        position, _ = find_position_address(config, user, hold.route_id, hold.instrument_index)
        escrow, _ = find_escrow_address(config, user, hold.route_id, quote_mint)
        vault, _ = find_vault_address(config, quote_mint)
    except PercolatorError as e:
        logger.warning(f"[hold] Commit rejected: {e}")
        return None, e.at_step("commit")

    instruction = Instruction(
        program_id=config.market_program_id,
        data=encode_commit(bytes(hold.hold_id)),
        accounts=[
            writable(user, signer=True),
            writable(route_state),
            writable(hold_address),
            writable(cap_address),
            writable(escrow),
            writable(vault),
            writable(position),
            readonly(config.router_program_id),
            readonly(SYSTEM_PROGRAM_ID),
        ],
    )
    return OperationDraft(kind=DraftKind.COMMIT, instruction=instruction), None


def build_cancel_hold(
    config: ProtocolConfig,
    user: Pubkey,
    hold_id: Pubkey,
    route: Pubkey,
) -> Tuple[Optional[OperationDraft], Optional[PercolatorError]]:
    """Build the compensating draft that releases a hold before its ttl."""
    try:
        hold_address, _ = find_hold_address(config, hold_id)
        route_state, _ = find_route_state_address(config, route)
    except PercolatorError as e:
        logger.error(f"[hold] Cancel draft for {hold_id} could not be built: {e}")
        return None, e.at_step("cancel_hold")

    instruction = Instruction(
        program_id=config.market_program_id,
        data=encode_cancel_hold(bytes(hold_id)),
        accounts=[
            writable(user, signer=True),
            writable(route_state),
            writable(hold_address),
        ],
    )
    return OperationDraft(kind=DraftKind.CANCEL_HOLD, instruction=instruction), None
