"""percolator/execution/capability.py

Capability (cap) tokens: bounded spend authorizations.

A cap lets the market program debit at most amount_max from the user's
escrow within ttl_ms. Minting here only derives the cap address and
assembles the router instruction; nothing is submitted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Optional, Tuple

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID

from percolator.addresses.seeds import find_cap_address, find_escrow_address
from percolator.config.settings import ProtocolConfig
from percolator.errors import (
    AuthorizationError,
    CAP_DEBIT_EXCEEDS_REMAINING,
    CAP_EXPIRED,
    ExpiryError,
    PercolatorError,
    ValidationError,
)
from percolator.execution.drafts import DraftKind, OperationDraft, encode_mint_cap, readonly, writable
from percolator.execution.models import Clock, now_ms
from percolator.fixed_point import require_u32, require_u64
from percolator.risk.guards import validate_cap_debit, validate_cap_expiry

logger = logging.getLogger(__name__)


NonceSource = Callable[[], int]


def time_nonce() -> int:
    """Millisecond wall-clock nonce.

    Two mints for the same (user, route, mint) inside one millisecond collide;
    pass an explicit nonce or another NonceSource when that can happen.
    """
    return now_ms()


@dataclass(frozen=True)
class CapabilityToken:
    """
    Client-side view of a cap account.

    Attributes:
        owner: User whose escrow the cap debits
        route: Route (market id) allowed to debit
        mint: Quote mint
        nonce: u64 uniqueness value, part of the address seeds
        amount_max: Hard ceiling, immutable once minted
        amount_used: Amount already debited, never decreasing
        ttl_ms: Lifetime from creation
        address: Derived cap address
        bump: Bump byte found for the address
        created_at_ms: Client clock at mint time
        draft: Unsigned router instruction creating the cap
    """
    owner: Pubkey
    route: Pubkey
    mint: Pubkey
    nonce: int
    amount_max: int
    amount_used: int
    ttl_ms: int
    address: Pubkey
    bump: int
    created_at_ms: int
    draft: OperationDraft

    @property
    def expires_at_ms(self) -> int:
        return self.created_at_ms + self.ttl_ms

    @property
    def remaining(self) -> int:
        return self.amount_max - self.amount_used

    def is_live(self, now: int) -> bool:
        return validate_cap_expiry(self.expires_at_ms, now)

    def debit(self, amount: int, now: int) -> "CapabilityToken":
        """
        Return a copy with amount added to amount_used.

        Raises:
            ValidationError: If amount is negative
            ExpiryError: If the cap expired at now
            AuthorizationError: If amount exceeds the remaining cap
        """
        if amount < 0:
            raise ValidationError(f"debit cannot be negative, got {amount}")
        if not self.is_live(now):
            raise ExpiryError(
                "cap expired",
                {"reason_code": CAP_EXPIRED, "expires_at_ms": self.expires_at_ms, "now": now},
            )
        if not validate_cap_debit(amount, self.amount_max, self.amount_used):
            raise AuthorizationError(
                "debit exceeds remaining cap",
                {"reason_code": CAP_DEBIT_EXCEEDS_REMAINING, "debit": amount, "remaining": self.remaining},
            )
        return replace(self, amount_used=self.amount_used + amount)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": str(self.owner),
            "route": str(self.route),
            "mint": str(self.mint),
            "nonce": self.nonce,
            "amount_max": self.amount_max,
            "amount_used": self.amount_used,
            "ttl_ms": self.ttl_ms,
            "address": str(self.address),
            "bump": self.bump,
            "expires_at_ms": self.expires_at_ms,
        }


def _build_cap(
    config: ProtocolConfig,
    user: Pubkey,
    route: Pubkey,
    mint: Pubkey,
    amount_max: int,
    ttl_ms: int,
    nonce: int,
    created_at_ms: int,
) -> CapabilityToken:
    require_u64("amount_max", amount_max)
    require_u64("nonce", nonce)
    require_u32("ttl_ms", ttl_ms)
    if not 0 < ttl_ms <= config.max_cap_ttl_ms:
        raise ValidationError(
            f"cap ttl_ms must be within 1..{config.max_cap_ttl_ms}, got {ttl_ms}",
            {"ttl_ms": ttl_ms},
        )

    cap_address, bump = find_cap_address(config, user, route, mint, nonce)
    escrow_address, _ = find_escrow_address(config, user, route, mint)

    instruction = Instruction(
        program_id=config.router_program_id,
        data=encode_mint_cap(nonce, amount_max, ttl_ms),
        accounts=[
            writable(user, signer=True),
            writable(cap_address),
            readonly(escrow_address),
            readonly(route),
            readonly(mint),
            readonly(SYSTEM_PROGRAM_ID),
        ],
    )

    return CapabilityToken(
        owner=user,
        route=route,
        mint=mint,
        nonce=nonce,
        amount_max=amount_max,
        amount_used=0,
        ttl_ms=ttl_ms,
        address=cap_address,
        bump=bump,
        created_at_ms=created_at_ms,
        draft=OperationDraft(kind=DraftKind.MINT_CAP, instruction=instruction),
    )


def mint_cap(
    config: ProtocolConfig,
    user: Pubkey,
    route: Pubkey,
    mint: Pubkey,
    amount_max: int,
    ttl_ms: int,
    nonce: Optional[int] = None,
    nonce_source: NonceSource = time_nonce,
    clock: Clock = now_ms,
) -> Tuple[Optional[CapabilityToken], Optional[PercolatorError]]:
    """
    Build a cap-mint draft.

    Args:
        config: Protocol configuration
        user: Cap owner and fee payer
        route: Route allowed to debit the cap
        mint: Quote mint
        amount_max: Scaled spend ceiling
        ttl_ms: Cap lifetime, at most config.max_cap_ttl_ms
        nonce: Explicit nonce; drawn from nonce_source when None
        nonce_source: Callable returning a u64 nonce
        clock: Millisecond clock used for created_at_ms

    Returns:
        Tuple of (token, error). Exactly one is None.
    """
    try:
        chosen_nonce = nonce if nonce is not None else nonce_source()
        token = _build_cap(config, user, route, mint, amount_max, ttl_ms, chosen_nonce, clock())
    except PercolatorError as e:
        logger.warning(f"[cap] Mint rejected: {e}")
        return None, e.at_step("mint_cap")

    logger.info(
        f"[cap] Prepared cap {token.address} max={token.amount_max} ttl={token.ttl_ms}ms nonce={token.nonce}"
    )
    return token, None
