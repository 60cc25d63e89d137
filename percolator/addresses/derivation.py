"""percolator/addresses/derivation.py

Program-derived address search.

A derived address is the first sha256 candidate, searching the bump byte
from 255 down to 0, that does not lie on the ed25519 curve. Off-curve
points have no private key, so the account can only ever be signed for by
its owning program. The ledger's verifier recomputes the same candidate, so
the byte layout here must match it exactly.
"""

from __future__ import annotations

import hashlib
import logging
from functools import lru_cache
from typing import Callable, Iterable, Optional, Sequence, Tuple, Union

from solders.pubkey import Pubkey

from percolator.errors import DerivationExhausted, ValidationError

logger = logging.getLogger(__name__)


PDA_MARKER = b"ProgramDerivedAddress"
MAX_SEED_LEN = 32
MAX_SEEDS = 16  # including the bump seed
MAX_BUMP = 255

Seed = Union[bytes, bytearray, Pubkey]
CurveOracle = Callable[[bytes], bool]


def is_on_curve(candidate: bytes) -> bool:
    """Check whether 32 bytes decode to a point on the ed25519 curve."""
    return Pubkey.from_bytes(candidate).is_on_curve()


def _seed_bytes(seed: Seed) -> bytes:
    if isinstance(seed, Pubkey):
        return bytes(seed)
    if isinstance(seed, (bytes, bytearray)):
        return bytes(seed)
    raise ValidationError(f"seed must be bytes or Pubkey, got {type(seed).__name__}")


def normalize_seeds(seeds: Iterable[Seed]) -> Tuple[bytes, ...]:
    """Convert seeds to bytes and enforce the ledger's seed limits."""
    normalized = tuple(_seed_bytes(s) for s in seeds)
    if len(normalized) + 1 > MAX_SEEDS:
        raise ValidationError(
            f"too many seeds: {len(normalized)} (max {MAX_SEEDS - 1} plus bump)",
            {"seed_count": len(normalized)},
        )
    for i, seed in enumerate(normalized):
        if len(seed) > MAX_SEED_LEN:
            raise ValidationError(
                f"seed {i} is {len(seed)} bytes (max {MAX_SEED_LEN})",
                {"seed_index": i, "seed_len": len(seed)},
            )
    return normalized


def candidate_address(seeds: Sequence[bytes], bump: int, owner_module_id: Pubkey) -> bytes:
    """Hash seeds, bump and owner into a 32-byte candidate."""
    h = hashlib.sha256()
    for seed in seeds:
        h.update(seed)
    h.update(bytes([bump]))
    h.update(bytes(owner_module_id))
    h.update(PDA_MARKER)
    return h.digest()


def _search(
    seeds: Tuple[bytes, ...],
    owner_module_id: Pubkey,
    on_curve: CurveOracle,
) -> Tuple[Pubkey, int]:
    for bump in range(MAX_BUMP, -1, -1):
        candidate = candidate_address(seeds, bump, owner_module_id)
        if not on_curve(candidate):
            return Pubkey.from_bytes(candidate), bump
    logger.error(f"[pda] No off-curve bump for owner {owner_module_id}")
    raise DerivationExhausted(
        "no bump in 0..255 yields an off-curve address",
        {"owner": owner_module_id, "seed_count": len(seeds)},
    )


@lru_cache(maxsize=4096)
def _derive_cached(seeds: Tuple[bytes, ...], owner_module_id: Pubkey) -> Tuple[Pubkey, int]:
    return _search(seeds, owner_module_id, is_on_curve)


def derive(
    seeds: Iterable[Seed],
    owner_module_id: Pubkey,
    on_curve: Optional[CurveOracle] = None,
) -> Tuple[Pubkey, int]:
    """
    Derive the program address for seeds under an owning module.

    Args:
        seeds: Ordered seeds (bytes or Pubkey), each at most 32 bytes
        owner_module_id: Program id that owns the derived account
        on_curve: Optional curve oracle; defaults to the ed25519 check.
            Results are memoized only for the default oracle.

    Returns:
        Tuple of (address, bump)

    Raises:
        ValidationError: If the seeds break the ledger's limits
        DerivationExhausted: If every bump lands on the curve
    """
    normalized = normalize_seeds(seeds)
    if on_curve is None:
        return _derive_cached(normalized, owner_module_id)
    return _search(normalized, owner_module_id, on_curve)


def clear_derivation_cache() -> None:
    _derive_cached.cache_clear()
