"""percolator/addresses/seeds.py

Seed table for every derived account the router and market programs own.
Seed order and integer encodings must match the on-chain programs bit-for-bit.
"""

from __future__ import annotations

import struct
from typing import Tuple

from solders.pubkey import Pubkey

from percolator.addresses.derivation import derive
from percolator.config.settings import ProtocolConfig
from percolator.errors import ValidationError


VAULT_SEED = b"vault"
ESCROW_SEED = b"escrow"
CAP_SEED = b"cap"
PORTFOLIO_SEED = b"portfolio"
REGISTRY_SEED = b"registry"
ROUTE_SEED = b"route"
AUTHORITY_SEED = b"authority"
HOLD_SEED = b"hold"
POSITION_SEED = b"position"

U64_MAX = 2**64 - 1
U16_MAX = 2**16 - 1


def encode_u64_le(value: int) -> bytes:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"expected an integer seed, got {value!r}")
    if not 0 <= value <= U64_MAX:
        raise ValidationError(f"value {value} does not fit in u64")
    return struct.pack("<Q", value)


def encode_u16_le(value: int) -> bytes:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"expected an integer seed, got {value!r}")
    if not 0 <= value <= U16_MAX:
        raise ValidationError(f"value {value} does not fit in u16")
    return struct.pack("<H", value)


# Router program accounts

def find_vault_address(config: ProtocolConfig, mint: Pubkey) -> Tuple[Pubkey, int]:
    return derive([VAULT_SEED, mint], config.router_program_id)


def find_escrow_address(
    config: ProtocolConfig, user: Pubkey, route: Pubkey, mint: Pubkey
) -> Tuple[Pubkey, int]:
    return derive([ESCROW_SEED, user, route, mint], config.router_program_id)


def find_cap_address(
    config: ProtocolConfig, user: Pubkey, route: Pubkey, mint: Pubkey, nonce: int
) -> Tuple[Pubkey, int]:
    """Cap seeds end with the nonce as 8 little-endian bytes."""
    return derive(
        [CAP_SEED, user, route, mint, encode_u64_le(nonce)],
        config.router_program_id,
    )


def find_portfolio_address(config: ProtocolConfig, user: Pubkey) -> Tuple[Pubkey, int]:
    return derive([PORTFOLIO_SEED, user], config.router_program_id)


def find_registry_address(config: ProtocolConfig) -> Tuple[Pubkey, int]:
    return derive([REGISTRY_SEED], config.router_program_id)


# Market program accounts

def find_route_state_address(config: ProtocolConfig, market_id: Pubkey) -> Tuple[Pubkey, int]:
    return derive([ROUTE_SEED, market_id], config.market_program_id)


def find_route_authority_address(config: ProtocolConfig, route: Pubkey) -> Tuple[Pubkey, int]:
    return derive([AUTHORITY_SEED, route], config.market_program_id)


def find_hold_address(config: ProtocolConfig, hold_id: Pubkey) -> Tuple[Pubkey, int]:
    return derive([HOLD_SEED, hold_id], config.market_program_id)


def find_position_address(
    config: ProtocolConfig, trader: Pubkey, route: Pubkey, instrument_index: int
) -> Tuple[Pubkey, int]:
    """Position seeds end with the instrument index as 2 little-endian bytes."""
    return derive(
        [POSITION_SEED, trader, route, encode_u16_le(instrument_index)],
        config.market_program_id,
    )
