"""percolator/execution/drafts.py

Unsigned operation drafts and their payload encodings.

A draft is one instruction: a target program id, ordered account metas
(address, is_writable, is_signer) and an opaque payload. Drafts carry no
execution guarantee until an external signer signs and submits them.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Dict, List, Tuple

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey


class DraftKind(Enum):
    RESERVE = "reserve"
    MINT_CAP = "mint_cap"
    COMMIT = "commit"
    CANCEL_HOLD = "cancel_hold"


class MarketInstruction(IntEnum):
    RESERVE = 0
    COMMIT = 1
    CANCEL_HOLD = 2


class RouterInstruction(IntEnum):
    MINT_CAP = 0


# Payload layouts (little-endian, packed)
RESERVE_LAYOUT = struct.Struct(
    '<'
    'B'       # tag: u8
    '32s'     # hold_id
    'H'       # instrument_index: u16
    'B'       # side: u8
    'Q'       # quantity: u64 (scaled)
    'Q'       # limit_price: u64 (scaled, 0 = market)
    'I'       # ttl_ms: u32
    '32s'     # commitment_hash
)

MINT_CAP_LAYOUT = struct.Struct(
    '<'
    'B'       # tag: u8
    'Q'       # nonce: u64
    'Q'       # amount_max: u64 (scaled)
    'I'       # ttl_ms: u32
)

HOLD_REF_LAYOUT = struct.Struct(
    '<'
    'B'       # tag: u8
    '32s'     # hold_id
)


def writable(pubkey: Pubkey, signer: bool = False) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=signer, is_writable=True)


def readonly(pubkey: Pubkey, signer: bool = False) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=signer, is_writable=False)


@dataclass(frozen=True)
class OperationDraft:
    """
    One unsigned instruction plus the role it plays in an order flow.

    Attributes:
        kind: Which step of the order flow this draft performs
        instruction: solders Instruction (program id, account metas, payload)
    """
    kind: DraftKind
    instruction: Instruction

    @property
    def program_id(self) -> Pubkey:
        return self.instruction.program_id

    @property
    def payload(self) -> bytes:
        return bytes(self.instruction.data)

    @property
    def accounts(self) -> List[Tuple[Pubkey, bool, bool]]:
        """Account list as (address, is_writable, is_signer) tuples."""
        return [(m.pubkey, m.is_writable, m.is_signer) for m in self.instruction.accounts]

    def references(self, address: Pubkey) -> bool:
        return any(m.pubkey == address for m in self.instruction.accounts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "program_id": str(self.program_id),
            "accounts": [
                {"address": str(a), "is_writable": w, "is_signer": s}
                for a, w, s in self.accounts
            ],
            "payload_hex": self.payload.hex(),
        }


def encode_reserve(
    hold_id: bytes,
    instrument_index: int,
    side: int,
    quantity: int,
    limit_price: int,
    ttl_ms: int,
    commitment_hash: bytes,
) -> bytes:
    return RESERVE_LAYOUT.pack(
        MarketInstruction.RESERVE,
        hold_id,
        instrument_index,
        side,
        quantity,
        limit_price,
        ttl_ms,
        commitment_hash,
    )


def encode_mint_cap(nonce: int, amount_max: int, ttl_ms: int) -> bytes:
    return MINT_CAP_LAYOUT.pack(RouterInstruction.MINT_CAP, nonce, amount_max, ttl_ms)


def encode_commit(hold_id: bytes) -> bytes:
    return HOLD_REF_LAYOUT.pack(MarketInstruction.COMMIT, hold_id)


def encode_cancel_hold(hold_id: bytes) -> bytes:
    return HOLD_REF_LAYOUT.pack(MarketInstruction.CANCEL_HOLD, hold_id)
