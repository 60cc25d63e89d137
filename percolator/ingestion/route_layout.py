"""
percolator/ingestion/route_layout.py

Route state header layout (market program).

Only the header is decoded. check_warmup_guards reads the warmup flags;
validate_route_price and route_margin_requirement read the band and margin
bps. Bytes after the header are ignored.
"""
import struct
from dataclasses import dataclass
from typing import Any, Dict

from percolator.errors import ValidationError


ROUTE_DISCRIMINATOR = b"PRCROUTE"

ROUTE_HEADER_LAYOUT = struct.Struct(
    '<'
    '8s'      # discriminator: 8 bytes
    'H'       # version: u16
    'B'       # warmup_enabled: u8 (bool)
    'B'       # short_enabled: u8 (bool)
    'H'       # short_leverage_cap: u16 (whole x)
    'H'       # price_band_bps: u16
    'H'       # initial_margin_bps: u16
    'H'       # maintenance_margin_bps: u16
)


@dataclass(frozen=True)
class RouteHeader:
    """Decoded route header."""
    version: int
    warmup_enabled: bool
    short_enabled: bool
    short_leverage_cap: int
    price_band_bps: int
    initial_margin_bps: int
    maintenance_margin_bps: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "warmup_enabled": self.warmup_enabled,
            "short_enabled": self.short_enabled,
            "short_leverage_cap": self.short_leverage_cap,
            "price_band_bps": self.price_band_bps,
            "initial_margin_bps": self.initial_margin_bps,
            "maintenance_margin_bps": self.maintenance_margin_bps,
        }


def decode_route_header(data: bytes) -> RouteHeader:
    """
    Decode a route header from raw account data.

    Raises:
        ValidationError: If the data is too short or the discriminator is wrong
    """
    if len(data) < ROUTE_HEADER_LAYOUT.size:
        raise ValidationError(
            f"route header needs {ROUTE_HEADER_LAYOUT.size} bytes, got {len(data)}"
        )

    (
        discriminator,
        version,
        warmup_enabled,
        short_enabled,
        short_leverage_cap,
        price_band_bps,
        initial_margin_bps,
        maintenance_margin_bps,
    ) = ROUTE_HEADER_LAYOUT.unpack_from(data, 0)

    if discriminator != ROUTE_DISCRIMINATOR:
        raise ValidationError(
            "account is not a route header",
            {"discriminator": discriminator.hex()},
        )

    return RouteHeader(
        version=version,
        warmup_enabled=bool(warmup_enabled),
        short_enabled=bool(short_enabled),
        short_leverage_cap=short_leverage_cap,
        price_band_bps=price_band_bps,
        initial_margin_bps=initial_margin_bps,
        maintenance_margin_bps=maintenance_margin_bps,
    )


def encode_route_header(header: RouteHeader) -> bytes:
    """Inverse of decode_route_header, for fixtures and dry runs."""
    return ROUTE_HEADER_LAYOUT.pack(
        ROUTE_DISCRIMINATOR,
        header.version,
        int(header.warmup_enabled),
        int(header.short_enabled),
        header.short_leverage_cap,
        header.price_band_bps,
        header.initial_margin_bps,
        header.maintenance_margin_bps,
    )
