"""percolator/config/settings.py

Immutable protocol configuration.

The two module ids are the owner inputs to address derivation. They are
fixed for the process lifetime and passed explicitly to every builder.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from solders.pubkey import Pubkey

from percolator.errors import ConfigError, ValidationError


DEFAULT_ROUTER_PROGRAM_ID = "RoutR1VdCpHqj89WEMJhb6TkGT9cPfr1rVjhM3e2YQr"
DEFAULT_MARKET_PROGRAM_ID = "PaddZ6PsDLh2X6HzEoqxFDMqCVcJXDKCNEYuPzUvGPk"

# Protocol maxima enforced by the on-chain programs
MAX_HOLD_TTL_MS = 60_000
MAX_CAP_TTL_MS = 120_000

DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"


@dataclass(frozen=True)
class ProtocolConfig:
    """
    Process-wide protocol configuration.

    Attributes:
        router_program_id: Owner of vault, escrow, cap, portfolio and registry accounts
        market_program_id: Owner of route, authority, hold and position accounts
        max_hold_ttl_ms: Upper bound for hold ttl
        max_cap_ttl_ms: Upper bound for cap ttl
        rpc_url: JSON-RPC endpoint for account reads
        rpc_timeout_ms: Per-request timeout for account reads
    """
    router_program_id: Pubkey = Pubkey.from_string(DEFAULT_ROUTER_PROGRAM_ID)
    market_program_id: Pubkey = Pubkey.from_string(DEFAULT_MARKET_PROGRAM_ID)
    max_hold_ttl_ms: int = MAX_HOLD_TTL_MS
    max_cap_ttl_ms: int = MAX_CAP_TTL_MS
    rpc_url: str = DEFAULT_RPC_URL
    rpc_timeout_ms: int = 5000

    def __post_init__(self):
        if not isinstance(self.router_program_id, Pubkey):
            raise ValidationError("router_program_id must be a Pubkey")
        if not isinstance(self.market_program_id, Pubkey):
            raise ValidationError("market_program_id must be a Pubkey")
        self._validate_range("max_hold_ttl_ms", self.max_hold_ttl_ms, 1, MAX_HOLD_TTL_MS)
        self._validate_range("max_cap_ttl_ms", self.max_cap_ttl_ms, 1, MAX_CAP_TTL_MS)
        self._validate_range("rpc_timeout_ms", self.rpc_timeout_ms, 1, None)

    def _validate_range(self, name: str, value: Any, min_val: int, max_val: Optional[int] = None) -> None:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{name} must be an integer, got {value!r}")
        if value < min_val:
            raise ValidationError(f"{name} {value} is below minimum {min_val}")
        if max_val is not None and value > max_val:
            raise ValidationError(f"{name} {value} is above maximum {max_val}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "router_program_id": str(self.router_program_id),
            "market_program_id": str(self.market_program_id),
            "max_hold_ttl_ms": self.max_hold_ttl_ms,
            "max_cap_ttl_ms": self.max_cap_ttl_ms,
            "rpc_url": self.rpc_url,
            "rpc_timeout_ms": self.rpc_timeout_ms,
        }


def _require(d: Dict[str, Any], key: str) -> Any:
    if key not in d:
        raise ConfigError(f"Missing required key: {key}")
    return d[key]


def _parse_pubkey(key: str, value: Any) -> Pubkey:
    try:
        return Pubkey.from_string(str(value))
    except ValueError as e:
        raise ConfigError(f"{key} is not a valid base58 pubkey: {value!r}") from e


def load_protocol_config(path: str) -> Tuple[ProtocolConfig, str]:
    """Load a ProtocolConfig from a YAML mapping.

    Returns:
        Tuple of (config, config_hash) where config_hash is the sha256 of the
        file bytes, for logging which config a process started with.

    Raises:
        ConfigError: If the file is missing, unparsable, not a mapping, or lacks a module id.
        ValidationError: If a numeric field is out of range.
    """
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config not found: {p}")

    data = p.read_bytes()
    try:
        raw = yaml.safe_load(data.decode("utf-8"))
    except (UnicodeDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"{p.name} is not valid UTF-8 YAML: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"{p.name} must be a YAML mapping (dict at top-level)")

    kwargs: Dict[str, Any] = {
        "router_program_id": _parse_pubkey("router_program_id", _require(raw, "router_program_id")),
        "market_program_id": _parse_pubkey("market_program_id", _require(raw, "market_program_id")),
    }
    for key in ("max_hold_ttl_ms", "max_cap_ttl_ms", "rpc_timeout_ms"):
        if key in raw:
            kwargs[key] = raw[key]
    if "rpc_url" in raw:
        kwargs["rpc_url"] = str(raw["rpc_url"])

    return ProtocolConfig(**kwargs), hashlib.sha256(data).hexdigest()
