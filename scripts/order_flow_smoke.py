#!/usr/bin/env python3
"""Smoke run for the order placement saga.

Builds an order intent offline (no RPC, no signing) and prints it as JSON.
An optional YAML config supplies the program ids.

Usage:
    python scripts/order_flow_smoke.py
    python scripts/order_flow_smoke.py --config percolator.yaml --side ask --quantity 2.5

Exit codes:
    - 0: Intent built with [reserve, mint_cap, commit]
    - 1: Saga failed or compensated
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from solders.pubkey import Pubkey

from percolator.config.settings import ProtocolConfig, load_protocol_config
from percolator.execution.drafts import DraftKind
from percolator.execution.models import PlaceOrderParams, Side
from percolator.execution.saga import OrderPlacementSaga


def main() -> int:
    parser = argparse.ArgumentParser(description="Build an unsigned perp order intent")
    parser.add_argument("--config", help="YAML file with router/market program ids")
    parser.add_argument("--side", choices=["bid", "ask"], default="bid")
    parser.add_argument("--quantity", default="1")
    parser.add_argument("--limit-price", default=None)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, stream=sys.stderr, format="%(levelname)s %(name)s %(message)s")

    if args.config:
        config, config_hash = load_protocol_config(args.config)
        print(f"[order_flow_smoke] Loaded config {args.config} sha256={config_hash[:12]}", file=sys.stderr)
    else:
        config = ProtocolConfig()

    user = Pubkey.new_unique()
    route = Pubkey.new_unique()
    quote_mint = Pubkey.new_unique()

    params = PlaceOrderParams(
        side=Side.BID if args.side == "bid" else Side.ASK,
        quantity=args.quantity,
        limit_price=args.limit_price,
    )
    intent = OrderPlacementSaga(config).place_order(params, user, route, quote_mint)
    print(json.dumps(intent.to_dict(), indent=2))

    expected = [DraftKind.RESERVE, DraftKind.MINT_CAP, DraftKind.COMMIT]
    if not intent.success or intent.kinds != expected:
        print(f"[order_flow_smoke] FAIL phase={intent.phase.value} error={intent.error}", file=sys.stderr)
        return 1
    print("[order_flow_smoke] OK", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
