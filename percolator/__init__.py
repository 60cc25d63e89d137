"""percolator

Client-side order preparation for the Percolator perpetuals programs.

Builds unsigned instruction drafts for placing a perpetual order
(reserve -> mint cap -> commit, with cancel-hold compensation) and derives
the program addresses the on-chain verifier recomputes. Signing and
submission belong to the caller.
"""

from percolator.addresses.derivation import derive
from percolator.addresses.seeds import (
    find_cap_address,
    find_escrow_address,
    find_hold_address,
    find_portfolio_address,
    find_position_address,
    find_registry_address,
    find_route_authority_address,
    find_route_state_address,
    find_vault_address,
)
from percolator.config.settings import ProtocolConfig, load_protocol_config
from percolator.errors import (
    AuthorizationError,
    ConfigError,
    DerivationExhausted,
    ExpiryError,
    NetworkError,
    NotFoundError,
    PercolatorError,
    SagaCompensationFailure,
    ValidationError,
)
from percolator.execution.capability import CapabilityToken, mint_cap
from percolator.execution.drafts import DraftKind, OperationDraft
from percolator.execution.hold import HoldReceipt, build_cancel_hold, build_commit, reserve
from percolator.execution.models import HoldStatus, PlaceOrderParams, Side
from percolator.execution.saga import OrderIntent, OrderPlacementSaga, SagaPhase, place_perp_order
from percolator.execution.signer import Signer, sign_drafts, sign_intent
from percolator.fixed_point import SCALE, from_fixed, to_fixed
from percolator.ingestion.accounts import AccountReader, RpcAccountReader, StaticAccountReader
from percolator.risk.guards import (
    check_warmup_guards,
    validate_cap_debit,
    validate_cap_expiry,
    validate_price_bands,
    validate_route_price,
)
from percolator.risk.margin import (
    MarginRequirement,
    calculate_liquidation_price,
    calculate_required_margin,
    route_margin_requirement,
)

__version__ = "0.1.0"
