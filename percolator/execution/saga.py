"""
percolator/execution/saga.py

Order placement saga: reserve -> authorize -> commit, with compensation.

HARD RULES:
- A commit draft is only ever emitted after a reserve and a mint-cap draft
  in the same result
- Any failure after the hold is reserved appends a cancel-hold draft for
  that same hold id
- Nothing is signed, submitted or retried here
- Each attempt lives in memory for the duration of one call
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from solders.pubkey import Pubkey

from percolator.config.settings import ProtocolConfig
from percolator.errors import (
    AuthorizationError,
    CAP_DEBIT_EXCEEDS_REMAINING,
    CAP_EXPIRED,
    ExpiryError,
    PercolatorError,
    SagaCompensationFailure,
)
from percolator.execution.capability import CapabilityToken, NonceSource, mint_cap, time_nonce
from percolator.execution.drafts import DraftKind, OperationDraft
from percolator.execution.hold import HoldReceipt, build_cancel_hold, build_commit, reserve
from percolator.execution.models import (
    Clock,
    HoldStatus,
    PlaceOrderParams,
    RandomSource,
    default_random_source,
    now_ms,
)
from percolator.fixed_point import to_fixed
from percolator.ingestion.accounts import AccountReader
from percolator.risk.guards import check_warmup_guards, validate_cap_debit, validate_cap_expiry

logger = logging.getLogger(__name__)


class SagaPhase(Enum):
    INIT = "Init"
    RESERVED = "Reserved"
    AUTHORIZED = "Authorized"
    COMMITTED = "Committed"
    CANCEL_PENDING = "CancelPending"
    CANCELLED = "Cancelled"
    FAILED = "Failed"


# Allowed transitions; anything else is a bug in the saga itself
_TRANSITIONS = {
    SagaPhase.INIT: {SagaPhase.RESERVED, SagaPhase.FAILED},
    SagaPhase.RESERVED: {SagaPhase.AUTHORIZED, SagaPhase.CANCEL_PENDING},
    SagaPhase.AUTHORIZED: {SagaPhase.COMMITTED, SagaPhase.CANCEL_PENDING},
    SagaPhase.CANCEL_PENDING: {SagaPhase.CANCELLED},
    SagaPhase.COMMITTED: set(),
    SagaPhase.CANCELLED: set(),
    SagaPhase.FAILED: set(),
}


@dataclass
class SagaAttempt:
    """Ephemeral per-call saga state. Never persisted."""
    hold_id: Optional[Pubkey] = None
    cap_address: Optional[Pubkey] = None
    phase: SagaPhase = SagaPhase.INIT
    last_error: Optional[PercolatorError] = None
    history: List[SagaPhase] = field(default_factory=lambda: [SagaPhase.INIT])

    def transition(self, phase: SagaPhase) -> None:
        if phase not in _TRANSITIONS[self.phase]:
            raise RuntimeError(f"illegal saga transition {self.phase.value} -> {phase.value}")
        logger.info(f"[saga] {self.phase.value} -> {phase.value} hold={self.hold_id}")
        self.phase = phase
        self.history.append(phase)


@dataclass(frozen=True)
class OrderIntent:
    """
    Saga output: ordered unsigned drafts plus the outcome.

    Attributes:
        drafts: [reserve, mint_cap, commit] on success, [reserve, cancel_hold]
            after compensation, empty when nothing was reserved
        phase: Terminal saga phase
        error: Typed error when the saga did not reach COMMITTED
        hold: Hold receipt, when a reservation was built
        cap: Capability token, when a cap was built
        compensation: The cancel-hold draft, when one was produced
        deadline_ms: Clock value by which the whole sequence must be submitted
            (the shorter of the two ttl windows)
        history: Phases visited, in order
    """
    drafts: Tuple[OperationDraft, ...]
    phase: SagaPhase
    error: Optional[PercolatorError] = None
    hold: Optional[HoldReceipt] = None
    cap: Optional[CapabilityToken] = None
    compensation: Optional[OperationDraft] = None
    deadline_ms: Optional[int] = None
    history: Tuple[SagaPhase, ...] = ()

    @property
    def success(self) -> bool:
        return self.phase is SagaPhase.COMMITTED and self.error is None

    @property
    def kinds(self) -> List[DraftKind]:
        return [d.kind for d in self.drafts]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "phase": self.phase.value,
            "drafts": [d.to_dict() for d in self.drafts],
            "error": self.error.to_dict() if self.error else None,
            "hold": self.hold.to_dict() if self.hold else None,
            "cap": self.cap.to_dict() if self.cap else None,
            "deadline_ms": self.deadline_ms,
            "history": [p.value for p in self.history],
        }


class OrderPlacementSaga:
    """
    Builds the draft sequence for one perpetual order.

    All collaborators are injected at construction; the saga keeps no state
    between calls, so one instance can serve concurrent orders.
    """

    def __init__(
        self,
        config: ProtocolConfig,
        *,
        reader: Optional[AccountReader] = None,
        random_source: RandomSource = default_random_source,
        nonce_source: NonceSource = time_nonce,
        clock: Clock = now_ms,
    ):
        """
        Args:
            config: Protocol configuration (module ids, ttl maxima)
            reader: Account reader for the warmup guard; the guard is skipped without one
            random_source: Secure random bytes for hold ids and commitments
            nonce_source: Cap nonce generator
            clock: Millisecond clock
        """
        self.config = config
        self.reader = reader
        self.random_source = random_source
        self.nonce_source = nonce_source
        self.clock = clock

    def place_order(
        self,
        params: PlaceOrderParams,
        user: Pubkey,
        route: Pubkey,
        quote_mint: Pubkey,
    ) -> OrderIntent:
        """
        Run the saga for one order.

        Args:
            params: Human-entered order parameters
            user: Trader (owner, payer and sole signer of every draft)
            route: Route (market id)
            quote_mint: Quote mint the cap authorizes

        Returns:
            OrderIntent. Check intent.success; on failure intent.error holds
            the typed error and intent.compensation any cancel-hold draft.
        """
        attempt = SagaAttempt()
        started_at = self.clock()

        # Init: convert amounts and run the pre-trade guard
        try:
            quantity = to_fixed(params.quantity)
            limit_price = to_fixed(params.limit_price) if params.limit_price is not None else 0
        except PercolatorError as e:
            return self._fail(attempt, e.at_step("reserve"))

        if self.reader is not None and params.leverage is not None:
            decision, err = check_warmup_guards(self.config, self.reader, route, params.side, params.leverage)
            if err is not None:
                return self._fail(attempt, err)
            if not decision.allowed:
                return self._fail(
                    attempt,
                    AuthorizationError(
                        decision.reason or "warmup guard denied order",
                        {"reason_code": decision.reason_code, "leverage": params.leverage},
                        step="check_warmup_guards",
                    ),
                )

        # Step 1: reserve
        hold, err = reserve(
            self.config,
            user,
            route,
            params.instrument_index,
            params.side,
            quantity,
            limit_price,
            self.config.max_hold_ttl_ms,
            commitment_hash=params.commitment_hash,
            random_source=self.random_source,
        )
        if err is not None:
            return self._fail(attempt, err)
        attempt.hold_id = hold.hold_id
        attempt.transition(SagaPhase.RESERVED)

        # Step 2: authorize
        cap, err = mint_cap(
            self.config,
            user,
            route,
            quote_mint,
            amount_max=quantity,
            ttl_ms=self.config.max_cap_ttl_ms,
            nonce_source=self.nonce_source,
            clock=self.clock,
        )
        if err is not None:
            return self._compensate(attempt, user, hold, None, err)
        attempt.cap_address = cap.address
        attempt.transition(SagaPhase.AUTHORIZED)

        # Step 3: commit
        err = self._check_cap_covers(cap, quantity)
        if err is None:
            commit_draft, err = build_commit(self.config, user, hold, cap.address, quote_mint)
        if err is not None:
            return self._compensate(attempt, user, hold, cap, err)
        attempt.transition(SagaPhase.COMMITTED)

        deadline_ms = started_at + min(hold.ttl_ms, cap.ttl_ms)
        logger.info(f"[saga] Order intent ready hold={hold.hold_id} cap={cap.address} deadline={deadline_ms}")
        return OrderIntent(
            drafts=(hold.draft, cap.draft, commit_draft),
            phase=attempt.phase,
            hold=hold.with_status(HoldStatus.COMMITTED),
            cap=cap,
            deadline_ms=deadline_ms,
            history=tuple(attempt.history),
        )

    def _check_cap_covers(self, cap: CapabilityToken, quantity: int) -> Optional[PercolatorError]:
        now = self.clock()
        if not validate_cap_expiry(cap.expires_at_ms, now):
            return ExpiryError(
                "cap expired before commit",
                {"reason_code": CAP_EXPIRED, "expires_at_ms": cap.expires_at_ms, "now": now},
                step="commit",
            )
        if not validate_cap_debit(quantity, cap.amount_max, cap.amount_used):
            return AuthorizationError(
                "order exceeds cap",
                {"reason_code": CAP_DEBIT_EXCEEDS_REMAINING, "debit": quantity, "remaining": cap.remaining},
                step="commit",
            )
        return None

    def _fail(self, attempt: SagaAttempt, error: PercolatorError) -> OrderIntent:
        attempt.last_error = error
        attempt.transition(SagaPhase.FAILED)
        logger.warning(f"[saga] Failed before reservation: {error}")
        return OrderIntent(
            drafts=(),
            phase=attempt.phase,
            error=error,
            history=tuple(attempt.history),
        )

    def _compensate(
        self,
        attempt: SagaAttempt,
        user: Pubkey,
        hold: HoldReceipt,
        cap: Optional[CapabilityToken],
        error: PercolatorError,
    ) -> OrderIntent:
        attempt.last_error = error
        attempt.transition(SagaPhase.CANCEL_PENDING)
        logger.warning(f"[saga] Step {error.step} failed, compensating hold {hold.hold_id}: {error}")

        cancel_draft, cancel_err = build_cancel_hold(self.config, user, hold.hold_id, hold.route_id)
        if cancel_err is not None:
            failure = SagaCompensationFailure(
                f"cancel-hold draft for {hold.hold_id} could not be built; "
                f"hold stays reserved until its ttl lapses",
                cause=error,
                details={"hold_id": hold.hold_id, "cancel_error": cancel_err.code},
                step="cancel_hold",
            )
            attempt.last_error = failure
            logger.error(f"[saga] {failure}")
            return OrderIntent(
                drafts=(),
                phase=attempt.phase,
                error=failure,
                hold=hold,
                cap=cap,
                history=tuple(attempt.history),
            )

        attempt.transition(SagaPhase.CANCELLED)
        return OrderIntent(
            drafts=(hold.draft, cancel_draft),
            phase=attempt.phase,
            error=error,
            hold=hold.with_status(HoldStatus.CANCELLED),
            cap=cap,
            compensation=cancel_draft,
            history=tuple(attempt.history),
        )


def place_perp_order(
    config: ProtocolConfig,
    params: PlaceOrderParams,
    user: Pubkey,
    route: Pubkey,
    quote_mint: Pubkey,
    reader: Optional[AccountReader] = None,
) -> OrderIntent:
    """One-shot helper with production random, nonce and clock sources."""
    return OrderPlacementSaga(config, reader=reader).place_order(params, user, route, quote_mint)
