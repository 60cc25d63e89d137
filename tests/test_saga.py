import pytest

from percolator.errors import (
    AuthorizationError,
    ExpiryError,
    NetworkError,
    NotFoundError,
    SagaCompensationFailure,
    ValidationError,
    WARMUP_SHORTS_DISABLED,
)
from percolator.execution import saga as saga_module
from percolator.execution.drafts import DraftKind
from percolator.execution.models import HoldStatus, PlaceOrderParams, Side
from percolator.execution.saga import OrderPlacementSaga, SagaPhase
from percolator.ingestion.accounts import RpcAccountReader, StaticAccountReader

from conftest import FIXED_NOW_MS, FakeResponse, FakeSession, route_header


def make_saga(config, random_source, clock, **kwargs):
    return OrderPlacementSaga(
        config,
        random_source=random_source,
        nonce_source=lambda: 12345,
        clock=clock,
        **kwargs,
    )


def test_happy_path_returns_three_ordered_drafts(config, user, route, quote_mint, random_source, clock):
    saga = make_saga(config, random_source, clock)
    # quantity 1.0 -> 1_000_000 scaled
    intent = saga.place_order(PlaceOrderParams(side=Side.BID, quantity="1"), user, route, quote_mint)

    assert intent.success
    assert intent.error is None
    assert intent.kinds == [DraftKind.RESERVE, DraftKind.MINT_CAP, DraftKind.COMMIT]
    assert intent.phase is SagaPhase.COMMITTED
    assert intent.history == (SagaPhase.INIT, SagaPhase.RESERVED, SagaPhase.AUTHORIZED, SagaPhase.COMMITTED)
    assert intent.compensation is None

    assert intent.hold.quantity == 1_000_000
    assert intent.hold.ttl_ms == 60_000
    assert intent.hold.status is HoldStatus.COMMITTED
    assert intent.cap.amount_max == 1_000_000
    assert intent.cap.ttl_ms == 120_000
    assert intent.cap.nonce == 12345
    assert intent.deadline_ms == FIXED_NOW_MS + 60_000

    commit = intent.drafts[2]
    assert commit.references(intent.cap.address)
    assert commit.references(intent.hold.hold_address)


def test_every_draft_is_signed_only_by_user(config, user, route, quote_mint, random_source, clock):
    intent = make_saga(config, random_source, clock).place_order(
        PlaceOrderParams(side=Side.ASK, quantity="2.5", limit_price="101.25"), user, route, quote_mint
    )
    for draft in intent.drafts:
        signers = [addr for addr, _, is_signer in draft.accounts if is_signer]
        assert signers == [user]
    assert intent.hold.limit_price == 101_250_000


def test_mint_failure_compensates_with_same_hold(config, user, route, quote_mint, random_source, clock, monkeypatch):
    def failing_mint_cap(*args, **kwargs):
        return None, NetworkError("rpc unavailable", step="mint_cap")

    monkeypatch.setattr(saga_module, "mint_cap", failing_mint_cap)
    intent = make_saga(config, random_source, clock).place_order(
        PlaceOrderParams(side=Side.BID, quantity=1), user, route, quote_mint
    )

    assert not intent.success
    assert isinstance(intent.error, NetworkError)
    assert intent.error.step == "mint_cap"
    assert intent.kinds == [DraftKind.RESERVE, DraftKind.CANCEL_HOLD]
    assert DraftKind.COMMIT not in intent.kinds
    assert intent.phase is SagaPhase.CANCELLED
    assert SagaPhase.CANCEL_PENDING in intent.history
    assert intent.compensation is intent.drafts[1]
    assert intent.compensation.payload[1:] == bytes(intent.hold.hold_id)
    assert intent.compensation.references(intent.hold.hold_address)
    assert intent.hold.status is HoldStatus.CANCELLED
    assert intent.cap is None


def test_commit_failure_compensates(config, user, route, quote_mint, random_source, clock, monkeypatch):
    def failing_commit(*args, **kwargs):
        return None, ValidationError("commit layout", step="commit")

    monkeypatch.setattr(saga_module, "build_commit", failing_commit)
    intent = make_saga(config, random_source, clock).place_order(
        PlaceOrderParams(side=Side.BID, quantity=1), user, route, quote_mint
    )
    assert intent.kinds == [DraftKind.RESERVE, DraftKind.CANCEL_HOLD]
    assert intent.error.step == "commit"
    assert intent.cap is not None
    assert SagaPhase.AUTHORIZED in intent.history


def test_expired_cap_at_commit_compensates(config, user, route, quote_mint, random_source):
    ticks = iter([FIXED_NOW_MS, FIXED_NOW_MS, FIXED_NOW_MS + 120_000])
    saga = make_saga(config, random_source, lambda: next(ticks))
    intent = saga.place_order(PlaceOrderParams(side=Side.BID, quantity=1), user, route, quote_mint)
    assert isinstance(intent.error, ExpiryError)
    assert intent.kinds == [DraftKind.RESERVE, DraftKind.CANCEL_HOLD]


def test_cap_smaller_than_order_is_rejected(config, user, route, quote_mint, random_source, clock, monkeypatch):
    real_mint_cap = saga_module.mint_cap

    def undersized_mint_cap(config, user, route, mint, amount_max, ttl_ms, **kwargs):
        return real_mint_cap(config, user, route, mint, amount_max - 1, ttl_ms, **kwargs)

    monkeypatch.setattr(saga_module, "mint_cap", undersized_mint_cap)
    intent = make_saga(config, random_source, clock).place_order(
        PlaceOrderParams(side=Side.BID, quantity=1), user, route, quote_mint
    )
    assert isinstance(intent.error, AuthorizationError)
    assert DraftKind.COMMIT not in intent.kinds


def test_reserve_failure_needs_no_compensation(config, user, route, quote_mint, random_source, clock):
    intent = make_saga(config, random_source, clock).place_order(
        PlaceOrderParams(side=Side.BID, quantity="0"), user, route, quote_mint
    )
    assert intent.phase is SagaPhase.FAILED
    assert intent.drafts == ()
    assert intent.compensation is None
    assert isinstance(intent.error, ValidationError)
    assert intent.error.step == "reserve"


def test_unparsable_quantity_fails(config, user, route, quote_mint, random_source, clock):
    intent = make_saga(config, random_source, clock).place_order(
        PlaceOrderParams(side=Side.BID, quantity="lots"), user, route, quote_mint
    )
    assert intent.phase is SagaPhase.FAILED
    assert isinstance(intent.error, ValidationError)


def test_compensation_failure_is_distinct(config, user, route, quote_mint, random_source, clock, monkeypatch):
    monkeypatch.setattr(
        saga_module, "mint_cap", lambda *a, **k: (None, NetworkError("down", step="mint_cap"))
    )
    monkeypatch.setattr(
        saga_module, "build_cancel_hold", lambda *a, **k: (None, ValidationError("bad", step="cancel_hold"))
    )
    intent = make_saga(config, random_source, clock).place_order(
        PlaceOrderParams(side=Side.BID, quantity=1), user, route, quote_mint
    )
    assert isinstance(intent.error, SagaCompensationFailure)
    assert isinstance(intent.error.cause, NetworkError)
    assert intent.phase is SagaPhase.CANCEL_PENDING
    assert intent.drafts == ()
    assert intent.hold is not None


def test_warmup_denial_stops_before_reserve(config, user, route, quote_mint, random_source, clock, reader_for):
    reader = reader_for(route_header(warmup_enabled=True, short_enabled=False))
    saga = make_saga(config, random_source, clock, reader=reader)
    intent = saga.place_order(PlaceOrderParams(side=Side.ASK, quantity=1, leverage=2), user, route, quote_mint)
    assert intent.phase is SagaPhase.FAILED
    assert isinstance(intent.error, AuthorizationError)
    assert intent.error.details["reason_code"] == WARMUP_SHORTS_DISABLED
    assert intent.drafts == ()
    assert random_source.calls == 0


def test_warmup_allows_long(config, user, route, quote_mint, random_source, clock, reader_for):
    reader = reader_for(route_header(warmup_enabled=True, short_enabled=False))
    saga = make_saga(config, random_source, clock, reader=reader)
    intent = saga.place_order(PlaceOrderParams(side=Side.BID, quantity=1, leverage=10), user, route, quote_mint)
    assert intent.success


def test_missing_route_fails_with_not_found(config, user, route, quote_mint, random_source, clock):
    saga = make_saga(config, random_source, clock, reader=StaticAccountReader())
    intent = saga.place_order(PlaceOrderParams(side=Side.BID, quantity=1, leverage=3), user, route, quote_mint)
    assert isinstance(intent.error, NotFoundError)
    assert intent.phase is SagaPhase.FAILED


def test_attempts_are_independent(config, user, route, quote_mint, clock):
    saga = OrderPlacementSaga(config, clock=clock)
    params = PlaceOrderParams(side=Side.BID, quantity=1)
    first = saga.place_order(params, user, route, quote_mint)
    second = saga.place_order(params, user, route, quote_mint)
    assert first.hold.hold_id != second.hold.hold_id


def test_intent_serializes(config, user, route, quote_mint, random_source, clock):
    intent = make_saga(config, random_source, clock).place_order(
        PlaceOrderParams(side=Side.BID, quantity=1), user, route, quote_mint
    )
    data = intent.to_dict()
    assert data["success"] is True
    assert [d["kind"] for d in data["drafts"]] == ["reserve", "mint_cap", "commit"]
    assert data["history"][-1] == "Committed"


@pytest.mark.parametrize("body", [
    {"jsonrpc": "2.0", "result": {"value": {"data": ["!!!not base64", "base64"]}}},
    {"jsonrpc": "2.0", "error": "boom"},
])
def test_bad_route_read_fails_without_raising(config, user, route, quote_mint, random_source, clock, body):
    reader = RpcAccountReader("http://rpc.local", session=FakeSession(FakeResponse(body)))
    saga = make_saga(config, random_source, clock, reader=reader)
    intent = saga.place_order(PlaceOrderParams(side=Side.ASK, quantity=1, leverage=2), user, route, quote_mint)
    assert intent.phase is SagaPhase.FAILED
    assert isinstance(intent.error, NetworkError)
    assert intent.error.step == "check_warmup_guards"
    assert intent.drafts == ()


def test_non_integer_instrument_index_fails(config, user, route, quote_mint, random_source, clock):
    intent = make_saga(config, random_source, clock).place_order(
        PlaceOrderParams(side=Side.BID, quantity=1, instrument_index="1"), user, route, quote_mint
    )
    assert intent.phase is SagaPhase.FAILED
    assert isinstance(intent.error, ValidationError)
    assert intent.drafts == ()
