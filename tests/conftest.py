import hashlib

import pytest
import requests
from solders.pubkey import Pubkey

from percolator.addresses.seeds import find_route_state_address
from percolator.config.settings import ProtocolConfig
from percolator.ingestion.accounts import StaticAccountReader
from percolator.ingestion.route_layout import RouteHeader, encode_route_header


FIXED_NOW_MS = 1_700_000_000_000


class CountingRandom:
    """Deterministic stand-in for secrets.token_bytes."""

    def __init__(self, label: bytes = b"fixture"):
        self.label = label
        self.calls = 0

    def __call__(self, n: int) -> bytes:
        self.calls += 1
        out = b""
        block = 0
        while len(out) < n:
            out += hashlib.sha256(self.label + self.calls.to_bytes(4, "little") + bytes([block])).digest()
            block += 1
        return out[:n]


class FakeResponse:
    def __init__(self, body, status=200):
        self._body = body
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._body


class FakeSession:
    """Records posts and returns one canned response."""

    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def post(self, url, json=None, timeout=None):
        self.calls.append((url, json, timeout))
        if self.exc is not None:
            raise self.exc
        return self.response


def make_pubkey(tag: str) -> Pubkey:
    return Pubkey.from_bytes(hashlib.sha256(tag.encode()).digest())


def route_header(**overrides) -> RouteHeader:
    fields = dict(
        version=1,
        warmup_enabled=False,
        short_enabled=True,
        short_leverage_cap=5,
        price_band_bps=250,
        initial_margin_bps=1000,
        maintenance_margin_bps=500,
    )
    fields.update(overrides)
    return RouteHeader(**fields)


@pytest.fixture
def config() -> ProtocolConfig:
    return ProtocolConfig()


@pytest.fixture
def user() -> Pubkey:
    return make_pubkey("user")


@pytest.fixture
def route() -> Pubkey:
    return make_pubkey("route")


@pytest.fixture
def quote_mint() -> Pubkey:
    return make_pubkey("usdc")


@pytest.fixture
def random_source() -> CountingRandom:
    return CountingRandom()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW_MS


@pytest.fixture
def reader_for(config, route):
    """Build a StaticAccountReader serving one route header."""

    def _make(header: RouteHeader) -> StaticAccountReader:
        address, _ = find_route_state_address(config, route)
        return StaticAccountReader({address: encode_route_header(header)})

    return _make
