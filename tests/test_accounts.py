import base64

import pytest
import requests

from percolator.errors import NetworkError, NotFoundError, ValidationError
from percolator.ingestion.accounts import RpcAccountReader, StaticAccountReader
from percolator.ingestion.route_layout import ROUTE_HEADER_LAYOUT, decode_route_header, encode_route_header

from conftest import FakeResponse, FakeSession, make_pubkey, route_header


def _reader(session):
    return RpcAccountReader("http://rpc.local", timeout_ms=2500, session=session)


def test_rpc_reader_decodes_base64():
    payload = b"\x01\x02\x03"
    session = FakeSession(FakeResponse({
        "jsonrpc": "2.0",
        "result": {"value": {"data": [base64.b64encode(payload).decode(), "base64"]}},
    }))
    address = make_pubkey("acct")
    assert _reader(session).fetch_account(address) == payload

    url, body, timeout = session.calls[0]
    assert url == "http://rpc.local"
    assert body["method"] == "getAccountInfo"
    assert body["params"] == [str(address), {"encoding": "base64"}]
    assert timeout == 2.5
    assert len(session.calls) == 1


def test_rpc_reader_missing_account():
    session = FakeSession(FakeResponse({"jsonrpc": "2.0", "result": {"value": None}}))
    with pytest.raises(NotFoundError):
        _reader(session).fetch_account(make_pubkey("acct"))


def test_rpc_reader_rpc_error():
    session = FakeSession(FakeResponse({"jsonrpc": "2.0", "error": {"message": "node is behind"}}))
    with pytest.raises(NetworkError):
        _reader(session).fetch_account(make_pubkey("acct"))


def test_rpc_reader_http_error():
    session = FakeSession(FakeResponse({}, status=503))
    with pytest.raises(NetworkError):
        _reader(session).fetch_account(make_pubkey("acct"))


def test_rpc_reader_transport_error_is_not_retried():
    session = FakeSession(exc=requests.exceptions.ConnectionError("refused"))
    with pytest.raises(NetworkError):
        _reader(session).fetch_account(make_pubkey("acct"))
    assert len(session.calls) == 1


def test_static_reader():
    address = make_pubkey("a")
    reader = StaticAccountReader({address: b"data"})
    assert reader.fetch_account(address) == b"data"
    with pytest.raises(NotFoundError):
        reader.fetch_account(make_pubkey("b"))


def test_route_header_layout():
    header = route_header(warmup_enabled=True, short_leverage_cap=3)
    data = encode_route_header(header) + b"\xff" * 40
    assert decode_route_header(data) == header


def test_route_header_rejects_short_or_foreign_data():
    with pytest.raises(ValidationError):
        decode_route_header(b"\x00" * (ROUTE_HEADER_LAYOUT.size - 1))
    with pytest.raises(ValidationError):
        decode_route_header(b"NOTROUTE" + b"\x00" * 16)


def test_rpc_reader_from_config(config):
    session = FakeSession(FakeResponse({"jsonrpc": "2.0", "result": {"value": None}}))
    reader = RpcAccountReader.from_config(config, session=session)
    assert reader.rpc_url == config.rpc_url
    assert reader.timeout_ms == config.rpc_timeout_ms


def test_rpc_reader_error_string():
    session = FakeSession(FakeResponse({"jsonrpc": "2.0", "error": "boom"}))
    with pytest.raises(NetworkError, match="boom"):
        _reader(session).fetch_account(make_pubkey("acct"))


@pytest.mark.parametrize("body", [
    {"jsonrpc": "2.0", "result": {"value": {"data": ["!!!not base64", "base64"]}}},
    {"jsonrpc": "2.0", "result": {"value": {"data": ["AQID=x", "base64"]}}},
    {"jsonrpc": "2.0", "result": {"value": {"data": [None, "base64"]}}},
    {"jsonrpc": "2.0", "result": "oops"},
    ["not", "an", "object"],
])
def test_rpc_reader_malformed_payload(body):
    session = FakeSession(FakeResponse(body))
    with pytest.raises(NetworkError):
        _reader(session).fetch_account(make_pubkey("acct"))
