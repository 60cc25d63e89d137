"""
percolator/ingestion/accounts.py

Account read interface.

A read is one JSON-RPC round trip. There are no retries here; the caller
decides whether to try again.
"""
import base64
import binascii
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

import requests
from solders.pubkey import Pubkey

from percolator.config.settings import ProtocolConfig
from percolator.errors import NetworkError, NotFoundError

logger = logging.getLogger(__name__)


class AccountReader(ABC):
    """
    Abstract single-account reader.

    Implementations return raw account data or raise NotFoundError /
    NetworkError. They hold no state that changes between calls.
    """

    @abstractmethod
    def fetch_account(self, address: Pubkey) -> bytes:
        """
        Fetch raw account data.

        Args:
            address: Account address

        Returns:
            Account data bytes

        Raises:
            NotFoundError: If the account does not exist
            NetworkError: If the read failed in transport
        """
        pass


class StaticAccountReader(AccountReader):
    """Serves accounts from a fixed mapping. Used for dry runs and tests."""

    def __init__(self, accounts: Optional[Mapping[Pubkey, bytes]] = None):
        self._accounts: Dict[Pubkey, bytes] = dict(accounts or {})

    def fetch_account(self, address: Pubkey) -> bytes:
        data = self._accounts.get(address)
        if data is None:
            raise NotFoundError(f"account {address} not found", {"address": address})
        return data


class RpcAccountReader(AccountReader):
    """
    Reads accounts with getAccountInfo over a JSON-RPC endpoint.

    Uses one requests.Session; each fetch is a single POST.
    """

    def __init__(
        self,
        rpc_url: str,
        timeout_ms: int = 5000,
        session: Optional[requests.Session] = None,
    ):
        self.rpc_url = rpc_url
        self.timeout_ms = timeout_ms
        self._session = session or requests.Session()

    @classmethod
    def from_config(cls, config: ProtocolConfig, session: Optional[requests.Session] = None) -> "RpcAccountReader":
        return cls(config.rpc_url, timeout_ms=config.rpc_timeout_ms, session=session)

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self._session.post(
                self.rpc_url,
                json=payload,
                timeout=self.timeout_ms / 1000.0,
            )
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as e:
            raise NetworkError(f"HTTP error from getAccountInfo: {e}") from e
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Request failed to getAccountInfo: {e}") from e
        except json.JSONDecodeError as e:
            raise NetworkError(f"Invalid JSON from getAccountInfo: {e}") from e

    def fetch_account(self, address: Pubkey) -> bytes:
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "getAccountInfo",
            "params": [str(address), {"encoding": "base64"}],
        }
        body = self._post(payload)

        if not isinstance(body, dict):
            raise NetworkError(f"Malformed getAccountInfo response for {address}", {"address": address})

        if "error" in body:
            error = body["error"]
            if isinstance(error, dict):
                message = error.get("message", "unknown RPC error")
            else:
                message = str(error)
            logger.warning(f"[rpc] getAccountInfo error for {address}: {message}")
            raise NetworkError(f"RPC error: {message}", {"address": address})

        result = body.get("result") or {}
        if not isinstance(result, dict):
            raise NetworkError(f"Malformed getAccountInfo result for {address}", {"address": address})
        value = result.get("value")
        if value is None:
            raise NotFoundError(f"account {address} not found", {"address": address})

        try:
            encoded, encoding = value["data"]
        except (KeyError, TypeError, ValueError) as e:
            raise NetworkError(f"Malformed account payload for {address}") from e
        if encoding != "base64":
            raise NetworkError(f"Unexpected account encoding {encoding!r}")

        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, TypeError, ValueError) as e:
            raise NetworkError(f"Account data for {address} is not valid base64", {"address": address}) from e
        logger.debug(f"[rpc] Fetched {len(data)} bytes for {address}")
        return data
