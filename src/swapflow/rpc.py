"""JSON-RPC chain reader over httpx.

Implements the read-only ``ChainReader`` interface (``eth_call`` and
``eth_getTransactionReceipt``) against any Ethereum JSON-RPC endpoint.
Transport failures are raised as library exceptions so the retry helper and
the classifier can tell transient problems from real errors.
"""

import itertools
import logging
from typing import Any, Optional

import httpx
from eth_abi import decode

from swapflow.errors import NetworkUnavailableError, RevertedError, RpcError, SwapTimeoutError
from swapflow.session import ChainReader, TransactionReceipt

logger = logging.getLogger(__name__)

# Error(string) selector used by require()/revert("...")
ERROR_STRING_SELECTOR = bytes.fromhex("08c379a0")

# Node error code for reverted eth_call (geth, erigon, anvil)
EXECUTION_REVERTED_CODE = 3


def decode_revert_reason(data: Any) -> Optional[str]:
    """Decode an Error(string) revert payload, if that is what it is."""
    if not isinstance(data, str) or not data.startswith("0x"):
        return None
    try:
        raw = bytes.fromhex(data[2:])
    except ValueError:
        return None
    if raw[:4] != ERROR_STRING_SELECTOR:
        return None
    try:
        return decode(["string"], raw[4:])[0]
    except Exception:
        return None


class JsonRpcChainReader(ChainReader):
    """ChainReader backed by an HTTP JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the reader.

        Args:
            rpc_url: JSON-RPC endpoint
            timeout: HTTP timeout in seconds
            client: Optional pre-built client (tests pass one with a MockTransport)
        """
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._http_client: Optional[httpx.AsyncClient] = client
        self._ids = itertools.count(1)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _request(self, method: str, params: list) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        client = await self._get_client()

        try:
            response = await client.post(self.rpc_url, json=payload)
        except httpx.TimeoutException as e:
            raise SwapTimeoutError(f"{method} timed out: {e}") from e
        except httpx.TransportError as e:
            raise NetworkUnavailableError(f"{method} transport error: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise NetworkUnavailableError(f"{method} HTTP {response.status_code} from RPC endpoint")
        if response.status_code != 200:
            raise RpcError(f"{method} HTTP {response.status_code}: {response.text[:200]}")

        try:
            body = response.json()
        except ValueError as e:
            raise NetworkUnavailableError(f"{method} returned invalid JSON") from e

        error = body.get("error")
        if error:
            code = error.get("code")
            message = str(error.get("message", ""))
            data = error.get("data")
            reason = decode_revert_reason(data)
            if code == EXECUTION_REVERTED_CODE or "revert" in message.lower():
                raise RevertedError(message, reason=reason)
            raise RpcError(message, code=code, data=data)

        return body.get("result")

    async def call(self, address: str, data: bytes) -> bytes:
        result = await self._request(
            "eth_call",
            [{"to": address, "data": "0x" + data.hex()}, "latest"],
        )
        if not result or result == "0x":
            return b""
        return bytes.fromhex(result[2:] if result.startswith("0x") else result)

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        result = await self._request("eth_getTransactionReceipt", [tx_hash])
        if result is None:
            return None

        block_number = result.get("blockNumber")
        gas_used = result.get("gasUsed")
        return TransactionReceipt(
            tx_hash=result.get("transactionHash", tx_hash),
            status=int(result.get("status", "0x0"), 16),
            block_number=int(block_number, 16) if block_number else None,
            gas_used=int(gas_used, 16) if gas_used else None,
            raw=result,
        )

    async def get_block_number(self) -> int:
        result = await self._request("eth_blockNumber", [])
        return int(result, 16)
