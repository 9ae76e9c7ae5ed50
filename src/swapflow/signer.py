"""Local-key wallet session for EVM chains.

Signs with an in-process private key (eth-account) and broadcasts through
web3. Intended for bots, scripts and integration tests; browser-wallet hosts
provide their own ``WalletSession``.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from eth_account import Account

from swapflow.chains import ChainRegistry
from swapflow.errors import UserRejectedError, ValidationError
from swapflow.session import CallbackRegistry, SessionChangeCallback, TransactionRequest, WalletSession

logger = logging.getLogger(__name__)

# Returns False to decline signing
ConfirmCallback = Callable[[TransactionRequest], Awaitable[bool]]


class LocalKeySession(WalletSession):
    """WalletSession backed by a local private key."""

    def __init__(
        self,
        private_key: Optional[str],
        chain_id: int,
        registry: Optional[ChainRegistry] = None,
        confirm: Optional[ConfirmCallback] = None,
    ):
        """Initialize the session.

        Args:
            private_key: Hex private key, or None for a disconnected session
            chain_id: Initially selected chain
            registry: Chain registry used to resolve RPC endpoints
            confirm: Optional approval hook invoked before every signature
        """
        self._registry = registry or ChainRegistry()
        self._registry.resolve(chain_id)
        self._chain_id = chain_id
        self._account = Account.from_key(private_key) if private_key else None
        self._confirm = confirm
        self._callbacks = CallbackRegistry()
        self._web3 = None
        self._nonce_cache: dict[str, int] = {}
        self._nonce_lock = asyncio.Lock()

    @property
    def web3(self):
        """Lazy load async web3 instance for the active chain."""
        if self._web3 is None:
            from web3 import AsyncHTTPProvider, AsyncWeb3

            endpoint = self._registry.resolve(self._chain_id).endpoint
            self._web3 = AsyncWeb3(AsyncHTTPProvider(endpoint))
        return self._web3

    # ======================
    # WalletSession
    # ======================

    def get_account(self) -> Optional[str]:
        return self._account.address if self._account else None

    def get_chain_id(self) -> int:
        return self._chain_id

    def on_account_or_chain_change(self, callback: SessionChangeCallback) -> Callable[[], None]:
        return self._callbacks.add(callback)

    async def sign_and_send(self, request: TransactionRequest) -> str:
        """Sign and broadcast a transaction on the active chain.

        Raises:
            UserRejectedError: If no account is loaded or the confirm hook declines
            ValidationError: If the transaction targets another chain
        """
        if self._account is None:
            raise UserRejectedError("No account available to sign")
        if request.chain_id != self._chain_id:
            raise ValidationError(
                f"Transaction targets chain {request.chain_id} but session is on {self._chain_id}"
            )
        if self._confirm is not None and not await self._confirm(request):
            raise UserRejectedError("User rejected the transaction")

        address = self._account.address
        tx_params = request.to_tx_params()
        tx_params["from"] = address

        # Nonce is reserved last; only signing and the send can fail after it
        if "gas" not in tx_params:
            tx_params["gas"] = await self.web3.eth.estimate_gas(tx_params)
        if "gasPrice" not in tx_params and "maxFeePerGas" not in tx_params:
            tx_params["gasPrice"] = await self.web3.eth.gas_price

        reserved_nonce = "nonce" not in tx_params
        if reserved_nonce:
            tx_params["nonce"] = await self._get_next_nonce(address)

        try:
            signed_tx = self._account.sign_transaction(tx_params)
            # eth-account >= 0.13 uses raw_transaction, older versions rawTransaction
            raw_tx = getattr(signed_tx, "raw_transaction", None) or signed_tx.rawTransaction
            tx_hash = await self.web3.eth.send_raw_transaction(raw_tx)
        except BaseException:
            # Includes cancellation: the next tx must not skip this nonce
            if reserved_nonce:
                self._reset_nonce_cache(address)
            raise

        tx_hash_hex = tx_hash.hex()
        if not tx_hash_hex.startswith("0x"):
            tx_hash_hex = "0x" + tx_hash_hex
        logger.info(f"Sent transaction {tx_hash_hex} on chain {self._chain_id}: {request.description}")
        return tx_hash_hex

    # ======================
    # Session changes
    # ======================

    def switch_chain(self, chain_id: int) -> None:
        """Select another chain and notify listeners."""
        self._registry.resolve(chain_id)
        if chain_id == self._chain_id:
            return
        logger.info(f"Switching chain {self._chain_id} -> {chain_id}")
        self._chain_id = chain_id
        self._web3 = None
        self._nonce_cache.clear()
        self._callbacks.fire(self.get_account(), chain_id)

    def switch_account(self, private_key: Optional[str]) -> None:
        """Load another key (or none) and notify listeners."""
        self._account = Account.from_key(private_key) if private_key else None
        self._nonce_cache.clear()
        logger.info(f"Switched account to {self.get_account()}")
        self._callbacks.fire(self.get_account(), self._chain_id)

    # ======================
    # Nonce management
    # ======================

    async def _get_next_nonce(self, address: str) -> int:
        """Next nonce, never reusing one handed out for a still-pending tx."""
        async with self._nonce_lock:
            chain_nonce = await self.web3.eth.get_transaction_count(address, "pending")
            cached_nonce = self._nonce_cache.get(address, 0)
            next_nonce = max(chain_nonce, cached_nonce)
            self._nonce_cache[address] = next_nonce + 1
            return next_nonce

    def _reset_nonce_cache(self, address: str) -> None:
        self._nonce_cache.pop(address, None)
