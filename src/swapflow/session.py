"""Collaborator interfaces consumed by the swap engine.

The engine never reaches for a global wallet or web3 object. Hosts inject a
``WalletSession`` (account, chain, signing) and a ``ChainReader`` (read-only
calls and receipts), which makes it straightforward to substitute
deterministic doubles in tests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Optional

# Fired with (account, chain_id) after either one changes
SessionChangeCallback = Callable[[Optional[str], int], None]


@dataclass(frozen=True)
class TransactionRequest:
    """An unsigned transaction for the wallet to sign and broadcast."""

    chain_id: int
    to: str
    data: bytes
    value: int = 0
    from_address: Optional[str] = None
    gas: Optional[int] = None
    description: str = ""

    def to_tx_params(self) -> dict:
        """Render as web3-style transaction params."""
        params = {
            "chainId": self.chain_id,
            "to": self.to,
            "data": "0x" + self.data.hex(),
            "value": self.value,
        }
        if self.from_address:
            params["from"] = self.from_address
        if self.gas is not None:
            params["gas"] = self.gas
        return params


@dataclass(frozen=True)
class TransactionReceipt:
    """Minimal receipt view: inclusion block and success flag."""

    tx_hash: str
    status: int  # 1 = success, 0 = reverted
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class WalletSession(ABC):
    """Active account, active chain and transaction signing."""

    @abstractmethod
    def get_account(self) -> Optional[str]:
        """Currently selected account address, or None when disconnected."""
        pass

    @abstractmethod
    def get_chain_id(self) -> int:
        """Currently selected chain id."""
        pass

    @abstractmethod
    async def sign_and_send(self, request: TransactionRequest) -> str:
        """Sign and broadcast a transaction.

        Returns:
            Transaction hash (0x-prefixed hex)

        Raises:
            UserRejectedError: If the user declines to sign
        """
        pass

    @abstractmethod
    def on_account_or_chain_change(self, callback: SessionChangeCallback) -> Callable[[], None]:
        """Register a change listener. Returns a function that unregisters it."""
        pass


class ChainReader(ABC):
    """Read-only chain access."""

    @abstractmethod
    async def call(self, address: str, data: bytes) -> bytes:
        """Execute a read-only contract call (eth_call at latest block)."""
        pass

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        """Receipt for a mined transaction, or None while it is pending."""
        pass


class CallbackRegistry:
    """Listener bookkeeping shared by WalletSession implementations."""

    def __init__(self):
        self._callbacks: list[SessionChangeCallback] = []

    def add(self, callback: SessionChangeCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def fire(self, account: Optional[str], chain_id: int) -> None:
        for callback in list(self._callbacks):
            callback(account, chain_id)

    def __len__(self) -> int:
        return len(self._callbacks)
