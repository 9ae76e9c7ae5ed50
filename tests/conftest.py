"""Pytest configuration and fixtures."""

import asyncio
import os
from typing import Callable, Optional

import pytest
import pytest_asyncio
from eth_abi import decode, encode

# Set test environment
os.environ["DEBUG"] = "true"

from swapflow.allowance import AllowanceMonitor
from swapflow.chains import ChainRegistry
from swapflow.config import Settings
from swapflow.errors import UserRejectedError
from swapflow.models import Token
from swapflow.orchestrator import SwapOrchestrator
from swapflow.quotes import PricedRoute, PricingSource, QuoteEngine
from swapflow.session import (
    CallbackRegistry,
    ChainReader,
    SessionChangeCallback,
    TransactionReceipt,
    TransactionRequest,
    WalletSession,
)
from swapflow.transactions import ALLOWANCE_SELECTOR, APPROVE_SELECTOR

OWNER = "0x1111111111111111111111111111111111111111"
OTHER_OWNER = "0x2222222222222222222222222222222222222222"
UNISWAP_V2_ROUTER = "0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D"

USDC = Token(1, "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", "USDC", 6)
WETH = Token(1, "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", "WETH", 18)
BSC_USDT = Token(56, "0x55d398326f99059fF775485246999027B3197955", "USDT", 18)


class FakeChain(ChainReader):
    """In-memory chain: allowances, receipts and call counters."""

    def __init__(self):
        self.allowances: dict[tuple[str, str, str], int] = {}
        self.receipts: dict[str, TransactionReceipt] = {}
        self.call_count = 0
        self.receipt_lookups = 0
        self.fail_calls: list[Exception] = []  # raised (in order) before answering
        self.block_number = 100

    def set_allowance(self, token: Token, owner: str, spender: str, amount: int) -> None:
        self.allowances[(token.address.lower(), owner.lower(), spender.lower())] = amount

    def mine(self, tx_hash: str, status: int = 1) -> None:
        self.block_number += 1
        self.receipts[tx_hash] = TransactionReceipt(tx_hash=tx_hash, status=status, block_number=self.block_number)

    async def call(self, address: str, data: bytes) -> bytes:
        self.call_count += 1
        if self.fail_calls:
            raise self.fail_calls.pop(0)
        if data[:4] == ALLOWANCE_SELECTOR:
            owner, spender = decode(["address", "address"], data[4:])
            amount = self.allowances.get((address.lower(), owner.lower(), spender.lower()), 0)
            return encode(["uint256"], [amount])
        raise AssertionError(f"Unexpected call to {address}: {data[:4].hex()}")

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        self.receipt_lookups += 1
        return self.receipts.get(tx_hash)


class FakeWalletSession(WalletSession):
    """Deterministic wallet double.

    Approvals take effect on the fake chain as soon as they are sent. With
    ``auto_mine`` every sent transaction gets a receipt immediately.
    """

    def __init__(self, chain: FakeChain, account: Optional[str] = OWNER, chain_id: int = 1):
        self.chain = chain
        self.account = account
        self.chain_id = chain_id
        self.sent: list[tuple[str, TransactionRequest]] = []
        self.sign_attempts = 0
        self.reject = False
        self.auto_mine = True
        self.swap_status = 1
        self._callbacks = CallbackRegistry()

    def get_account(self) -> Optional[str]:
        return self.account

    def get_chain_id(self) -> int:
        return self.chain_id

    def on_account_or_chain_change(self, callback: SessionChangeCallback) -> Callable[[], None]:
        return self._callbacks.add(callback)

    async def sign_and_send(self, request: TransactionRequest) -> str:
        self.sign_attempts += 1
        await asyncio.sleep(0)
        if self.reject:
            raise UserRejectedError("User rejected the request")

        tx_hash = "0x" + f"{len(self.sent) + 1:064x}"
        self.sent.append((tx_hash, request))

        is_approval = request.data[:4] == APPROVE_SELECTOR
        if is_approval:
            spender, amount = decode(["address", "uint256"], request.data[4:])
            self.chain.allowances[(request.to.lower(), self.account.lower(), spender.lower())] = amount
        if self.auto_mine:
            self.chain.mine(tx_hash, status=1 if is_approval else self.swap_status)
        return tx_hash

    def switch_chain(self, chain_id: int) -> None:
        self.chain_id = chain_id
        self._callbacks.fire(self.account, chain_id)

    def switch_account(self, account: Optional[str]) -> None:
        self.account = account
        self._callbacks.fire(account, self.chain_id)


class StubPricing(PricingSource):
    """Pricing double with optional per-amount gates for ordering tests."""

    def __init__(self, output_amount: int = 200_000_000, reserve_in: int = 10**15, reserve_out: int = 2 * 10**15):
        self.output_amount = output_amount
        self.reserve_in = reserve_in
        self.reserve_out = reserve_out
        self.gates: dict[int, asyncio.Event] = {}
        self.outputs: dict[int, int] = {}
        self.errors: list[Exception] = []
        self.calls: list[int] = []

    async def price(self, token_in: Token, token_out: Token, amount_in: int) -> PricedRoute:
        self.calls.append(amount_in)
        gate = self.gates.get(amount_in)
        if gate is not None:
            await gate.wait()
        if self.errors:
            raise self.errors.pop(0)
        return PricedRoute(
            output_amount=self.outputs.get(amount_in, self.output_amount),
            reserve_in=self.reserve_in,
            reserve_out=self.reserve_out,
            path=(token_in.address, token_out.address),
        )


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    give_up_at = loop.time() + timeout
    while not predicate():
        if loop.time() > give_up_at:
            raise AssertionError("Condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def settings() -> Settings:
    """Fast settings: no debounce, short polls, no backoff."""
    return Settings(
        quote_debounce_seconds=0,
        quote_timeout_seconds=1.0,
        confirmation_poll_seconds=0.01,
        confirmation_timeout_seconds=2.0,
        retry_attempts=3,
        retry_backoff_seconds=0,
    )


@pytest.fixture
def registry(settings) -> ChainRegistry:
    return ChainRegistry(settings=settings)


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def session(chain) -> FakeWalletSession:
    return FakeWalletSession(chain)


@pytest.fixture
def pricing() -> StubPricing:
    return StubPricing()


@pytest.fixture
def allowance_monitor(chain, settings) -> AllowanceMonitor:
    return AllowanceMonitor(chain, settings)


@pytest.fixture
def clock():
    """Frozen wall clock for deadline assertions."""
    return lambda: 1_700_000_000.0


@pytest_asyncio.fixture
async def orchestrator(session, chain, pricing, registry, allowance_monitor, settings, clock):
    """Orchestrator wired to the fakes, closed after the test."""
    orch = SwapOrchestrator(
        session,
        chain,
        registry=registry,
        allowance=allowance_monitor,
        quotes=QuoteEngine(pricing, settings),
        settings=settings,
        clock=clock,
    )
    yield orch
    await orch.close()
