"""Swap orchestrator: the state machine that sequences quote, approval and exchange.

Phases::

    IDLE -> QUOTING -> {NEEDS_APPROVAL | READY_TO_SWAP}
    NEEDS_APPROVAL -> APPROVING -> READY_TO_SWAP
    READY_TO_SWAP -> SWAPPING -> CONFIRMED | FAILED

Every suspension (quote, approval, exchange) runs as a task owned by the
orchestrator and bound to one ``SwapRequest``. Parameter changes, cancellation
and session changes replace the request and cancel the task; a task that
resumes after its request was replaced never touches state.

The approval transaction is confirmed on-chain before the exchange is even
built, so the two transactions never race for nonces.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from swapflow.allowance import AllowanceMonitor
from swapflow.amounts import min_acceptable_output, validate_amount, validate_slippage_bps
from swapflow.chains import ChainRegistry
from swapflow.config import Settings, get_settings
from swapflow.contracts import SwapSnapshot
from swapflow.errors import (
    ConfirmationTimeoutError,
    FailureKind,
    InsufficientAllowanceError,
    InvalidTransitionError,
    QuoteTimeoutError,
    RevertedError,
    StaleQuoteError,
    SwapFailure,
    ValidationError,
    classify,
)
from swapflow.models import (
    ConfirmationStatus,
    SwapPhase,
    SwapRequest,
    Token,
    TransactionKind,
    TransactionRecord,
)
from swapflow.quotes import QuoteEngine, V2PoolPricing
from swapflow.session import ChainReader, WalletSession
from swapflow.transactions import TransactionBuilder
from swapflow.utils.retry import retry_transient

logger = logging.getLogger(__name__)

TRANSITIONS: dict[SwapPhase, frozenset[SwapPhase]] = {
    SwapPhase.IDLE: frozenset({SwapPhase.QUOTING}),
    SwapPhase.QUOTING: frozenset({SwapPhase.NEEDS_APPROVAL, SwapPhase.READY_TO_SWAP, SwapPhase.FAILED}),
    SwapPhase.NEEDS_APPROVAL: frozenset({SwapPhase.APPROVING}),
    SwapPhase.APPROVING: frozenset({SwapPhase.READY_TO_SWAP, SwapPhase.FAILED}),
    # Back to NEEDS_APPROVAL when the pre-submission re-check finds the allowance gone
    SwapPhase.READY_TO_SWAP: frozenset({SwapPhase.SWAPPING, SwapPhase.NEEDS_APPROVAL, SwapPhase.FAILED}),
    SwapPhase.SWAPPING: frozenset({SwapPhase.CONFIRMED, SwapPhase.FAILED}),
    SwapPhase.CONFIRMED: frozenset(),
    SwapPhase.FAILED: frozenset(),
}

CANCELLABLE_PHASES = frozenset({SwapPhase.IDLE, SwapPhase.QUOTING, SwapPhase.NEEDS_APPROVAL})

# A transaction may already be on its way; parameters are frozen
SUBMITTING_PHASES = frozenset({SwapPhase.APPROVING, SwapPhase.SWAPPING})

SnapshotListener = Callable[[SwapSnapshot], None]


class SwapOrchestrator:
    """Drives one trade intent at a time from quote to confirmation.

    Mutators must be called from the event loop the orchestrator runs on.
    """

    def __init__(
        self,
        session: WalletSession,
        reader: ChainReader,
        *,
        registry: Optional[ChainRegistry] = None,
        allowance: Optional[AllowanceMonitor] = None,
        quotes: Optional[QuoteEngine] = None,
        builder: Optional[TransactionBuilder] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the orchestrator.

        Args:
            session: Wallet session (account, chain, signing)
            reader: Read-only chain access
            registry: Chain registry (default: built-in chains)
            allowance: Shared allowance monitor; pass the same instance to
                every orchestrator of a session
            quotes: Quote engine (default: direct V2 pool pricing)
            builder: Transaction builder
            settings: Settings (default: environment)
            clock: Wall clock used for exchange deadlines
        """
        self._settings = settings or get_settings()
        self._session = session
        self._reader = reader
        self._registry = registry or ChainRegistry(settings=self._settings)
        self._allowance = allowance or AllowanceMonitor(reader, self._settings)
        self._quotes = quotes or QuoteEngine(V2PoolPricing(reader, self._registry), self._settings)
        self._builder = builder or TransactionBuilder()
        self._clock = clock

        self._request = SwapRequest(slippage_bps=self._settings.default_slippage_bps)
        self._quote_task: Optional[asyncio.Task] = None
        self._flow_task: Optional[asyncio.Task] = None
        self._listeners: list[SnapshotListener] = []

        self._account = session.get_account()
        self._chain_id = session.get_chain_id()
        self._unsubscribe = session.on_account_or_chain_change(self._on_session_change)

    # ======================
    # Read side
    # ======================

    @property
    def phase(self) -> SwapPhase:
        return self._request.phase

    @property
    def request(self) -> SwapRequest:
        """Current request. Treat as read-only."""
        return self._request

    def snapshot(self) -> SwapSnapshot:
        return SwapSnapshot.from_request(self._request)

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Receive a snapshot after every phase change or reset."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def wait_for_quote(self) -> SwapSnapshot:
        """Wait until the latest quote task (and its allowance check) settles."""
        while True:
            task = self._quote_task
            if task is None or task.done():
                return self.snapshot()
            await asyncio.wait({task})
            if task is self._quote_task:
                return self.snapshot()

    # ======================
    # Trade parameters
    # ======================

    def set_amount_in(self, amount_in: int) -> SwapSnapshot:
        """Set the exact input amount in base units and re-quote."""
        validate_amount(amount_in)
        self._replace_request(amount_in=amount_in)
        return self.snapshot()

    def set_token_pair(self, token_in: Token, token_out: Token) -> SwapSnapshot:
        """Select the tokens to trade and re-quote.

        Raises:
            UnsupportedChainError: If the tokens' chain is not registered
            ValidationError: If the tokens are identical or on another chain
                than the active session
        """
        if token_in.chain_id != token_out.chain_id:
            raise ValidationError("Tokens must be on the same chain")
        if token_in.same_as(token_out):
            raise ValidationError("Input and output tokens must differ")
        self._registry.resolve(token_in.chain_id)
        if token_in.chain_id != self._chain_id:
            raise ValidationError(
                f"Tokens are on chain {token_in.chain_id} but the session is on chain {self._chain_id}"
            )
        self._replace_request(token_in=token_in, token_out=token_out)
        return self.snapshot()

    def set_slippage_bps(self, slippage_bps: int) -> SwapSnapshot:
        """Set slippage tolerance in basis points (0..10000) and re-quote."""
        validate_slippage_bps(slippage_bps)
        self._replace_request(slippage_bps=slippage_bps)
        return self.snapshot()

    def requote(self) -> SwapSnapshot:
        """Start over from IDLE with the same parameters."""
        self._replace_request()
        return self.snapshot()

    # ======================
    # Actions
    # ======================

    async def approve(self) -> SwapSnapshot:
        """Submit the authorization and wait for it to confirm.

        Only valid in NEEDS_APPROVAL. Ends in READY_TO_SWAP or FAILED.
        """
        request = self._request
        self._ensure_no_flow()
        if request.phase != SwapPhase.NEEDS_APPROVAL:
            raise InvalidTransitionError(f"Cannot approve while {request.phase.value}")

        self._transition(request, SwapPhase.APPROVING)
        self._flow_task = asyncio.create_task(self._run_approval(request))
        await self._wait_flow(self._flow_task)
        return self.snapshot()

    async def execute_swap(self) -> SwapSnapshot:
        """Re-verify the allowance, submit the exchange and track it.

        Only valid in READY_TO_SWAP. Ends in CONFIRMED, FAILED, or
        NEEDS_APPROVAL when the allowance no longer covers the input.
        """
        request = self._request
        self._ensure_no_flow()
        if request.phase != SwapPhase.READY_TO_SWAP:
            raise InvalidTransitionError(f"Cannot swap while {request.phase.value}")

        self._flow_task = asyncio.create_task(self._run_exchange(request))
        await self._wait_flow(self._flow_task)
        return self.snapshot()

    def cancel(self) -> SwapSnapshot:
        """Cancel the current request.

        In IDLE, QUOTING and NEEDS_APPROVAL the request is discarded. In
        APPROVING and SWAPPING local tracking stops, but a transaction that
        was already submitted is not retracted and may still confirm.

        Raises:
            InvalidTransitionError: In READY_TO_SWAP, CONFIRMED or FAILED
        """
        phase = self._request.phase
        if phase in SUBMITTING_PHASES:
            submitted = [tx.hash for tx in self._request.transactions]
            logger.warning(
                f"Cancelling request #{self._request.request_id} while {phase.value}; "
                f"submitted transactions {submitted or '(none yet)'} are not retracted"
            )
        elif phase not in CANCELLABLE_PHASES:
            raise InvalidTransitionError(f"Cannot cancel while {phase.value}")

        self._reset("cancelled")
        return self.snapshot()

    async def close(self) -> None:
        """Stop tracking and detach from the session."""
        tasks = self._cancel_tasks()
        self._unsubscribe()
        if tasks:
            await asyncio.wait(tasks)

    # ======================
    # Request lifecycle
    # ======================

    def _is_current(self, request: SwapRequest) -> bool:
        return request is self._request

    def _ensure_no_flow(self) -> None:
        if self._flow_task is not None and not self._flow_task.done():
            raise InvalidTransitionError("Another approval or exchange is already in progress")

    def _cancel_tasks(self) -> set:
        cancelled = set()
        for task in (self._quote_task, self._flow_task):
            if task is not None and not task.done():
                task.cancel()
                cancelled.add(task)
        self._quote_task = None
        self._flow_task = None
        self._quotes.cancel_pending()
        return cancelled

    def _replace_request(self, **changes) -> None:
        """Discard the current request for a new one and quote it if complete."""
        if self._request.phase in SUBMITTING_PHASES:
            raise ValidationError(
                f"Trade parameters are locked while {self._request.phase.value}; cancel first"
            )

        self._cancel_tasks()
        old = self._request
        self._request = SwapRequest(
            token_in=changes.get("token_in", old.token_in),
            token_out=changes.get("token_out", old.token_out),
            amount_in=changes.get("amount_in", old.amount_in),
            slippage_bps=changes.get("slippage_bps", old.slippage_bps),
        )
        logger.debug(f"Request #{old.request_id} replaced by #{self._request.request_id}")

        if self._request.is_complete:
            self._transition(self._request, SwapPhase.QUOTING)
            self._quote_task = asyncio.create_task(self._run_quote(self._request))
        else:
            self._notify()

    def _reset(self, reason: str, keep_pair: bool = True) -> None:
        """Unconditional return to IDLE with a fresh request (no quote)."""
        self._cancel_tasks()
        old = self._request
        self._request = SwapRequest(
            token_in=old.token_in if keep_pair else None,
            token_out=old.token_out if keep_pair else None,
            amount_in=old.amount_in,
            slippage_bps=old.slippage_bps,
        )
        logger.info(f"Request #{old.request_id} reset to idle ({reason}) as #{self._request.request_id}")
        self._notify()

    def _on_session_change(self, account: Optional[str], chain_id: int) -> None:
        chain_changed = chain_id != self._chain_id
        previous_phase = self._request.phase
        self._account = account
        self._chain_id = chain_id

        self._allowance.invalidate()
        if previous_phase in SUBMITTING_PHASES:
            logger.warning(
                f"Session changed while {previous_phase.value}; abandoning tracking of "
                f"{[tx.hash for tx in self._request.transactions] or 'unsubmitted transaction'}"
            )
        self._reset(
            "network change" if chain_changed else "account change",
            keep_pair=not chain_changed,
        )

    # ======================
    # Transitions
    # ======================

    def _transition(self, request: SwapRequest, target: SwapPhase) -> None:
        allowed = TRANSITIONS.get(request.phase, frozenset())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Illegal transition {request.phase.value} -> {target.value} (request #{request.request_id})"
            )
        logger.info(f"Request #{request.request_id}: {request.phase.value} -> {target.value}")
        request.phase = target
        self._notify()

    def _fail(self, request: SwapRequest, raw) -> None:
        failure = classify(raw)
        if isinstance(raw, QuoteTimeoutError):
            # Quote timeouts surface as an unreachable network, not a tx timeout
            failure = SwapFailure(FailureKind.NETWORK_UNAVAILABLE, failure.message)
        request.error = failure
        logger.warning(
            f"Request #{request.request_id} failed while {request.phase.value}: "
            f"{failure.kind.value} {failure.message}"
        )
        self._transition(request, SwapPhase.FAILED)

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Snapshot listener raised")

    async def _wait_flow(self, task: asyncio.Task) -> None:
        # asyncio.wait neither propagates nor triggers the task's cancellation
        await asyncio.wait({task})
        if not task.cancelled():
            task.result()

    def _spender(self, token: Token) -> str:
        return self._registry.resolve(token.chain_id).contracts.router

    # ======================
    # Flows
    # ======================

    async def _run_quote(self, request: SwapRequest) -> None:
        try:
            quote = await self._quotes.request_quote(request.token_in, request.token_out, request.amount_in)
        except StaleQuoteError:
            return
        except Exception as e:
            if self._is_current(request):
                self._fail(request, e)
            return

        if not self._is_current(request):
            return

        request.quote = quote
        request.min_acceptable_output = min_acceptable_output(quote.output_amount, request.slippage_bps)

        owner = self._session.get_account()
        if owner is None:
            self._fail(request, SwapFailure(FailureKind.UNKNOWN, "No active account"))
            return

        try:
            sufficient = await self._allowance.is_sufficient(
                owner,
                self._spender(request.token_in),
                request.token_in,
                request.amount_in,
                request_id=request.request_id,
            )
        except Exception as e:
            if self._is_current(request):
                self._fail(request, e)
            return

        if not self._is_current(request):
            return
        self._transition(request, SwapPhase.READY_TO_SWAP if sufficient else SwapPhase.NEEDS_APPROVAL)

    async def _run_approval(self, request: SwapRequest) -> None:
        owner = self._session.get_account()
        if owner is None:
            self._fail(request, SwapFailure(FailureKind.UNKNOWN, "No active account"))
            return

        token = request.token_in
        spender = self._spender(token)
        amount = None if self._settings.unlimited_approval else request.amount_in
        tx = self._builder.build_approval(token.chain_id, token.address, spender, amount, owner)

        record = await self._submit(request, tx, TransactionKind.AUTHORIZE)
        if record is None:
            return
        if not await self._await_confirmation(request, record):
            return

        try:
            sufficient = await self._allowance.is_sufficient(
                owner, spender, token, request.amount_in, request_id=request.request_id, refresh=True
            )
        except Exception as e:
            if self._is_current(request):
                self._fail(request, e)
            return

        if not self._is_current(request):
            return
        if sufficient:
            self._transition(request, SwapPhase.READY_TO_SWAP)
        else:
            self._fail(
                request,
                InsufficientAllowanceError(
                    f"Allowance for {token.symbol} still below {request.amount_in} after approval"
                ),
            )

    async def _run_exchange(self, request: SwapRequest) -> None:
        owner = self._session.get_account()
        if owner is None:
            self._fail(request, SwapFailure(FailureKind.UNKNOWN, "No active account"))
            return

        token_in = request.token_in
        spender = self._spender(token_in)

        # Approval state may have changed since the last check
        try:
            sufficient = await self._allowance.is_sufficient(
                owner, spender, token_in, request.amount_in, request_id=request.request_id, refresh=True
            )
        except Exception as e:
            if self._is_current(request):
                self._fail(request, e)
            return

        if not self._is_current(request):
            return
        if not sufficient:
            logger.warning(f"Request #{request.request_id}: allowance no longer covers {request.amount_in}")
            self._transition(request, SwapPhase.NEEDS_APPROVAL)
            return

        quote = request.quote
        request.min_acceptable_output = min_acceptable_output(quote.output_amount, request.slippage_bps)
        request.deadline = int(self._clock()) + self._settings.deadline_window_seconds
        tx = self._builder.build_swap(
            chain_id=token_in.chain_id,
            router=spender,
            amount_in=request.amount_in,
            min_amount_out=request.min_acceptable_output,
            path=quote.path,
            recipient=owner,
            deadline=request.deadline,
        )

        self._transition(request, SwapPhase.SWAPPING)
        record = await self._submit(request, tx, TransactionKind.EXCHANGE)
        if record is None:
            return
        if await self._await_confirmation(request, record):
            self._transition(request, SwapPhase.CONFIRMED)

    async def _submit(self, request: SwapRequest, tx, kind: TransactionKind) -> Optional[TransactionRecord]:
        """Sign and send once. Submissions are never retried."""
        try:
            tx_hash = await self._session.sign_and_send(tx)
        except Exception as e:
            if self._is_current(request):
                self._fail(request, e)
            return None

        if not self._is_current(request):
            logger.warning(f"{kind.value} transaction {tx_hash} sent for abandoned request #{request.request_id}")
            return None

        record = TransactionRecord(hash=tx_hash, kind=kind)
        request.transactions.append(record)
        logger.info(f"Request #{request.request_id}: {kind.value} transaction submitted {tx_hash}")
        self._notify()
        return record

    async def _await_confirmation(self, request: SwapRequest, record: TransactionRecord) -> bool:
        """Poll for the receipt until it lands, reverts, or the ceiling passes.

        Returns True only when the transaction confirmed and the request is
        still current. Failures are recorded on the request.
        """
        loop = asyncio.get_running_loop()
        ceiling = self._settings.confirmation_timeout_seconds
        give_up_at = loop.time() + ceiling

        while True:
            try:
                receipt = await retry_transient(
                    lambda: self._reader.get_transaction_receipt(record.hash),
                    attempts=self._settings.retry_attempts,
                    backoff_seconds=self._settings.retry_backoff_seconds,
                    description=f"receipt {record.hash[:10]}",
                )
            except Exception as e:
                failure = classify(e)
                if not failure.is_transient:
                    if self._is_current(request):
                        self._fail(request, e)
                    return False
                logger.warning(f"Receipt lookup for {record.hash} still failing: {e}")
                receipt = None

            if not self._is_current(request):
                return False

            if receipt is not None:
                record.block_number = receipt.block_number
                if receipt.succeeded:
                    record.status = ConfirmationStatus.CONFIRMED
                    logger.info(f"{record.kind.value} transaction {record.hash} confirmed in block {receipt.block_number}")
                    return True
                record.status = ConfirmationStatus.REVERTED
                self._fail(request, RevertedError(f"{record.kind.value} transaction {record.hash} reverted"))
                return False

            remaining = give_up_at - loop.time()
            if remaining <= 0:
                self._fail(
                    request,
                    ConfirmationTimeoutError(
                        f"{record.kind.value} transaction {record.hash} not confirmed after {ceiling}s"
                    ),
                )
                return False
            await asyncio.sleep(min(self._settings.confirmation_poll_seconds, remaining))
