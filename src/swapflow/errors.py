"""Error taxonomy and failure classification.

Every failure the swap flow can surface is mapped onto a closed set of
``FailureKind`` values. Exceptions raised inside the library carry their kind
directly; anything raised by a collaborator (wallet, RPC node, httpx, web3) is
classified from its type, its EIP-1193 / JSON-RPC error code and its message.

``classify`` never performs I/O and never retries. Retry decisions are made by
callers via ``is_transient``.
"""

import asyncio
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import httpx
from web3.exceptions import ContractLogicError, TimeExhausted


class FailureKind(str, Enum):
    """Closed set of failure outcomes surfaced to callers."""

    USER_REJECTED = "user_rejected"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INSUFFICIENT_ALLOWANCE = "insufficient_allowance"
    SLIPPAGE_EXCEEDED = "slippage_exceeded"
    REVERTED = "reverted"
    NETWORK_UNAVAILABLE = "network_unavailable"
    TIMEOUT = "timeout"
    UNSUPPORTED_CHAIN = "unsupported_chain"
    NO_LIQUIDITY_PATH = "no_liquidity_path"
    UNKNOWN = "unknown"


TRANSIENT_KINDS = frozenset({FailureKind.NETWORK_UNAVAILABLE, FailureKind.TIMEOUT})


@dataclass(frozen=True)
class SwapFailure:
    """A classified failure as exposed on the swap snapshot."""

    kind: FailureKind
    message: str = ""
    reason: Optional[str] = None  # Revert reason, when the chain supplied one

    @property
    def is_transient(self) -> bool:
        return self.kind in TRANSIENT_KINDS


# ============================================================================
# Exceptions
# ============================================================================


class SwapError(Exception):
    """Base exception for the swap engine."""

    kind: FailureKind = FailureKind.UNKNOWN

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(SwapError, ValueError):
    """Caller supplied invalid trade parameters. Raised before any I/O."""


class InvalidTransitionError(SwapError):
    """Requested phase transition is not in the transition table."""


class StaleQuoteError(SwapError):
    """A quote was superseded by a newer request and discarded."""


class UserRejectedError(SwapError):
    kind = FailureKind.USER_REJECTED


class InsufficientFundsError(SwapError):
    kind = FailureKind.INSUFFICIENT_FUNDS


class InsufficientAllowanceError(SwapError):
    kind = FailureKind.INSUFFICIENT_ALLOWANCE


class SlippageExceededError(SwapError):
    kind = FailureKind.SLIPPAGE_EXCEEDED


class RevertedError(SwapError):
    """Transaction or call reverted on-chain."""

    kind = FailureKind.REVERTED

    def __init__(self, message: str = "Transaction reverted", reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason


class NetworkUnavailableError(SwapError):
    kind = FailureKind.NETWORK_UNAVAILABLE


class SwapTimeoutError(SwapError):
    kind = FailureKind.TIMEOUT


class QuoteTimeoutError(SwapTimeoutError):
    """Pricing call exceeded the quote timeout."""


class ConfirmationTimeoutError(SwapTimeoutError):
    """Receipt did not arrive before the confirmation ceiling."""


class UnsupportedChainError(SwapError):
    kind = FailureKind.UNSUPPORTED_CHAIN

    def __init__(self, chain_id: Any):
        super().__init__(f"Unsupported chain: {chain_id}")
        self.chain_id = chain_id


class NoLiquidityPathError(SwapError):
    kind = FailureKind.NO_LIQUIDITY_PATH


class RpcError(SwapError):
    """JSON-RPC error object returned by a node or wallet.

    Kept unclassified on purpose: ``classify`` inspects ``code`` and
    ``message`` to decide what it means.
    """

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.code = code
        self.data = data


# ============================================================================
# Classification
# ============================================================================

# EIP-1193 provider error codes
USER_REJECTED_CODE = 4001

_USER_REJECTED_PATTERNS = ("user rejected", "user denied", "rejected by user", "user cancelled")
_FUNDS_PATTERNS = ("insufficient funds", "insufficient balance", "exceeds balance")
_ALLOWANCE_PATTERNS = ("exceeds allowance", "insufficient allowance", "allowance too low")
_SLIPPAGE_PATTERNS = ("insufficient_output_amount", "too little received", "slippage")
_NETWORK_PATTERNS = (
    "connection",
    "network",
    "unreachable",
    "refused",
    "dns",
    "socket",
    "bad gateway",
    "service unavailable",
)
_TIMEOUT_PATTERNS = ("timeout", "timed out")
_REVERT_PATTERNS = ("revert", "transaction failed", "out of gas")

_REVERT_REASON = re.compile(r"(?:execution reverted|reverted)\s*:?\s*(.*)$", re.IGNORECASE)


def is_transient(kind: FailureKind) -> bool:
    """Whether a failure of this kind may be retried locally."""
    return kind in TRANSIENT_KINDS


def _revert_reason(message: str) -> Optional[str]:
    match = _REVERT_REASON.search(message)
    if match:
        reason = match.group(1).strip()
        return reason or None
    return None


def _message_of(raw: Any) -> tuple[Optional[int], str]:
    """Extract an error code and message from whatever a collaborator raised."""
    if isinstance(raw, dict):
        # JSON-RPC / EIP-1193 error object, possibly wrapped in {"error": {...}}
        payload = raw.get("error", raw) if isinstance(raw.get("error"), dict) else raw
        code = payload.get("code")
        message = str(payload.get("message", ""))
        data = payload.get("data")
        if isinstance(data, str) and data and not data.startswith("0x"):
            message = f"{message} {data}"
        elif isinstance(data, dict) and data.get("message"):
            message = f"{message} {data['message']}"
        return (code if isinstance(code, int) else None), message

    if isinstance(raw, RpcError):
        return raw.code, raw.message

    code = getattr(raw, "code", None)
    if not isinstance(code, int):
        code = None

    if isinstance(raw, BaseException):
        # web3 wraps node errors as ValueError({"code": ..., "message": ...})
        if raw.args and isinstance(raw.args[0], dict):
            return _message_of(raw.args[0])
        return code, str(raw)

    return code, str(raw) if raw is not None else ""


def _from_message(message: str) -> Optional[SwapFailure]:
    lowered = message.lower()

    if any(p in lowered for p in _USER_REJECTED_PATTERNS):
        return SwapFailure(FailureKind.USER_REJECTED, message)
    if any(p in lowered for p in _FUNDS_PATTERNS):
        return SwapFailure(FailureKind.INSUFFICIENT_FUNDS, message)
    if any(p in lowered for p in _ALLOWANCE_PATTERNS):
        return SwapFailure(FailureKind.INSUFFICIENT_ALLOWANCE, message)
    if any(p in lowered for p in _SLIPPAGE_PATTERNS):
        return SwapFailure(FailureKind.SLIPPAGE_EXCEEDED, message, _revert_reason(message))
    if any(p in lowered for p in _REVERT_PATTERNS):
        return SwapFailure(FailureKind.REVERTED, message, _revert_reason(message))
    if any(p in lowered for p in _TIMEOUT_PATTERNS):
        return SwapFailure(FailureKind.TIMEOUT, message)
    if any(p in lowered for p in _NETWORK_PATTERNS):
        return SwapFailure(FailureKind.NETWORK_UNAVAILABLE, message)
    return None


def classify(raw: Any) -> SwapFailure:
    """Map a raw failure onto the closed failure taxonomy.

    Args:
        raw: An exception, a JSON-RPC error dict, or a plain message

    Returns:
        SwapFailure describing the outcome. Unrecognized input maps to UNKNOWN.
    """
    if isinstance(raw, SwapFailure):
        return raw

    # Library exceptions already know what they are
    if isinstance(raw, RevertedError):
        reason = raw.reason
        failure = _from_message(raw.message)
        if failure and failure.kind in (FailureKind.SLIPPAGE_EXCEEDED, FailureKind.INSUFFICIENT_ALLOWANCE):
            return SwapFailure(failure.kind, raw.message, reason or failure.reason)
        return SwapFailure(FailureKind.REVERTED, raw.message, reason)
    if isinstance(raw, SwapError) and not isinstance(raw, RpcError):
        return SwapFailure(raw.kind, raw.message)

    # Transport-level types
    if isinstance(raw, (httpx.TimeoutException, asyncio.TimeoutError, TimeExhausted, TimeoutError)):
        return SwapFailure(FailureKind.TIMEOUT, str(raw) or type(raw).__name__)
    if isinstance(raw, (httpx.TransportError, ConnectionError)):
        return SwapFailure(FailureKind.NETWORK_UNAVAILABLE, str(raw) or type(raw).__name__)
    if isinstance(raw, httpx.HTTPStatusError):
        if raw.response.status_code >= 500 or raw.response.status_code == 429:
            return SwapFailure(FailureKind.NETWORK_UNAVAILABLE, str(raw))
        return SwapFailure(FailureKind.UNKNOWN, str(raw))

    code, message = _message_of(raw)

    if code == USER_REJECTED_CODE:
        return SwapFailure(FailureKind.USER_REJECTED, message or "User rejected the request")

    if isinstance(raw, ContractLogicError):
        failure = _from_message(message)
        if failure and failure.kind in (FailureKind.SLIPPAGE_EXCEEDED, FailureKind.INSUFFICIENT_ALLOWANCE):
            return failure
        return SwapFailure(FailureKind.REVERTED, message, _revert_reason(message) or message or None)

    failure = _from_message(message)
    if failure is not None:
        return failure

    return SwapFailure(FailureKind.UNKNOWN, message or type(raw).__name__)
