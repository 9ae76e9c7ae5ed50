"""Core data model for the swap flow.

All amounts are integers in token base units. Nothing in this module touches
floats; display conversion lives in ``swapflow.amounts``.
"""

import itertools
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from eth_utils import is_address, to_checksum_address

from swapflow.errors import SwapFailure, ValidationError

BPS_DENOMINATOR = 10_000


class SwapPhase(str, Enum):
    """Phases of a swap request."""

    IDLE = "idle"
    QUOTING = "quoting"
    NEEDS_APPROVAL = "needs_approval"
    APPROVING = "approving"
    READY_TO_SWAP = "ready_to_swap"
    SWAPPING = "swapping"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SwapPhase.CONFIRMED, SwapPhase.FAILED)


class TransactionKind(str, Enum):
    AUTHORIZE = "authorize"
    EXCHANGE = "exchange"


class ConfirmationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REVERTED = "reverted"


@dataclass(frozen=True)
class Token:
    """An ERC-20 token on a specific chain."""

    chain_id: int
    address: str
    symbol: str
    decimals: int

    def __post_init__(self):
        if not is_address(self.address):
            raise ValidationError(f"Invalid token address: {self.address}")
        if not 0 <= self.decimals <= 255:
            raise ValidationError(f"Invalid decimals for {self.symbol}: {self.decimals}")
        # Frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "address", to_checksum_address(self.address))

    def same_as(self, other: "Token") -> bool:
        return self.chain_id == other.chain_id and self.address == other.address


@dataclass(frozen=True)
class Quote:
    """Expected output for a candidate trade, tied to the request that produced it."""

    request_id: int
    token_in: Token
    token_out: Token
    input_amount: int
    output_amount: int
    price_impact_bps: int
    path: tuple[str, ...]
    created_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class AllowanceRecord:
    """Last observed allowance for (owner, spender, token)."""

    owner: str
    spender: str
    token: Token
    authorized_amount: int
    as_of_request_id: Optional[int]
    observed_at: float = field(default_factory=time.time)

    def covers(self, amount: int) -> bool:
        return self.authorized_amount >= amount


@dataclass
class TransactionRecord:
    """A transaction submitted on behalf of a swap request."""

    hash: str
    kind: TransactionKind
    submitted_at: float = field(default_factory=time.time)
    status: ConfirmationStatus = ConfirmationStatus.PENDING
    block_number: Optional[int] = None


_request_ids = itertools.count(1)


def next_request_id() -> int:
    """Process-wide monotonic swap request id."""
    return next(_request_ids)


@dataclass
class SwapRequest:
    """Trade intent and its progress. Mutated only by the orchestrator."""

    token_in: Optional[Token] = None
    token_out: Optional[Token] = None
    amount_in: Optional[int] = None
    slippage_bps: int = 50
    request_id: int = field(default_factory=next_request_id)
    phase: SwapPhase = SwapPhase.IDLE
    quote: Optional[Quote] = None
    error: Optional[SwapFailure] = None
    deadline: Optional[int] = None  # Unix seconds embedded in the exchange tx
    min_acceptable_output: Optional[int] = None
    transactions: list[TransactionRecord] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        """Pair and amount are set, so the request can be quoted."""
        return self.token_in is not None and self.token_out is not None and bool(self.amount_in)

    def transaction(self, kind: TransactionKind) -> Optional[TransactionRecord]:
        """Latest transaction of the given kind."""
        for record in reversed(self.transactions):
            if record.kind == kind:
                return record
        return None
