"""Read-only snapshot contracts exposed to the presentation layer.

Amounts are carried as base-unit integers. Formatting for display is the
presentation layer's job (see ``swapflow.amounts.format_amount``).
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from swapflow.errors import FailureKind, SwapFailure
from swapflow.models import Quote, SwapPhase, SwapRequest, Token, TransactionRecord


class TokenInfo(BaseModel):
    """Token as shown to callers."""

    model_config = ConfigDict(frozen=True)

    chain_id: int
    address: str
    symbol: str
    decimals: int

    @classmethod
    def from_token(cls, token: Optional[Token]) -> Optional["TokenInfo"]:
        if token is None:
            return None
        return cls(chain_id=token.chain_id, address=token.address, symbol=token.symbol, decimals=token.decimals)


class QuoteInfo(BaseModel):
    """Quote details for display."""

    model_config = ConfigDict(frozen=True)

    request_id: int = Field(..., description="Quote request that produced this quote")
    input_amount: int = Field(..., description="Input in base units")
    output_amount: int = Field(..., description="Expected output in base units")
    price_impact_bps: int = Field(..., description="Price impact in basis points")
    path: list[str] = Field(default_factory=list, description="Token addresses in route order")
    created_at: float = Field(..., description="Unix time the quote was produced")

    @classmethod
    def from_quote(cls, quote: Optional[Quote]) -> Optional["QuoteInfo"]:
        if quote is None:
            return None
        return cls(
            request_id=quote.request_id,
            input_amount=quote.input_amount,
            output_amount=quote.output_amount,
            price_impact_bps=quote.price_impact_bps,
            path=list(quote.path),
            created_at=quote.created_at,
        )


class FailureInfo(BaseModel):
    """Typed terminal failure."""

    model_config = ConfigDict(frozen=True)

    kind: FailureKind
    message: str = ""
    reason: Optional[str] = Field(None, description="Revert reason when available")

    @classmethod
    def from_failure(cls, failure: Optional[SwapFailure]) -> Optional["FailureInfo"]:
        if failure is None:
            return None
        return cls(kind=failure.kind, message=failure.message, reason=failure.reason)


class TransactionInfo(BaseModel):
    """Submitted transaction and its confirmation status."""

    model_config = ConfigDict(frozen=True)

    hash: str
    kind: str
    submitted_at: float
    status: str
    block_number: Optional[int] = None

    @classmethod
    def from_record(cls, record: TransactionRecord) -> "TransactionInfo":
        return cls(
            hash=record.hash,
            kind=record.kind.value,
            submitted_at=record.submitted_at,
            status=record.status.value,
            block_number=record.block_number,
        )


class SwapSnapshot(BaseModel):
    """Immutable view of the current swap request."""

    model_config = ConfigDict(frozen=True)

    request_id: int
    phase: SwapPhase
    token_in: Optional[TokenInfo] = None
    token_out: Optional[TokenInfo] = None
    amount_in: Optional[int] = None
    slippage_bps: int
    quote: Optional[QuoteInfo] = None
    min_acceptable_output: Optional[int] = None
    deadline: Optional[int] = None
    error: Optional[FailureInfo] = None
    transactions: list[TransactionInfo] = Field(default_factory=list)

    @property
    def transaction_hashes(self) -> list[str]:
        return [tx.hash for tx in self.transactions]

    @classmethod
    def from_request(cls, request: SwapRequest) -> "SwapSnapshot":
        return cls(
            request_id=request.request_id,
            phase=request.phase,
            token_in=TokenInfo.from_token(request.token_in),
            token_out=TokenInfo.from_token(request.token_out),
            amount_in=request.amount_in,
            slippage_bps=request.slippage_bps,
            quote=QuoteInfo.from_quote(request.quote),
            min_acceptable_output=request.min_acceptable_output,
            deadline=request.deadline,
            error=FailureInfo.from_failure(request.error),
            transactions=[TransactionInfo.from_record(tx) for tx in request.transactions],
        )
