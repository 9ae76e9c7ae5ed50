"""Quote engine: debounced, staleness-checked pricing for a candidate trade.

Every ``request_quote`` call is assigned a strictly increasing request id.
The engine waits out a debounce window before pricing and, when the pricing
call returns, drops the result unless its id is still the highest one issued.
That check is the only thing standing between out-of-order network replies
and the caller's state, so callers must treat ``StaleQuoteError`` as
"ignore silently".
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from swapflow.amounts import validate_amount
from swapflow.chains import ChainRegistry
from swapflow.config import Settings, get_settings
from swapflow.errors import (
    NoLiquidityPathError,
    QuoteTimeoutError,
    RevertedError,
    StaleQuoteError,
    ValidationError,
)
from swapflow.models import BPS_DENOMINATOR, Quote, Token
from swapflow.session import ChainReader
from swapflow.transactions import (
    ZERO_ADDRESS,
    decode_address,
    decode_amounts,
    decode_reserves,
    encode_get_amounts_out,
    encode_get_pair,
    encode_get_reserves,
    encode_token0,
)
from swapflow.utils.retry import retry_transient

logger = logging.getLogger(__name__)


def price_impact_bps(amount_in: int, amount_out: int, reserve_in: int, reserve_out: int) -> int:
    """Deviation of the execution price from the pool mid price, in bps.

    mid = reserve_out / reserve_in, execution = amount_out / amount_in.
    impact = 1 - execution / mid, clamped at zero. Integer math only.
    """
    if amount_in <= 0 or reserve_in <= 0 or reserve_out <= 0:
        raise ValidationError("Price impact needs positive input and reserves")
    ratio_bps = amount_out * reserve_in * BPS_DENOMINATOR // (amount_in * reserve_out)
    return max(0, BPS_DENOMINATOR - ratio_bps)


@dataclass(frozen=True)
class PricedRoute:
    """Raw pricing result for a single pool."""

    output_amount: int
    reserve_in: int
    reserve_out: int
    path: tuple[str, ...]


class PricingSource(ABC):
    """Read-only pricing backend used by the quote engine."""

    @abstractmethod
    async def price(self, token_in: Token, token_out: Token, amount_in: int) -> PricedRoute:
        """Price an exact-input trade.

        Raises:
            NoLiquidityPathError: If no pool connects the two tokens
        """
        pass


class V2PoolPricing(PricingSource):
    """Prices a direct Uniswap-V2 pool through the factory, pair and router."""

    def __init__(self, reader: ChainReader, registry: Optional[ChainRegistry] = None):
        self._reader = reader
        self._registry = registry or ChainRegistry()

    async def price(self, token_in: Token, token_out: Token, amount_in: int) -> PricedRoute:
        contracts = self._registry.resolve(token_in.chain_id).contracts

        pair = decode_address(
            await self._reader.call(contracts.factory, encode_get_pair(token_in.address, token_out.address))
        )
        if pair == ZERO_ADDRESS:
            raise NoLiquidityPathError(f"No pool for {token_in.symbol}/{token_out.symbol}")

        reserve0, reserve1 = decode_reserves(await self._reader.call(pair, encode_get_reserves()))
        token0 = decode_address(await self._reader.call(pair, encode_token0()))
        if token0 == token_in.address:
            reserve_in, reserve_out = reserve0, reserve1
        else:
            reserve_in, reserve_out = reserve1, reserve0

        if reserve_in == 0 or reserve_out == 0:
            raise NoLiquidityPathError(f"Pool {pair} for {token_in.symbol}/{token_out.symbol} is empty")

        path = (token_in.address, token_out.address)
        try:
            amounts = decode_amounts(
                await self._reader.call(contracts.router, encode_get_amounts_out(amount_in, path))
            )
        except RevertedError as e:
            if "INSUFFICIENT_LIQUIDITY" in f"{e.message} {e.reason or ''}".upper():
                raise NoLiquidityPathError(f"Insufficient liquidity for {token_in.symbol}/{token_out.symbol}")
            raise

        output = amounts[-1] if amounts else 0
        if output == 0:
            raise NoLiquidityPathError(f"Zero output for {amount_in} {token_in.symbol} -> {token_out.symbol}")

        return PricedRoute(output_amount=output, reserve_in=reserve_in, reserve_out=reserve_out, path=path)


class QuoteEngine:
    """Debounced quote requests with out-of-order reply rejection."""

    def __init__(self, pricing: PricingSource, settings: Optional[Settings] = None):
        self._pricing = pricing
        self._settings = settings or get_settings()
        self._latest_request_id = 0

    @property
    def latest_request_id(self) -> int:
        """Highest request id issued so far."""
        return self._latest_request_id

    def is_current(self, request_id: int) -> bool:
        return request_id == self._latest_request_id

    def cancel_pending(self) -> None:
        """Make every in-flight request stale."""
        self._latest_request_id += 1

    async def request_quote(self, token_in: Token, token_out: Token, amount_in: int) -> Quote:
        """Quote an exact-input trade.

        Raises:
            ValidationError: Invalid input (before any network call)
            StaleQuoteError: A newer request superseded this one
            NoLiquidityPathError: No pool connects the tokens
            QuoteTimeoutError: Pricing kept timing out
            NetworkUnavailableError: Transport kept failing
        """
        validate_amount(amount_in)
        if token_in.chain_id != token_out.chain_id:
            raise ValidationError("Tokens must be on the same chain")
        if token_in.same_as(token_out):
            raise ValidationError("Input and output tokens must differ")

        self._latest_request_id += 1
        request_id = self._latest_request_id

        debounce = self._settings.quote_debounce_seconds
        if debounce > 0:
            await asyncio.sleep(debounce)
        self._ensure_current(request_id, "debounce")

        async def attempt():
            self._ensure_current(request_id, "retry")
            return await self._price_once(token_in, token_out, amount_in)

        route = await retry_transient(
            attempt,
            attempts=self._settings.retry_attempts,
            backoff_seconds=self._settings.retry_backoff_seconds,
            description=f"quote #{request_id} {token_in.symbol}->{token_out.symbol}",
        )
        self._ensure_current(request_id, "response")

        quote = Quote(
            request_id=request_id,
            token_in=token_in,
            token_out=token_out,
            input_amount=amount_in,
            output_amount=route.output_amount,
            price_impact_bps=price_impact_bps(
                amount_in, route.output_amount, route.reserve_in, route.reserve_out
            ),
            path=route.path,
        )
        logger.info(
            f"Quote #{request_id}: {amount_in} {token_in.symbol} -> {quote.output_amount} "
            f"{token_out.symbol} (impact {quote.price_impact_bps} bps)"
        )
        return quote

    def _ensure_current(self, request_id: int, stage: str) -> None:
        if not self.is_current(request_id):
            logger.debug(
                f"Quote #{request_id} superseded by #{self._latest_request_id} at {stage}, discarding"
            )
            raise StaleQuoteError(f"Quote #{request_id} superseded")

    async def _price_once(self, token_in: Token, token_out: Token, amount_in: int):
        timeout = self._settings.quote_timeout_seconds
        try:
            return await asyncio.wait_for(self._pricing.price(token_in, token_out, amount_in), timeout)
        except asyncio.TimeoutError:
            raise QuoteTimeoutError(f"Pricing {token_in.symbol}->{token_out.symbol} timed out after {timeout}s")
