"""Allowance tracking for (owner, spender, token).

The monitor is the single writer of ``AllowanceRecord`` values. One instance is
shared by every orchestrator working for the same session; orchestrators only
read through it.

Cached records are reused only within the swap request that produced them.
Before an exchange is submitted the caller must pass ``refresh=True``, because
approval state can change on-chain between the check and the exchange.
``invalidate()`` wins over any read still in flight: a read that started before
the invalidation never writes its result back.
"""

import logging
from typing import Optional

from swapflow.config import Settings, get_settings
from swapflow.models import AllowanceRecord, Token
from swapflow.session import ChainReader
from swapflow.transactions import decode_uint256, encode_allowance
from swapflow.utils.retry import retry_transient

logger = logging.getLogger(__name__)

AllowanceKey = tuple[int, str, str, str]


class AllowanceMonitor:
    """Reads and caches ERC-20 allowances."""

    def __init__(self, reader: ChainReader, settings: Optional[Settings] = None):
        self._reader = reader
        self._settings = settings or get_settings()
        self._records: dict[AllowanceKey, AllowanceRecord] = {}
        self._generation = 0

    @staticmethod
    def _key(owner: str, spender: str, token: Token) -> AllowanceKey:
        return (token.chain_id, token.address.lower(), owner.lower(), spender.lower())

    @property
    def generation(self) -> int:
        """Bumped on every invalidation."""
        return self._generation

    def get_record(self, owner: str, spender: str, token: Token) -> Optional[AllowanceRecord]:
        """Cached record, if any. Read-only view for callers."""
        return self._records.get(self._key(owner, spender, token))

    async def read_allowance(
        self,
        owner: str,
        spender: str,
        token: Token,
        request_id: Optional[int] = None,
    ) -> AllowanceRecord:
        """Fetch the on-chain allowance and record it.

        The result is cached only if no invalidation happened while the read
        was in flight.
        """
        generation = self._generation
        data = await retry_transient(
            lambda: self._reader.call(token.address, encode_allowance(owner, spender)),
            attempts=self._settings.retry_attempts,
            backoff_seconds=self._settings.retry_backoff_seconds,
            description=f"allowance({token.symbol})",
        )
        record = AllowanceRecord(
            owner=owner,
            spender=spender,
            token=token,
            authorized_amount=decode_uint256(data),
            as_of_request_id=request_id,
        )

        if generation == self._generation:
            self._records[self._key(owner, spender, token)] = record
        else:
            logger.debug(f"Dropping allowance read for {token.symbol}: cache invalidated during read")
        return record

    async def is_sufficient(
        self,
        owner: str,
        spender: str,
        token: Token,
        amount: int,
        *,
        request_id: Optional[int] = None,
        refresh: bool = False,
    ) -> bool:
        """Whether ``spender`` may move ``amount`` of ``token`` for ``owner``.

        Args:
            request_id: Swap request the check belongs to. A cached record is
                reused only if it was taken for this same request.
            refresh: Always read from chain (required before submission)
        """
        cached = self.get_record(owner, spender, token)
        if (
            not refresh
            and cached is not None
            and request_id is not None
            and cached.as_of_request_id == request_id
        ):
            return cached.covers(amount)

        record = await self.read_allowance(owner, spender, token, request_id)
        sufficient = record.covers(amount)
        logger.info(
            f"Allowance {token.symbol} {owner[:10]}... -> {spender[:10]}...: "
            f"{record.authorized_amount} (need {amount}, sufficient={sufficient})"
        )
        return sufficient

    def invalidate(self) -> None:
        """Drop every cached record. Call on any account or network change."""
        self._generation += 1
        if self._records:
            logger.info(f"Invalidating {len(self._records)} cached allowance record(s)")
        self._records.clear()
