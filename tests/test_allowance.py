"""Tests for the allowance monitor."""

import asyncio

import pytest

from conftest import OTHER_OWNER, OWNER, UNISWAP_V2_ROUTER, USDC, WETH
from swapflow.allowance import AllowanceMonitor
from swapflow.errors import NetworkUnavailableError, RevertedError


class TestAllowanceMonitor:
    """Tests for reads, caching and invalidation."""

    @pytest.mark.asyncio
    async def test_sufficient_and_insufficient(self, chain, allowance_monitor):
        chain.set_allowance(USDC, OWNER, UNISWAP_V2_ROUTER, 100)

        assert await allowance_monitor.is_sufficient(OWNER, UNISWAP_V2_ROUTER, USDC, 100)
        assert not await allowance_monitor.is_sufficient(OWNER, UNISWAP_V2_ROUTER, USDC, 101)

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, chain, allowance_monitor):
        chain.set_allowance(USDC, OWNER, UNISWAP_V2_ROUTER, 100)

        assert not await allowance_monitor.is_sufficient(OTHER_OWNER, UNISWAP_V2_ROUTER, USDC, 1)
        assert not await allowance_monitor.is_sufficient(OWNER, UNISWAP_V2_ROUTER, WETH, 1)

    @pytest.mark.asyncio
    async def test_cache_reused_within_request(self, chain, allowance_monitor):
        chain.set_allowance(USDC, OWNER, UNISWAP_V2_ROUTER, 100)

        await allowance_monitor.is_sufficient(OWNER, UNISWAP_V2_ROUTER, USDC, 50, request_id=7)
        await allowance_monitor.is_sufficient(OWNER, UNISWAP_V2_ROUTER, USDC, 80, request_id=7)

        assert chain.call_count == 1

    @pytest.mark.asyncio
    async def test_cache_not_reused_across_requests(self, chain, allowance_monitor):
        chain.set_allowance(USDC, OWNER, UNISWAP_V2_ROUTER, 100)

        await allowance_monitor.is_sufficient(OWNER, UNISWAP_V2_ROUTER, USDC, 50, request_id=7)
        chain.set_allowance(USDC, OWNER, UNISWAP_V2_ROUTER, 0)

        assert not await allowance_monitor.is_sufficient(OWNER, UNISWAP_V2_ROUTER, USDC, 50, request_id=8)
        assert chain.call_count == 2

    @pytest.mark.asyncio
    async def test_refresh_bypasses_cache(self, chain, allowance_monitor):
        chain.set_allowance(USDC, OWNER, UNISWAP_V2_ROUTER, 100)
        await allowance_monitor.is_sufficient(OWNER, UNISWAP_V2_ROUTER, USDC, 50, request_id=7)

        # Revoked on-chain after the check
        chain.set_allowance(USDC, OWNER, UNISWAP_V2_ROUTER, 0)

        assert await allowance_monitor.is_sufficient(OWNER, UNISWAP_V2_ROUTER, USDC, 50, request_id=7)
        assert not await allowance_monitor.is_sufficient(
            OWNER, UNISWAP_V2_ROUTER, USDC, 50, request_id=7, refresh=True
        )

    @pytest.mark.asyncio
    async def test_record_exposed(self, chain, allowance_monitor):
        chain.set_allowance(USDC, OWNER, UNISWAP_V2_ROUTER, 123)

        await allowance_monitor.is_sufficient(OWNER, UNISWAP_V2_ROUTER, USDC, 1, request_id=3)
        record = allowance_monitor.get_record(OWNER, UNISWAP_V2_ROUTER.lower(), USDC)

        assert record.authorized_amount == 123
        assert record.as_of_request_id == 3

    @pytest.mark.asyncio
    async def test_invalidate_clears_cache(self, chain, allowance_monitor):
        chain.set_allowance(USDC, OWNER, UNISWAP_V2_ROUTER, 100)
        await allowance_monitor.is_sufficient(OWNER, UNISWAP_V2_ROUTER, USDC, 1, request_id=1)
        generation = allowance_monitor.generation

        allowance_monitor.invalidate()

        assert allowance_monitor.generation == generation + 1
        assert allowance_monitor.get_record(OWNER, UNISWAP_V2_ROUTER, USDC) is None

    @pytest.mark.asyncio
    async def test_invalidate_wins_over_inflight_read(self, chain, settings):
        gate = asyncio.Event()
        original_call = chain.call

        async def slow_call(address, data):
            await gate.wait()
            return await original_call(address, data)

        chain.call = slow_call
        chain.set_allowance(USDC, OWNER, UNISWAP_V2_ROUTER, 100)
        monitor = AllowanceMonitor(chain, settings)

        read = asyncio.create_task(monitor.read_allowance(OWNER, UNISWAP_V2_ROUTER, USDC, request_id=1))
        await asyncio.sleep(0)
        monitor.invalidate()
        gate.set()
        record = await read

        assert record.authorized_amount == 100
        assert monitor.get_record(OWNER, UNISWAP_V2_ROUTER, USDC) is None

    @pytest.mark.asyncio
    async def test_transient_read_failure_retried(self, chain, allowance_monitor):
        chain.set_allowance(USDC, OWNER, UNISWAP_V2_ROUTER, 100)
        chain.fail_calls = [NetworkUnavailableError("blip")]

        assert await allowance_monitor.is_sufficient(OWNER, UNISWAP_V2_ROUTER, USDC, 100)
        assert chain.call_count == 2

    @pytest.mark.asyncio
    async def test_revert_propagates(self, chain, allowance_monitor):
        chain.fail_calls = [RevertedError("execution reverted")]

        with pytest.raises(RevertedError):
            await allowance_monitor.is_sufficient(OWNER, UNISWAP_V2_ROUTER, USDC, 1)
        assert chain.call_count == 1
