"""Tests for the chain registry."""

import pytest

from swapflow.chains import CHAINS, ChainRegistry
from swapflow.config import Settings
from swapflow.errors import FailureKind, UnsupportedChainError, classify


class TestChainRegistry:
    """Tests for endpoint resolution."""

    def test_resolve_ethereum(self, registry):
        endpoint = registry.resolve(1)

        assert endpoint.chain_id == 1
        assert endpoint.name == "Ethereum"
        assert endpoint.endpoint == CHAINS[1].rpc_url
        assert endpoint.contracts.router == "0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D"

    def test_resolve_unknown_chain(self, registry):
        with pytest.raises(UnsupportedChainError) as exc_info:
            registry.resolve(999_999)

        assert exc_info.value.chain_id == 999_999
        assert classify(exc_info.value).kind == FailureKind.UNSUPPORTED_CHAIN

    def test_rpc_override_from_settings(self):
        settings = Settings(bsc_rpc_url="https://bsc.example/rpc")
        registry = ChainRegistry(settings=settings)

        assert registry.resolve(56).endpoint == "https://bsc.example/rpc"
        assert registry.resolve(1).endpoint == CHAINS[1].rpc_url

    def test_supported_chain_ids(self, registry):
        ids = registry.supported_chain_ids()

        assert ids == sorted(ids)
        assert {1, 56, 137, 43114, 42161, 11155111} <= set(ids)
        assert registry.is_supported(56)
        assert not registry.is_supported(10)

    def test_custom_chain_table(self, settings):
        registry = ChainRegistry(chains={56: CHAINS[56]}, settings=settings)

        assert registry.supported_chain_ids() == [56]
        with pytest.raises(UnsupportedChainError):
            registry.resolve(1)

    def test_get_chain(self, registry):
        assert registry.get_chain(11155111).is_testnet is True
        assert registry.get_chain(12345) is None

    def test_explorer_tx_url(self, registry):
        assert registry.explorer_tx_url(56, "0xabc") == "https://bscscan.com/tx/0xabc"

    def test_every_chain_has_distinct_router_and_factory(self):
        for chain in CHAINS.values():
            assert chain.contracts.router != chain.contracts.factory
            assert chain.contracts.router.startswith("0x")
