"""Tests for calldata encoding and transaction building."""

import pytest
from eth_abi import decode, encode

from conftest import OWNER, UNISWAP_V2_ROUTER, USDC, WETH
from swapflow.amounts import MAX_UINT256
from swapflow.errors import ValidationError
from swapflow.transactions import (
    ALLOWANCE_SELECTOR,
    APPROVE_GAS_LIMIT,
    APPROVE_SELECTOR,
    SWAP_EXACT_TOKENS_SELECTOR,
    TransactionBuilder,
    decode_address,
    decode_amounts,
    decode_reserves,
    decode_uint256,
    encode_allowance,
    encode_get_amounts_out,
)


class TestSelectors:
    """Well-known 4-byte selectors."""

    def test_erc20_selectors(self):
        assert ALLOWANCE_SELECTOR.hex() == "dd62ed3e"
        assert APPROVE_SELECTOR.hex() == "095ea7b3"

    def test_router_selector(self):
        assert SWAP_EXACT_TOKENS_SELECTOR.hex() == "38ed1739"


class TestCalldata:
    """Tests for read-only call encoding and result decoding."""

    def test_encode_allowance(self):
        data = encode_allowance(OWNER, UNISWAP_V2_ROUTER.lower())

        assert data[:4] == ALLOWANCE_SELECTOR
        owner, spender = decode(["address", "address"], data[4:])
        assert owner.lower() == OWNER.lower()
        assert spender.lower() == UNISWAP_V2_ROUTER.lower()

    def test_encode_get_amounts_out(self):
        data = encode_get_amounts_out(10**6, [USDC.address, WETH.address])

        amount, path = decode(["uint256", "address[]"], data[4:])
        assert amount == 10**6
        assert [p.lower() for p in path] == [USDC.address.lower(), WETH.address.lower()]

    def test_decode_helpers(self):
        assert decode_uint256(encode(["uint256"], [42])) == 42
        assert decode_address(encode(["address"], [USDC.address.lower()])) == USDC.address
        assert decode_reserves(encode(["uint112", "uint112", "uint32"], [5, 7, 1])) == (5, 7)
        assert decode_amounts(encode(["uint256[]"], [[1, 2, 3]])) == [1, 2, 3]


class TestTransactionBuilder:
    """Tests for approval and exchange transactions."""

    def test_build_exact_approval(self):
        tx = TransactionBuilder().build_approval(1, USDC.address, UNISWAP_V2_ROUTER, 100_000_000, OWNER)

        assert tx.chain_id == 1
        assert tx.to == USDC.address
        assert tx.value == 0
        assert tx.gas == APPROVE_GAS_LIMIT
        assert tx.data[:4] == APPROVE_SELECTOR
        spender, amount = decode(["address", "uint256"], tx.data[4:])
        assert spender.lower() == UNISWAP_V2_ROUTER.lower()
        assert amount == 100_000_000

    def test_build_unlimited_approval(self):
        tx = TransactionBuilder().build_approval(1, USDC.address, UNISWAP_V2_ROUTER)

        _, amount = decode(["address", "uint256"], tx.data[4:])
        assert amount == MAX_UINT256
        assert "unlimited" in tx.description

    def test_build_approval_rejects_negative(self):
        with pytest.raises(ValidationError):
            TransactionBuilder().build_approval(1, USDC.address, UNISWAP_V2_ROUTER, -1)

    def test_build_swap(self):
        tx = TransactionBuilder().build_swap(
            chain_id=1,
            router=UNISWAP_V2_ROUTER,
            amount_in=100_000_000,
            min_amount_out=199_000_000,
            path=(USDC.address, WETH.address),
            recipient=OWNER,
            deadline=1_700_001_200,
        )

        assert tx.to == UNISWAP_V2_ROUTER
        assert tx.data[:4] == SWAP_EXACT_TOKENS_SELECTOR
        amount_in, min_out, path, recipient, deadline = decode(
            ["uint256", "uint256", "address[]", "address", "uint256"], tx.data[4:]
        )
        assert amount_in == 100_000_000
        assert min_out == 199_000_000
        assert len(path) == 2
        assert recipient.lower() == OWNER.lower()
        assert deadline == 1_700_001_200

    def test_build_swap_requires_path(self):
        with pytest.raises(ValidationError):
            TransactionBuilder().build_swap(1, UNISWAP_V2_ROUTER, 1, 0, [USDC.address], OWNER, 0)

    def test_to_tx_params(self):
        tx = TransactionBuilder().build_approval(1, USDC.address, UNISWAP_V2_ROUTER, 5, OWNER)
        params = tx.to_tx_params()

        assert params["chainId"] == 1
        assert params["from"] == OWNER
        assert params["data"].startswith("0x095ea7b3")
        assert params["gas"] == APPROVE_GAS_LIMIT
