"""ABI encoding for the ERC-20 and Uniswap-V2 calls the swap flow issues.

Builds calldata for read-only calls (allowance, pair lookup, reserves, quotes)
and unsigned ``TransactionRequest`` objects for the two transactions the flow
submits: the ERC-20 approval and the router exchange.
"""

import logging
from typing import Optional, Sequence

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from swapflow.amounts import MAX_UINT256
from swapflow.errors import ValidationError
from swapflow.session import TransactionRequest

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# ERC-20
ALLOWANCE_SELECTOR = function_signature_to_4byte_selector("allowance(address,address)")
APPROVE_SELECTOR = function_signature_to_4byte_selector("approve(address,uint256)")

# Uniswap V2 factory / pair / router
GET_PAIR_SELECTOR = function_signature_to_4byte_selector("getPair(address,address)")
GET_RESERVES_SELECTOR = function_signature_to_4byte_selector("getReserves()")
TOKEN0_SELECTOR = function_signature_to_4byte_selector("token0()")
GET_AMOUNTS_OUT_SELECTOR = function_signature_to_4byte_selector("getAmountsOut(uint256,address[])")
SWAP_EXACT_TOKENS_SELECTOR = function_signature_to_4byte_selector(
    "swapExactTokensForTokens(uint256,uint256,address[],address,uint256)"
)

# Gas limits used when the wallet does not estimate
APPROVE_GAS_LIMIT = 100_000
SWAP_GAS_LIMIT = 300_000


def _checksum_path(path: Sequence[str]) -> list[str]:
    return [to_checksum_address(address) for address in path]


# ======================
# Read-only calls
# ======================


def encode_allowance(owner: str, spender: str) -> bytes:
    return ALLOWANCE_SELECTOR + encode(
        ["address", "address"], [to_checksum_address(owner), to_checksum_address(spender)]
    )


def encode_get_pair(token_a: str, token_b: str) -> bytes:
    return GET_PAIR_SELECTOR + encode(
        ["address", "address"], [to_checksum_address(token_a), to_checksum_address(token_b)]
    )


def encode_get_reserves() -> bytes:
    return GET_RESERVES_SELECTOR


def encode_token0() -> bytes:
    return TOKEN0_SELECTOR


def encode_get_amounts_out(amount_in: int, path: Sequence[str]) -> bytes:
    return GET_AMOUNTS_OUT_SELECTOR + encode(
        ["uint256", "address[]"], [amount_in, _checksum_path(path)]
    )


def decode_uint256(data: bytes) -> int:
    return decode(["uint256"], data)[0]


def decode_address(data: bytes) -> str:
    return to_checksum_address(decode(["address"], data)[0])


def decode_reserves(data: bytes) -> tuple[int, int]:
    """Decode getReserves() -> (reserve0, reserve1), dropping the timestamp."""
    reserve0, reserve1, _ = decode(["uint112", "uint112", "uint32"], data)
    return reserve0, reserve1


def decode_amounts(data: bytes) -> list[int]:
    return list(decode(["uint256[]"], data)[0])


# ======================
# Submitted transactions
# ======================


class TransactionBuilder:
    """Builds unsigned transactions for the wallet session to sign.

    This class never signs or broadcasts anything.
    """

    def build_approval(
        self,
        chain_id: int,
        token_address: str,
        spender: str,
        amount: Optional[int] = None,
        owner: Optional[str] = None,
    ) -> TransactionRequest:
        """Build an ERC-20 approval transaction.

        Args:
            chain_id: Chain the token lives on
            token_address: Token contract address
            spender: Address to approve (the DEX router)
            amount: Amount to approve (None = unlimited)
            owner: Sender, when known
        """
        if amount is None:
            amount = MAX_UINT256
        if amount < 0 or amount > MAX_UINT256:
            raise ValidationError(f"Approval amount out of range: {amount}")

        data = APPROVE_SELECTOR + encode(["address", "uint256"], [to_checksum_address(spender), amount])
        description = (
            f"Approve {spender[:10]}... to spend unlimited tokens"
            if amount == MAX_UINT256
            else f"Approve {spender[:10]}... to spend {amount} base units"
        )
        return TransactionRequest(
            chain_id=chain_id,
            to=to_checksum_address(token_address),
            data=data,
            value=0,
            from_address=owner,
            gas=APPROVE_GAS_LIMIT,
            description=description,
        )

    def build_swap(
        self,
        chain_id: int,
        router: str,
        amount_in: int,
        min_amount_out: int,
        path: Sequence[str],
        recipient: str,
        deadline: int,
    ) -> TransactionRequest:
        """Build swapExactTokensForTokens on a Uniswap-V2 compatible router.

        Args:
            amount_in: Exact input in base units
            min_amount_out: Slippage floor; the router reverts below it
            path: Token addresses from input to output
            recipient: Receiver of the output tokens
            deadline: Unix timestamp after which the router reverts
        """
        if len(path) < 2:
            raise ValidationError("Swap path needs at least two tokens")
        if min_amount_out < 0:
            raise ValidationError("Minimum output cannot be negative")

        data = SWAP_EXACT_TOKENS_SELECTOR + encode(
            ["uint256", "uint256", "address[]", "address", "uint256"],
            [amount_in, min_amount_out, _checksum_path(path), to_checksum_address(recipient), deadline],
        )
        return TransactionRequest(
            chain_id=chain_id,
            to=to_checksum_address(router),
            data=data,
            value=0,
            from_address=recipient,
            gas=SWAP_GAS_LIMIT,
            description=f"Swap {amount_in} base units (min out {min_amount_out}) via {router[:10]}...",
        )
