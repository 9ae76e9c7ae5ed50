"""Per-network endpoint and contract-address registry.

Supports EVM chains with a Uniswap-V2 compatible router:
- Ethereum (Uniswap V2)
- BNB Smart Chain (PancakeSwap V2)
- Polygon (QuickSwap)
- Avalanche (Trader Joe V1)
- Arbitrum One (SushiSwap)
- Sepolia testnet (Uniswap V2)

Lookups are pure. RPC endpoints can be overridden through Settings.
"""

from dataclasses import dataclass
from typing import Optional

from swapflow.config import Settings, get_settings
from swapflow.errors import UnsupportedChainError


@dataclass(frozen=True)
class ContractAddresses:
    """AMM contracts used by the swap flow on one chain."""

    router: str  # Spender for allowances and target of the exchange
    factory: str  # Resolves pair addresses for pricing
    wrapped_native: str


@dataclass(frozen=True)
class ChainConfig:
    """Configuration for an EVM network."""

    chain_id: int
    name: str
    native_symbol: str
    rpc_url: str
    explorer_url: str
    dex_name: str
    contracts: ContractAddresses
    is_testnet: bool = False


@dataclass(frozen=True)
class ChainEndpoint:
    """Resolved endpoint for a chain: where to talk and which contracts to use."""

    chain_id: int
    name: str
    endpoint: str
    explorer_url: str
    contracts: ContractAddresses


# ======================
# Chain Configurations
# ======================

CHAINS: dict[int, ChainConfig] = {
    # Ethereum - Uniswap V2
    1: ChainConfig(
        chain_id=1,
        name="Ethereum",
        native_symbol="ETH",
        rpc_url="https://eth.llamarpc.com",
        explorer_url="https://etherscan.io",
        dex_name="Uniswap V2",
        contracts=ContractAddresses(
            router="0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D",
            factory="0x5C69bEe701ef814a2B6a3EDD4B1652CB9cc5aA6f",
            wrapped_native="0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",  # WETH
        ),
    ),

    # BNB Smart Chain - PancakeSwap V2
    56: ChainConfig(
        chain_id=56,
        name="BNB Smart Chain",
        native_symbol="BNB",
        rpc_url="https://bsc-dataseed.binance.org",
        explorer_url="https://bscscan.com",
        dex_name="PancakeSwap V2",
        contracts=ContractAddresses(
            router="0x10ED43C718714eb63d5aA57B78B54704E256024E",
            factory="0xcA143Ce32Fe78f1f7019d7d551a6402fC5350c73",
            wrapped_native="0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c",  # WBNB
        ),
    ),

    # Polygon - QuickSwap
    137: ChainConfig(
        chain_id=137,
        name="Polygon",
        native_symbol="MATIC",
        rpc_url="https://polygon-rpc.com",
        explorer_url="https://polygonscan.com",
        dex_name="QuickSwap",
        contracts=ContractAddresses(
            router="0xa5E0829CaCEd8fFDD4De3c43696c57F7D7A678ff",
            factory="0x5757371414417b8C6CAad45bAeF941aBc7d3Ab32",
            wrapped_native="0x0d500B1d8E8eF31E21C99d1Db9A6444d3ADf1270",  # WMATIC
        ),
    ),

    # Avalanche C-Chain - Trader Joe
    43114: ChainConfig(
        chain_id=43114,
        name="Avalanche",
        native_symbol="AVAX",
        rpc_url="https://api.avax.network/ext/bc/C/rpc",
        explorer_url="https://snowtrace.io",
        dex_name="Trader Joe",
        contracts=ContractAddresses(
            router="0x60aE616a2155Ee3d9A68541Ba4544862310933d4",
            factory="0x9Ad6C38BE94206cA50bb0d90783181662f0Cfa10",
            wrapped_native="0xB31f66AA3C1e785363F0875A1B74E27b85FD66c7",  # WAVAX
        ),
    ),

    # Arbitrum One - SushiSwap
    42161: ChainConfig(
        chain_id=42161,
        name="Arbitrum One",
        native_symbol="ETH",
        rpc_url="https://arb1.arbitrum.io/rpc",
        explorer_url="https://arbiscan.io",
        dex_name="SushiSwap",
        contracts=ContractAddresses(
            router="0x1b02dA8Cb0d097eB8D57A175b88c7D8b47997506",
            factory="0xc35DADB65012eC5796536bD9864eD8773aBc74C4",
            wrapped_native="0x82aF49447D8a07e3bd95BD0d56f35241523fBab1",  # WETH
        ),
    ),

    # Sepolia testnet - Uniswap V2
    11155111: ChainConfig(
        chain_id=11155111,
        name="Sepolia",
        native_symbol="ETH",
        rpc_url="https://ethereum-sepolia-rpc.publicnode.com",
        explorer_url="https://sepolia.etherscan.io",
        dex_name="Uniswap V2",
        contracts=ContractAddresses(
            router="0xeE567Fe1712Faf6149d80dA1E6934E354124CfE3",
            factory="0xF62c03E08ada871A0bEb309762E260a7a6a880E6",
            wrapped_native="0xfFf9976782d46CC05630D1f6eBAb18b2324d6B14",  # WETH
        ),
        is_testnet=True,
    ),
}


class ChainRegistry:
    """Pure lookup of chain endpoints and AMM contract addresses."""

    def __init__(
        self,
        chains: Optional[dict[int, ChainConfig]] = None,
        settings: Optional[Settings] = None,
    ):
        self._chains = dict(chains) if chains is not None else dict(CHAINS)
        self._settings = settings or get_settings()

    def resolve(self, chain_id: int) -> ChainEndpoint:
        """Resolve the endpoint and contracts for a chain.

        Raises:
            UnsupportedChainError: If the chain id is not registered
        """
        chain = self._chains.get(chain_id)
        if chain is None:
            raise UnsupportedChainError(chain_id)

        endpoint = self._settings.get_rpc_url(chain_id) or chain.rpc_url
        return ChainEndpoint(
            chain_id=chain.chain_id,
            name=chain.name,
            endpoint=endpoint,
            explorer_url=chain.explorer_url,
            contracts=chain.contracts,
        )

    def get_chain(self, chain_id: int) -> Optional[ChainConfig]:
        """Get the raw chain configuration, or None."""
        return self._chains.get(chain_id)

    def is_supported(self, chain_id: int) -> bool:
        return chain_id in self._chains

    def supported_chain_ids(self) -> list[int]:
        return sorted(self._chains)

    def explorer_tx_url(self, chain_id: int, tx_hash: str) -> str:
        """Block explorer link for a transaction (presentation helper)."""
        return f"{self.resolve(chain_id).explorer_url}/tx/{tx_hash}"
