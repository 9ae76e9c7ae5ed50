"""Client-side engine for quoting, approving and executing AMM token swaps.

Components:
- ChainRegistry: per-network endpoints and AMM contract addresses
- QuoteEngine: debounced quotes with out-of-order reply rejection
- AllowanceMonitor: shared ERC-20 allowance cache with authoritative invalidation
- classify: maps raw failures onto the FailureKind taxonomy
- SwapOrchestrator: the quote -> approve -> swap -> confirm state machine
"""

from swapflow.allowance import AllowanceMonitor
from swapflow.amounts import (
    format_amount,
    from_base_units,
    min_acceptable_output,
    to_base_units,
)
from swapflow.chains import ChainEndpoint, ChainRegistry
from swapflow.config import Settings, configure_logging, get_settings
from swapflow.contracts import SwapSnapshot
from swapflow.errors import FailureKind, SwapError, SwapFailure, ValidationError, classify
from swapflow.models import Quote, SwapPhase, SwapRequest, Token, TransactionKind
from swapflow.orchestrator import SwapOrchestrator
from swapflow.quotes import PricingSource, QuoteEngine, V2PoolPricing
from swapflow.rpc import JsonRpcChainReader
from swapflow.session import ChainReader, TransactionReceipt, TransactionRequest, WalletSession
from swapflow.signer import LocalKeySession

__version__ = "0.1.0"

__all__ = [
    # Core
    "SwapOrchestrator",
    "SwapSnapshot",
    "QuoteEngine",
    "PricingSource",
    "V2PoolPricing",
    "AllowanceMonitor",
    "ChainRegistry",
    "ChainEndpoint",
    # Model
    "Token",
    "Quote",
    "SwapPhase",
    "SwapRequest",
    "TransactionKind",
    # Errors
    "FailureKind",
    "SwapError",
    "SwapFailure",
    "ValidationError",
    "classify",
    # Amounts
    "to_base_units",
    "from_base_units",
    "format_amount",
    "min_acceptable_output",
    # Collaborators
    "WalletSession",
    "ChainReader",
    "TransactionRequest",
    "TransactionReceipt",
    "JsonRpcChainReader",
    "LocalKeySession",
    # Config
    "Settings",
    "get_settings",
    "configure_logging",
]
