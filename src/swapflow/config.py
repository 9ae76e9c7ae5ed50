"""Library configuration using pydantic-settings.

Every timing constant the swap flow depends on (debounce, quote timeout,
deadline window, confirmation ceiling, retry policy) is read from here so a
host application can tune them through environment variables or a ``.env`` file.
"""

import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Swap engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Logging
    # ======================
    debug: bool = Field(default=False, description="Enable debug logging")

    # ======================
    # Quoting
    # ======================
    quote_debounce_seconds: float = Field(
        default=0.5, ge=0, description="Quiet period after the last parameter change"
    )
    quote_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Upper bound for a single pricing call"
    )

    # ======================
    # Exchange
    # ======================
    default_slippage_bps: int = Field(
        default=50, ge=0, le=10_000, description="Default slippage tolerance (0.5%)"
    )
    deadline_window_seconds: int = Field(
        default=1200, gt=0, description="On-chain deadline offset for exchanges"
    )
    unlimited_approval: bool = Field(
        default=False, description="Approve max uint256 instead of the exact amount"
    )

    # ======================
    # Confirmation tracking
    # ======================
    confirmation_timeout_seconds: float = Field(
        default=300.0, gt=0, description="Ceiling wait for a receipt"
    )
    confirmation_poll_seconds: float = Field(
        default=2.0, ge=0, description="Interval between receipt lookups"
    )

    # ======================
    # Retry policy (transient read failures only)
    # ======================
    retry_attempts: int = Field(default=3, ge=1, description="Attempts per read call")
    retry_backoff_seconds: float = Field(
        default=0.5, ge=0, description="Base delay, doubled after every failure"
    )

    # ======================
    # Chain RPC Endpoints
    # ======================
    rpc_timeout_seconds: float = Field(default=15.0, gt=0, description="HTTP timeout for JSON-RPC")
    eth_rpc_url: Optional[str] = Field(default=None, description="Ethereum RPC URL override")
    bsc_rpc_url: Optional[str] = Field(default=None, description="BSC RPC URL override")
    matic_rpc_url: Optional[str] = Field(default=None, description="Polygon RPC URL override")
    avax_rpc_url: Optional[str] = Field(default=None, description="Avalanche RPC URL override")
    arb_rpc_url: Optional[str] = Field(default=None, description="Arbitrum RPC URL override")
    sepolia_rpc_url: Optional[str] = Field(default=None, description="Sepolia RPC URL override")

    def get_rpc_url(self, chain_id: int) -> Optional[str]:
        """Get the RPC URL override for a chain id, if one is configured."""
        rpc_map = {
            1: self.eth_rpc_url,
            56: self.bsc_rpc_url,
            137: self.matic_rpc_url,
            43114: self.avax_rpc_url,
            42161: self.arb_rpc_url,
            11155111: self.sepolia_rpc_url,
        }
        return rpc_map.get(chain_id)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(debug: Optional[bool] = None) -> None:
    """Configure root logging the way host applications are expected to."""
    if debug is None:
        debug = get_settings().debug
    log_level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
