from decimal import Decimal
from pathlib import Path
from typing import Dict, Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Bridge Provider
    debridge_base_url: str = Field(
        default="https://api.debridge.finance/v1",
        description="Base URL of the bridge provider API (precheck + order status)",
    )
    debridge_api_key: str = Field(
        default="",
        description="Optional API key sent to the bridge provider",
        validation_alias=AliasChoices("debridge_api_key", "DEBRIDGE_API_KEY", "BRIDGE_API_KEY"),
    )
    bridge_quote_timeout_seconds: float = Field(default=10.0, gt=0, description="Max seconds to wait for a bridge quote")
    bridge_slippage_bps: int = Field(default=100, ge=0, le=5000, description="Slippage tolerance sent with quotes (basis points)")

    # Bridge Status Polling
    bridge_poll_interval_seconds: float = Field(default=30.0, gt=0, description="Seconds between bridge order status checks")
    bridge_poll_backoff: Literal["fixed", "exponential"] = Field(
        default="fixed",
        description="Delay policy between status polls",
    )
    bridge_poll_max_interval_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Upper bound on the poll delay when backoff is exponential",
    )
    bridge_deadline_seconds: float = Field(default=1800.0, gt=0, description="Overall wall-clock deadline for a bridge order")
    bridge_max_consecutive_errors: int = Field(
        default=5,
        ge=1,
        description="Consecutive provider errors tolerated before status is reported unavailable",
    )

    # Chain Execution
    source_confirmation_timeout_seconds: float = Field(default=120.0, gt=0, description="Wait for source tx confirmation")
    destination_confirmation_timeout_seconds: float = Field(default=60.0, gt=0, description="Wait for destination tx confirmation")
    confirmation_poll_interval_seconds: float = Field(default=2.0, gt=0, description="Receipt polling interval")
    signer_timeout_seconds: float = Field(default=300.0, gt=0, description="Max seconds to wait for a wallet signature")
    network_switch_timeout_seconds: float = Field(default=60.0, gt=0, description="Max seconds to wait for a network switch")

    # Chain RPC
    rpc_urls: Dict[int, str] = Field(
        default_factory=lambda: {
            421614: "https://sepolia-rollup.arbitrum.io/rpc",
            84532: "https://sepolia.base.org",
            11155111: "https://ethereum-sepolia.publicnode.com",
        },
        description="JSON-RPC endpoint per supported chain id",
    )
    rpc_timeout_seconds: float = Field(default=20.0, gt=0, description="Timeout for a single RPC request")
    rpc_max_retries: int = Field(default=3, ge=1, description="Attempts for retryable RPC/broadcast failures")

    # Deposits
    min_deposit_overrides: Dict[str, Decimal] = Field(
        default_factory=dict,
        description="Minimum deposit per token symbol (human units); overrides decimals-based defaults",
    )
    delegate_address: str = Field(
        default="",
        description="Delegated signer address used for deposits started over HTTP",
    )
    max_retained_workflows: int = Field(
        default=500,
        ge=1,
        description="Finished workflows kept in memory for status lookups",
    )

    @property
    def has_delegate(self) -> bool:
        return bool(self.delegate_address)

    @property
    def supported_rpc_chains(self) -> list[int]:
        return sorted(self.rpc_urls)


# Global settings instance
settings = Settings()
