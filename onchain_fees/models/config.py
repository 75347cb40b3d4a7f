"""Configuration management using Pydantic settings."""

from typing import Dict, List, Optional
from pydantic import Field, validator
from pydantic_settings import BaseSettings

DEFAULT_RPC_ENDPOINTS = [
    "https://mainnet.base.org",
    "https://base.drpc.org",
    "https://base-rpc.publicnode.com",
    "https://1rpc.io/base",
    "https://base.blockpi.network/v1/rpc/public",
    "https://base.gateway.tenderly.co",
]

# Uniswap V3 NonfungiblePositionManager on Base mainnet
DEFAULT_POSITION_MANAGER = "0x03a520b32C04BF3bEEf7BEb72E919cf822Ed34f1"


class FeeReaderConfig(BaseSettings):
    """Configuration for RPC access, fee resolution and pricing."""

    # RPC Settings
    rpc_endpoints: List[str] = Field(
        default_factory=lambda: list(DEFAULT_RPC_ENDPOINTS),
        description="JSON-RPC endpoint URLs, most preferred first",
    )
    rpc_timeout: float = Field(default=15.0, description="Per-request RPC timeout in seconds")
    position_manager_address: str = Field(
        default=DEFAULT_POSITION_MANAGER, description="NonfungiblePositionManager contract address"
    )

    # Retry Settings
    max_attempts: int = Field(default=3, description="Attempts per retry loop")
    base_delay_seconds: float = Field(default=1.0, description="Backoff base delay in seconds")
    retry_deadline_seconds: Optional[float] = Field(
        default=None, description="Upper bound on total retry loop duration"
    )
    rate_limit_cooldown_seconds: float = Field(default=60.0, description="Cooldown after a rate-limit signal")
    reset_interval_seconds: Optional[float] = Field(
        default=None, description="Rate-limit reset tick interval (defaults to the cooldown)"
    )

    # Price Feed Settings
    price_api_url: str = Field(default="https://api.coingecko.com/api/v3", description="Price index base URL")
    price_ttl_seconds: float = Field(default=30.0, description="Price cache TTL in seconds")
    price_request_timeout: float = Field(default=10.0, description="Price request timeout in seconds")
    max_price_change: Optional[float] = Field(
        default=0.5, description="Reject fetched prices moving more than this fraction (None disables)"
    )
    max_rejected_moves: int = Field(
        default=3, description="Consecutive rejected price moves before the new price is accepted"
    )
    price_ids: Dict[str, str] = Field(
        default_factory=lambda: {"ETH": "ethereum", "WETH": "ethereum", "KILT": "kilt-protocol"},
        description="Token symbol to price index id",
    )
    fallback_prices: Dict[str, float] = Field(
        default_factory=lambda: {"ETH": 3800.0, "WETH": 3800.0, "KILT": 0.018},
        description="Static last-resort USD prices",
    )

    # Pool Token Settings
    token0_symbol: str = Field(default="ETH", description="Symbol of pool token0")
    token1_symbol: str = Field(default="KILT", description="Symbol of pool token1")
    token0_decimals: int = Field(default=18, description="Decimals of pool token0")
    token1_decimals: int = Field(default=18, description="Decimals of pool token1")

    # Performance Settings
    batch_workers: int = Field(default=4, description="Threads used for batch fee reads")

    # Logging Settings
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format (json|text)")
    log_file: Optional[str] = Field(default=None, description="Log file path")
    log_max_size_mb: int = Field(default=100, description="Max log file size in MB")
    log_backup_count: int = Field(default=5, description="Number of log backups")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "ONCHAIN_FEES_"
        case_sensitive = False
        extra = "ignore"

    @validator("rpc_endpoints")
    def validate_endpoints(cls, v):
        """At least one endpoint is required to make progress."""
        urls = [url.strip() for url in v if url and url.strip()]
        if not urls:
            raise ValueError("At least one RPC endpoint must be configured")
        return urls

    @validator("max_attempts", "max_rejected_moves")
    def validate_at_least_one(cls, v):
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @validator("max_price_change")
    def validate_max_price_change(cls, v):
        if v is not None and v <= 0:
            raise ValueError("max_price_change must be positive")
        return v

    @validator("price_ids", "fallback_prices")
    def normalize_symbols(cls, v):
        return {symbol.upper(): value for symbol, value in v.items()}

    @property
    def effective_reset_interval(self) -> float:
        """Reset tick interval, defaulting to one cooldown period."""
        return self.reset_interval_seconds or self.rate_limit_cooldown_seconds
