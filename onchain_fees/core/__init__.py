"""Core RPC resilience, fee resolution and pricing components."""

from onchain_fees.core.endpoint_registry import EndpointRegistry
from onchain_fees.core.fee_resolver import FeeResolver
from onchain_fees.core.position_reader import PositionReader
from onchain_fees.core.price_cache import CoinGeckoPriceFeed, PriceOracleCache
from onchain_fees.core.rate_limit_scheduler import RateLimitResetScheduler
from onchain_fees.core.retry_executor import RetryExecutor
from onchain_fees.core.rpc_client import RpcClient

__all__ = [
    "EndpointRegistry",
    "FeeResolver",
    "PositionReader",
    "CoinGeckoPriceFeed",
    "PriceOracleCache",
    "RateLimitResetScheduler",
    "RetryExecutor",
    "RpcClient",
]
