"""
On-chain fee reader

Reads liquidity-position fee accounting and token balances from an EVM chain
through several unreliable public JSON-RPC providers, and prices the results
in USD through a cached external price feed.
"""

__version__ = "1.0.0"
__description__ = "Resilient on-chain fee and balance reader"

from onchain_fees.core.endpoint_registry import EndpointRegistry
from onchain_fees.core.factory import FeeReaderServices, build_services
from onchain_fees.core.fee_resolver import FeeResolver
from onchain_fees.core.price_cache import PriceOracleCache
from onchain_fees.core.retry_executor import RetryExecutor
from onchain_fees.core.usd_converter import to_usd
from onchain_fees.models.config import FeeReaderConfig
from onchain_fees.models.schemas import FeeQuote, FeeSource

__all__ = [
    "EndpointRegistry",
    "FeeReaderServices",
    "build_services",
    "FeeResolver",
    "PriceOracleCache",
    "RetryExecutor",
    "to_usd",
    "FeeReaderConfig",
    "FeeQuote",
    "FeeSource",
]
