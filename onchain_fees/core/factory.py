"""Builds the component graph once at process start."""

from dataclasses import dataclass
from typing import Optional
import structlog

from onchain_fees.core.endpoint_registry import EndpointRegistry
from onchain_fees.core.fee_resolver import FeeResolver
from onchain_fees.core.position_reader import PositionReader
from onchain_fees.core.price_cache import CoinGeckoPriceFeed, PriceOracleCache
from onchain_fees.core.rate_limit_scheduler import RateLimitResetScheduler
from onchain_fees.core.retry_executor import RetryExecutor
from onchain_fees.models.config import FeeReaderConfig

logger = structlog.get_logger(__name__)


@dataclass
class FeeReaderServices:
    """Everything a caller needs, sharing one endpoint registry."""
    config: FeeReaderConfig
    registry: EndpointRegistry
    executor: RetryExecutor
    scheduler: RateLimitResetScheduler
    price_cache: PriceOracleCache
    fee_resolver: FeeResolver

    def start(self):
        self.scheduler.start()

    def close(self):
        self.scheduler.stop()
        self.executor.close()


def build_registry(config: FeeReaderConfig) -> EndpointRegistry:
    return EndpointRegistry(config.rpc_endpoints, rate_limit_cooldown=config.rate_limit_cooldown_seconds)


def build_price_cache(config: FeeReaderConfig) -> PriceOracleCache:
    feed = CoinGeckoPriceFeed(
        base_url=config.price_api_url,
        price_ids=config.price_ids,
        timeout=config.price_request_timeout,
    )
    return PriceOracleCache(
        feed.fetch,
        ttl_seconds=config.price_ttl_seconds,
        fallback_prices=config.fallback_prices,
        max_price_change=config.max_price_change,
        max_rejected_moves=config.max_rejected_moves,
    )


def build_services(config: Optional[FeeReaderConfig] = None) -> FeeReaderServices:
    """Wire registry, executor, scheduler, price cache and fee resolver."""
    config = config or FeeReaderConfig()

    registry = build_registry(config)
    executor = RetryExecutor(
        registry,
        max_attempts=config.max_attempts,
        base_delay=config.base_delay_seconds,
        deadline=config.retry_deadline_seconds,
        rpc_timeout=config.rpc_timeout,
    )
    scheduler = RateLimitResetScheduler(registry, interval_seconds=config.effective_reset_interval)
    price_cache = build_price_cache(config)
    fee_resolver = FeeResolver(
        executor,
        PositionReader(config.position_manager_address),
        price_cache,
        token0_symbol=config.token0_symbol,
        token1_symbol=config.token1_symbol,
        token0_decimals=config.token0_decimals,
        token1_decimals=config.token1_decimals,
        batch_workers=config.batch_workers,
    )

    logger.info("Fee reader services built",
                endpoints=len(config.rpc_endpoints),
                position_manager=config.position_manager_address)

    return FeeReaderServices(
        config=config,
        registry=registry,
        executor=executor,
        scheduler=scheduler,
        price_cache=price_cache,
        fee_resolver=fee_resolver,
    )
