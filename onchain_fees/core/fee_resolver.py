"""
Unclaimed fee resolution for liquidity positions.

Strategies, tried in order until one produces amounts:

    1. simulate       eth_call of collect() with maximal amounts from the owner,
                      exactly what the Uniswap interface shows as pending fees
    2. fallbackRead   the position's stored tokensOwed0/tokensOwed1 counters;
                      always readable but lags real-time fee growth

Empty positions short-circuit to a zero quote before any strategy runs.
If the last strategy fails its error reaches the caller: an unknown fee
amount is never reported as zero.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
import structlog

from onchain_fees.core.errors import (
    FeeResolutionError,
    PositionNotFoundError,
    RetryExhaustedError,
    SimulationRevertError,
)
from onchain_fees.core.position_reader import PositionReader, parse_position_id
from onchain_fees.core.price_cache import PriceOracleCache
from onchain_fees.core.retry_executor import RetryExecutor
from onchain_fees.core.usd_converter import to_token_units, to_usd
from onchain_fees.models.blockchain import PositionInfo
from onchain_fees.models.schemas import FeeQuote, FeeSource

logger = structlog.get_logger(__name__)

# Returns (amount0, amount1), or None for "no result".
FeeStrategy = Callable[[int, PositionInfo], Optional[Tuple[int, int]]]


class FeeResolver:
    """Computes a position's unclaimed fees, tolerating provider failures."""

    def __init__(self,
                 executor: RetryExecutor,
                 reader: PositionReader,
                 price_cache: PriceOracleCache,
                 token0_symbol: str = "ETH",
                 token1_symbol: str = "KILT",
                 token0_decimals: int = 18,
                 token1_decimals: int = 18,
                 batch_workers: int = 4,
                 strategies: Optional[List[Tuple[FeeSource, FeeStrategy]]] = None):
        self.executor = executor
        self.reader = reader
        self.price_cache = price_cache
        self.token0_symbol = token0_symbol
        self.token1_symbol = token1_symbol
        self.token0_decimals = token0_decimals
        self.token1_decimals = token1_decimals
        self.batch_workers = batch_workers
        self.strategies = strategies if strategies is not None else [
            (FeeSource.SIMULATE, self.simulate_collect),
            (FeeSource.FALLBACK_READ, self.read_tokens_owed),
        ]

    def get_position(self, position_id: Any) -> PositionInfo:
        """
        Read a position record through the retry executor.

        Raises:
            PositionNotFoundError: The manager reverted or returned an empty record
        """
        token_id = parse_position_id(position_id)
        try:
            position = self.executor.execute_with_retry(
                lambda client: self.reader.get_position(client, token_id),
                operation_name=f"positions({token_id})",
            )
        except SimulationRevertError as e:
            raise PositionNotFoundError(str(token_id), str(e))

        if not position.exists():
            raise PositionNotFoundError(str(token_id), "empty position record")
        return position

    def simulate_collect(self, token_id: int, position: PositionInfo) -> Tuple[int, int]:
        def operation(client):
            owner = self.reader.get_owner(client, token_id)
            return self.reader.simulate_collect(client, token_id, owner)

        return self.executor.execute_with_retry(operation, operation_name=f"collect simulation ({token_id})")

    def read_tokens_owed(self, token_id: int, position: PositionInfo) -> Tuple[int, int]:
        """Re-read tokensOwed; the record from the initial lookup backs it up."""
        try:
            latest = self.executor.execute_with_retry(
                lambda client: self.reader.get_position(client, token_id),
                operation_name=f"tokensOwed read ({token_id})",
            )
        except RetryExhaustedError as e:
            logger.warning("tokensOwed re-read failed, using initial position record",
                           position_id=token_id, error=str(e))
            return position.tokens_owed0, position.tokens_owed1
        return latest.tokens_owed0, latest.tokens_owed1

    def _resolve_amounts(self, token_id: int, position: PositionInfo) -> Tuple[Tuple[int, int], FeeSource]:
        last_index = len(self.strategies) - 1

        for index, (source, strategy) in enumerate(self.strategies):
            try:
                amounts = strategy(token_id, position)
            except (RetryExhaustedError, SimulationRevertError) as e:
                if index == last_index:
                    logger.error("All fee strategies failed", position_id=token_id,
                                 strategy=source.value, error=str(e))
                    raise
                logger.warning("Fee strategy failed, trying next", position_id=token_id,
                               strategy=source.value, error=str(e))
                continue

            if amounts is not None:
                return amounts, source
            logger.info("Fee strategy produced no result", position_id=token_id, strategy=source.value)

        raise FeeResolutionError(f"No fee strategy produced a result for position {token_id}")

    def get_unclaimed_fees(self, position_id: Any) -> FeeQuote:
        """
        Unclaimed trading fees of a position, tagged with the method used.

        Raises:
            ValueError: Malformed position id
            PositionNotFoundError: The position was never minted or was burned
            RetryExhaustedError / SimulationRevertError: Every strategy failed
        """
        token_id = parse_position_id(position_id)
        position = self.get_position(token_id)

        if position.is_empty():
            logger.info("Position has no liquidity and nothing owed", position_id=token_id)
            return FeeQuote(
                position_id=str(token_id),
                token0_raw="0",
                token1_raw="0",
                usd_value=0.0,
                source_method=FeeSource.ZERO_SHORT_CIRCUIT,
            )

        (amount0, amount1), source = self._resolve_amounts(token_id, position)
        quote = self._build_quote(token_id, amount0, amount1, source)

        logger.info("Unclaimed fees resolved", position_id=token_id, token0=quote.token0_raw,
                    token1=quote.token1_raw, usd_value=quote.usd_value, source=source.value)
        return quote

    def _build_quote(self, token_id: int, amount0: int, amount1: int, source: FeeSource) -> FeeQuote:
        price0 = price1 = usd_value = None
        try:
            price0 = self.price_cache.get_price(self.token0_symbol)
            price1 = self.price_cache.get_price(self.token1_symbol)
            usd_value = to_usd(amount0, amount1, price0, price1,
                               decimals=self.token0_decimals,
                               decimals1=self.token1_decimals).total_usd
        except Exception as e:
            # Raw amounts are still correct; only the USD figure is lost.
            logger.warning("USD conversion failed", position_id=token_id, error=str(e))

        return FeeQuote(
            position_id=str(token_id),
            token0_raw=str(amount0),
            token1_raw=str(amount1),
            usd_value=usd_value,
            source_method=source,
            token0_price=price0,
            token1_price=price1,
        )

    def get_batch_unclaimed_fees(self, position_ids: Iterable[Any]) -> Dict[str, FeeQuote]:
        """Resolve several positions concurrently. The first failure propagates."""
        token_ids = list(dict.fromkeys(parse_position_id(p) for p in position_ids))
        if not token_ids:
            return {}

        with ThreadPoolExecutor(max_workers=max(1, min(self.batch_workers, len(token_ids)))) as pool:
            futures = {token_id: pool.submit(self.get_unclaimed_fees, token_id) for token_id in token_ids}
            return {str(token_id): future.result() for token_id, future in futures.items()}

    def get_token_balance(self, token: str, owner: str) -> Dict[str, Any]:
        """ERC-20 balance of `owner`, raw and scaled by the token's decimals."""
        def operation(client):
            balance = self.reader.get_token_balance(client, token, owner)
            decimals = self.reader.get_decimals(client, token)
            return balance, decimals

        balance, decimals = self.executor.execute_with_retry(operation, operation_name=f"balanceOf({owner})")
        formatted = format(to_token_units(balance, decimals), "f")
        if "." in formatted:
            formatted = formatted.rstrip("0").rstrip(".")
        return {
            "token": token,
            "owner": owner,
            "raw": str(balance),
            "decimals": decimals,
            "formatted": formatted,
        }
