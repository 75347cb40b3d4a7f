"""
USD price cache with bounded staleness that never fails its caller.

Lookup order for get_price(symbol):
    1. cached entry younger than the TTL
    2. fresh fetch from the price index (stored on success)
    3. last cached entry, however old
    4. static fallback constant for the symbol

A fetched price that jumps more than max_price_change away from the cached
one keeps the cached price (re-stamped) until the jump has been seen
max_rejected_moves times in a row.
"""

import math
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional
import requests
import structlog

from onchain_fees.core.endpoint_registry import utc_now
from onchain_fees.core.errors import PriceFetchError
from onchain_fees.models.blockchain import PriceEntry

logger = structlog.get_logger(__name__)

DEFAULT_PRICE_TTL = 30.0
DEFAULT_MAX_REJECTED_MOVES = 3

# Static estimates with no freshness guarantee; used only when no price was
# ever fetched for the symbol.
FALLBACK_PRICES: Dict[str, float] = {
    "ETH": 3800.0,
    "WETH": 3800.0,
    "KILT": 0.018,
}

DEFAULT_PRICE_IDS: Dict[str, str] = {
    "ETH": "ethereum",
    "WETH": "ethereum",
    "KILT": "kilt-protocol",
}


class CoinGeckoPriceFeed:
    """Fetches USD prices from a CoinGecko-compatible /simple/price endpoint."""

    def __init__(self,
                 base_url: str = "https://api.coingecko.com/api/v3",
                 price_ids: Optional[Dict[str, str]] = None,
                 timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.price_ids = {k.upper(): v for k, v in (price_ids or DEFAULT_PRICE_IDS).items()}
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': 'onchain-fees/1.0.0',
            'Accept': 'application/json'
        })

    def fetch(self, symbol: str) -> float:
        """Return the current USD price of `symbol`."""
        price_id = self.price_ids.get(symbol.upper())
        if price_id is None:
            raise PriceFetchError(f"No price index id configured for {symbol}")

        try:
            response = self.session.get(
                f"{self.base_url}/simple/price",
                params={"ids": price_id, "vs_currencies": "usd"},
                timeout=self.timeout,
            )
            if response.status_code == 429:
                raise PriceFetchError(f"Price index rate limited (429) for {symbol}")
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise PriceFetchError(f"Price request for {symbol} failed: {e}")
        except ValueError as e:
            raise PriceFetchError(f"Price response for {symbol} is not JSON: {e}")

        usd = (data.get(price_id) or {}).get("usd") if isinstance(data, dict) else None
        if (isinstance(usd, bool) or not isinstance(usd, (int, float))
                or not math.isfinite(usd) or usd <= 0):
            raise PriceFetchError(f"Price response for {symbol} has no usable usd field: {data!r}")
        return float(usd)

    __call__ = fetch


class PriceOracleCache:
    """Per-symbol USD price cache with TTL and last-resort fallbacks."""

    def __init__(self,
                 fetcher: Callable[[str], float],
                 ttl_seconds: float = DEFAULT_PRICE_TTL,
                 fallback_prices: Optional[Dict[str, float]] = None,
                 max_price_change: Optional[float] = 0.5,
                 max_rejected_moves: int = DEFAULT_MAX_REJECTED_MOVES,
                 clock: Callable[[], datetime] = utc_now):
        """
        Args:
            fetcher: Returns the live price for an upper-case symbol, raises on failure
            ttl_seconds: Age after which a cached price is refreshed
            fallback_prices: Static prices used when nothing was ever fetched
            max_price_change: Reject fetched prices that move more than this
                fraction from the cached one; None disables the check
            max_rejected_moves: Consecutive rejected moves after which the
                fetched price is accepted as the new baseline
            clock: Returns the current time; injectable for tests
        """
        self._fetcher = fetcher
        self.ttl = timedelta(seconds=ttl_seconds)
        self.fallback_prices = {
            k.upper(): v for k, v in (fallback_prices if fallback_prices is not None else FALLBACK_PRICES).items()
        }
        self.max_price_change = max_price_change
        self.max_rejected_moves = max_rejected_moves
        self._clock = clock
        self._entries: Dict[str, PriceEntry] = {}
        self._lock = threading.Lock()

    def get_cached(self, symbol: str) -> Optional[PriceEntry]:
        with self._lock:
            return self._entries.get(symbol.upper())

    def clear(self):
        with self._lock:
            self._entries.clear()

    def _degraded_price(self, symbol: str, entry: Optional[PriceEntry]) -> float:
        if entry is not None:
            logger.warning("Using stale cached price", symbol=symbol, price=entry.price_usd,
                           fetched_at=entry.fetched_at.isoformat())
            return entry.price_usd

        fallback = self.fallback_prices.get(symbol, 0.0)
        logger.warning("Using fallback price", symbol=symbol, price=fallback)
        return fallback

    def get_price(self, symbol: str) -> float:
        """Current USD price for `symbol`. Never raises."""
        symbol = symbol.upper()
        now = self._clock()
        entry = self.get_cached(symbol)

        if entry is not None and now - entry.fetched_at < self.ttl:
            return entry.price_usd

        try:
            price = float(self._fetcher(symbol))
            if not math.isfinite(price) or price <= 0:
                raise PriceFetchError(f"Unusable price {price} for {symbol}")
        except Exception as e:
            logger.warning("Price fetch failed", symbol=symbol, error=str(e))
            return self._degraded_price(symbol, entry)

        if entry is not None and self.max_price_change is not None:
            change = abs(price - entry.price_usd) / entry.price_usd
            if change > self.max_price_change:
                rejected = entry.rejected_moves + 1
                if rejected < self.max_rejected_moves:
                    logger.warning("Rejected implausible price move", symbol=symbol,
                                   cached=entry.price_usd, fetched=price,
                                   change=round(change, 4), rejected_moves=rejected)
                    # Re-stamp so the TTL still bounds how often the feed is asked.
                    with self._lock:
                        self._entries[symbol] = PriceEntry(symbol=symbol, price_usd=entry.price_usd,
                                                           fetched_at=now, rejected_moves=rejected)
                    return entry.price_usd
                logger.warning("Accepting persistent price move", symbol=symbol,
                               cached=entry.price_usd, fetched=price, rejected_moves=rejected)

        with self._lock:
            self._entries[symbol] = PriceEntry(symbol=symbol, price_usd=price, fetched_at=now)
        logger.debug("Price refreshed", symbol=symbol, price=price)
        return price
