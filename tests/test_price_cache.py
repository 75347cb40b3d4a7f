"""
Tests for the USD price cache and CoinGecko feed
"""

import pytest
import requests
from unittest.mock import Mock

from onchain_fees.core.errors import PriceFetchError
from onchain_fees.core.price_cache import FALLBACK_PRICES, CoinGeckoPriceFeed, PriceOracleCache


@pytest.fixture
def fetcher():
    return Mock(return_value=2000.0)


@pytest.fixture
def cache(fetcher, clock):
    return PriceOracleCache(fetcher, ttl_seconds=30, clock=clock)


class TestPriceOracleCache:
    """Test TTL, staleness and fallback behaviour."""

    def test_fresh_entry_served_from_cache(self, cache, fetcher, clock):
        assert cache.get_price("ETH") == 2000.0
        clock.advance(29)
        assert cache.get_price("ETH") == 2000.0

        fetcher.assert_called_once_with("ETH")

    def test_expired_entry_refetched(self, cache, fetcher, clock):
        cache.get_price("ETH")
        fetcher.return_value = 2100.0
        clock.advance(30)

        assert cache.get_price("ETH") == 2100.0
        assert fetcher.call_count == 2
        assert cache.get_cached("ETH").fetched_at == clock.now

    def test_symbol_is_case_insensitive(self, cache, fetcher):
        cache.get_price("eth")

        fetcher.assert_called_once_with("ETH")
        assert cache.get_cached("Eth").price_usd == 2000.0

    def test_failed_fetch_returns_stale_value(self, cache, fetcher, clock):
        cache.get_price("ETH")
        fetcher.side_effect = PriceFetchError("HTTP 429")
        clock.advance(3600)

        assert cache.get_price("ETH") == 2000.0

    def test_failed_fetch_without_cache_returns_fallback(self, cache, fetcher):
        fetcher.side_effect = PriceFetchError("connection refused")

        assert cache.get_price("ETH") == FALLBACK_PRICES["ETH"] == 3800.0
        assert cache.get_price("KILT") == 0.018
        assert cache.get_cached("ETH") is None

    def test_unknown_symbol_without_fallback(self, cache, fetcher):
        fetcher.side_effect = KeyError("DOGE")

        assert cache.get_price("DOGE") == 0.0

    def test_custom_fallback_prices(self, fetcher, clock):
        fetcher.side_effect = PriceFetchError("down")
        cache = PriceOracleCache(fetcher, fallback_prices={"eth": 1234.5}, clock=clock)

        assert cache.get_price("ETH") == 1234.5

    def test_non_positive_price_treated_as_failure(self, cache, fetcher):
        fetcher.return_value = 0

        assert cache.get_price("ETH") == 3800.0
        assert cache.get_cached("ETH") is None

    def test_implausible_move_rejected(self, cache, fetcher, clock):
        cache.get_price("ETH")
        fetcher.return_value = 4000.0
        clock.advance(31)

        assert cache.get_price("ETH") == 2000.0
        entry = cache.get_cached("ETH")
        assert entry.price_usd == 2000.0
        assert entry.fetched_at == clock.now
        assert entry.rejected_moves == 1

    def test_rejected_move_still_honours_ttl(self, fetcher, clock):
        fetcher.return_value = 0.02
        cache = PriceOracleCache(fetcher, ttl_seconds=30, clock=clock)
        cache.get_price("KILT")

        fetcher.return_value = 0.05
        clock.advance(31)
        results = {cache.get_price("KILT") for _ in range(10)}
        clock.advance(24 * 3600)
        results.add(cache.get_price("KILT"))

        assert results == {0.02}
        assert fetcher.call_count == 3

    def test_persistent_move_is_accepted(self, cache, fetcher, clock):
        cache.get_price("ETH")
        fetcher.return_value = 5000.0

        seen = []
        for _ in range(3):
            clock.advance(31)
            seen.append(cache.get_price("ETH"))

        assert seen == [2000.0, 2000.0, 5000.0]
        entry = cache.get_cached("ETH")
        assert entry.price_usd == 5000.0
        assert entry.rejected_moves == 0

    def test_plausible_fetch_resets_rejections(self, cache, fetcher, clock):
        cache.get_price("ETH")
        fetcher.return_value = 5000.0
        clock.advance(31)
        cache.get_price("ETH")

        fetcher.return_value = 2100.0
        clock.advance(31)

        assert cache.get_price("ETH") == 2100.0
        assert cache.get_cached("ETH").rejected_moves == 0

    @pytest.mark.parametrize("bad", [float("nan"), float("inf")])
    def test_non_finite_price_treated_as_failure(self, cache, fetcher, bad):
        fetcher.return_value = bad

        assert cache.get_price("ETH") == 3800.0
        assert cache.get_cached("ETH") is None

    def test_move_within_limit_accepted(self, cache, fetcher, clock):
        cache.get_price("ETH")
        fetcher.return_value = 2900.0
        clock.advance(31)

        assert cache.get_price("ETH") == 2900.0

    def test_move_check_can_be_disabled(self, fetcher, clock):
        cache = PriceOracleCache(fetcher, max_price_change=None, clock=clock)
        cache.get_price("ETH")
        fetcher.return_value = 10000.0
        clock.advance(31)

        assert cache.get_price("ETH") == 10000.0

    def test_clear(self, cache, fetcher):
        cache.get_price("ETH")
        cache.clear()
        cache.get_price("ETH")

        assert fetcher.call_count == 2


class TestCoinGeckoPriceFeed:
    """Test the HTTP price feed."""

    @pytest.fixture
    def session(self):
        session = Mock()
        response = Mock(status_code=200)
        response.json.return_value = {"ethereum": {"usd": 3456.78}}
        session.get.return_value = response
        return session

    @pytest.fixture
    def feed(self, session):
        return CoinGeckoPriceFeed(base_url="https://prices.example/api/v3/", session=session)

    def test_fetch_success(self, feed, session):
        assert feed.fetch("eth") == 3456.78

        session.get.assert_called_once_with(
            "https://prices.example/api/v3/simple/price",
            params={"ids": "ethereum", "vs_currencies": "usd"},
            timeout=10.0,
        )

    def test_callable(self, feed):
        assert feed("WETH") == 3456.78

    def test_unknown_symbol(self, feed, session):
        with pytest.raises(PriceFetchError, match="No price index id"):
            feed.fetch("DOGE")
        session.get.assert_not_called()

    def test_rate_limited(self, feed, session):
        session.get.return_value.status_code = 429

        with pytest.raises(PriceFetchError, match="429"):
            feed.fetch("ETH")

    def test_connection_error(self, feed, session):
        session.get.side_effect = requests.ConnectionError("refused")

        with pytest.raises(PriceFetchError):
            feed.fetch("ETH")

    def test_http_error(self, feed, session):
        session.get.return_value.status_code = 500
        session.get.return_value.raise_for_status.side_effect = requests.HTTPError("500 Server Error")

        with pytest.raises(PriceFetchError):
            feed.fetch("ETH")

    def test_invalid_json(self, feed, session):
        session.get.return_value.json.side_effect = ValueError("Expecting value")

        with pytest.raises(PriceFetchError, match="not JSON"):
            feed.fetch("ETH")

    @pytest.mark.parametrize("payload", [
        {},
        {"ethereum": {}},
        {"ethereum": {"usd": None}},
        {"ethereum": {"usd": -1}},
        {"ethereum": {"usd": True}},
        {"ethereum": {"usd": float("nan")}},
        [],
    ])
    def test_unusable_payload(self, feed, session, payload):
        session.get.return_value.json.return_value = payload

        with pytest.raises(PriceFetchError):
            feed.fetch("ETH")
