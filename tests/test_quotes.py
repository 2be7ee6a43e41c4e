"""
Unit tests for the quote fetchers.

Tests cover:
- Static quotes and partial batches
- Timeout and retry handling
- YFinance fetcher with a mocked yfinance Ticker
"""

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from src.data import QuoteFetcher, StaticQuoteFetcher, YFinanceQuoteFetcher
from src.exceptions import QuoteFetchError
from src.portfolio import Quote


class FlakyFetcher(QuoteFetcher):
    """Fails a set number of times before returning a quote."""

    SOURCE = "flaky"
    RETRY_DELAY_BASE = 0.0

    def __init__(self, failures, error=None, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures
        self.error = error or QuoteFetchError("temporary", source=self.SOURCE)
        self.calls = 0

    async def fetch(self, symbol):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return Quote(symbol, 42.0)


class SlowFetcher(QuoteFetcher):
    SOURCE = "slow"

    async def fetch(self, symbol):
        await asyncio.sleep(1)
        return Quote(symbol, 1.0)


def mock_ticker(fast_info, info=None):
    ticker = MagicMock()
    ticker.fast_info = fast_info
    ticker.info = info or {}
    return ticker


class TestStaticQuoteFetcher:
    """Test the StaticQuoteFetcher class."""

    @pytest.mark.asyncio
    async def test_fetch(self):
        fetcher = StaticQuoteFetcher({"aapl": 190.0}, previous_close={"AAPL": 200.0})

        quote = await fetcher.fetch("AAPL")

        assert quote.symbol == "AAPL"
        assert quote.price == 190.0
        assert quote.change == -10.0
        assert quote.change_percent == pytest.approx(-5.0)

    @pytest.mark.asyncio
    async def test_fetch_quotes_partial(self):
        fetcher = StaticQuoteFetcher({"AAPL": 190.0, "MSFT": 410.0}, max_retries=1)

        quotes = await fetcher.fetch_quotes(["AAPL", "ZZZZ", "msft", "AAPL", ""])

        assert sorted(q.symbol for q in quotes) == ["AAPL", "MSFT"]
        assert isinstance(fetcher.get_last_error(), QuoteFetchError)

    @pytest.mark.asyncio
    async def test_fetch_quotes_empty(self):
        assert await StaticQuoteFetcher({}).fetch_quotes([]) == []

    def test_resolve_asset(self):
        fetcher = StaticQuoteFetcher({"AAPL": 190.0})

        assert fetcher.resolve_asset("aapl").current_price == 190.0
        assert fetcher.resolve_asset("ZZZZ") is None


class TestRetryAndTimeout:
    """Test timeout protection and retries."""

    @pytest.mark.asyncio
    async def test_retry_then_succeed(self):
        fetcher = FlakyFetcher(failures=2, max_retries=3)

        quote = await fetcher.fetch_with_retry("AAPL")

        assert quote.price == 42.0
        assert fetcher.calls == 3
        assert fetcher.get_last_fetch_time() is not None

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        fetcher = FlakyFetcher(failures=5, max_retries=2)

        assert await fetcher.fetch_with_retry("AAPL") is None
        assert fetcher.calls == 2

    @pytest.mark.asyncio
    async def test_non_retryable_error_not_retried(self):
        fetcher = FlakyFetcher(failures=5, error=ValueError("bad payload"), max_retries=3)

        assert await fetcher.fetch_with_retry("AAPL") is None
        assert fetcher.calls == 1

    @pytest.mark.asyncio
    async def test_timeout(self):
        fetcher = SlowFetcher()

        with pytest.raises(QuoteFetchError) as exc_info:
            await fetcher.fetch_with_timeout("AAPL", timeout=0.01)

        assert isinstance(exc_info.value.cause, asyncio.TimeoutError)


class TestYFinanceQuoteFetcher:
    """Test the YFinanceQuoteFetcher with yfinance mocked out."""

    @pytest.mark.asyncio
    async def test_fetch(self):
        fast_info = {"lastPrice": 190.0, "previousClose": 185.0, "currency": "USD", "lastVolume": 1000}

        with patch("src.data.quotes.yf.Ticker", return_value=mock_ticker(fast_info)) as ticker_cls:
            quote = await YFinanceQuoteFetcher().fetch("AAPL")

        ticker_cls.assert_called_once_with("AAPL")
        assert quote.price == 190.0
        assert quote.change == 5.0
        assert quote.change_percent == pytest.approx(5.0 / 185.0 * 100)
        assert quote.volume == 1000

    @pytest.mark.asyncio
    async def test_missing_price(self):
        with patch("src.data.quotes.yf.Ticker", return_value=mock_ticker({"lastPrice": None})):
            fetcher = YFinanceQuoteFetcher(max_retries=1)

            with pytest.raises(QuoteFetchError):
                await fetcher.fetch("ZZZZ")
            assert await fetcher.fetch_quotes(["ZZZZ"]) == []

    @pytest.mark.asyncio
    async def test_network_error(self):
        with patch("src.data.quotes.yf.Ticker", side_effect=ConnectionError("offline")):
            with pytest.raises(QuoteFetchError) as exc_info:
                await YFinanceQuoteFetcher().fetch("AAPL")

        assert isinstance(exc_info.value.cause, ConnectionError)

    def test_resolve_asset(self):
        fast_info = {"lastPrice": 190.0, "previousClose": 190.0, "currency": "usd"}
        ticker = mock_ticker(fast_info, info={"shortName": "Apple Inc."})

        with patch("src.data.quotes.yf.Ticker", return_value=ticker):
            asset = YFinanceQuoteFetcher().resolve_asset("aapl")

        assert asset.symbol == "AAPL"
        assert asset.name == "Apple Inc."
        assert asset.current_price == 190.0
        assert asset.currency == "USD"
        assert asset.change_24h == 0.0

    def test_resolve_asset_unknown(self):
        with patch("src.data.quotes.yf.Ticker", return_value=mock_ticker({"lastPrice": None})):
            assert YFinanceQuoteFetcher().resolve_asset("ZZZZ") is None
