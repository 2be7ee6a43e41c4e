"""
Quote collaborator.

Supplies current prices to the reconciliation engine. All network I/O,
timeouts and retries live here; the engine only ever sees the resolved
list of Quote objects, which may be partial or empty.

- QuoteFetcher: abstract base with timeout and retry logic
- YFinanceQuoteFetcher: live quotes from Yahoo Finance via yfinance
- StaticQuoteFetcher: quotes from an in-memory price table
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Any

import structlog
import yfinance as yf

from src.config import config
from src.exceptions import QuoteFetchError, get_retry_delay, is_retryable
from src.portfolio.asset import Asset, Quote

logger = structlog.get_logger(__name__)


class QuoteFetcher(ABC):
    """
    Abstract base class for quote sources.

    Provides common functionality:
    - Timeout handling with configurable limits
    - Retry logic with exponential backoff for transient errors
    - Concurrent batch fetching that tolerates per-symbol failures
    """

    DEFAULT_TIMEOUT = config.quote_timeout
    MAX_RETRIES = config.quote_retry_attempts
    RETRY_DELAY_BASE = 1.0
    SOURCE = "base"

    def __init__(self, timeout: Optional[int] = None, max_retries: Optional[int] = None):
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.max_retries = max_retries or self.MAX_RETRIES
        self.logger = structlog.get_logger(self.__class__.__name__)
        self._last_error: Optional[Exception] = None
        self._last_fetch_time: Optional[datetime] = None

    @abstractmethod
    async def fetch(self, symbol: str) -> Quote:
        """
        Fetch a quote for a symbol.

        Raises:
            QuoteFetchError: If no usable price is available
        """
        pass

    async def fetch_with_timeout(self, symbol: str, timeout: Optional[int] = None) -> Quote:
        """
        Fetch a quote with timeout protection.

        Raises:
            QuoteFetchError: On timeout (wrapping TimeoutError) or fetch failure
        """
        effective_timeout = timeout or self.timeout

        try:
            quote = await asyncio.wait_for(self.fetch(symbol), timeout=effective_timeout)
            self._last_fetch_time = datetime.now()
            return quote

        except asyncio.TimeoutError as e:
            self.logger.warning("fetch_timeout", symbol=symbol, timeout=effective_timeout)
            raise QuoteFetchError(
                f"Quote fetch timed out for {symbol}",
                symbol=symbol,
                source=self.SOURCE,
                cause=e
            )

    async def fetch_with_retry(self, symbol: str, max_retries: Optional[int] = None) -> Optional[Quote]:
        """
        Fetch a quote, retrying transient failures with exponential backoff.

        Returns:
            The quote, or None once retries are exhausted or the error is
            not retryable
        """
        retries = max_retries or self.max_retries

        for attempt in range(1, retries + 1):
            try:
                return await self.fetch_with_timeout(symbol)
            except asyncio.CancelledError:
                self.logger.warning("fetch_cancelled", symbol=symbol)
                raise
            except Exception as e:
                self._last_error = e
                if not is_retryable(e) or attempt == retries:
                    self.logger.warning(
                        "fetch_failed",
                        symbol=symbol,
                        attempts=attempt,
                        error_type=type(e).__name__,
                        error=str(e)
                    )
                    return None

                delay = get_retry_delay(e, attempt, self.RETRY_DELAY_BASE)
                self.logger.info("fetch_retry", symbol=symbol, attempt=attempt, delay=delay)
                await asyncio.sleep(delay)

        return None

    async def fetch_quotes(self, symbols: Iterable[str]) -> List[Quote]:
        """
        Fetch quotes for many symbols concurrently.

        Returns:
            Quotes that were fetched successfully; failed symbols are
            simply absent
        """
        unique = list(dict.fromkeys(s.strip().upper() for s in symbols if s and s.strip()))
        if not unique:
            return []

        results = await asyncio.gather(*(self.fetch_with_retry(s) for s in unique))
        quotes = [q for q in results if q is not None]

        self.logger.info(
            "quotes_fetched",
            source=self.SOURCE,
            requested=len(unique),
            received=len(quotes)
        )
        return quotes

    def get_last_error(self) -> Optional[Exception]:
        """Get the last error that occurred during fetch."""
        return self._last_error

    def get_last_fetch_time(self) -> Optional[datetime]:
        """Get the timestamp of the last successful fetch."""
        return self._last_fetch_time


class YFinanceQuoteFetcher(QuoteFetcher):
    """
    Live quotes from Yahoo Finance.

    Reads ``fast_info`` (last price, previous close, currency), which is
    much lighter than the full ``info`` payload.
    """

    SOURCE = "yfinance"

    async def fetch(self, symbol: str) -> Quote:
        return await asyncio.to_thread(self._fetch_sync, symbol)

    def _read_fast_info(self, symbol: str) -> Dict[str, Any]:
        try:
            fast_info = yf.Ticker(symbol).fast_info
            return {
                "last_price": fast_info.get("lastPrice"),
                "previous_close": fast_info.get("previousClose"),
                "currency": fast_info.get("currency"),
                "volume": fast_info.get("lastVolume"),
            }
        except (KeyError, AttributeError, TypeError, ValueError) as e:
            raise QuoteFetchError(
                f"No quote data for {symbol}",
                symbol=symbol,
                source=self.SOURCE,
                cause=e
            )
        except (ConnectionError, TimeoutError, OSError) as e:
            raise QuoteFetchError(
                f"Network error fetching {symbol}",
                symbol=symbol,
                source=self.SOURCE,
                cause=e
            )

    def _fetch_sync(self, symbol: str) -> Quote:
        data = self._read_fast_info(symbol)
        price = data["last_price"]
        if price is None:
            raise QuoteFetchError(f"No price for {symbol}", symbol=symbol, source=self.SOURCE)

        return Quote.from_prices(
            symbol=symbol,
            price=float(price),
            previous_close=float(data["previous_close"]) if data["previous_close"] else None,
            volume=data["volume"],
        )

    def resolve_asset(self, symbol: str) -> Optional[Asset]:
        """
        Build a live-priced Asset for a symbol not yet held.

        Usable as the ``asset_resolver`` of add_transaction() and
        PortfolioManager. Returns None when Yahoo has no price.
        """
        try:
            data = self._read_fast_info(symbol)
        except QuoteFetchError as e:
            logger.warning("asset_resolution_failed", symbol=symbol, error=str(e))
            return None

        if data["last_price"] is None:
            logger.warning("asset_resolution_no_price", symbol=symbol)
            return None

        quote = Quote.from_prices(
            symbol=symbol,
            price=float(data["last_price"]),
            previous_close=float(data["previous_close"]) if data["previous_close"] else None,
        )
        return Asset(
            symbol=symbol,
            name=self._lookup_name(symbol),
            current_price=quote.price,
            currency=data["currency"] or config.base_currency,
            change_24h=quote.change,
            change_percent_24h=quote.change_percent,
        )

    def _lookup_name(self, symbol: str) -> str:
        """Company name from ``info``; falls back to the symbol."""
        try:
            info = yf.Ticker(symbol).info or {}
        except (KeyError, AttributeError, TypeError, ValueError, ConnectionError, OSError) as e:
            logger.debug("name_lookup_failed", symbol=symbol, error_type=type(e).__name__)
            return symbol.upper()
        return info.get("shortName") or info.get("longName") or symbol.upper()


class StaticQuoteFetcher(QuoteFetcher):
    """
    Quotes served from an in-memory table.

    Serves as the offline fallback source and in demos. Symbols missing
    from the table fail like an unlisted symbol would.

    Example:
        >>> fetcher = StaticQuoteFetcher({"AAPL": 190.0}, previous_close={"AAPL": 185.0})
    """

    SOURCE = "static"

    def __init__(
        self,
        prices: Mapping[str, float],
        previous_close: Optional[Mapping[str, float]] = None,
        **kwargs: Any
    ):
        super().__init__(**kwargs)
        self.prices = {k.upper(): v for k, v in prices.items()}
        self.previous_close = {k.upper(): v for k, v in (previous_close or {}).items()}

    def set_price(self, symbol: str, price: float) -> None:
        self.prices[symbol.upper()] = price

    async def fetch(self, symbol: str) -> Quote:
        symbol = symbol.upper()
        if symbol not in self.prices:
            raise QuoteFetchError(f"No price for {symbol}", symbol=symbol, source=self.SOURCE)
        return Quote.from_prices(
            symbol=symbol,
            price=self.prices[symbol],
            previous_close=self.previous_close.get(symbol),
        )

    def resolve_asset(self, symbol: str) -> Optional[Asset]:
        symbol = symbol.upper()
        if symbol not in self.prices:
            return None
        return Asset(symbol=symbol, current_price=self.prices[symbol], currency=config.base_currency)
