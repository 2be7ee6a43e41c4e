"""
Quote Fetching Module

Supplies current prices to the portfolio reconciler.

Module Structure:
- quotes.py: QuoteFetcher base class, YFinance and static fetchers

Usage:
    from src.data import YFinanceQuoteFetcher

    fetcher = YFinanceQuoteFetcher()
    quotes = await fetcher.fetch_quotes(["AAPL", "MSFT"])

    # Or let the manager fetch and apply them
    await manager.refresh_prices(fetcher)
"""

from src.data.quotes import (
    QuoteFetcher,
    YFinanceQuoteFetcher,
    StaticQuoteFetcher,
)

__all__ = [
    'QuoteFetcher',
    'YFinanceQuoteFetcher',
    'StaticQuoteFetcher',
]
