"""
Deterministic analytics over a Portfolio snapshot.

This module provides read-only views used by the presentation layer:
best and worst performers, sector and currency allocation, position
weights, ledger statistics and a pandas view of the holdings. Nothing
here feeds back into reconciliation.
"""

import math
from collections import defaultdict
from typing import Dict, List, Optional, Any

import pandas as pd
import structlog

from .holding import Holding
from .snapshot import Portfolio
from .transaction import TransactionType

logger = structlog.get_logger(__name__)

DEFAULT_SECTOR = "Other"

# Static symbol -> sector table for common large caps.
SECTOR_MAP: Dict[str, str] = {
    "AAPL": "Technology",
    "MSFT": "Technology",
    "GOOGL": "Technology",
    "GOOG": "Technology",
    "META": "Technology",
    "NVDA": "Technology",
    "AMD": "Technology",
    "INTC": "Technology",
    "AMZN": "Consumer Discretionary",
    "TSLA": "Consumer Discretionary",
    "NKE": "Consumer Discretionary",
    "JPM": "Financial Services",
    "BAC": "Financial Services",
    "V": "Financial Services",
    "MA": "Financial Services",
    "JNJ": "Healthcare",
    "PFE": "Healthcare",
    "UNH": "Healthcare",
    "XOM": "Energy",
    "CVX": "Energy",
    "KO": "Consumer Staples",
    "PG": "Consumer Staples",
    "WMT": "Consumer Staples",
    "NFLX": "Communication Services",
    "DIS": "Communication Services",
}


def get_sector(symbol: str, sector_map: Optional[Dict[str, str]] = None) -> str:
    """Look up a symbol's sector, DEFAULT_SECTOR when unknown."""
    return (sector_map or SECTOR_MAP).get(symbol.strip().upper(), DEFAULT_SECTOR)


def format_currency(amount: float, currency: str = "USD") -> str:
    """
    Format an amount for display.

    Example:
        >>> format_currency(-1234.5)
        '-$1,234.50'
        >>> format_currency(99, "EUR")
        '99.00 EUR'
    """
    sign = "-" if amount < 0 else ""
    if currency.upper() == "USD":
        return f"{sign}${abs(amount):,.2f}"
    return f"{sign}{abs(amount):,.2f} {currency.upper()}"


def format_percent(value: float) -> str:
    """
    Format a percentage with an explicit sign.

    Example:
        >>> format_percent(19.5)
        '+19.50%'
    """
    return f"{'+' if value >= 0 else ''}{value:.2f}%"


class PortfolioAnalytics:
    """
    Read-only analytics over one Portfolio snapshot.

    Example:
        >>> analytics = PortfolioAnalytics(portfolio)
        >>> analytics.best_performer()["symbol"]
        'AAPL'
        >>> analytics.sector_allocation()
        [{'sector': 'Technology', 'value': 1200.0, 'count': 1, 'percentage': 100.0}]
    """

    def __init__(self, portfolio: Portfolio, sector_map: Optional[Dict[str, str]] = None):
        self.portfolio = portfolio
        self.sector_map = sector_map or SECTOR_MAP

    def _performer(self, holding: Optional[Holding]) -> Optional[Dict[str, Any]]:
        if holding is None:
            return None
        return {
            "symbol": holding.symbol,
            "name": holding.asset.name,
            "gain_loss": holding.gain_loss,
            "gain_loss_percent": holding.gain_loss_percent,
        }

    def best_performer(self) -> Optional[Dict[str, Any]]:
        """Holding with the highest gain/loss percent, None when empty."""
        if not self.portfolio.holdings:
            return None
        return self._performer(max(self.portfolio.holdings, key=lambda h: h.gain_loss_percent))

    def worst_performer(self) -> Optional[Dict[str, Any]]:
        """Holding with the lowest gain/loss percent, None when empty."""
        if not self.portfolio.holdings:
            return None
        return self._performer(min(self.portfolio.holdings, key=lambda h: h.gain_loss_percent))

    def sector_allocation(self) -> List[Dict[str, Any]]:
        """
        Share of current value per sector, largest first.

        Returns:
            List of {"sector", "value", "count", "percentage"} dicts;
            percentages are 0 when the portfolio has no value
        """
        frame = self.holdings_frame()
        if frame.empty:
            return []

        grouped = (
            frame.groupby("sector")
            .agg(value=("current_value", "sum"), count=("symbol", "count"))
            .sort_values(["value", "count"], ascending=False)
        )
        total_value = self.portfolio.total_value

        return [
            {
                "sector": sector,
                "value": float(row["value"]),
                "count": int(row["count"]),
                "percentage": float(row["value"]) / total_value * 100.0 if total_value > 0 else 0.0,
            }
            for sector, row in grouped.iterrows()
        ]

    def holding_weights(self) -> Dict[str, float]:
        """Each holding's share of total value, in percent."""
        total_value = self.portfolio.total_value
        if total_value <= 0:
            return {h.symbol: 0.0 for h in self.portfolio.holdings}
        return {
            h.symbol: h.current_value / total_value * 100.0
            for h in self.portfolio.holdings
        }

    def by_currency(self) -> Dict[str, Dict[str, float]]:
        """
        Value, cost and gain/loss per currency.

        No FX conversion is applied; each bucket is in its own currency.
        """
        buckets: Dict[str, List[Holding]] = defaultdict(list)
        for holding in self.portfolio.holdings:
            buckets[holding.asset.currency].append(holding)

        summary = {}
        for currency, holdings in buckets.items():
            value = math.fsum(h.current_value for h in holdings)
            cost = math.fsum(h.total_cost for h in holdings)
            gain = value - cost
            summary[currency] = {
                "holdings": len(holdings),
                "value": value,
                "cost": cost,
                "gain_loss": gain,
                "gain_loss_percent": (gain / cost * 100.0) if cost > 0 else 0.0,
            }
        return summary

    def transaction_stats(self) -> Dict[str, Any]:
        """Counts and gross amounts over the ledger."""
        ledger = self.portfolio.transactions
        buys = ledger.filter(transaction_type=TransactionType.BUY)
        sells = ledger.filter(transaction_type=TransactionType.SELL)

        return {
            "total_transactions": len(ledger),
            "buy_transactions": len(buys),
            "sell_transactions": len(sells),
            "gross_bought": math.fsum(t.cost_basis for t in buys),
            "gross_sold": math.fsum(t.total_amount for t in sells),
            "total_fees": math.fsum(t.fees for t in ledger),
            "symbols_traded": len(ledger.symbols()),
        }

    def holdings_frame(self) -> pd.DataFrame:
        """One row per holding, with sector and weight columns."""
        columns = [
            "symbol", "name", "sector", "currency", "quantity", "average_price",
            "current_price", "total_cost", "current_value", "gain_loss",
            "gain_loss_percent", "weight",
        ]
        weights = self.holding_weights()
        rows = [
            {
                "symbol": h.symbol,
                "name": h.asset.name,
                "sector": get_sector(h.symbol, self.sector_map),
                "currency": h.asset.currency,
                "quantity": h.quantity,
                "average_price": h.average_price,
                "current_price": h.asset.current_price,
                "total_cost": h.total_cost,
                "current_value": h.current_value,
                "gain_loss": h.gain_loss,
                "gain_loss_percent": h.gain_loss_percent,
                "weight": weights[h.symbol],
            }
            for h in self.portfolio.holdings
        ]
        return pd.DataFrame(rows, columns=columns)

    def summary(self) -> Dict[str, Any]:
        """
        Get a summary of the portfolio.

        Example:
            >>> summary = PortfolioAnalytics(portfolio).summary()
            >>> print(summary['total_holdings'])
            5
        """
        p = self.portfolio
        return {
            "portfolio_id": p.id,
            "portfolio_name": p.name,
            "total_holdings": len(p.holdings),
            "total_value": p.total_value,
            "total_cost": p.total_cost,
            "total_gain_loss": p.total_gain_loss,
            "total_gain_loss_percent": p.total_gain_loss_percent,
            "best_performer": self.best_performer(),
            "worst_performer": self.worst_performer(),
            "by_currency": self.by_currency(),
            "transactions": self.transaction_stats(),
            "last_updated": p.last_updated.isoformat(),
        }
