"""
Portfolio Reconciliation Module.

This module keeps a portfolio's holdings, transaction ledger and totals
consistent with each other:
- Transaction recording with average-price cost basis
- Live repricing from quotes
- Holding edits and deletions
- Immutable snapshots published through a single-writer manager
- Persistent storage with SQLite
- CSV export/import
- Deterministic analytics (performers, sector allocation)

Example usage:
    >>> from src.portfolio import (
    ...     Asset, Portfolio, PortfolioManager, PortfolioStorage,
    ...     create_buy_input, create_sell_input
    ... )
    >>>
    >>> # Start a portfolio backed by a database
    >>> storage = PortfolioStorage("portfolio.db")
    >>> manager = PortfolioManager.load_or_create(storage, "My Portfolio")
    >>>
    >>> # Record trades
    >>> manager.record_transaction(
    ...     create_buy_input("AAPL", 10, 100.0, "2024-01-15", fees=5.0,
    ...                      asset=Asset("AAPL", "Apple Inc.", 100.0))
    ... )
    >>> manager.record_transaction(create_sell_input("AAPL", 5, 120.0, "2024-02-01"))
    >>>
    >>> # Reprice from live quotes
    >>> from src.data import YFinanceQuoteFetcher
    >>> await manager.refresh_prices(YFinanceQuoteFetcher())
    >>>
    >>> # Analytics
    >>> PortfolioAnalytics(manager.portfolio).sector_allocation()
"""

from .asset import Asset, Quote
from .valuation import current_value, gain_loss, gain_loss_percent, valuation
from .holding import Holding
from .transaction import (
    Transaction,
    TransactionInput,
    TransactionType,
    create_buy_input,
    create_sell_input,
)
from .aggregator import (
    QUANTITY_EPSILON,
    UntrackedSellPolicy,
    apply_transaction,
)
from .totals import PortfolioTotals, recompute_totals
from .ledger import TransactionLedger
from .snapshot import Portfolio
from .reconciler import (
    add_transaction,
    refresh_prices,
    edit_holding,
    delete_holding,
)
from .manager import PortfolioManager
from .storage import PortfolioStorage
from .analytics import PortfolioAnalytics, format_currency, format_percent

__all__ = [
    # Assets and quotes
    "Asset",
    "Quote",

    # Valuation
    "current_value",
    "gain_loss",
    "gain_loss_percent",
    "valuation",

    # Holdings and transactions
    "Holding",
    "Transaction",
    "TransactionInput",
    "TransactionType",
    "create_buy_input",
    "create_sell_input",

    # Aggregation
    "QUANTITY_EPSILON",
    "UntrackedSellPolicy",
    "apply_transaction",

    # Snapshot
    "PortfolioTotals",
    "recompute_totals",
    "TransactionLedger",
    "Portfolio",

    # Reconciliation
    "add_transaction",
    "refresh_prices",
    "edit_holding",
    "delete_holding",

    # Manager and storage
    "PortfolioManager",
    "PortfolioStorage",

    # Analytics
    "PortfolioAnalytics",
    "format_currency",
    "format_percent",
]

__version__ = "1.0.0"
