#!/usr/bin/env python3
"""
Portfolio Reconciliation Demo

This example walks through the reconciliation engine end to end:
- Recording buys and sells with average-price cost basis
- Repricing holdings from quotes
- Editing and deleting holdings
- Observing snapshots through the manager
- Persistent storage with SQLite
- CSV export
- Analytics (performers, sector allocation)

Runs offline: quotes come from a StaticQuoteFetcher.
"""

import asyncio
from datetime import datetime, timedelta
from pathlib import Path
import sys

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.data import StaticQuoteFetcher
from src.portfolio import (
    Portfolio,
    PortfolioAnalytics,
    PortfolioManager,
    PortfolioStorage,
    TransactionType,
    create_buy_input,
    create_sell_input,
    format_currency,
    format_percent,
)

QUOTES = StaticQuoteFetcher(
    {"AAPL": 150.0, "MSFT": 310.0, "NVDA": 95.0, "JPM": 180.0},
    previous_close={"AAPL": 148.0, "MSFT": 312.0, "NVDA": 90.0, "JPM": 178.5},
)


def print_holdings(portfolio: Portfolio):
    print("\n📊 Holdings:")
    for h in portfolio.holdings:
        print(f"  {h.symbol:6s} | {h.quantity:8.2f} @ {h.average_price:8.2f} | "
              f"value {format_currency(h.current_value):>12s} | "
              f"P&L {format_currency(h.gain_loss):>10s} ({format_percent(h.gain_loss_percent)})")

    print(f"\n💰 Total: {format_currency(portfolio.total_value)} "
          f"(cost {format_currency(portfolio.total_cost)}, "
          f"P&L {format_currency(portfolio.total_gain_loss)} "
          f"{format_percent(portfolio.total_gain_loss_percent)})")


def demo_transactions() -> PortfolioManager:
    """Demonstrate recording trades through the manager."""
    print("=" * 80)
    print("DEMO 1: Recording Transactions")
    print("=" * 80)

    manager = PortfolioManager(
        Portfolio.empty("Demo Portfolio"),
        asset_resolver=QUOTES.resolve_asset,
    )
    manager.subscribe(lambda event, p: print(f"  [{event}] {len(p.holdings)} holdings, "
                                             f"{format_currency(p.total_value)}"))

    start = datetime.now() - timedelta(days=90)
    trades = [
        create_buy_input("AAPL", 10, 100.0, start, fees=5.0),
        create_buy_input("AAPL", 10, 120.0, start + timedelta(days=10)),
        create_buy_input("MSFT", 5, 300.0, start + timedelta(days=20), fees=2.5),
        create_buy_input("NVDA", 20, 80.0, start + timedelta(days=30)),
        create_sell_input("AAPL", 5, 140.0, start + timedelta(days=40)),
    ]

    print("\n✓ Recording transactions...")
    for trade in trades:
        manager.record_transaction(trade)

    print_holdings(manager.portfolio)

    print("\n📝 Transaction History (newest first):")
    for txn in manager.portfolio.transactions.newest_first():
        print(f"  {txn.date.date()} | {txn.symbol:6s} | {txn.transaction_type.value:4s} | "
              f"{txn.quantity:6.2f} @ {txn.price:8.2f} | fees {txn.fees:.2f}")

    return manager


def demo_refresh(manager: PortfolioManager):
    """Demonstrate repricing from the quote collaborator."""
    print("\n" + "=" * 80)
    print("DEMO 2: Refreshing Prices")
    print("=" * 80)

    QUOTES.set_price("AAPL", 165.0)
    asyncio.run(manager.refresh_prices(QUOTES))
    print_holdings(manager.portfolio)


def demo_edit_and_delete(manager: PortfolioManager):
    """Demonstrate holding edits and deletion."""
    print("\n" + "=" * 80)
    print("DEMO 3: Editing and Deleting Holdings")
    print("=" * 80)

    msft = manager.portfolio.get_holding("MSFT")
    manager.edit_holding(msft.id, {"quantity": 8, "purchase_price": 295.0, "notes": "merged accounts"})
    print(f"\n✓ Edited MSFT: {manager.portfolio.get_holding('MSFT')}")

    nvda = manager.portfolio.get_holding("NVDA")
    manager.delete_holding(nvda.id)
    print(f"✓ Deleted NVDA; ledger still has "
          f"{len(manager.get_transactions(symbol='NVDA'))} NVDA transaction(s)")

    print_holdings(manager.portfolio)


def demo_analytics(manager: PortfolioManager):
    """Demonstrate read-only analytics."""
    print("\n" + "=" * 80)
    print("DEMO 4: Analytics")
    print("=" * 80)

    analytics = PortfolioAnalytics(manager.portfolio)

    best = analytics.best_performer()
    worst = analytics.worst_performer()
    if best:
        print(f"\n  🏆 Best Performer: {best['symbol']} ({format_percent(best['gain_loss_percent'])})")
    if worst:
        print(f"  📉 Worst Performer: {worst['symbol']} ({format_percent(worst['gain_loss_percent'])})")

    print("\n✓ Sector Allocation:")
    for row in analytics.sector_allocation():
        print(f"  {row['sector']:24s} {format_currency(row['value']):>12s} "
              f"{row['percentage']:6.2f}% ({row['count']} holdings)")

    stats = analytics.transaction_stats()
    print(f"\n✓ Ledger: {stats['buy_transactions']} buys, {stats['sell_transactions']} sells, "
          f"fees {format_currency(stats['total_fees'])}")

    buys = manager.get_transactions(transaction_type=TransactionType.BUY)
    print(f"  Gross bought: {format_currency(sum(t.cost_basis for t in buys))}")


def demo_storage(manager: PortfolioManager):
    """Demonstrate persistent storage."""
    print("\n" + "=" * 80)
    print("DEMO 5: Persistent Storage")
    print("=" * 80)

    storage = PortfolioStorage("demo_portfolio.db")

    print("\n✓ Saving portfolio to database...")
    storage.save(manager.portfolio)

    print("\n✓ Available portfolios:")
    for entry in storage.list_portfolios():
        print(f"  - {entry['name']} ({entry['id']}, updated {entry['last_updated']})")

    print("\n✓ Loading portfolio from database...")
    loaded = storage.load(manager.portfolio.id)
    print(f"  Loaded snapshot equals original: {loaded == manager.portfolio}")

    print("\n✓ Exporting to CSV...")
    files = storage.export_to_csv(manager.portfolio, output_dir=".")
    print(f"  Holdings CSV: {files['holdings']}")
    print(f"  Transactions CSV: {files['transactions']}")


def main():
    """Run all demos."""
    print("\n" + "=" * 80)
    print("Portfolio Reconciliation Demo")
    print("=" * 80)

    manager = demo_transactions()
    demo_refresh(manager)
    demo_edit_and_delete(manager)
    demo_analytics(manager)
    demo_storage(manager)

    print("\n" + "=" * 80)
    print("Demo Complete!")
    print("=" * 80)
    print("\nDatabase file: demo_portfolio.db")
    print("CSV files: Demo_Portfolio_holdings.csv, Demo_Portfolio_transactions.csv")


if __name__ == "__main__":
    main()
