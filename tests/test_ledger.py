"""
Unit tests for the transaction ledger and Portfolio snapshot.

Tests cover:
- Append-only semantics
- Filtering and ordering
- Replaying the ledger against incrementally maintained holdings
- Snapshot invariants and serialization
"""

from datetime import datetime

import pytest

from src.portfolio import (
    Asset,
    Portfolio,
    TransactionLedger,
    TransactionType,
    add_transaction,
    create_buy_input,
    create_sell_input,
)


def buy(symbol, quantity, price, date, fees=0.0):
    return create_buy_input(
        symbol, quantity, price, date, fees=fees, asset=Asset(symbol, current_price=price)
    )


@pytest.fixture
def portfolio():
    trades = [
        buy("AAPL", 10, 100.0, "2024-01-15", fees=5.0),
        buy("MSFT", 5, 300.0, "2024-01-10"),
        buy("AAPL", 10, 110.0, "2024-02-01"),
        create_sell_input("AAPL", 5, 120.0, "2024-03-01"),
        create_sell_input("MSFT", 5, 320.0, "2024-03-05"),
        buy("NVDA", 20, 80.0, "2024-02-20"),
    ]
    snapshot = Portfolio.empty("Ledger")
    for trade in trades:
        snapshot = add_transaction(snapshot, trade)
    return snapshot


class TestTransactionLedger:
    """Test the TransactionLedger class."""

    def test_append_returns_new_ledger(self, portfolio):
        ledger = TransactionLedger()
        first = portfolio.transactions[0]

        appended = ledger.append(first)

        assert len(ledger) == 0
        assert len(appended) == 1
        assert appended[0] is first

    def test_creation_order_preserved(self, portfolio):
        symbols = [t.symbol for t in portfolio.transactions]

        assert symbols == ["AAPL", "MSFT", "AAPL", "AAPL", "MSFT", "NVDA"]

    def test_newest_first(self, portfolio):
        dates = [t.date for t in portfolio.transactions.newest_first()]

        assert dates == sorted(dates, reverse=True)
        assert dates[0] == datetime(2024, 3, 5)

    def test_filter_by_symbol(self, portfolio):
        aapl = portfolio.transactions.filter(symbol="aapl")

        assert len(aapl) == 3
        assert all(t.symbol == "AAPL" for t in aapl)

    def test_filter_by_type_and_date(self, portfolio):
        sells = portfolio.transactions.filter(
            transaction_type=TransactionType.SELL,
            start_date=datetime(2024, 3, 2),
        )

        assert [t.symbol for t in sells] == ["MSFT"]

    def test_filter_end_date_inclusive(self, portfolio):
        early = portfolio.transactions.filter(end_date=datetime(2024, 1, 15))

        assert {t.symbol for t in early} == {"AAPL", "MSFT"}
        assert len(early) == 2

    def test_get(self, portfolio):
        first = portfolio.transactions[0]

        assert portfolio.transactions.get(first.id) is first
        assert portfolio.transactions.get("missing") is None

    def test_for_symbol(self, portfolio):
        msft = portfolio.transactions.for_symbol("MSFT")

        assert isinstance(msft, TransactionLedger)
        assert [t.transaction_type for t in msft] == [TransactionType.BUY, TransactionType.SELL]
        assert msft.replay() == ()

    def test_symbols(self, portfolio):
        assert portfolio.transactions.symbols() == ["AAPL", "MSFT", "NVDA"]

    def test_replay_matches_incremental(self, portfolio):
        replayed = portfolio.transactions.replay()

        def shape(holdings):
            return [(h.symbol, h.quantity, h.total_cost, h.average_price) for h in holdings]

        assert shape(replayed) == shape(portfolio.holdings)

    def test_replay_with_prices(self, portfolio):
        replayed = portfolio.transactions.replay(prices={"nvda": 95.0})

        nvda = next(h for h in replayed if h.symbol == "NVDA")
        assert nvda.current_value == 1900.0
        assert nvda.total_cost == 1600.0

    def test_list_roundtrip(self, portfolio):
        restored = TransactionLedger.from_list(portfolio.transactions.to_list())

        assert restored == portfolio.transactions


class TestPortfolioSnapshot:
    """Test the Portfolio snapshot type."""

    def test_empty(self):
        snapshot = Portfolio.empty("Empty")

        assert snapshot.holdings == ()
        assert len(snapshot.transactions) == 0
        assert snapshot.total_value == 0.0
        assert snapshot.total_gain_loss_percent == 0.0

    def test_duplicate_symbols_rejected(self, portfolio):
        aapl = portfolio.get_holding("AAPL")

        with pytest.raises(ValueError):
            Portfolio(name="Broken", holdings=(aapl, aapl))

    def test_totals_cannot_be_set(self):
        with pytest.raises(TypeError):
            Portfolio(name="Broken", total_value=1.0)

    def test_lookup(self, portfolio):
        aapl = portfolio.get_holding("aapl")

        assert portfolio.find_holding(aapl.id) is aapl
        assert portfolio.has_holding("NVDA")
        assert not portfolio.has_holding("TSLA")
        assert portfolio.symbols == ["AAPL", "NVDA"]

    def test_dict_roundtrip(self, portfolio):
        restored = Portfolio.from_dict(portfolio.to_dict())

        assert restored == portfolio
        assert restored.last_updated == portfolio.last_updated
