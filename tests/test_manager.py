"""
Unit tests for the PortfolioManager.

Tests cover:
- Snapshot publication to subscribers
- Failed operations leaving state untouched
- Autosave through the storage collaborator
- Async price refresh through a quote fetcher
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.data import StaticQuoteFetcher
from src.exceptions import HoldingNotFoundError, StorageError, ValidationError
from src.portfolio import (
    Asset,
    Portfolio,
    PortfolioManager,
    PortfolioStorage,
    Quote,
    UntrackedSellPolicy,
    create_buy_input,
    create_sell_input,
)
from src.portfolio.manager import (
    HOLDING_DELETED,
    HOLDING_EDITED,
    PRICES_REFRESHED,
    TRANSACTION_RECORDED,
)


def buy(symbol, quantity, price, fees=0.0):
    return create_buy_input(
        symbol, quantity, price, "2024-01-15", fees=fees, asset=Asset(symbol, current_price=price)
    )


@pytest.fixture
def manager():
    return PortfolioManager(Portfolio.empty("Managed"))


class TestPublication:
    """Test snapshot swapping and subscriber notification."""

    def test_record_transaction_notifies(self, manager):
        events = []
        manager.subscribe(lambda event, p: events.append((event, p)))

        result = manager.record_transaction(buy("AAPL", 10, 100.0, fees=5.0))

        assert result is manager.portfolio
        assert events == [(TRANSACTION_RECORDED, manager.portfolio)]
        assert manager.portfolio.total_cost == 1005.0

    def test_old_snapshot_kept_by_readers(self, manager):
        before = manager.portfolio

        manager.record_transaction(buy("AAPL", 10, 100.0))

        assert before.holdings == ()
        assert manager.portfolio is not before

    def test_unsubscribe(self, manager):
        events = []
        unsubscribe = manager.subscribe(lambda event, p: events.append(event))

        manager.record_transaction(buy("AAPL", 10, 100.0))
        unsubscribe()
        manager.record_transaction(buy("AAPL", 10, 100.0))

        assert events == [TRANSACTION_RECORDED]

    def test_failing_subscriber_does_not_block_others(self, manager):
        def broken(event, portfolio):
            raise RuntimeError("boom")

        events = []
        manager.subscribe(broken)
        manager.subscribe(lambda event, p: events.append(event))

        manager.record_transaction(buy("AAPL", 10, 100.0))

        assert events == [TRANSACTION_RECORDED]
        assert manager.portfolio.has_holding("AAPL")

    def test_validation_error_changes_nothing(self, manager):
        events = []
        manager.subscribe(lambda event, p: events.append(event))
        before = manager.portfolio

        with pytest.raises(ValidationError):
            manager.record_transaction(buy("AAPL", 0, 100.0))

        assert manager.portfolio is before
        assert events == []

    def test_reject_policy(self):
        manager = PortfolioManager(Portfolio.empty("Strict"), policy=UntrackedSellPolicy.REJECT)

        with pytest.raises(HoldingNotFoundError):
            manager.record_transaction(create_sell_input("AAPL", 1, 100.0, "2024-01-15"))

        assert len(manager.portfolio.transactions) == 0

    def test_edit_and_delete_events(self, manager):
        events = []
        manager.subscribe(lambda event, p: events.append(event))
        manager.record_transaction(buy("AAPL", 10, 100.0))
        holding_id = manager.portfolio.get_holding("AAPL").id

        manager.edit_holding(holding_id, {"quantity": 5})
        manager.delete_holding(holding_id)

        assert events == [TRANSACTION_RECORDED, HOLDING_EDITED, HOLDING_DELETED]
        assert manager.portfolio.holdings == ()

    def test_apply_quotes(self, manager):
        events = []
        manager.record_transaction(buy("AAPL", 10, 100.0, fees=5.0))
        manager.subscribe(lambda event, p: events.append(event))

        manager.apply_quotes([Quote("AAPL", 120.0)])

        assert events == [PRICES_REFRESHED]
        assert manager.get_totals() == pytest.approx((1200.0, 1005.0, 195.0, 195.0 / 1005.0 * 100))

    def test_get_transactions(self, manager):
        manager.record_transaction(buy("AAPL", 10, 100.0))
        manager.record_transaction(buy("MSFT", 5, 300.0))

        assert [t.symbol for t in manager.get_transactions(symbol="MSFT")] == ["MSFT"]
        assert manager.last_updated == manager.portfolio.last_updated


class TestAutosave:
    """Test persistence through the manager."""

    def test_autosave(self):
        storage = PortfolioStorage(":memory:")
        manager = PortfolioManager(Portfolio.empty("Saved"), storage=storage)

        manager.record_transaction(buy("AAPL", 10, 100.0))

        assert storage.load(manager.portfolio.id) == manager.portfolio

    def test_autosave_disabled(self):
        storage = MagicMock()
        manager = PortfolioManager(Portfolio.empty("Unsaved"), storage=storage, autosave=False)

        manager.record_transaction(buy("AAPL", 10, 100.0))

        storage.save.assert_not_called()

    def test_autosave_failure_keeps_snapshot(self):
        storage = MagicMock()
        storage.save.side_effect = StorageError("disk full")
        manager = PortfolioManager(Portfolio.empty("Flaky"), storage=storage)

        manager.record_transaction(buy("AAPL", 10, 100.0))

        assert manager.portfolio.has_holding("AAPL")
        storage.save.assert_called_once()

    def test_load_or_create(self):
        storage = PortfolioStorage(":memory:")

        first = PortfolioManager.load_or_create(storage, "Resumable")
        first.record_transaction(buy("AAPL", 10, 100.0))
        resumed = PortfolioManager.load_or_create(storage, "Resumable")
        by_id = PortfolioManager.load_or_create(storage, "ignored", portfolio_id=first.portfolio.id)

        assert resumed.portfolio == first.portfolio
        assert by_id.portfolio == first.portfolio

    def test_policy_from_string(self):
        manager = PortfolioManager(Portfolio.empty("Strict"), policy="reject")

        assert manager.policy is UntrackedSellPolicy.REJECT

    def test_load_or_create_new(self):
        manager = PortfolioManager.load_or_create(PortfolioStorage(":memory:"), "Fresh")

        assert manager.portfolio.name == "Fresh"
        assert manager.portfolio.holdings == ()


class TestRefreshPrices:
    """Test async refresh through a quote fetcher."""

    @pytest.mark.asyncio
    async def test_refresh_with_static_quotes(self, manager):
        manager.record_transaction(buy("AAPL", 10, 100.0, fees=5.0))
        manager.record_transaction(buy("MSFT", 5, 300.0))
        fetcher = StaticQuoteFetcher({"AAPL": 120.0}, max_retries=1)

        await manager.refresh_prices(fetcher)

        assert manager.portfolio.get_holding("AAPL").current_value == 1200.0
        assert manager.portfolio.get_holding("MSFT").current_value == 1500.0

    @pytest.mark.asyncio
    async def test_refresh_requests_held_symbols(self, manager):
        manager.record_transaction(buy("AAPL", 10, 100.0))
        fetcher = MagicMock()
        fetcher.fetch_quotes = AsyncMock(return_value=[Quote("AAPL", 90.0)])

        await manager.refresh_prices(fetcher)

        fetcher.fetch_quotes.assert_awaited_once_with(["AAPL"])
        assert manager.portfolio.total_value == 900.0

    @pytest.mark.asyncio
    async def test_refresh_empty_portfolio_skips_fetch(self, manager):
        fetcher = MagicMock()
        fetcher.fetch_quotes = AsyncMock(return_value=[])

        await manager.refresh_prices(fetcher)

        fetcher.fetch_quotes.assert_not_awaited()
