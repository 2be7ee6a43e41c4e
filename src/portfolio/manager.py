"""
Portfolio manager: the single writer in front of the reconciliation engine.

PortfolioManager owns "the current snapshot". It serializes every
reconciling call, swaps in the resulting snapshot atomically, broadcasts
it to subscribers, and optionally saves it through the persistence
collaborator. Readers that grabbed ``manager.portfolio`` earlier keep a
complete older snapshot; they never observe a half-applied update.
"""

import threading
from datetime import datetime
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple, TYPE_CHECKING
import structlog

from src.config import config
from src.exceptions import StorageError
from .aggregator import UntrackedSellPolicy
from .asset import Quote
from .reconciler import (
    AssetResolver,
    add_transaction,
    delete_holding,
    edit_holding,
    refresh_prices,
)
from .snapshot import Portfolio
from .storage import PortfolioStorage
from .transaction import TransactionInput

if TYPE_CHECKING:
    from src.data.quotes import QuoteFetcher

logger = structlog.get_logger(__name__)

Subscriber = Callable[[str, Portfolio], None]

TRANSACTION_RECORDED = "transaction_recorded"
PRICES_REFRESHED = "prices_refreshed"
HOLDING_EDITED = "holding_edited"
HOLDING_DELETED = "holding_deleted"


class PortfolioManager:
    """
    Holds the current Portfolio snapshot and applies events to it.

    Example:
        >>> manager = PortfolioManager(Portfolio.empty("My Portfolio"))
        >>> unsubscribe = manager.subscribe(lambda event, p: print(event, p.total_value))
        >>> manager.record_transaction(
        ...     create_buy_input("AAPL", 10, 100.0, "2024-01-15",
        ...                      asset=Asset("AAPL", current_price=100.0))
        ... )
        transaction_recorded 1000.0
    """

    def __init__(
        self,
        portfolio: Portfolio,
        storage: Optional[PortfolioStorage] = None,
        asset_resolver: Optional[AssetResolver] = None,
        policy: Optional[UntrackedSellPolicy] = None,
        autosave: bool = True
    ):
        """
        Initialize portfolio manager.

        Args:
            portfolio: Starting snapshot
            storage: Persistence collaborator (optional)
            asset_resolver: Resolves unseen symbols to live-priced assets
            policy: Behavior for sells of symbols not held (defaults to
                UNTRACKED_SELL_POLICY)
            autosave: Save every new snapshot when storage is set
        """
        self._portfolio = portfolio
        self._storage = storage
        self._asset_resolver = asset_resolver
        self._policy = UntrackedSellPolicy.parse(policy or config.untracked_sell_policy)
        self._autosave = autosave
        self._lock = threading.RLock()
        self._subscribers: List[Subscriber] = []

        logger.info(
            "portfolio_manager_initialized",
            name=portfolio.name,
            holdings=len(portfolio.holdings),
            policy=self._policy.value
        )

    @classmethod
    def load_or_create(
        cls,
        storage: Optional[PortfolioStorage] = None,
        name: Optional[str] = None,
        portfolio_id: Optional[str] = None,
        **kwargs: Any
    ) -> "PortfolioManager":
        """
        Resume the saved portfolio or start an empty one.

        Looks up ``portfolio_id`` when given, otherwise the most recently
        saved portfolio called ``name``. Storage and name default to
        PORTFOLIO_DB_PATH and PORTFOLIO_NAME.
        """
        storage = storage or PortfolioStorage(config.portfolio_db_path)
        name = name or config.default_portfolio_name

        portfolio = None
        if portfolio_id is not None:
            portfolio = storage.load(portfolio_id)
        else:
            portfolio = storage.load_by_name(name)

        if portfolio is None:
            portfolio = Portfolio.empty(name)
            logger.info("portfolio_created", name=name, id=portfolio.id)

        return cls(portfolio, storage=storage, **kwargs)

    @property
    def portfolio(self) -> Portfolio:
        """The current snapshot."""
        return self._portfolio

    @property
    def policy(self) -> UntrackedSellPolicy:
        return self._policy

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register an observer for new snapshots.

        Args:
            callback: Called as ``callback(event_name, portfolio)``

        Returns:
            A function that removes the subscription
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _commit(self, event: str, build: Callable[[Portfolio], Portfolio]) -> Portfolio:
        """Build the next snapshot from the current one, then publish it."""
        with self._lock:
            updated = build(self._portfolio)
            self._portfolio = updated
            subscribers = list(self._subscribers)

            if self._storage is not None and self._autosave:
                try:
                    self._storage.save(updated)
                except StorageError as e:
                    # The in-memory snapshot stays authoritative; next write retries.
                    logger.error("autosave_failed", portfolio=updated.name, error=str(e))

        for callback in subscribers:
            try:
                callback(event, updated)
            except Exception as e:
                logger.error(
                    "subscriber_failed",
                    event_name=event,
                    subscriber=getattr(callback, "__name__", repr(callback)),
                    error_type=type(e).__name__,
                    error=str(e)
                )

        return updated

    def record_transaction(self, transaction_input: TransactionInput) -> Portfolio:
        """
        Record a trade (event: transaction_recorded).

        Raises:
            ValidationError: The snapshot is left unchanged
            HoldingNotFoundError: Untracked sell under the REJECT policy
        """
        return self._commit(
            TRANSACTION_RECORDED,
            lambda p: add_transaction(
                p,
                transaction_input,
                asset_resolver=self._asset_resolver,
                policy=self._policy,
            ),
        )

    def apply_quotes(self, quotes: Iterable[Quote]) -> Portfolio:
        """Reprice holdings from already-fetched quotes (event: prices_refreshed)."""
        quotes = list(quotes)
        return self._commit(PRICES_REFRESHED, lambda p: refresh_prices(p, quotes))

    async def refresh_prices(self, fetcher: "QuoteFetcher") -> Portfolio:
        """
        Fetch quotes for every held symbol and apply them.

        Fetching happens outside the write lock; fetch failures surface
        only as missing quotes, which leave those holdings stale.
        """
        symbols = self._portfolio.symbols
        if not symbols:
            logger.debug("refresh_skipped_no_holdings", portfolio=self._portfolio.name)
            return self.apply_quotes([])

        quotes = await fetcher.fetch_quotes(symbols)
        return self.apply_quotes(quotes)

    def edit_holding(self, holding_id: str, changes: Mapping[str, Any]) -> Portfolio:
        """Edit one holding (event: holding_edited)."""
        return self._commit(HOLDING_EDITED, lambda p: edit_holding(p, holding_id, changes))

    def delete_holding(self, holding_id: str) -> Portfolio:
        """Remove one holding (event: holding_deleted)."""
        return self._commit(HOLDING_DELETED, lambda p: delete_holding(p, holding_id))

    def get_transactions(self, **filters: Any) -> list:
        """Filtered transaction history; see TransactionLedger.filter()."""
        return self._portfolio.transactions.filter(**filters)

    def get_totals(self) -> Tuple[float, float, float, float]:
        """(total_value, total_cost, total_gain_loss, total_gain_loss_percent)."""
        p = self._portfolio
        return p.total_value, p.total_cost, p.total_gain_loss, p.total_gain_loss_percent

    @property
    def last_updated(self) -> datetime:
        return self._portfolio.last_updated

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"PortfolioManager({self._portfolio!r})"
