"""
Append-only transaction ledger.

The ledger is the source of truth holdings can be rebuilt from; the
orchestrator also maintains holdings incrementally, and replay() lets the
two be checked against each other.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterator, Mapping, Optional, Tuple, List, Dict, Any
import structlog

from .aggregator import apply_transaction, Holdings, UntrackedSellPolicy
from .transaction import Transaction, TransactionType

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TransactionLedger:
    """
    Immutable, creation-ordered collection of transactions.

    Example:
        >>> ledger = TransactionLedger().append(buy).append(sell)
        >>> len(ledger)
        2
    """

    entries: Tuple[Transaction, ...] = ()

    def __iter__(self) -> Iterator[Transaction]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __getitem__(self, index: int) -> Transaction:
        return self.entries[index]

    def append(self, transaction: Transaction) -> "TransactionLedger":
        """Return a new ledger with ``transaction`` added at the end."""
        return TransactionLedger(self.entries + (transaction,))

    def get(self, transaction_id: str) -> Optional[Transaction]:
        for transaction in self.entries:
            if transaction.id == transaction_id:
                return transaction
        return None

    def filter(
        self,
        symbol: Optional[str] = None,
        transaction_type: Optional[TransactionType] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> List[Transaction]:
        """
        Get filtered transaction history, in creation order.

        Args:
            symbol: Filter by symbol (optional)
            transaction_type: Filter by type (optional)
            start_date: Filter by start date, inclusive (optional)
            end_date: Filter by end date, inclusive (optional)

        Returns:
            List of matching transactions

        Example:
            >>> buys_2024 = ledger.filter(
            ...     transaction_type=TransactionType.BUY,
            ...     start_date=datetime(2024, 1, 1),
            ...     end_date=datetime(2024, 12, 31)
            ... )
        """
        filtered = list(self.entries)

        if symbol:
            symbol = symbol.strip().upper()
            filtered = [t for t in filtered if t.symbol == symbol]

        if transaction_type:
            filtered = [t for t in filtered if t.transaction_type == transaction_type]

        if start_date:
            filtered = [t for t in filtered if t.date >= start_date]

        if end_date:
            filtered = [t for t in filtered if t.date <= end_date]

        return filtered

    def for_symbol(self, symbol: str) -> "TransactionLedger":
        """Sub-ledger of one symbol's transactions, order preserved."""
        return TransactionLedger(tuple(self.filter(symbol=symbol)))

    def newest_first(self) -> List[Transaction]:
        """Transactions sorted by trade date, most recent first."""
        return sorted(self.entries, key=lambda t: t.date, reverse=True)

    def symbols(self) -> List[str]:
        """Distinct symbols in first-seen order."""
        seen: Dict[str, None] = {}
        for transaction in self.entries:
            seen.setdefault(transaction.symbol, None)
        return list(seen)

    def replay(
        self,
        prices: Optional[Mapping[str, float]] = None,
        policy: UntrackedSellPolicy = UntrackedSellPolicy.IGNORE
    ) -> Holdings:
        """
        Rebuild holdings from scratch by applying every transaction in order.

        Args:
            prices: Live price per symbol to value holdings at; symbols
                without a price are valued at their transaction's asset
                snapshot
            policy: Behavior for sells of symbols not held

        Returns:
            Holdings equivalent (up to generated ids) to the incremental result
        """
        prices = {k.strip().upper(): v for k, v in (prices or {}).items()}
        holdings: Holdings = ()

        for transaction in self.entries:
            holdings = apply_transaction(holdings, transaction, policy=policy)

        revalued = []
        for holding in holdings:
            price = prices.get(holding.symbol)
            if price is not None:
                holding = holding.with_asset(replace(holding.asset, current_price=price))
            revalued.append(holding)

        logger.debug("ledger_replayed", transactions=len(self.entries), holdings=len(revalued))
        return tuple(revalued)

    def to_list(self) -> List[Dict[str, Any]]:
        return [t.to_dict() for t in self.entries]

    @classmethod
    def from_list(cls, data: List[Dict[str, Any]]) -> "TransactionLedger":
        return cls(tuple(Transaction.from_dict(item) for item in data))
