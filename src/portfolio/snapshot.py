"""
The Portfolio snapshot: root aggregate of holdings, ledger and totals.

A Portfolio is never modified in place. Each reconciliation builds a new
snapshot, so a reader holding a reference always sees one complete,
internally consistent state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple, Dict, Any, List
from uuid import uuid4

from .holding import Holding
from .ledger import TransactionLedger
from .totals import recompute_totals


@dataclass(frozen=True)
class Portfolio:
    """
    Immutable snapshot of a portfolio.

    Totals are derived from ``holdings`` at construction and cannot be set
    directly, which keeps them equal to the sums over the holdings.

    Attributes:
        name: Portfolio name
        holdings: Holdings, unique by symbol, in insertion order
        transactions: Append-only ledger of every recorded trade
        last_updated: Timestamp of the reconciliation that built the snapshot
        id: Unique portfolio identifier (auto-generated)
        total_value: Sum of holding current values (derived)
        total_cost: Sum of holding cost bases (derived)
        total_gain_loss: total_value - total_cost (derived)
        total_gain_loss_percent: total_gain_loss / total_cost * 100 (derived)

    Example:
        >>> portfolio = Portfolio.empty("Retirement")
        >>> portfolio.total_value
        0.0
    """

    name: str
    holdings: Tuple[Holding, ...] = ()
    transactions: TransactionLedger = field(default_factory=TransactionLedger)
    last_updated: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: uuid4().hex)
    total_value: float = field(init=False)
    total_cost: float = field(init=False)
    total_gain_loss: float = field(init=False)
    total_gain_loss_percent: float = field(init=False)

    def __post_init__(self):
        holdings = tuple(self.holdings)
        symbols = [h.symbol for h in holdings]
        if len(symbols) != len(set(symbols)):
            raise ValueError(f"Holdings must be unique by symbol, got {symbols}")
        object.__setattr__(self, "holdings", holdings)

        if not isinstance(self.transactions, TransactionLedger):
            object.__setattr__(self, "transactions", TransactionLedger(tuple(self.transactions)))

        totals = recompute_totals(holdings)
        object.__setattr__(self, "total_value", totals.total_value)
        object.__setattr__(self, "total_cost", totals.total_cost)
        object.__setattr__(self, "total_gain_loss", totals.total_gain_loss)
        object.__setattr__(self, "total_gain_loss_percent", totals.total_gain_loss_percent)

    @classmethod
    def empty(cls, name: str = "Portfolio", timestamp: Optional[datetime] = None) -> "Portfolio":
        """Create a portfolio with no holdings and an empty ledger."""
        return cls(name=name, last_updated=timestamp or datetime.now())

    def get_holding(self, symbol: str) -> Optional[Holding]:
        """Get a holding by symbol."""
        symbol = symbol.strip().upper()
        for holding in self.holdings:
            if holding.symbol == symbol:
                return holding
        return None

    def find_holding(self, holding_id: str) -> Optional[Holding]:
        """Get a holding by id."""
        for holding in self.holdings:
            if holding.id == holding_id:
                return holding
        return None

    def has_holding(self, symbol: str) -> bool:
        return self.get_holding(symbol) is not None

    @property
    def symbols(self) -> List[str]:
        return [h.symbol for h in self.holdings]

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the snapshot to a JSON-serializable dictionary.

        Datetimes are written as ISO-8601 strings; derived totals are
        included for readers but recomputed by from_dict().
        """
        return {
            "id": self.id,
            "name": self.name,
            "total_value": self.total_value,
            "total_cost": self.total_cost,
            "total_gain_loss": self.total_gain_loss,
            "total_gain_loss_percent": self.total_gain_loss_percent,
            "holdings": [h.to_dict() for h in self.holdings],
            "transactions": self.transactions.to_list(),
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Portfolio":
        """Rebuild a snapshot from to_dict() output."""
        last_updated = data.get("last_updated")
        if isinstance(last_updated, str):
            last_updated = datetime.fromisoformat(last_updated)

        return cls(
            id=data["id"],
            name=data["name"],
            holdings=tuple(Holding.from_dict(h) for h in data.get("holdings", [])),
            transactions=TransactionLedger.from_list(data.get("transactions", [])),
            last_updated=last_updated or datetime.now(),
        )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"Portfolio(name={self.name}, holdings={len(self.holdings)}, "
            f"transactions={len(self.transactions)}, value={self.total_value:.2f}, "
            f"pnl={self.total_gain_loss:+.2f} ({self.total_gain_loss_percent:+.2f}%))"
        )
