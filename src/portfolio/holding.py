"""
Holding tracking for portfolio reconciliation.

This module provides the Holding value type: an aggregate position in one
asset, carrying its average-price cost basis and a valuation that is
always derived from quantity, total cost and the asset's live price.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional, Dict, Any
from uuid import uuid4
import structlog

from .asset import Asset
from .valuation import valuation

logger = structlog.get_logger(__name__)


def new_holding_id() -> str:
    return uuid4().hex


@dataclass(frozen=True)
class Holding:
    """
    Represents an aggregate position in a single asset.

    Holdings are immutable. Every change (a trade, a repricing, a user edit)
    produces a new Holding through one of the ``with_*`` methods, and the
    derived valuation fields are recomputed on construction, so they can
    never fall out of sync with ``quantity``, ``total_cost`` and
    ``asset.current_price``.

    Attributes:
        asset: The instrument held (shared live reference for the symbol)
        quantity: Units held, always positive while the holding exists
        average_price: Weighted average cost per unit, fees included
        total_cost: Cost basis of the units still held
        id: Unique holding identifier (auto-generated)
        purchase_date: Date of first acquisition (informational)
        purchase_price: Execution price of first acquisition (informational)
        notes: Optional user notes
        current_value: quantity * asset.current_price (derived)
        gain_loss: current_value - total_cost (derived)
        gain_loss_percent: gain_loss / total_cost * 100, 0 without cost (derived)

    Example:
        >>> holding = Holding(
        ...     asset=Asset("AAPL", current_price=100.0),
        ...     quantity=10,
        ...     average_price=100.5,
        ...     total_cost=1005.0,
        ... )
        >>> print(f"{holding.gain_loss:.2f} ({holding.gain_loss_percent:.4f}%)")
        -5.00 (-0.4975%)
    """

    asset: Asset
    quantity: float
    average_price: float
    total_cost: float
    id: str = field(default_factory=new_holding_id)
    purchase_date: Optional[datetime] = None
    purchase_price: Optional[float] = None
    notes: Optional[str] = None
    current_value: float = field(init=False)
    gain_loss: float = field(init=False)
    gain_loss_percent: float = field(init=False)

    def __post_init__(self):
        """Validate and derive valuation fields."""
        if not self.quantity > 0:
            raise ValueError(f"Holding quantity must be positive, got {self.quantity}")

        value, gain, gain_pct = valuation(
            self.quantity, self.asset.current_price, self.total_cost
        )
        object.__setattr__(self, "current_value", value)
        object.__setattr__(self, "gain_loss", gain)
        object.__setattr__(self, "gain_loss_percent", gain_pct)

    @property
    def symbol(self) -> str:
        return self.asset.symbol

    @property
    def is_profitable(self) -> bool:
        """Check if holding has unrealized gains."""
        return self.gain_loss > 0

    def with_asset(self, asset: Asset) -> "Holding":
        """Return a copy revalued against a (repriced) asset."""
        return replace(self, asset=asset)

    def with_position(
        self,
        quantity: float,
        total_cost: float,
        average_price: Optional[float] = None
    ) -> "Holding":
        """Return a copy with a new quantity and cost basis."""
        return replace(
            self,
            quantity=quantity,
            total_cost=total_cost,
            average_price=self.average_price if average_price is None else average_price,
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert holding to dictionary representation.

        Derived fields are included for readers of the serialized form;
        from_dict() ignores them and recomputes.
        """
        return {
            "id": self.id,
            "asset": self.asset.to_dict(),
            "quantity": self.quantity,
            "average_price": self.average_price,
            "total_cost": self.total_cost,
            "current_value": self.current_value,
            "gain_loss": self.gain_loss,
            "gain_loss_percent": self.gain_loss_percent,
            "purchase_date": self.purchase_date.isoformat() if self.purchase_date else None,
            "purchase_price": self.purchase_price,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Holding":
        """Create holding from dictionary representation."""
        purchase_date = data.get("purchase_date")
        if isinstance(purchase_date, str):
            purchase_date = datetime.fromisoformat(purchase_date)

        return cls(
            id=data["id"],
            asset=Asset.from_dict(data["asset"]),
            quantity=data["quantity"],
            average_price=data["average_price"],
            total_cost=data["total_cost"],
            purchase_date=purchase_date,
            purchase_price=data.get("purchase_price"),
            notes=data.get("notes"),
        )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"Holding(symbol={self.symbol}, quantity={self.quantity:.4f}, "
            f"avg_price={self.average_price:.2f} {self.asset.currency}, "
            f"value={self.current_value:.2f} | "
            f"P&L: {self.gain_loss:+.2f} ({self.gain_loss_percent:+.2f}%))"
        )
