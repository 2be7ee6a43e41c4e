"""
Tradeable instruments and the price observations that revalue them.

Asset is shared by every holding and transaction that references the same
symbol. Quote is what the quote collaborator hands to the engine.
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Dict, Any

from src.exceptions import ValidationError


@dataclass(frozen=True)
class Asset:
    """
    A tradeable instrument identified by its ticker symbol.

    Attributes:
        symbol: Exchange ticker, normalized to uppercase
        name: Display name
        current_price: Latest known price (non-negative)
        currency: Currency code (e.g. "USD")
        change_24h: Absolute price change over the last session
        change_percent_24h: Percent price change over the last session
        id: Opaque identifier (defaults to the symbol)

    Example:
        >>> aapl = Asset("aapl", "Apple Inc.", 190.0)
        >>> aapl.symbol
        'AAPL'
    """

    symbol: str
    name: str = ""
    current_price: float = 0.0
    currency: str = "USD"
    change_24h: float = 0.0
    change_percent_24h: float = 0.0
    id: Optional[str] = None

    def __post_init__(self):
        symbol = (self.symbol or "").strip().upper()
        if not symbol:
            raise ValidationError("Asset symbol is required", field="symbol")
        if self.current_price < 0:
            raise ValidationError(
                "Asset price cannot be negative",
                field="current_price",
                value=self.current_price,
                expected=">= 0"
            )
        object.__setattr__(self, "symbol", symbol)
        object.__setattr__(self, "currency", (self.currency or "USD").strip().upper())
        if not self.name:
            object.__setattr__(self, "name", symbol)
        if self.id is None:
            object.__setattr__(self, "id", symbol)

    def with_quote(self, quote: "Quote") -> "Asset":
        """Return a copy of this asset repriced from a quote."""
        return replace(
            self,
            current_price=quote.price,
            change_24h=quote.change,
            change_percent_24h=quote.change_percent,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "name": self.name,
            "current_price": self.current_price,
            "currency": self.currency,
            "change_24h": self.change_24h,
            "change_percent_24h": self.change_percent_24h,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Asset":
        return cls(
            id=data.get("id"),
            symbol=data["symbol"],
            name=data.get("name", ""),
            current_price=data.get("current_price", 0.0),
            currency=data.get("currency", "USD"),
            change_24h=data.get("change_24h", 0.0),
            change_percent_24h=data.get("change_percent_24h", 0.0),
        )


def _to_float(value: Any, default: Any = None) -> Any:
    """Float value of ``value``, or ``default`` (the raw value when unset) if it is not numeric."""
    if isinstance(value, bool):
        return value if default is None else default
    try:
        return float(value)
    except (TypeError, ValueError):
        return value if default is None else default


@dataclass(frozen=True)
class Quote:
    """
    An externally supplied price observation for a symbol.

    Attributes:
        symbol: Ticker the quote is for
        price: Last traded price
        change: Absolute change versus previous close
        change_percent: Percent change versus previous close
        timestamp: When the price was observed
        volume: Traded volume, when the source reports it
    """

    symbol: str
    price: float
    change: float = 0.0
    change_percent: float = 0.0
    timestamp: Optional[datetime] = None
    volume: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, "symbol", (self.symbol or "").strip().upper())
        object.__setattr__(self, "price", _to_float(self.price))
        object.__setattr__(self, "change", _to_float(self.change, 0.0))
        object.__setattr__(self, "change_percent", _to_float(self.change_percent, 0.0))
        # Naive timestamps are local time; stored aware so sources can be mixed.
        timestamp = self.timestamp or datetime.now()
        object.__setattr__(self, "timestamp", timestamp.astimezone())

    @property
    def is_usable(self) -> bool:
        """A quote can reprice a holding only with a finite, non-negative price."""
        return (
            bool(self.symbol)
            and isinstance(self.price, float)
            and math.isfinite(self.price)
            and self.price >= 0
        )

    @classmethod
    def from_prices(
        cls,
        symbol: str,
        price: float,
        previous_close: Optional[float] = None,
        timestamp: Optional[datetime] = None,
        volume: Optional[float] = None
    ) -> "Quote":
        """Build a quote, deriving change figures from the previous close."""
        change = 0.0
        change_percent = 0.0
        if previous_close:
            change = price - previous_close
            change_percent = change / previous_close * 100.0
        return cls(
            symbol=symbol,
            price=price,
            change=change,
            change_percent=change_percent,
            timestamp=timestamp,
            volume=volume,
        )

    def __repr__(self) -> str:
        price = f"{self.price:.2f}" if isinstance(self.price, float) else repr(self.price)
        return f"Quote({self.symbol} {price} {self.change_percent:+.2f}%)"
