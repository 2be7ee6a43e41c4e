"""
Transaction recording for portfolio reconciliation.

This module provides the immutable Transaction record, the raw
TransactionInput a user submits, and the validation that turns one into
the other.
"""

import math
from dataclasses import dataclass
from datetime import date as date_type, datetime
from enum import Enum
from typing import Optional, Dict, Any, Union
from uuid import uuid4
import structlog

from src.exceptions import ValidationError
from .asset import Asset

logger = structlog.get_logger(__name__)


class TransactionType(Enum):
    """
    Type of portfolio transaction.

    Attributes:
        BUY: Purchase of units
        SELL: Sale of units
    """
    BUY = "buy"
    SELL = "sell"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Union[str, "TransactionType"]) -> "TransactionType":
        """Accept enum members or case-insensitive names ("buy", "SELL")."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise ValidationError(
            "Transaction type must be buy or sell",
            field="type",
            value=value,
            expected="buy | sell"
        )


def generate_transaction_id(symbol: str, transaction_type: TransactionType, when: datetime) -> str:
    """
    Generate a unique transaction ID.

    Format: {SYMBOL}_{TYPE}_{YYYYMMDD}_{8 hex chars}

    Example: AAPL_BUY_20240101_1f3a9c0e
    """
    return f"{symbol}_{transaction_type.value.upper()}_{when:%Y%m%d}_{uuid4().hex[:8]}"


@dataclass(frozen=True)
class Transaction:
    """
    Immutable record of one buy or sell event.

    Transactions are never mutated or deleted once created; removing a
    holding leaves the transactions that built it in the ledger.

    Attributes:
        id: Unique transaction identifier
        asset: Snapshot of the asset at the time of the trade
        transaction_type: BUY or SELL
        quantity: Units traded (positive)
        price: Per-unit execution price (non-negative)
        date: Trade date
        fees: Commissions; added to cost basis on buys, ignored on sells
        notes: Optional notes

    Example:
        >>> buy = Transaction(
        ...     id="AAPL_BUY_20240101_00000001",
        ...     asset=Asset("AAPL", current_price=100.0),
        ...     transaction_type=TransactionType.BUY,
        ...     quantity=10,
        ...     price=100.0,
        ...     date=datetime(2024, 1, 1),
        ...     fees=5.0,
        ... )
        >>> buy.total_amount, buy.cost_basis
        (1000.0, 1005.0)
    """

    id: str
    asset: Asset
    transaction_type: TransactionType
    quantity: float
    price: float
    date: datetime
    fees: float = 0.0
    notes: Optional[str] = None

    @property
    def symbol(self) -> str:
        return self.asset.symbol

    @property
    def is_buy(self) -> bool:
        return self.transaction_type == TransactionType.BUY

    @property
    def total_amount(self) -> float:
        """Gross trade amount: quantity * price, fees excluded."""
        return self.quantity * self.price

    @property
    def cost_basis(self) -> float:
        """Amount added to cost basis by a BUY (fees included); 0 for sells."""
        if self.is_buy:
            return self.total_amount + self.fees
        return 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert transaction to dictionary representation."""
        return {
            "id": self.id,
            "asset": self.asset.to_dict(),
            "type": self.transaction_type.value,
            "quantity": self.quantity,
            "price": self.price,
            "total_amount": self.total_amount,
            "date": self.date.isoformat(),
            "fees": self.fees,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        """Create transaction from dictionary representation."""
        when = data["date"]
        if isinstance(when, str):
            when = datetime.fromisoformat(when)

        return cls(
            id=data["id"],
            asset=Asset.from_dict(data["asset"]),
            transaction_type=TransactionType.parse(data["type"]),
            quantity=data["quantity"],
            price=data["price"],
            date=when,
            fees=data.get("fees") or 0.0,
            notes=data.get("notes"),
        )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"Transaction(id={self.id}, symbol={self.symbol}, "
            f"type={self.transaction_type.value}, quantity={self.quantity:.4f}, "
            f"price={self.price:.2f}, total={self.total_amount:.2f} {self.asset.currency}, "
            f"date={self.date.date()})"
        )


def coerce_number(field_name: str, value: Any, allow_missing: bool = False) -> float:
    """Coerce a user-entered numeric field, rejecting anything non-finite."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_missing:
            return 0.0
        raise ValidationError(f"{field_name} is required", field=field_name)
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number", field=field_name, value=value)
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            f"{field_name} must be a number",
            field=field_name,
            value=value,
            cause=e
        )
    if not math.isfinite(number):
        raise ValidationError(f"{field_name} must be finite", field=field_name, value=value)
    return number


def parse_date(value: Any, field_name: str = "date") -> datetime:
    """Accept datetime, date or ISO-8601 strings; reject anything else."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date_type):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError as e:
            raise ValidationError(
                f"{field_name} is not a valid date",
                field=field_name,
                value=value,
                expected="ISO-8601 date",
                cause=e
            )
    if value is None or value == "":
        raise ValidationError(f"{field_name} is required", field=field_name)
    raise ValidationError(f"{field_name} is not a valid date", field=field_name, value=value)


@dataclass(frozen=True)
class TransactionInput:
    """
    Raw trade as submitted by a user, before validation.

    Either ``symbol`` or ``asset`` identifies the instrument; numeric fields
    may arrive as strings from a form.

    Example:
        >>> TransactionInput(symbol="aapl", type="buy", quantity="10",
        ...                  price="100", date="2024-01-15", fees="5")
    """

    type: Union[str, TransactionType]
    quantity: Any
    price: Any
    date: Any
    symbol: Optional[str] = None
    asset: Optional[Asset] = None
    fees: Any = None
    notes: Optional[str] = None

    @property
    def resolved_symbol(self) -> str:
        if self.asset is not None:
            return self.asset.symbol
        return (self.symbol or "").strip().upper()

    def validate(self) -> Dict[str, Any]:
        """
        Check every field and return the normalized values.

        Returns:
            Dict with symbol, transaction_type, quantity, price, fees,
            date and notes

        Raises:
            ValidationError: Naming the first field that failed
        """
        symbol = self.resolved_symbol
        if not symbol:
            raise ValidationError("symbol is required", field="symbol")

        transaction_type = TransactionType.parse(self.type)

        quantity = coerce_number("quantity", self.quantity)
        if quantity <= 0:
            raise ValidationError(
                "quantity must be greater than 0",
                field="quantity",
                value=quantity,
                expected="> 0"
            )

        price = coerce_number("price", self.price)
        if price < 0:
            raise ValidationError(
                "price cannot be negative",
                field="price",
                value=price,
                expected=">= 0"
            )

        fees = coerce_number("fees", self.fees, allow_missing=True)
        if fees < 0:
            raise ValidationError(
                "fees cannot be negative",
                field="fees",
                value=fees,
                expected=">= 0"
            )

        return {
            "symbol": symbol,
            "transaction_type": transaction_type,
            "quantity": quantity,
            "price": price,
            "fees": fees,
            "date": parse_date(self.date),
            "notes": self.notes or None,
        }


def create_buy_input(
    symbol: str,
    quantity: float,
    price: float,
    date: Any,
    fees: float = 0.0,
    notes: Optional[str] = None,
    asset: Optional[Asset] = None
) -> TransactionInput:
    """
    Convenience function to build a BUY input.

    Example:
        >>> buy = create_buy_input("AAPL", 10, 100.0, datetime.now(), fees=5.0)
    """
    return TransactionInput(
        type=TransactionType.BUY,
        symbol=symbol,
        asset=asset,
        quantity=quantity,
        price=price,
        date=date,
        fees=fees,
        notes=notes,
    )


def create_sell_input(
    symbol: str,
    quantity: float,
    price: float,
    date: Any,
    fees: float = 0.0,
    notes: Optional[str] = None,
    asset: Optional[Asset] = None
) -> TransactionInput:
    """
    Convenience function to build a SELL input.

    Example:
        >>> sell = create_sell_input("AAPL", 5, 120.0, datetime.now())
    """
    return TransactionInput(
        type=TransactionType.SELL,
        symbol=symbol,
        asset=asset,
        quantity=quantity,
        price=price,
        date=date,
        fees=fees,
        notes=notes,
    )
