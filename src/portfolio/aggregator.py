"""
Holding aggregation: apply one transaction to a collection of holdings.

Cost basis uses the average-price method. Buys blend into one weighted
average (fees included); sells reduce quantity and reduce total cost at
the existing average price, not at the sale price. Realized gain on the
sold units is not tracked and fees on sells are ignored. This is a
deliberate simplification with no lot-level (FIFO/LIFO) accounting.
"""

import math
from enum import Enum
from typing import Iterable, Optional, Tuple
import structlog

from src.exceptions import ConfigurationError, InvalidTransactionError, HoldingNotFoundError
from .asset import Asset
from .holding import Holding
from .transaction import Transaction, TransactionType

logger = structlog.get_logger(__name__)

# Quantities this close to zero after a sell are floating-point residue.
QUANTITY_EPSILON = 1e-9

Holdings = Tuple[Holding, ...]


class UntrackedSellPolicy(Enum):
    """
    What to do with a SELL for a symbol that is not currently held.

    Attributes:
        IGNORE: Leave holdings untouched and log a warning
        REJECT: Raise HoldingNotFoundError
    """
    IGNORE = "ignore"
    REJECT = "reject"

    @classmethod
    def parse(cls, value) -> "UntrackedSellPolicy":
        """Accept enum members or names as found in UNTRACKED_SELL_POLICY."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown untracked sell policy: {value}",
                config_key="UNTRACKED_SELL_POLICY",
                expected=" | ".join(p.value for p in cls),
                cause=e
            )


def find_holding(holdings: Iterable[Holding], symbol: str) -> Optional[Holding]:
    """Return the holding for ``symbol`` or None."""
    symbol = symbol.strip().upper()
    for holding in holdings:
        if holding.symbol == symbol:
            return holding
    return None


def _is_real(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _check_transaction(transaction: Transaction) -> None:
    quantity = transaction.quantity
    price = transaction.price
    fees = transaction.fees or 0.0

    if not (_is_real(quantity) and quantity > 0):
        raise InvalidTransactionError(
            "Transaction quantity must be positive",
            field="quantity",
            value=quantity,
            expected="> 0",
            details={"transaction_id": transaction.id}
        )
    if not (_is_real(price) and price >= 0):
        raise InvalidTransactionError(
            "Transaction price cannot be negative",
            field="price",
            value=price,
            expected=">= 0",
            details={"transaction_id": transaction.id}
        )
    if not (_is_real(fees) and fees >= 0):
        raise InvalidTransactionError(
            "Transaction fees cannot be negative",
            field="fees",
            value=fees,
            expected=">= 0",
            details={"transaction_id": transaction.id}
        )


def apply_transaction(
    holdings: Iterable[Holding],
    transaction: Transaction,
    live_asset: Optional[Asset] = None,
    policy: UntrackedSellPolicy = UntrackedSellPolicy.IGNORE
) -> Holdings:
    """
    Apply one transaction and return the updated holdings.

    The input collection is never modified; a new tuple is returned with
    the affected holding inserted, replaced or removed and all others
    carried over unchanged and in order.

    Args:
        holdings: Current holdings, unique by symbol
        transaction: Transaction to apply
        live_asset: Asset to value a newly opened holding at (defaults to
            the transaction's asset snapshot)
        policy: Behavior for sells of symbols not held

    Returns:
        New tuple of holdings

    Raises:
        InvalidTransactionError: If quantity <= 0, price < 0 or fees < 0
        HoldingNotFoundError: Untracked sell under UntrackedSellPolicy.REJECT

    Example:
        >>> holdings = apply_transaction((), buy_10_aapl_at_100_fee_5)
        >>> holdings[0].total_cost, holdings[0].average_price
        (1005.0, 100.5)
    """
    _check_transaction(transaction)

    current = tuple(holdings)
    existing = find_holding(current, transaction.symbol)

    if transaction.transaction_type == TransactionType.BUY:
        if existing is None:
            return current + (_open_holding(transaction, live_asset),)
        updated = _add_to_holding(existing, transaction)
        return tuple(updated if h is existing else h for h in current)

    if existing is None:
        if policy == UntrackedSellPolicy.REJECT:
            raise HoldingNotFoundError(
                f"Cannot sell {transaction.symbol}: no holding found",
                symbol=transaction.symbol,
                details={"transaction_id": transaction.id}
            )
        logger.warning(
            "untracked_sell_ignored",
            symbol=transaction.symbol,
            transaction_id=transaction.id,
            quantity=transaction.quantity
        )
        return current

    updated = _reduce_holding(existing, transaction)
    if updated is None:
        return tuple(h for h in current if h is not existing)
    return tuple(updated if h is existing else h for h in current)


def _open_holding(transaction: Transaction, live_asset: Optional[Asset]) -> Holding:
    """Case A: first buy of a symbol."""
    total_cost = transaction.total_amount + transaction.fees
    holding = Holding(
        asset=live_asset or transaction.asset,
        quantity=transaction.quantity,
        average_price=total_cost / transaction.quantity,
        total_cost=total_cost,
        purchase_date=transaction.date,
        purchase_price=transaction.price,
        notes=transaction.notes,
    )

    logger.info(
        "holding_opened",
        symbol=holding.symbol,
        holding_id=holding.id,
        quantity=holding.quantity,
        average_price=holding.average_price
    )
    return holding


def _add_to_holding(existing: Holding, transaction: Transaction) -> Holding:
    """Case B: buy into an existing holding, re-averaging the cost basis."""
    new_quantity = existing.quantity + transaction.quantity
    new_total_cost = existing.total_cost + transaction.total_amount + transaction.fees
    updated = existing.with_position(
        quantity=new_quantity,
        total_cost=new_total_cost,
        average_price=new_total_cost / new_quantity,
    )

    logger.info(
        "holding_increased",
        symbol=updated.symbol,
        quantity_added=transaction.quantity,
        new_quantity=updated.quantity,
        new_average_price=updated.average_price
    )
    return updated


def _reduce_holding(existing: Holding, transaction: Transaction) -> Optional[Holding]:
    """Case C: sell from an existing holding; None when the holding closes."""
    new_quantity = existing.quantity - transaction.quantity

    if new_quantity <= QUANTITY_EPSILON:
        if new_quantity < -QUANTITY_EPSILON:
            logger.warning(
                "holding_oversold",
                symbol=existing.symbol,
                held=existing.quantity,
                sold=transaction.quantity
            )
        logger.info("holding_removed", symbol=existing.symbol, holding_id=existing.id)
        return None

    new_total_cost = existing.total_cost - transaction.quantity * existing.average_price
    updated = existing.with_position(quantity=new_quantity, total_cost=new_total_cost)

    logger.info(
        "holding_reduced",
        symbol=updated.symbol,
        quantity_removed=transaction.quantity,
        remaining_quantity=updated.quantity,
        remaining_cost=updated.total_cost
    )
    return updated
