"""
Reconciliation orchestrator.

The four operations exposed to the presentation layer. Each one takes the
current Portfolio snapshot plus new input and returns a new snapshot; the
snapshot passed in is never modified. All validation happens before any
derived structure is built, so a rejected call has no effect at all.

Callers must serialize calls that start from the same base snapshot (see
PortfolioManager); two computations from one base are last-write-wins.
"""

from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, Mapping, Any, Dict, Optional
import structlog

from src.exceptions import ValidationError, HoldingNotFoundError
from .aggregator import apply_transaction, UntrackedSellPolicy
from .asset import Asset, Quote
from .holding import Holding
from .snapshot import Portfolio
from .transaction import (
    Transaction,
    TransactionInput,
    TransactionType,
    coerce_number,
    generate_transaction_id,
    parse_date,
)

logger = structlog.get_logger(__name__)

AssetResolver = Callable[[str], Optional[Asset]]

EDITABLE_FIELDS = ("quantity", "purchase_price", "purchase_date", "notes")


def _resolve_asset(
    portfolio: Portfolio,
    symbol: str,
    transaction_input: TransactionInput,
    transaction_type: TransactionType,
    asset_resolver: Optional[AssetResolver]
) -> Asset:
    """
    Find the live asset for a transaction's symbol.

    A held symbol always resolves to the holding's asset so that one
    symbol never carries two current prices.
    """
    existing = portfolio.get_holding(symbol)
    if existing is not None:
        return existing.asset
    if transaction_input.asset is not None:
        return transaction_input.asset
    if asset_resolver is not None:
        asset = asset_resolver(symbol)
        if asset is not None:
            return asset
    if transaction_type == TransactionType.SELL:
        # Never opens a holding, so no live price is needed.
        return Asset(symbol)
    raise ValidationError(
        f"Unknown symbol {symbol}",
        field="symbol",
        value=symbol,
        expected="a symbol the asset resolver can price"
    )


def add_transaction(
    portfolio: Portfolio,
    transaction_input: TransactionInput,
    asset_resolver: Optional[AssetResolver] = None,
    policy: UntrackedSellPolicy = UntrackedSellPolicy.IGNORE,
    timestamp: Optional[datetime] = None
) -> Portfolio:
    """
    Record a trade and reconcile holdings and totals.

    Args:
        portfolio: Current snapshot (left untouched)
        transaction_input: Raw trade as submitted by the user
        asset_resolver: Collaborator returning a live-priced Asset for a
            symbol that is neither held nor carried on the input
        policy: Behavior for sells of symbols not held
        timestamp: Value for last_updated (defaults to now)

    Returns:
        New snapshot with the transaction appended and holdings reconciled

    Raises:
        ValidationError: Malformed input; ``error.field`` names the field
        HoldingNotFoundError: Untracked sell under UntrackedSellPolicy.REJECT

    Example:
        >>> updated = add_transaction(
        ...     Portfolio.empty(),
        ...     create_buy_input("AAPL", 10, 100.0, "2024-01-15", fees=5.0,
        ...                      asset=Asset("AAPL", current_price=100.0)),
        ... )
        >>> updated.get_holding("AAPL").total_cost
        1005.0
    """
    fields = transaction_input.validate()
    symbol = fields["symbol"]
    transaction_type = fields["transaction_type"]

    live_asset = _resolve_asset(
        portfolio, symbol, transaction_input, transaction_type, asset_resolver
    )

    transaction = Transaction(
        id=generate_transaction_id(symbol, transaction_type, fields["date"]),
        asset=transaction_input.asset or live_asset,
        transaction_type=transaction_type,
        quantity=fields["quantity"],
        price=fields["price"],
        date=fields["date"],
        fees=fields["fees"],
        notes=fields["notes"],
    )

    holdings = apply_transaction(
        portfolio.holdings, transaction, live_asset=live_asset, policy=policy
    )

    updated = replace(
        portfolio,
        holdings=holdings,
        transactions=portfolio.transactions.append(transaction),
        last_updated=timestamp or datetime.now(),
    )

    logger.info(
        "transaction_recorded",
        portfolio=portfolio.name,
        transaction_id=transaction.id,
        symbol=symbol,
        type=transaction_type.value,
        amount=transaction.total_amount,
        total_value=updated.total_value
    )
    return updated


def _latest_quotes(quotes: Iterable[Quote]) -> Dict[str, Quote]:
    """Index usable quotes by symbol, keeping the most recent per symbol."""
    latest: Dict[str, Quote] = {}
    for quote in quotes:
        if not quote.is_usable:
            logger.warning("quote_skipped", symbol=quote.symbol, price=quote.price)
            continue
        previous = latest.get(quote.symbol)
        if previous is None or quote.timestamp >= previous.timestamp:
            latest[quote.symbol] = quote
    return latest


def refresh_prices(
    portfolio: Portfolio,
    quotes: Iterable[Quote],
    timestamp: Optional[datetime] = None
) -> Portfolio:
    """
    Revalue holdings from a batch of quotes.

    Holdings without a matching quote keep their previous (stale)
    valuation. Each holding is repriced all-or-nothing; an unusable quote
    is skipped without affecting the rest of the batch.

    Args:
        portfolio: Current snapshot (left untouched)
        quotes: Quotes from the quote collaborator, possibly partial
        timestamp: Value for last_updated (defaults to now)

    Returns:
        New snapshot with repriced holdings and recomputed totals
    """
    latest = _latest_quotes(quotes)

    holdings = []
    repriced = 0
    for holding in portfolio.holdings:
        quote = latest.get(holding.symbol)
        if quote is not None:
            holding = holding.with_asset(holding.asset.with_quote(quote))
            repriced += 1
        holdings.append(holding)

    updated = replace(
        portfolio,
        holdings=tuple(holdings),
        last_updated=timestamp or datetime.now(),
    )

    logger.info(
        "prices_refreshed",
        portfolio=portfolio.name,
        quotes=len(latest),
        repriced=repriced,
        stale=len(holdings) - repriced,
        total_value=updated.total_value
    )
    return updated


def _require_holding(portfolio: Portfolio, holding_id: str) -> Holding:
    holding = portfolio.find_holding(holding_id)
    if holding is None:
        raise HoldingNotFoundError(
            f"No holding found with id {holding_id}",
            holding_id=holding_id
        )
    return holding


def edit_holding(
    portfolio: Portfolio,
    holding_id: str,
    changes: Mapping[str, Any],
    timestamp: Optional[datetime] = None
) -> Portfolio:
    """
    Apply user edits to one holding.

    Editing quantity or purchase_price resets the cost basis to
    quantity * purchase_price and the average price to purchase_price.
    Edits to purchase_date or notes alone keep the existing cost basis.
    Other holdings are untouched and the ledger is not modified.

    Args:
        portfolio: Current snapshot (left untouched)
        holding_id: Id of the holding to edit
        changes: Any of quantity, purchase_price, purchase_date, notes
        timestamp: Value for last_updated (defaults to now)

    Raises:
        HoldingNotFoundError: Unknown holding id
        ValidationError: Unknown field or invalid value
    """
    holding = _require_holding(portfolio, holding_id)

    for key in changes:
        if key not in EDITABLE_FIELDS:
            raise ValidationError(
                f"{key} cannot be edited",
                field=key,
                expected=" | ".join(EDITABLE_FIELDS)
            )

    quantity = coerce_number("quantity", changes.get("quantity", holding.quantity))
    if quantity <= 0:
        raise ValidationError(
            "quantity must be greater than 0",
            field="quantity",
            value=quantity,
            expected="> 0"
        )

    resets_cost = "quantity" in changes or "purchase_price" in changes
    default_price = holding.purchase_price
    if default_price is None:
        default_price = holding.average_price
    purchase_price = coerce_number("purchase_price", changes.get("purchase_price", default_price))
    if resets_cost and purchase_price <= 0:
        raise ValidationError(
            "purchase_price must be greater than 0",
            field="purchase_price",
            value=purchase_price,
            expected="> 0"
        )

    purchase_date = holding.purchase_date
    if "purchase_date" in changes:
        purchase_date = parse_date(changes["purchase_date"], field_name="purchase_date")

    notes = changes.get("notes", holding.notes)

    edited = replace(holding, purchase_date=purchase_date, notes=notes)
    if resets_cost:
        edited = replace(
            edited,
            quantity=quantity,
            average_price=purchase_price,
            total_cost=quantity * purchase_price,
            purchase_price=purchase_price,
        )

    updated = replace(
        portfolio,
        holdings=tuple(edited if h is holding else h for h in portfolio.holdings),
        last_updated=timestamp or datetime.now(),
    )

    logger.info(
        "holding_edited",
        portfolio=portfolio.name,
        holding_id=holding_id,
        symbol=edited.symbol,
        quantity=edited.quantity,
        total_cost=edited.total_cost
    )
    return updated


def delete_holding(
    portfolio: Portfolio,
    holding_id: str,
    timestamp: Optional[datetime] = None
) -> Portfolio:
    """
    Remove one holding and recompute totals.

    Transactions that built the holding stay in the ledger.

    Raises:
        HoldingNotFoundError: Unknown holding id
    """
    holding = _require_holding(portfolio, holding_id)

    updated = replace(
        portfolio,
        holdings=tuple(h for h in portfolio.holdings if h is not holding),
        last_updated=timestamp or datetime.now(),
    )

    logger.info(
        "holding_deleted",
        portfolio=portfolio.name,
        holding_id=holding_id,
        symbol=holding.symbol,
        value=holding.current_value
    )
    return updated
