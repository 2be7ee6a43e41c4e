"""
Valuation functions for a single holding.

Pure and total: non-finite inputs propagate as non-finite outputs rather
than raising. Holdings are always valued at the asset's live price, never
at the execution price of the trade that opened them.
"""


def current_value(quantity: float, price: float) -> float:
    """Market value of ``quantity`` units at ``price``."""
    return quantity * price


def gain_loss(value: float, total_cost: float) -> float:
    """Unrealized gain (positive) or loss (negative)."""
    return value - total_cost


def gain_loss_percent(gain: float, total_cost: float) -> float:
    """
    Gain/loss as a percentage of cost basis.

    Defined as 0.0 when there is no positive cost basis (e.g. shares
    received for free), so a zero-cost holding never divides by zero.
    """
    if total_cost > 0:
        return gain / total_cost * 100.0
    return 0.0


def valuation(quantity: float, price: float, total_cost: float) -> tuple:
    """
    Compute (current_value, gain_loss, gain_loss_percent) in one pass.

    Example:
        >>> valuation(10, 100.0, 1005.0)
        (1000.0, -5.0, -0.4975124378109453)
    """
    value = current_value(quantity, price)
    gain = gain_loss(value, total_cost)
    return value, gain, gain_loss_percent(gain, total_cost)
