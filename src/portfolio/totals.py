"""
Portfolio-level totals derived from a collection of holdings.

Sums use math.fsum, which is exactly rounded and therefore independent of
the order holdings are visited in.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Dict

from .holding import Holding
from .valuation import gain_loss, gain_loss_percent


@dataclass(frozen=True)
class PortfolioTotals:
    """Aggregate valuation of a set of holdings."""

    total_value: float = 0.0
    total_cost: float = 0.0
    total_gain_loss: float = 0.0
    total_gain_loss_percent: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "total_value": self.total_value,
            "total_cost": self.total_cost,
            "total_gain_loss": self.total_gain_loss,
            "total_gain_loss_percent": self.total_gain_loss_percent,
        }


def recompute_totals(holdings: Iterable[Holding]) -> PortfolioTotals:
    """
    Sum current value and cost over ``holdings``.

    Example:
        >>> recompute_totals(()).total_gain_loss_percent
        0.0
    """
    holdings = tuple(holdings)
    total_value = math.fsum(h.current_value for h in holdings)
    total_cost = math.fsum(h.total_cost for h in holdings)
    total_gain = gain_loss(total_value, total_cost)

    return PortfolioTotals(
        total_value=total_value,
        total_cost=total_cost,
        total_gain_loss=total_gain,
        total_gain_loss_percent=gain_loss_percent(total_gain, total_cost),
    )
