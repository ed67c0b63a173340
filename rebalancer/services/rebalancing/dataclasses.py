"""Data structures for rebalancing results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Literal

from rebalancer.domain.tree import ZERO, AssetTree

if TYPE_CHECKING:
    import pandas as pd


@dataclass(frozen=True)
class RebalancingResult:
    """Resolved asset tree of one rebalancing run.

    Attributes:
        tree: The tree with target_value and status set on every node
        target_total_value: Budget the tree was allocated to
        min_trade_volume: Minimum trade volume used for the run
        mode: 'shrink' when debt resolution ran before allocation, else 'allocate'
        generated_at: When this result was calculated
    """

    tree: AssetTree
    target_total_value: Decimal
    min_trade_volume: Decimal
    mode: Literal["allocate", "shrink"] = "allocate"
    generated_at: datetime = field(default_factory=datetime.now)

    @property
    def total_buy_amount(self) -> Decimal:
        """Sum of positive leaf differences."""
        return sum(
            (node.difference for _, node in self.tree.leaves() if node.difference > 0), ZERO
        )

    @property
    def total_sell_amount(self) -> Decimal:
        """Sum of negative leaf differences, as a positive amount."""
        return sum(
            (-node.difference for _, node in self.tree.leaves() if node.difference < 0), ZERO
        )

    @property
    def net_cash_impact(self) -> Decimal:
        """Negative if cash is needed, positive if cash is freed."""
        return self.total_sell_amount - self.total_buy_amount

    def to_dataframe(self) -> pd.DataFrame:
        from rebalancer.presenters.allocation import AllocationTableBuilder

        return AllocationTableBuilder().build_dataframe(self.tree)
