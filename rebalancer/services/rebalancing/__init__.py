"""Target value calculation for hierarchical portfolios.

This module distributes a portfolio's total value over a tree of weighted
asset groups and holdings, honoring buy/sell restrictions and a minimum
trade volume.

Usage:
    from rebalancer.services.rebalancing import RebalancingEngine

    engine = RebalancingEngine(min_trade_volume=Decimal("100"))
    result = engine.rebalance(tree)

    for path, node in result.tree.leaves():
        print(f"{path}: {node.current_value} -> {node.target_value}")
"""

from rebalancer.services.rebalancing.allocator import TargetAllocator
from rebalancer.services.rebalancing.dataclasses import RebalancingResult
from rebalancer.services.rebalancing.debt import Debt, DebtResolver, Ok, SellResult
from rebalancer.services.rebalancing.engine import RebalancingEngine
from rebalancer.services.rebalancing.restrictions import RestrictionCalculator

__all__ = [
    "Debt",
    "DebtResolver",
    "Ok",
    "RebalancingEngine",
    "RebalancingResult",
    "RestrictionCalculator",
    "SellResult",
    "TargetAllocator",
]
