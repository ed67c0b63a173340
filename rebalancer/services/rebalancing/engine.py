"""High-level orchestration of a rebalancing run."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Literal

import structlog

from rebalancer.domain.tree import ZERO, AssetNode, AssetTree
from rebalancer.exceptions import ReconciliationFailure
from rebalancer.services.rebalancing.allocator import TargetAllocator
from rebalancer.services.rebalancing.dataclasses import RebalancingResult
from rebalancer.services.rebalancing.debt import Debt, DebtResolver, Ok
from rebalancer.services.rebalancing.restrictions import RestrictionCalculator
from rebalancer.services.rebalancing.validation import (
    validate_bounds,
    validate_parameters,
    validate_weights,
)
from rebalancer.types import Bounds, NodeStatus

if TYPE_CHECKING:
    from config.settings import Settings
    from rebalancer.domain.config import PortfolioConfig

logger = structlog.get_logger(__name__)


class RebalancingEngine:
    """Orchestrates target value calculation for an asset tree."""

    def __init__(self, min_trade_volume: Decimal = ZERO, resolve_debt_on_shrink: bool = True) -> None:
        """Initialize engine.

        Args:
            min_trade_volume: Smallest trade worth executing, in reporting currency
            resolve_debt_on_shrink: Run the debt resolver first when the tree must shrink
        """
        self.min_trade_volume = min_trade_volume
        self.resolve_debt_on_shrink = resolve_debt_on_shrink
        self.restrictions = RestrictionCalculator()

    @classmethod
    def from_settings(
        cls, settings: Settings, portfolio: PortfolioConfig | None = None
    ) -> RebalancingEngine:
        """Create an engine from runtime settings.

        A portfolio's own min_trade_volume takes precedence over the global one
        when it is set.
        """
        min_trade_volume = settings.min_trade_volume
        if portfolio is not None and portfolio.min_trade_volume:
            min_trade_volume = portfolio.min_trade_volume

        return cls(
            min_trade_volume=min_trade_volume,
            resolve_debt_on_shrink=settings.resolve_debt_on_shrink,
        )

    def rebalance(self, tree: AssetTree, target_total_value: Decimal | None = None) -> RebalancingResult:
        """Calculate target values for the whole tree.

        Args:
            tree: Freshly built asset tree; mutated in place
            target_total_value: New total value of the portfolio. Defaults to the
                current value (pure rebalancing without cash flow).

        Returns:
            RebalancingResult wrapping the resolved tree

        Raises:
            ConfigurationError: If weights, restrictions or parameters are invalid
            ReconciliationFailure: If the restrictions leave no way to reach the target
        """
        current_value = tree.current_value
        if target_total_value is None:
            target_total_value = current_value

        log = logger.bind(portfolio=tree.name)
        log.info(
            "rebalancing_started",
            current_value=str(current_value),
            target_value=str(target_total_value),
            min_trade_volume=str(self.min_trade_volume),
        )

        validate_parameters(target_total_value, self.min_trade_volume)
        validate_weights(tree)
        self.restrictions.calculate(tree)
        validate_bounds(tree)

        tree.target_value = target_total_value
        mode: Literal["allocate", "shrink"] = "allocate"
        pins: dict[AssetNode, Bounds] = {}
        forced_sales: set[AssetNode] = set()

        if self.resolve_debt_on_shrink and target_total_value < current_value:
            mode = "shrink"
            match DebtResolver(self.min_trade_volume).resolve(tree.assets, target_total_value, tree.name):
                case Debt(amount=amount, subtree=subtree) if tree.min_value > target_total_value:
                    raise self._failure(tree, amount, subtree)
                case Debt(amount=amount, subtree=subtree):
                    # Restrictions alone leave room; only trade granularity is in the way
                    log.warning("debt_resolution_fallback", debt=str(amount), subtree=subtree)
                case Ok():
                    pins = self._collect_pins(tree)
                    forced_sales = {node for node in pins if node.forced}
                    log.debug("shrink_feasible", pinned=len(pins))

        residual, held = self._allocate(tree, target_total_value, pins, log)
        if residual:
            raise self._failure(tree, -residual, self._origin(tree))

        for _path, _depth, node in tree.walk():
            node.status = NodeStatus.RESOLVED
            if node not in held:
                continue
            # The allocator resets the resolver's verdicts
            if node in forced_sales:
                node.forced = True
            if node.target_value == node.current_value:
                node.status = NodeStatus.UNCORRECTABLE

        result = RebalancingResult(
            tree=tree,
            target_total_value=target_total_value,
            min_trade_volume=self.min_trade_volume,
            mode=mode,
        )

        log.info(
            "rebalancing_completed",
            mode=mode,
            total_buy=str(result.total_buy_amount),
            total_sell=str(result.total_sell_amount),
        )
        return result

    def _origin(self, tree: AssetTree) -> str:
        """Path of the deepest group that reported a residual, or the portfolio itself."""

        origin, origin_depth = tree.name, -1
        for path, depth, node in tree.walk():
            if node.debt and depth > origin_depth:
                origin, origin_depth = path, depth
        return origin

    def _failure(self, tree: AssetTree, amount: Decimal, subtree: str) -> ReconciliationFailure:
        blocked = [
            path
            for path, node in tree.leaves()
            if node.status == NodeStatus.UNCORRECTABLE or node.buy_blocked or node.sell_blocked
        ]
        logger.error(
            "reconciliation_failed",
            portfolio=tree.name,
            amount=str(amount),
            subtree=subtree,
            blocked=blocked,
        )
        return ReconciliationFailure(amount=amount, subtree=subtree, blocked=blocked)

    def _collect_pins(self, tree: AssetTree) -> dict[AssetNode, Bounds]:
        """Turn the debt resolver's leaf decisions into bounds for the allocator.

        Uncorrectable leaves may not be sold below their current value, and a
        forced sale must sell at least min_trade_volume.
        """
        pins: dict[AssetNode, Bounds] = {}
        for _path, node in tree.leaves():
            if node.forced:
                pins[node] = (ZERO, node.current_value - self.min_trade_volume)
            elif node.status == NodeStatus.UNCORRECTABLE:
                pins[node] = (node.current_value, None)
        return pins

    def _allocate(
        self,
        tree: AssetTree,
        target_total_value: Decimal,
        pins: dict[AssetNode, Bounds],
        log: structlog.stdlib.BoundLogger,
    ) -> tuple[Decimal, dict[AssetNode, Bounds]]:
        """Run the allocator and return its residual with the pins it honored.

        Pins are dropped when they leave no feasible allocation. Leaves that
        still end up with a forced sub-minimum trade are then held at their
        current value, and the allocation is repeated for as long as that
        places the whole budget with fewer forced trades.
        """
        held = dict(pins)
        residual = self._run_allocator(tree, target_total_value, held)
        if residual and held:
            log.warning("pinned_allocation_failed", residual=str(residual), pinned=len(held))
            held = {}
            residual = self._run_allocator(tree, target_total_value, held)
        if residual:
            return residual, held

        forced = self._forced_leaves(tree)
        while new := [node for node in forced if node not in held]:
            candidate = held | {node: self._hold(node) for node in new}
            residual = self._run_allocator(tree, target_total_value, candidate)
            retry = self._forced_leaves(tree)
            if residual or len(retry) >= len(forced):
                self._run_allocator(tree, target_total_value, held)
                break

            log.debug("forced_trades_held", held=len(new), remaining=len(retry))
            held, forced = candidate, retry

        return ZERO, held

    def _run_allocator(
        self, tree: AssetTree, target_total_value: Decimal, pins: dict[AssetNode, Bounds]
    ) -> Decimal:
        self.restrictions.calculate(tree, pins)
        allocator = TargetAllocator(self.min_trade_volume)
        return allocator.allocate(tree.assets, target_total_value, tree.name)

    def _forced_leaves(self, tree: AssetTree) -> list[AssetNode]:
        return [node for _path, node in tree.leaves() if node.forced]

    def _hold(self, node: AssetNode) -> Bounds:
        """Bounds that keep a leaf from trading past its current value."""

        if node.difference < 0:
            return node.current_value, None
        return ZERO, node.current_value
