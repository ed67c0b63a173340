"""Shrinking a subtree when some of its assets can't be sold down."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

import structlog

from rebalancer.domain.tree import ZERO, AssetNode, Group, Leaf, join_path
from rebalancer.types import NodeStatus

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Ok:
    """The subtree fits into its budget."""


@dataclass(frozen=True)
class Debt:
    """The subtree exceeds its budget by amount and the caller must absorb it."""

    amount: Decimal
    subtree: str


type SellResult = Ok | Debt


@dataclass
class _Partition:
    """Membership of the children of one subtree, by sibling index."""

    correctable: set[int]
    uncorrectable: set[int] = field(default_factory=set)
    # Pinned only because the sale would be smaller than min_trade_volume,
    # mapped to the shortfall at the time of pinning.
    dust: dict[int, Decimal] = field(default_factory=dict)
    forced: set[int] = field(default_factory=set)

    def pin(self, index: int) -> None:
        self.correctable.discard(index)
        self.uncorrectable.add(index)

    def can_force(self) -> bool:
        return any(index not in self.forced for index in self.dust)


class DebtResolver:
    """Sells a subtree down to a budget below its current value.

    Children are split into correctable ones, which get a weighted share of
    whatever budget is left, and uncorrectable ones, which are pinned at their
    current value because they can't be sold (restricted, too small, or the
    sale would be below the minimum trade volume). Every pinned child takes
    its value out of the budget of the remaining ones, so each pass
    recomputes the shares until nothing moves. If that still leaves a debt,
    forced selling lets dust-pinned leaves sell exactly min_trade_volume
    before the debt is reported to the caller.

    Each pass either terminates, pins at least one more child for good, or
    switches to forced selling (which happens once), so a subtree with n
    children takes at most n + 2 passes.
    """

    def __init__(self, min_trade_volume: Decimal) -> None:
        """Initialize resolver.

        Args:
            min_trade_volume: Smallest trade worth executing, in reporting currency
        """
        self.min_trade_volume = min_trade_volume

    def resolve(self, nodes: list[AssetNode], target_total_value: Decimal, path: str) -> SellResult:
        """Fit the subtree into target_total_value.

        Returns:
            Ok() when targets fit into the budget, otherwise Debt with the
            amount the targets exceed it by.
        """
        log = logger.bind(subtree=path)

        for node in nodes:
            node.reset_allocation()

        partition = _Partition(correctable=set(range(len(nodes))))
        force_selling = False
        debt = ZERO

        for _ in range(len(nodes) + 2):
            debt, moved = self._run_pass(nodes, partition, target_total_value, path)

            if force_selling and debt > 0:
                debt = self._force_sell(nodes, partition, debt, log)

            if not debt:
                for index in partition.correctable:
                    nodes[index].status = NodeStatus.RESOLVED
                return Ok()

            if partition.correctable and moved:
                continue

            if force_selling or not partition.can_force():
                log.info("subtree_in_debt", debt=str(debt), forced=force_selling)
                return Debt(amount=debt, subtree=path)

            force_selling = True
            log.info("forced_selling_enabled", debt=str(debt))

        log.warning("debt_resolution_pass_limit", debt=str(debt))
        return Debt(amount=debt, subtree=path)

    def _run_pass(
        self,
        nodes: list[AssetNode],
        partition: _Partition,
        target_total_value: Decimal,
        path: str,
    ) -> tuple[Decimal, bool]:
        """Recompute the correctable children against the budget left by pinned ones.

        Returns:
            Tuple of (correctable_debt, whether any child was pinned)
        """
        pinned_value = sum((nodes[i].target_value for i in partition.uncorrectable), ZERO)
        available = target_total_value - pinned_value

        debt = ZERO
        if available < 0:
            debt = -available
            available = ZERO

        members = sorted(partition.correctable)
        shares = self._fair_shares(nodes, members, available)
        moved = False

        for index in members:
            node = nodes[index]
            node.target_value = shares[index]
            node.status = NodeStatus.CORRECTABLE

            match node.holding:
                case Group(children=children):
                    match self.resolve(children, node.target_value, join_path(path, node.name)):
                        case Debt(amount=amount):
                            node.target_value += amount
                            node.debt = amount
                            node.status = NodeStatus.UNCORRECTABLE
                            partition.pin(index)
                            debt += amount
                            moved = True
                        case Ok():
                            pass

                case Leaf():
                    shortfall = node.current_value - node.target_value
                    if shortfall <= 0:
                        continue

                    if node.restrict_selling or node.current_value < self.min_trade_volume:
                        node.sell_blocked = node.restrict_selling
                    elif shortfall < self.min_trade_volume:
                        partition.dust[index] = shortfall
                    else:
                        continue

                    node.target_value = node.current_value
                    node.status = NodeStatus.UNCORRECTABLE
                    partition.pin(index)
                    debt += shortfall
                    moved = True

        return debt, moved

    def _fair_shares(
        self, nodes: list[AssetNode], members: list[int], available: Decimal
    ) -> dict[int, Decimal]:
        """Split available among members by renormalized weight.

        The last weighted member takes the remainder, so the shares always sum
        to available exactly.
        """
        shares = {index: ZERO for index in members}
        if not members:
            return shares

        weighted = [index for index in members if nodes[index].expected_weight > 0]
        if not weighted:
            # Only zero-weight assets are left to take the budget
            weighted = members
            weights = {index: Decimal("1") for index in members}
        else:
            weights = {index: nodes[index].expected_weight for index in weighted}

        total_weight = sum(weights.values(), ZERO)
        remaining = available
        for index in weighted[:-1]:
            shares[index] = available * weights[index] / total_weight
            remaining -= shares[index]
        shares[weighted[-1]] = remaining
        return shares

    def _force_sell(
        self,
        nodes: list[AssetNode],
        partition: _Partition,
        debt: Decimal,
        log: structlog.stdlib.BoundLogger,
    ) -> Decimal:
        """Sell min_trade_volume of dust-pinned leaves until the debt is covered."""

        candidates = sorted(
            (index for index in partition.dust if index not in partition.forced),
            key=lambda index: (-partition.dust[index], index),
        )

        for index in candidates:
            if debt <= 0:
                break

            node = nodes[index]
            node.target_value = node.current_value - self.min_trade_volume
            node.forced = True
            partition.forced.add(index)
            debt -= self.min_trade_volume
            log.info("forced_sale", asset=node.name, volume=str(self.min_trade_volume))

        return max(debt, ZERO)
