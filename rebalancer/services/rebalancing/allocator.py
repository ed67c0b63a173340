"""Top-down distribution of a target value across an asset subtree."""

from __future__ import annotations

from decimal import Decimal

import structlog

from rebalancer.domain.tree import ZERO, AssetNode, Group, join_path
from rebalancer.types import NodeStatus

logger = structlog.get_logger(__name__)


class TargetAllocator:
    """Distributes a subtree's target value among its children.

    Every child first gets its weighted share of the budget. The shares are
    then corrected for restriction bounds and for trades smaller than the
    minimum trade volume, and whatever this frees or consumes (the balance) is
    placed on the remaining children. Group children are processed
    recursively with their resolved target as the new budget.

    All arithmetic is exact: balances are compared against zero, never
    against a tolerance.
    """

    def __init__(self, min_trade_volume: Decimal) -> None:
        """Initialize allocator.

        Args:
            min_trade_volume: Smallest trade worth executing, in reporting currency
        """
        self.min_trade_volume = min_trade_volume

    def allocate(self, nodes: list[AssetNode], target_total_value: Decimal, path: str) -> Decimal:
        """Set target_value on every node of the subtree.

        Args:
            nodes: Children of the subtree being allocated
            target_total_value: Budget for the children
            path: Display path of the subtree

        Returns:
            Residual balance that couldn't be placed: positive when value is left
            over, negative when targets exceed the budget. Zero on success.
        """
        log = logger.bind(subtree=path)

        for node in nodes:
            node.reset_allocation()
            node.target_value = target_total_value * node.expected_weight

        balance = self._clamp_to_max(nodes, log)
        balance += self._clamp_to_min(nodes, log)

        dust_balance, dust = self._snap_dust(nodes)
        balance += dust_balance

        for node in nodes:
            if node.status == NodeStatus.PENDING:
                node.status = NodeStatus.CORRECTABLE

        eligible = [
            index
            for index, node in enumerate(nodes)
            if index not in dust and not (node.buy_blocked or node.sell_blocked)
        ]
        balance = self._redistribute(nodes, eligible, balance)

        if balance:
            rest = [index for index in range(len(nodes)) if index not in eligible]
            balance = self._spill_over(nodes, eligible, rest, balance, log)

        if balance:
            log.warning("unplaced_balance", balance=str(balance))

        residual = balance
        for node in nodes:
            match node.holding:
                case Group(children=children):
                    node_residual = self.allocate(
                        children, node.target_value, join_path(path, node.name)
                    )
                    if node_residual:
                        node.debt = -node_residual
                        residual += node_residual

        return residual

    def _clamp_to_max(self, nodes: list[AssetNode], log: structlog.stdlib.BoundLogger) -> Decimal:
        """Release value from nodes that can't be bought up to their share."""

        balance = ZERO
        for node in nodes:
            if node.max_value is not None and node.target_value > node.max_value:
                balance += node.target_value - node.max_value
                node.target_value = node.max_value
                node.buy_blocked = True
                node.status = NodeStatus.BUY_BLOCKED
                log.debug("buying_blocked", asset=node.name, value=str(node.max_value))
        return balance

    def _clamp_to_min(self, nodes: list[AssetNode], log: structlog.stdlib.BoundLogger) -> Decimal:
        """Consume value for nodes that can't be sold down to their share."""

        balance = ZERO
        for node in nodes:
            if node.target_value < node.min_value:
                balance += node.target_value - node.min_value
                node.target_value = node.min_value
                node.sell_blocked = True
                node.status = NodeStatus.SELL_BLOCKED
                log.debug("selling_blocked", asset=node.name, value=str(node.min_value))
        return balance

    def _snap_dust(self, nodes: list[AssetNode]) -> tuple[Decimal, set[int]]:
        """Cancel trades that are too small to execute."""

        balance = ZERO
        dust: set[int] = set()
        for index, node in enumerate(nodes):
            if node.buy_blocked or node.sell_blocked:
                continue

            difference = node.difference
            if not self._is_tradable(difference) and node.allows(node.current_value):
                balance += difference
                node.target_value = node.current_value
                node.status = NodeStatus.DUST
                dust.add(index)
        return balance, dust

    def _redistribute(self, nodes: list[AssetNode], eligible: list[int], balance: Decimal) -> Decimal:
        """Place the balance on eligible nodes.

        Pending trades that run against the balance are cancelled first, on
        blocked nodes too, so an already converged subtree isn't traded at
        all. Whatever is left goes to the smallest pending trades first.
        """
        opposing = [index for index, node in enumerate(nodes) if node.difference * balance < 0]

        for cancel, indexes in ((True, opposing), (False, eligible)):
            for index in self._by_pending_difference(nodes, indexes, balance):
                if not balance or abs(balance) < self.min_trade_volume:
                    return balance

                node = nodes[index]
                cap = abs(node.difference) if cancel else None
                volume = self._tradable_volume(node, balance, cap)
                if volume:
                    node.target_value += volume
                    balance -= volume
        return balance

    def _spill_over(
        self,
        nodes: list[AssetNode],
        eligible: list[int],
        rest: list[int],
        balance: Decimal,
        log: structlog.stdlib.BoundLogger,
    ) -> Decimal:
        """Force the remaining balance into any node with headroom left."""

        order = self._by_pending_difference(nodes, eligible, balance)
        order += self._by_pending_difference(nodes, rest, balance)

        for index in order:
            if not balance:
                return balance

            node = nodes[index]
            volume = self._tradable_volume(node, balance)
            if volume:
                node.target_value += volume
                balance -= volume

        for index in order:
            if not balance:
                return balance

            node = nodes[index]
            limit = self._volume_limit(node, balance)
            if not limit:
                continue

            volume = limit if balance > 0 else -limit
            node.target_value += volume
            balance -= volume

            if not self._is_tradable(node.difference):
                node.forced = True
                log.info("forced_dust_trade", asset=node.name, difference=str(node.difference))

        return balance

    def _by_pending_difference(
        self, nodes: list[AssetNode], indexes: list[int], balance: Decimal
    ) -> list[int]:
        """Order nodes so that trades opposing the balance come first.

        Within each half the smallest absolute pending trade goes first, ties
        keep the sibling order.
        """

        def key(index: int) -> tuple[bool, Decimal, int]:
            difference = nodes[index].difference
            return difference * balance >= 0, abs(difference), index

        return sorted(indexes, key=key)

    def _volume_limit(
        self, node: AssetNode, balance: Decimal, cap: Decimal | None = None
    ) -> Decimal:
        """Largest absolute volume the node can absorb in the balance's direction."""

        if balance > 0:
            headroom = None if node.max_value is None else node.max_value - node.target_value
        else:
            headroom = node.target_value - node.min_value

        limit = abs(balance) if headroom is None else min(headroom, abs(balance))
        if cap is not None:
            limit = min(limit, cap)
        return max(limit, ZERO)

    def _tradable_volume(
        self, node: AssetNode, balance: Decimal, cap: Decimal | None = None
    ) -> Decimal:
        """Largest signed volume within limits that keeps the node's trade executable.

        The resulting pending trade is either zero or at least min_trade_volume.
        """

        limit = self._volume_limit(node, balance, cap)
        if not limit:
            return ZERO

        difference = node.difference
        volume = limit if balance > 0 else -limit
        if self._is_tradable(difference + volume):
            return volume

        # Fall back to the nearest executable difference short of the limit.
        best = ZERO
        for candidate in (ZERO, self.min_trade_volume, -self.min_trade_volume):
            volume = candidate - difference
            if (volume > 0) != (balance > 0) or abs(volume) > limit:
                continue
            if abs(volume) > abs(best):
                best = volume
        return best

    def _is_tradable(self, difference: Decimal) -> bool:
        return not difference or abs(difference) >= self.min_trade_volume
