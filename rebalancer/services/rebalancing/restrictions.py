"""Bottom-up calculation of feasible value bounds."""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal

from rebalancer.domain.tree import ZERO, AssetNode, AssetTree, Group, Leaf
from rebalancer.types import Bounds


class RestrictionCalculator:
    """Computes min/max target value of every node from its restriction flags.

    A leaf that may not be sold can't go below its current value, and one that
    may not be bought can't go above it. Group bounds are the sums of their
    children's bounds; a group is unbounded above as soon as one child is.

    Leaves can additionally be pinned to narrower bounds, which is how the
    decisions of the debt resolver reach the allocator.
    """

    def calculate(self, tree: AssetTree, pins: Mapping[AssetNode, Bounds] | None = None) -> Bounds:
        """Calculate bounds for the whole tree and store the root bounds on it."""

        tree.min_value, tree.max_value = self.calculate_nodes(tree.assets, pins or {})
        return tree.min_value, tree.max_value

    def calculate_nodes(
        self, nodes: list[AssetNode], pins: Mapping[AssetNode, Bounds] | None = None
    ) -> Bounds:
        pins = pins or {}
        total_min_value = ZERO
        total_max_value: Decimal | None = ZERO

        for node in nodes:
            match node.holding:
                case Group(children=children):
                    min_value, max_value = self.calculate_nodes(children, pins)
                case Leaf():
                    min_value = node.current_value if node.restrict_selling else ZERO
                    max_value = node.current_value if node.restrict_buying else None
                    if node in pins:
                        min_value, max_value = narrow((min_value, max_value), pins[node])

            node.min_value = min_value
            node.max_value = max_value

            total_min_value += min_value
            if total_max_value is not None and max_value is not None:
                total_max_value += max_value
            else:
                total_max_value = None

        return total_min_value, total_max_value


def narrow(bounds: Bounds, pin: Bounds) -> Bounds:
    """Intersect two (min, max) ranges; None means unbounded above."""

    min_value = max(bounds[0], pin[0])
    if bounds[1] is None:
        return min_value, pin[1]
    if pin[1] is None:
        return min_value, bounds[1]
    return min_value, min(bounds[1], pin[1])
