from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from decimal import Decimal

from rebalancer.types import NodeStatus

ZERO = Decimal("0")
PATH_SEPARATOR = " / "


def join_path(parent: str, name: str) -> str:
    """Return the display path of a child node."""

    return f"{parent}{PATH_SEPARATOR}{name}" if parent else name


@dataclass
class Leaf:
    """A single tradable position inside the tree."""

    symbol: str
    quantity: Decimal
    price: Decimal

    @property
    def value(self) -> Decimal:
        return self.quantity * self.price


@dataclass
class Group:
    """An ordered collection of weighted child nodes."""

    children: list[AssetNode] = field(default_factory=list)


type Holding = Group | Leaf


@dataclass(eq=False)
class AssetNode:
    """A weighted node of the asset tree.

    Config fields (name, weight, restriction flags, holding) are set when the
    tree is built. All remaining fields are computed by the restriction and
    allocation passes and are overwritten on every run.
    """

    name: str
    expected_weight: Decimal
    holding: Holding
    restrict_buying: bool = False
    restrict_selling: bool = False

    target_value: Decimal = ZERO
    min_value: Decimal = ZERO
    max_value: Decimal | None = None
    buy_blocked: bool = False
    sell_blocked: bool = False
    forced: bool = False
    debt: Decimal = ZERO
    status: NodeStatus = NodeStatus.PENDING

    @property
    def current_value(self) -> Decimal:
        match self.holding:
            case Leaf() as leaf:
                return leaf.value
            case Group(children=children):
                return sum((child.current_value for child in children), ZERO)

    @property
    def children(self) -> list[AssetNode]:
        match self.holding:
            case Group(children=children):
                return children
            case Leaf():
                return []

    @property
    def is_group(self) -> bool:
        return isinstance(self.holding, Group)

    @property
    def symbol(self) -> str | None:
        match self.holding:
            case Leaf(symbol=symbol):
                return symbol
            case Group():
                return None

    @property
    def difference(self) -> Decimal:
        """Pending trade volume: positive to buy, negative to sell."""

        return self.target_value - self.current_value

    def reset_allocation(self) -> None:
        """Drop the results of a previous allocation pass."""

        self.buy_blocked = False
        self.sell_blocked = False
        self.forced = False
        self.debt = ZERO
        self.status = NodeStatus.PENDING

    def allows(self, value: Decimal) -> bool:
        """Whether value lies within the node's restriction bounds."""

        if value < self.min_value:
            return False
        return self.max_value is None or value <= self.max_value

    def is_within_bounds(self) -> bool:
        return self.allows(self.target_value)


@dataclass(eq=False)
class AssetTree:
    """A portfolio: named list of top-level asset nodes plus root bounds."""

    name: str
    assets: list[AssetNode] = field(default_factory=list)
    target_value: Decimal = ZERO
    min_value: Decimal = ZERO
    max_value: Decimal | None = None

    @property
    def current_value(self) -> Decimal:
        return sum((asset.current_value for asset in self.assets), ZERO)

    def walk(self) -> Iterator[tuple[str, int, AssetNode]]:
        """Yield (path, depth, node) for every node in pre-order."""

        stack = [(join_path(self.name, node.name), 0, node) for node in reversed(self.assets)]
        while stack:
            path, depth, node = stack.pop()
            yield path, depth, node
            stack.extend(
                (join_path(path, child.name), depth + 1, child) for child in reversed(node.children)
            )

    def leaves(self) -> Iterator[tuple[str, AssetNode]]:
        for path, _depth, node in self.walk():
            if not node.is_group:
                yield path, node

    def node_count(self) -> int:
        return count_nodes(self.assets)

    def find(self, path: str) -> AssetNode:
        """Look up a node by its display path.

        Raises:
            KeyError: If no node has the given path
        """

        for node_path, _depth, node in self.walk():
            if node_path == path:
                return node
        raise KeyError(path)


def count_nodes(nodes: list[AssetNode]) -> int:
    """Count all nodes in a list of subtrees."""

    return sum(1 + count_nodes(node.children) for node in nodes)
