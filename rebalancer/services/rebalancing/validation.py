"""Eager consistency checks run before any allocation pass."""

from __future__ import annotations

from decimal import Decimal

from rebalancer.domain.tree import ZERO, AssetNode, AssetTree, join_path
from rebalancer.exceptions import ConfigurationError

ONE = Decimal("1")


def validate_weights(tree: AssetTree) -> None:
    """Check that every sibling list is non-empty and its weights sum to exactly 1.

    Raises:
        ConfigurationError: On the first invalid sibling list
    """

    _validate_siblings(tree.assets, tree.name)


def _validate_siblings(nodes: list[AssetNode], path: str) -> None:
    if not nodes:
        raise ConfigurationError(f"{path}: asset group has no assets")

    for node in nodes:
        if node.expected_weight < 0:
            raise ConfigurationError(
                f"{join_path(path, node.name)}: negative weight {node.expected_weight}"
            )

    total = sum((node.expected_weight for node in nodes), ZERO)
    if total != ONE:
        raise ConfigurationError(
            f"{path}: weights of {', '.join(node.name for node in nodes)} sum to "
            f"{total * 100}% instead of 100%"
        )

    for node in nodes:
        if node.is_group:
            _validate_siblings(node.children, join_path(path, node.name))


def validate_bounds(tree: AssetTree) -> None:
    """Check restriction bounds computed by RestrictionCalculator.

    Raises:
        ConfigurationError: If some node has min_value > max_value
    """

    for path, _depth, node in tree.walk():
        if node.max_value is not None and node.min_value > node.max_value:
            raise ConfigurationError(
                f"{path}: inconsistent restrictions (min {node.min_value} > max {node.max_value})"
            )


def validate_parameters(target_total_value: Decimal, min_trade_volume: Decimal) -> None:
    """Check the global run parameters.

    Raises:
        ConfigurationError: If either value is negative
    """

    if target_total_value < 0:
        raise ConfigurationError(f"Target total value must be non-negative, got {target_total_value}")
    if min_trade_volume < 0:
        raise ConfigurationError(f"Minimum trade volume must be non-negative, got {min_trade_volume}")
