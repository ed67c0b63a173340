"""Invariants that must hold for every successful rebalancing run."""

import itertools
import random
from decimal import Decimal

import pytest

from rebalancer.domain.tree import AssetNode, AssetTree
from rebalancer.exceptions import ReconciliationFailure
from rebalancer.services.rebalancing import RebalancingEngine, RestrictionCalculator
from rebalancer.tests.factories import asset_tree, group_node, leaf_node
from rebalancer.types import NodeStatus

MIN_TRADE_VOLUME = Decimal("50")
CENT = Decimal("0.01")


def build_tree(bonds_restricted: bool) -> AssetTree:
    """Stocks 60% (US 70% / International 30%), Bonds 40%; worth 9,000.70."""
    return asset_tree(
        group_node(
            "Stocks",
            "0.6",
            leaf_node("US", "0.7", "5000"),
            leaf_node("International", "0.3", "1000"),
        ),
        leaf_node("Bonds", "0.4", "3000.70", restrict_selling=bonds_restricted),
    )


def rebalance(target: str, bonds_restricted: bool) -> AssetTree:
    tree = build_tree(bonds_restricted)
    RebalancingEngine(min_trade_volume=MIN_TRADE_VOLUME).rebalance(tree, Decimal(target))
    return tree


def all_nodes(tree: AssetTree) -> list[AssetNode]:
    return [node for _path, _depth, node in tree.walk()]


def assert_conserved(tree: AssetTree, target: Decimal) -> None:
    assert sum(node.target_value for node in tree.assets) == target
    for node in all_nodes(tree):
        if node.is_group:
            assert sum(child.target_value for child in node.children) == node.target_value


def assert_restrictions_respected(tree: AssetTree) -> None:
    for _path, node in tree.leaves():
        if node.restrict_selling:
            assert node.target_value >= node.current_value
        if node.restrict_buying:
            assert node.target_value <= node.current_value


def assert_tradable(tree: AssetTree, min_trade_volume: Decimal) -> None:
    for path, node in tree.leaves():
        if node.forced or node.status == NodeStatus.UNCORRECTABLE:
            continue
        assert node.difference == 0 or abs(node.difference) >= min_trade_volume, path


CASES = [
    ("9000.70", False),
    ("12000", False),
    ("5000", False),
    ("0", False),
    ("12000", True),
    ("5000", True),
]


@pytest.mark.unit
@pytest.mark.services
@pytest.mark.parametrize("target,bonds_restricted", CASES)
class TestRebalancingProperties:
    def test_conservation(self, target, bonds_restricted) -> None:
        assert_conserved(rebalance(target, bonds_restricted), Decimal(target))

    def test_targets_within_bounds(self, target, bonds_restricted) -> None:
        tree = rebalance(target, bonds_restricted)

        assert all(node.is_within_bounds() for node in all_nodes(tree))

    def test_restrictions_respected(self, target, bonds_restricted) -> None:
        assert_restrictions_respected(rebalance(target, bonds_restricted))

    def test_trades_respect_min_trade_volume(self, target, bonds_restricted) -> None:
        assert_tradable(rebalance(target, bonds_restricted), MIN_TRADE_VOLUME)

    def test_idempotent(self, target, bonds_restricted) -> None:
        tree = rebalance(target, bonds_restricted)
        rebalanced = build_tree(bonds_restricted)
        for (_path, node), (_again, fresh) in zip(tree.leaves(), rebalanced.leaves(), strict=True):
            fresh.holding.quantity = node.target_value

        RebalancingEngine(min_trade_volume=MIN_TRADE_VOLUME).rebalance(rebalanced, Decimal(target))

        assert all(node.difference == 0 for _path, node in rebalanced.leaves())


# ============================================================================
# GENERATED TREES
# ============================================================================

TARGET_FACTORS = ["0", "0.5", "0.9", "1", "1.1", "2"]
MIN_TRADE_VOLUMES = [Decimal("0"), Decimal("1"), Decimal("25"), Decimal("50")]


def random_weights(rng: random.Random, count: int) -> list[Decimal]:
    """Whole percentages summing to exactly 100%, zero weights included."""
    cuts = sorted(rng.randint(0, 100) for _ in range(count - 1))
    return [Decimal(high - low) / 100 for low, high in zip([0, *cuts], [*cuts, 100], strict=True)]


def random_tree(seed: int, restricted: bool = True) -> AssetTree:
    """Up to three levels of groups with 1-4 children each."""
    rng = random.Random(seed)
    names = itertools.count()

    def random_nodes(depth: int) -> list[AssetNode]:
        nodes = []
        for weight in random_weights(rng, rng.randint(1, 4)):
            name = f"N{next(names)}"
            if depth < 2 and rng.random() < 0.35:
                node = group_node(name, "0", *random_nodes(depth + 1))
            else:
                value = Decimal(rng.choice([0, rng.randint(1, 5000), rng.randint(1, 100000)])) / 100
                node = leaf_node(
                    name,
                    "0",
                    str(value),
                    restrict_buying=restricted and rng.random() < 0.2,
                    restrict_selling=restricted and rng.random() < 0.2,
                )
            node.expected_weight = weight
            nodes.append(node)
        return nodes

    return asset_tree(*random_nodes(0))


def random_run(seed: int) -> tuple[Decimal, Decimal]:
    """Pick (target_total_value, min_trade_volume) for a generated tree."""
    rng = random.Random(f"run-{seed}")
    current_value = random_tree(seed).current_value
    if current_value:
        target = (current_value * Decimal(rng.choice(TARGET_FACTORS))).quantize(CENT)
    else:
        target = Decimal(rng.randint(0, 100000)) / 100
    return target, rng.choice(MIN_TRADE_VOLUMES)


def is_feasible(tree: AssetTree, target: Decimal) -> bool:
    min_value, max_value = RestrictionCalculator().calculate(tree)
    return min_value <= target and (max_value is None or target <= max_value)


def resolved_tree(seed: int) -> tuple[AssetTree, Decimal, Decimal]:
    tree = random_tree(seed)
    target, min_trade_volume = random_run(seed)
    if not is_feasible(tree, target):
        pytest.skip("restrictions make the target infeasible")

    RebalancingEngine(min_trade_volume=min_trade_volume).rebalance(tree, target)
    return tree, target, min_trade_volume


SEEDS = range(120)


@pytest.mark.unit
@pytest.mark.services
@pytest.mark.parametrize("seed", SEEDS)
class TestGeneratedTreeProperties:
    def test_fails_only_when_bounds_are_infeasible(self, seed) -> None:
        tree = random_tree(seed)
        target, min_trade_volume = random_run(seed)
        engine = RebalancingEngine(min_trade_volume=min_trade_volume)

        if is_feasible(tree, target):
            engine.rebalance(tree, target)
        else:
            with pytest.raises(ReconciliationFailure):
                engine.rebalance(tree, target)

    def test_conservation(self, seed) -> None:
        tree, target, _min_trade_volume = resolved_tree(seed)

        assert_conserved(tree, target)

    def test_targets_within_bounds(self, seed) -> None:
        tree, _target, _min_trade_volume = resolved_tree(seed)

        assert all(node.is_within_bounds() for node in all_nodes(tree))

    def test_restrictions_respected(self, seed) -> None:
        tree, _target, _min_trade_volume = resolved_tree(seed)

        assert_restrictions_respected(tree)

    def test_trades_respect_min_trade_volume(self, seed) -> None:
        tree, _target, min_trade_volume = resolved_tree(seed)

        assert_tradable(tree, min_trade_volume)

    @pytest.mark.parametrize("min_trade_volume", MIN_TRADE_VOLUMES)
    def test_converged_portfolio_is_fixed_point(self, seed, min_trade_volume) -> None:
        tree = random_tree(seed)
        target, _min_trade_volume = random_run(seed)
        if not is_feasible(tree, target):
            pytest.skip("restrictions make the target infeasible")
        engine = RebalancingEngine(min_trade_volume=min_trade_volume)
        engine.rebalance(tree, target)

        converged = random_tree(seed)
        for (_path, node), (_again, fresh) in zip(tree.leaves(), converged.leaves(), strict=True):
            fresh.holding.quantity = node.target_value
        engine.rebalance(converged, target)

        assert all(node.difference == 0 for _path, node in converged.leaves())
