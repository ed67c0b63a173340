"""
Root-level pytest fixtures for the rebalancer test suite.

Fixture Hierarchy:
- portfolio_config_data: Plain config mapping as a loader would produce it
- portfolio_config: Parsed PortfolioConfig for the mapping above
- snapshot: Holdings matching every configured symbol
- nested_tree: Two-level tree (group + leaf) built by the factories
"""

from typing import Any

import pytest

from rebalancer.domain import PortfolioConfig, PortfolioSnapshot
from rebalancer.domain.tree import AssetTree
from rebalancer.services.rebalancing import RebalancingEngine
from rebalancer.tests.constants import DEFAULT_PORTFOLIO_NAME, MTV_ONE
from rebalancer.tests.factories import asset_tree, group_node, leaf_node

# ============================================================================
# CONFIG FIXTURES
# ============================================================================


@pytest.fixture
def portfolio_config_data() -> dict[str, Any]:
    """
    60/40 portfolio with a nested stocks group.

    Stocks (60%): US 70% (VTI), International 30% (VXUS)
    Bonds (40%): BND, may not be sold
    """
    return {
        "name": DEFAULT_PORTFOLIO_NAME,
        "min_trade_volume": "1",
        "assets": [
            {
                "name": "Stocks",
                "weight": "60%",
                "assets": [
                    {"name": "US", "symbol": "VTI", "weight": "70%"},
                    {"name": "International", "symbol": "VXUS", "weight": "30%"},
                ],
            },
            {"name": "Bonds", "symbol": "BND", "weight": "40%", "restrict_selling": True},
        ],
    }


@pytest.fixture
def portfolio_config(portfolio_config_data: dict[str, Any]) -> PortfolioConfig:
    return PortfolioConfig.from_dict(portfolio_config_data)


@pytest.fixture
def snapshot() -> PortfolioSnapshot:
    """Holdings worth 10,000 in total: VTI 5,000, VXUS 1,000, BND 4,000."""
    return PortfolioSnapshot.from_records(
        [
            {"symbol": "VTI", "quantity": "20", "price": "250"},
            {"symbol": "VXUS", "quantity": "20", "price": "50"},
            {"symbol": "BND", "quantity": "50", "price": "80"},
        ]
    )


# ============================================================================
# TREE FIXTURES
# ============================================================================


@pytest.fixture
def nested_tree() -> AssetTree:
    """
    G (40%): X 50%, Y 50%
    H (60%)

    Everything starts empty.
    """
    return asset_tree(
        group_node("G", "0.4", leaf_node("X", "0.5"), leaf_node("Y", "0.5")),
        leaf_node("H", "0.6"),
    )


@pytest.fixture
def engine() -> RebalancingEngine:
    return RebalancingEngine(min_trade_volume=MTV_ONE)
