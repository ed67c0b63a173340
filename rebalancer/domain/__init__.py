from __future__ import annotations

from .config import AssetAllocationConfig, PortfolioConfig, parse_decimal, parse_weight
from .portfolio import Holding, PortfolioSnapshot, build_asset_tree
from .tree import AssetNode, AssetTree, Group, Leaf

__all__ = [
    "AssetAllocationConfig",
    "AssetNode",
    "AssetTree",
    "Group",
    "Holding",
    "Leaf",
    "PortfolioConfig",
    "PortfolioSnapshot",
    "build_asset_tree",
    "parse_decimal",
    "parse_weight",
]
