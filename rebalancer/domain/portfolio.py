from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from rebalancer.domain.config import AssetAllocationConfig, PortfolioConfig, parse_decimal
from rebalancer.domain.tree import ZERO, AssetNode, AssetTree, Group, Leaf
from rebalancer.exceptions import ConfigurationError, InvalidInputError


@dataclass(frozen=True)
class Holding:
    """A tradable position from the portfolio snapshot.

    Values are expected to be normalized to the reporting currency already.
    """

    symbol: str
    quantity: Decimal
    price: Decimal

    def __post_init__(self) -> None:
        """Validate holding data."""
        if self.quantity < 0:
            raise InvalidInputError(f"{self.symbol}: quantity must be non-negative, got {self.quantity}")
        if self.price < 0:
            raise InvalidInputError(f"{self.symbol}: price must be non-negative, got {self.price}")

    @property
    def current_value(self) -> Decimal:
        return self.quantity * self.price


@dataclass
class PortfolioSnapshot:
    """Current holdings of a portfolio keyed by symbol."""

    holdings: dict[str, Holding] = field(default_factory=dict)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> PortfolioSnapshot:
        """Build a snapshot from plain records with symbol, quantity and price.

        Raises:
            InvalidInputError: On malformed decimals, negative values or duplicate symbols
        """

        holdings: dict[str, Holding] = {}
        for record in records:
            symbol = record.get("symbol")
            if not isinstance(symbol, str) or not symbol:
                raise InvalidInputError(f"Invalid holding symbol: {symbol!r}")
            if symbol in holdings:
                raise InvalidInputError(f"Duplicate holding: {symbol}")

            holdings[symbol] = Holding(
                symbol=symbol,
                quantity=parse_decimal(record.get("quantity"), f"{symbol} quantity"),
                price=parse_decimal(record.get("price"), f"{symbol} price"),
            )
        return cls(holdings=holdings)

    @property
    def total_value(self) -> Decimal:
        return sum((h.current_value for h in self.holdings.values()), ZERO)

    def get(self, symbol: str) -> Holding:
        """Return the holding for a symbol, or an empty position if it isn't held."""

        holding = self.holdings.get(symbol)
        if holding is None:
            return Holding(symbol=symbol, quantity=ZERO, price=ZERO)
        return holding


def build_asset_tree(config: PortfolioConfig, snapshot: PortfolioSnapshot) -> AssetTree:
    """Build a fresh asset tree for one rebalancing run.

    Restriction flags are inherited from the closest configured ancestor
    (asset group or portfolio).

    Raises:
        ConfigurationError: If the snapshot holds positions the config doesn't allocate
    """

    symbols = config.get_stock_symbols()
    unallocated = sorted(
        symbol
        for symbol, holding in snapshot.holdings.items()
        if symbol not in symbols and holding.quantity != 0
    )
    if unallocated:
        raise ConfigurationError(
            f"{config.name}: the portfolio contains unallocated assets: {', '.join(unallocated)}"
        )

    assets = [
        _build_node(
            asset,
            snapshot,
            restrict_buying=bool(config.restrict_buying),
            restrict_selling=bool(config.restrict_selling),
        )
        for asset in config.assets
    ]
    return AssetTree(name=config.name, assets=assets)


def _build_node(
    config: AssetAllocationConfig,
    snapshot: PortfolioSnapshot,
    restrict_buying: bool,
    restrict_selling: bool,
) -> AssetNode:
    if config.restrict_buying is not None:
        restrict_buying = config.restrict_buying
    if config.restrict_selling is not None:
        restrict_selling = config.restrict_selling

    if config.symbol is not None:
        position = snapshot.get(config.symbol)
        holding: Group | Leaf = Leaf(
            symbol=config.symbol, quantity=position.quantity, price=position.price
        )
    else:
        holding = Group(
            children=[
                _build_node(asset, snapshot, restrict_buying, restrict_selling)
                for asset in config.assets or ()
            ]
        )

    return AssetNode(
        name=config.name,
        expected_weight=config.weight,
        holding=holding,
        restrict_buying=restrict_buying,
        restrict_selling=restrict_selling,
    )
