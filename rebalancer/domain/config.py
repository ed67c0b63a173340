"""Allocation configuration parsing.

Converts the plain mapping produced by a config loader (YAML, JSON, TOML...)
into validated, immutable config objects:

    config = PortfolioConfig.from_dict({
        "name": "Retirement",
        "min_trade_volume": "100",
        "assets": [
            {"name": "Stocks", "weight": "60%", "assets": [
                {"name": "US", "symbol": "VTI", "weight": "70%"},
                {"name": "International", "symbol": "VXUS", "weight": "30%"},
            ]},
            {"name": "Bonds", "symbol": "BND", "weight": "40%", "restrict_selling": True},
        ],
    })
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from rebalancer.domain.tree import ZERO, join_path
from rebalancer.exceptions import ConfigurationError, InvalidInputError, RebalancerError

PORTFOLIO_KEYS = frozenset({"name", "min_trade_volume", "restrict_buying", "restrict_selling", "assets"})
ASSET_KEYS = frozenset({"name", "symbol", "weight", "restrict_buying", "restrict_selling", "assets"})


def parse_decimal(
    value: Any,
    field_name: str,
    error: type[RebalancerError] = InvalidInputError,
) -> Decimal:
    """Parse a decimal from a string or number without going through float."""

    if isinstance(value, bool) or not isinstance(value, (str, int, Decimal)):
        raise error(f"Invalid {field_name}: {value!r}")

    try:
        result = Decimal(value.strip()) if isinstance(value, str) else Decimal(value)
    except InvalidOperation:
        raise error(f"Invalid {field_name}: {value!r}") from None

    if not result.is_finite():
        raise error(f"Invalid {field_name}: {value!r}")
    return result


def parse_weight(value: Any) -> Decimal:
    """Parse a "NN%" weight string into a 0..1 fraction.

    Examples:
        "40%"   -> Decimal("0.4")
        "12.5%" -> Decimal("0.125")
    """

    if not isinstance(value, str) or not value.endswith("%"):
        raise ConfigurationError(f"Invalid weight: {value!r}")

    percent = parse_decimal(value[:-1], "weight", error=ConfigurationError)
    if percent < 0 or percent > 100:
        raise ConfigurationError(f"Invalid weight: {value!r}")

    return percent / Decimal("100")


def _parse_flag(data: Mapping[str, Any], key: str, path: str) -> bool | None:
    value = data.get(key)
    if value is not None and not isinstance(value, bool):
        raise ConfigurationError(f"{path}: {key} must be a boolean, got {value!r}")
    return value


def _check_keys(data: Any, allowed: frozenset[str], path: str) -> None:
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"{path}: expected a mapping, got {type(data).__name__}")

    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ConfigurationError(f"{path}: unknown field(s): {', '.join(unknown)}")


def _parse_name(data: Mapping[str, Any], path: str) -> str:
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ConfigurationError(f"{path}: name is required")
    return name


@dataclass(frozen=True)
class AssetAllocationConfig:
    """A single asset (holding or group) of the allocation config."""

    name: str
    weight: Decimal
    symbol: str | None = None
    restrict_buying: bool | None = None
    restrict_selling: bool | None = None
    assets: tuple[AssetAllocationConfig, ...] | None = None

    @classmethod
    def from_dict(cls, data: Any, parent_path: str = "") -> AssetAllocationConfig:
        _check_keys(data, ASSET_KEYS, parent_path or "asset")
        name = _parse_name(data, parent_path or "asset")
        path = join_path(parent_path, name)

        if "weight" not in data:
            raise ConfigurationError(f"{path}: weight is required")

        symbol = data.get("symbol")
        raw_assets = data.get("assets")

        if symbol is not None and raw_assets is not None:
            raise ConfigurationError(f"{path}: an asset can't have both symbol and assets")
        if symbol is None and raw_assets is None:
            raise ConfigurationError(f"{path}: an asset must have either symbol or assets")
        if symbol is not None and (not isinstance(symbol, str) or not symbol.strip()):
            raise ConfigurationError(f"{path}: invalid symbol {symbol!r}")

        assets = None
        if raw_assets is not None:
            if not isinstance(raw_assets, list) or not raw_assets:
                raise ConfigurationError(f"{path}: assets must be a non-empty list")
            assets = tuple(cls.from_dict(item, path) for item in raw_assets)

        return cls(
            name=name,
            weight=parse_weight(data["weight"]),
            symbol=symbol,
            restrict_buying=_parse_flag(data, "restrict_buying", path),
            restrict_selling=_parse_flag(data, "restrict_selling", path),
            assets=assets,
        )

    def collect_symbols(self, symbols: list[str]) -> None:
        if self.symbol is not None:
            symbols.append(self.symbol)
        for asset in self.assets or ():
            asset.collect_symbols(symbols)


@dataclass(frozen=True)
class PortfolioConfig:
    """Top-level allocation config of one portfolio."""

    name: str
    assets: tuple[AssetAllocationConfig, ...]
    min_trade_volume: Decimal = ZERO
    restrict_buying: bool | None = None
    restrict_selling: bool | None = None

    @classmethod
    def from_dict(cls, data: Any) -> PortfolioConfig:
        _check_keys(data, PORTFOLIO_KEYS, "portfolio")
        name = _parse_name(data, "portfolio")

        raw_assets = data.get("assets")
        if not isinstance(raw_assets, list) or not raw_assets:
            raise ConfigurationError(f"{name}: assets must be a non-empty list")

        min_trade_volume = parse_decimal(
            data.get("min_trade_volume", ZERO), "min_trade_volume", error=ConfigurationError
        )
        if min_trade_volume < 0:
            raise ConfigurationError(f"{name}: min_trade_volume must be non-negative")

        config = cls(
            name=name,
            assets=tuple(AssetAllocationConfig.from_dict(item, name) for item in raw_assets),
            min_trade_volume=min_trade_volume,
            restrict_buying=_parse_flag(data, "restrict_buying", name),
            restrict_selling=_parse_flag(data, "restrict_selling", name),
        )
        config.get_stock_symbols()
        return config

    def get_stock_symbols(self) -> set[str]:
        """Return all configured symbols.

        Raises:
            ConfigurationError: If a symbol is used by more than one asset
        """

        symbols: list[str] = []
        for asset in self.assets:
            asset.collect_symbols(symbols)

        seen: set[str] = set()
        for symbol in symbols:
            if symbol in seen:
                raise ConfigurationError(f"{self.name}: duplicate symbol {symbol!r}")
            seen.add(symbol)
        return seen
