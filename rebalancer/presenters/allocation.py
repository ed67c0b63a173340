from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import pandas as pd

from rebalancer.domain.tree import ZERO, AssetTree
from rebalancer.presenters.formatters import amount, percent
from rebalancer.types import HierarchyLevel

COLUMNS = [
    "path",
    "name",
    "symbol",
    "row_type",
    "depth",
    "hierarchy_level",
    "expected_weight",
    "current_value",
    "target_value",
    "difference",
    "min_value",
    "max_value",
    "buy_blocked",
    "sell_blocked",
    "forced",
    "status",
]


@dataclass(frozen=True)
class AllocationTableRow:
    path: str
    name: str
    symbol: str
    row_type: str  # 'portfolio', 'group', 'holding'
    depth: int
    label: str  # Name indented by depth

    weight: str
    current_value: str
    current_value_raw: Decimal
    target_value: str
    target_value_raw: Decimal
    difference: str
    difference_raw: Decimal
    bounds: str
    flags: str

    is_holding: bool = False
    is_group: bool = False
    is_portfolio: bool = False


class AllocationTableBuilder:
    def build_dataframe(self, tree: AssetTree) -> pd.DataFrame:
        """
        Flatten a resolved tree into one row per node, portfolio row first.

        Numeric columns hold exact Decimal values (object dtype).
        """
        records: list[dict[str, Any]] = [
            {
                "path": tree.name,
                "name": tree.name,
                "symbol": None,
                "row_type": "portfolio",
                "depth": -1,
                "hierarchy_level": int(HierarchyLevel.PORTFOLIO),
                "expected_weight": Decimal("1"),
                "current_value": tree.current_value,
                "target_value": tree.target_value,
                "difference": tree.target_value - tree.current_value,
                "min_value": tree.min_value,
                "max_value": tree.max_value,
                "buy_blocked": False,
                "sell_blocked": False,
                "forced": False,
                "status": None,
            }
        ]

        for path, depth, node in tree.walk():
            level = HierarchyLevel.GROUP if node.is_group else HierarchyLevel.HOLDING
            records.append(
                {
                    "path": path,
                    "name": node.name,
                    "symbol": node.symbol,
                    "row_type": "group" if node.is_group else "holding",
                    "depth": depth,
                    "hierarchy_level": int(level),
                    "expected_weight": node.expected_weight,
                    "current_value": node.current_value,
                    "target_value": node.target_value,
                    "difference": node.difference,
                    "min_value": node.min_value,
                    "max_value": node.max_value,
                    "buy_blocked": node.buy_blocked,
                    "sell_blocked": node.sell_blocked,
                    "forced": node.forced,
                    "status": str(node.status),
                }
            )

        return pd.DataFrame(records, columns=COLUMNS)

    def build_rows(self, df: pd.DataFrame) -> list[AllocationTableRow]:
        """Convert the node DataFrame into formatted display rows."""
        if df.empty:
            return []

        rows = []
        for _idx, row in df.iterrows():
            row_type = row["row_type"]
            depth = int(row["depth"])

            flags = []
            if row["buy_blocked"]:
                flags.append("buy blocked")
            if row["sell_blocked"]:
                flags.append("sell blocked")
            if row["forced"]:
                flags.append("forced")

            max_value = row["max_value"]
            upper = "unbounded" if pd.isna(max_value) else amount(max_value)
            bounds = f"{amount(row['min_value'])} .. {upper}"

            rows.append(
                AllocationTableRow(
                    path=row["path"],
                    name=row["name"],
                    symbol="" if pd.isna(row["symbol"]) else row["symbol"],
                    row_type=row_type,
                    depth=depth,
                    label="  " * max(depth + 1, 0) + row["name"],
                    weight=percent(row["expected_weight"]),
                    current_value=amount(row["current_value"]),
                    current_value_raw=row["current_value"],
                    target_value=amount(row["target_value"]),
                    target_value_raw=row["target_value"],
                    difference=amount(row["difference"]),
                    difference_raw=row["difference"],
                    bounds=bounds,
                    flags=", ".join(flags),
                    is_holding=row_type == "holding",
                    is_group=row_type == "group",
                    is_portfolio=row_type == "portfolio",
                )
            )
        return rows

    def render(self, tree: AssetTree) -> str:
        """Render the tree as a plain-text table for logs and consoles."""
        rows = self.build_rows(self.build_dataframe(tree))
        if not rows:
            return ""

        header = ("Asset", "Weight", "Current", "Target", "Difference", "Flags")
        table = [header] + [
            (r.label, r.weight, r.current_value, r.target_value, r.difference, r.flags) for r in rows
        ]
        widths = [max(len(line[i]) for line in table) for i in range(len(header))]

        lines = []
        for line in table:
            cells = [line[0].ljust(widths[0])]
            cells += [cell.rjust(width) for cell, width in zip(line[1:5], widths[1:5], strict=True)]
            cells.append(line[5])
            lines.append("  ".join(cells).rstrip())
        return "\n".join(lines)

    def summarize(self, df: pd.DataFrame) -> dict[str, Decimal]:
        """Total buy and sell volume over holding rows."""
        holdings = df[df["row_type"] == "holding"]
        differences = list(holdings["difference"])
        return {
            "total_buy": sum((d for d in differences if d > 0), ZERO),
            "total_sell": sum((-d for d in differences if d < 0), ZERO),
        }
