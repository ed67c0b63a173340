"""Type definitions shared by the rebalancing and presentation modules."""

from decimal import Decimal
from enum import IntEnum, StrEnum

# Type aliases (Python 3.12+ syntax)
type Bounds = tuple[Decimal, Decimal | None]  # (min_value, max_value or unbounded)


class HierarchyLevel(IntEnum):
    """Hierarchy levels for allocation display rows.

    Values are IntEnum so they can be compared and sorted naturally.
    """

    HOLDING = 999  # Individual holding
    GROUP = 0  # Asset group at any depth
    PORTFOLIO = -1  # Portfolio-wide total


class NodeStatus(StrEnum):
    """Allocation status of a single node.

    Pending -> {BuyBlocked | SellBlocked | Dust | Correctable} -> {Resolved | Uncorrectable}
    """

    PENDING = "pending"
    BUY_BLOCKED = "buy_blocked"
    SELL_BLOCKED = "sell_blocked"
    DUST = "dust"
    CORRECTABLE = "correctable"
    RESOLVED = "resolved"
    UNCORRECTABLE = "uncorrectable"
