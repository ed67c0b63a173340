from decimal import Decimal


class RebalancerError(Exception):
    """Base exception for all rebalancing related errors."""

    pass


class ConfigurationError(RebalancerError):
    """Raised when allocation config or settings are invalid (e.g., weights sum != 100%)."""

    pass


class InvalidInputError(RebalancerError):
    """Raised when upstream input is malformed (e.g., unparsable decimal, negative price)."""

    pass


class ReconciliationFailure(RebalancerError):
    """Raised when a residual amount can't be placed anywhere in the tree.

    Attributes:
        amount: Sum of targets minus the budget. Positive when value could not be
            sold off, negative when value could not be bought.
        subtree: Path of the subtree where the residual surfaced
        blocked: Paths of the leaves that are pinned or blocked
    """

    def __init__(self, amount: Decimal, subtree: str, blocked: list[str] | None = None) -> None:
        self.amount = amount
        self.subtree = subtree
        self.blocked = blocked or []

        kind = "debt" if amount > 0 else "unplaced value"
        super().__init__(f"Unable to rebalance {subtree!r}: {kind} of {abs(amount)} remains")
