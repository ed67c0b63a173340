from decimal import Decimal

import pytest

from rebalancer.exceptions import (
    ConfigurationError,
    InvalidInputError,
    RebalancerError,
    ReconciliationFailure,
)


@pytest.mark.unit
class TestExceptionHierarchy:
    def test_rebalancer_error_base(self) -> None:
        """Test that RebalancerError is the base class."""
        assert issubclass(RebalancerError, Exception)

    def test_configuration_error_inheritance(self) -> None:
        assert issubclass(ConfigurationError, RebalancerError)

    def test_invalid_input_error_inheritance(self) -> None:
        assert issubclass(InvalidInputError, RebalancerError)

    def test_reconciliation_failure_inheritance(self) -> None:
        assert issubclass(ReconciliationFailure, RebalancerError)


@pytest.mark.unit
class TestReconciliationFailure:
    def test_debt_message(self) -> None:
        error = ReconciliationFailure(Decimal("500"), "P / G", ["P / G / X"])

        assert str(error) == "Unable to rebalance 'P / G': debt of 500 remains"
        assert error.amount == Decimal("500")
        assert error.subtree == "P / G"
        assert error.blocked == ["P / G / X"]

    def test_unplaced_value_message(self) -> None:
        error = ReconciliationFailure(Decimal("-100"), "P")

        assert str(error) == "Unable to rebalance 'P': unplaced value of 100 remains"
        assert error.blocked == []

    def test_can_be_caught_as_base(self) -> None:
        with pytest.raises(RebalancerError):
            raise ReconciliationFailure(Decimal("1"), "P")
