"""Tests for environment settings, startup checks and logging setup."""

import logging.config
from decimal import Decimal

import pytest
import structlog

from config.logging import get_logging_config
from config.settings import Settings, configure_logging, load_settings
from config.startup_checks import validate_environment
from rebalancer.exceptions import ConfigurationError


@pytest.mark.unit
class TestLoadSettings:
    def test_defaults(self) -> None:
        settings = load_settings({})

        assert settings == Settings()
        assert settings.min_trade_volume == Decimal("0")
        assert settings.resolve_debt_on_shrink is True

    def test_values_from_environment(self) -> None:
        settings = load_settings(
            {
                "DEBUG": "True",
                "REBALANCER_LOG_LEVEL": "debug",
                "REBALANCER_MIN_TRADE_VOLUME": " 100.50 ",
                "REBALANCER_RESOLVE_DEBT_ON_SHRINK": "False",
            }
        )

        assert settings.debug is True
        assert settings.log_level == "DEBUG"
        assert settings.min_trade_volume == Decimal("100.50")
        assert settings.resolve_debt_on_shrink is False

    def test_reads_process_environment(self, monkeypatch) -> None:
        for var in ("DEBUG", "REBALANCER_LOG_LEVEL", "REBALANCER_RESOLVE_DEBT_ON_SHRINK"):
            monkeypatch.delenv(var, raising=False)
        monkeypatch.setenv("REBALANCER_MIN_TRADE_VOLUME", "5")

        assert load_settings().min_trade_volume == Decimal("5")

    def test_invalid_value(self) -> None:
        with pytest.raises(ConfigurationError, match="REBALANCER_MIN_TRADE_VOLUME"):
            load_settings({"REBALANCER_MIN_TRADE_VOLUME": "lots"})


@pytest.mark.unit
class TestValidateEnvironment:
    def test_empty_environment_is_valid(self) -> None:
        validate_environment({})

    def test_all_errors_are_reported(self) -> None:
        env = {
            "DEBUG": "yes",
            "REBALANCER_LOG_LEVEL": "LOUD",
            "REBALANCER_MIN_TRADE_VOLUME": "-1",
        }

        with pytest.raises(ConfigurationError) as exc_info:
            validate_environment(env)

        message = str(exc_info.value)
        assert "DEBUG must be one of True, False" in message
        assert "REBALANCER_LOG_LEVEL" in message
        assert "non-negative decimal" in message

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "1e"])
    def test_non_finite_min_trade_volume(self, value) -> None:
        with pytest.raises(ConfigurationError, match="REBALANCER_MIN_TRADE_VOLUME"):
            validate_environment({"REBALANCER_MIN_TRADE_VOLUME": value})


@pytest.mark.unit
class TestLoggingConfig:
    def test_production_uses_json(self) -> None:
        config = get_logging_config(debug=False)

        renderer = config["formatters"]["structlog"]["processor"]
        assert isinstance(renderer, structlog.processors.JSONRenderer)
        assert config["loggers"]["rebalancer"]["level"] == "INFO"

    def test_debug_uses_console(self) -> None:
        config = get_logging_config(debug=True, level="WARNING")

        renderer = config["formatters"]["structlog"]["processor"]
        assert isinstance(renderer, structlog.dev.ConsoleRenderer)
        assert config["root"]["level"] == "WARNING"
        assert config["loggers"]["rebalancer"]["level"] == "DEBUG"

    def test_configure_logging(self, monkeypatch) -> None:
        applied: dict = {}
        monkeypatch.setattr(logging.config, "dictConfig", applied.update)

        try:
            configure_logging(Settings(log_level="WARNING"))
        finally:
            structlog.reset_defaults()

        assert applied["root"]["level"] == "WARNING"
        assert applied["handlers"]["console"]["formatter"] == "structlog"
        assert list(applied["loggers"]) == ["rebalancer"]
