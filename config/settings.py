"""
Runtime settings for the rebalancer.

Values come from the environment, optionally seeded from a .env file in
the working directory. Unset variables fall back to the defaults below.
"""

import logging.config
import os
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal

from dotenv import load_dotenv

from config.logging import configure_structlog, get_logging_config
from config.startup_checks import validate_environment


@dataclass(frozen=True)
class Settings:
    debug: bool = False
    log_level: str = "INFO"
    min_trade_volume: Decimal = Decimal("0")
    resolve_debt_on_shrink: bool = True


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """
    Read settings from the environment.

    Args:
        environ: Mapping to read instead of os.environ. When omitted, .env is
                 loaded first (without overriding variables already set).

    Raises:
        ConfigurationError: If any variable holds an invalid value.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    validate_environment(environ)

    return Settings(
        debug=environ.get("DEBUG", "False") == "True",
        log_level=environ.get("REBALANCER_LOG_LEVEL", "INFO").upper(),
        min_trade_volume=Decimal(environ.get("REBALANCER_MIN_TRADE_VOLUME", "0").strip()),
        resolve_debt_on_shrink=environ.get("REBALANCER_RESOLVE_DEBT_ON_SHRINK", "True") == "True",
    )


def configure_logging(settings: Settings) -> None:
    """Configure structlog and the stdlib handlers for the given settings."""
    configure_structlog(debug=settings.debug)
    logging.config.dictConfig(get_logging_config(debug=settings.debug, level=settings.log_level))
