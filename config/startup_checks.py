"""
Startup validation checks for the rebalancer environment.

Validates that all configuration read from the environment is well-formed
before any rebalancing run starts. This provides fast failure with clear
error messages rather than cryptic runtime errors.
"""

import os
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation

from rebalancer.exceptions import ConfigurationError

BOOLEAN_VALUES = ("True", "False")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def validate_environment(environ: Mapping[str, str] | None = None) -> None:
    """
    Validate rebalancer environment variables.

    Raises:
        ConfigurationError: If any variable is set to an invalid value.

    Usage:
        # In config/settings.py, before reading values:
        from config.startup_checks import validate_environment
        validate_environment()
    """
    env = os.environ if environ is None else environ
    errors = []

    for var in ("DEBUG", "REBALANCER_RESOLVE_DEBT_ON_SHRINK"):
        value = env.get(var)
        if value is not None and value not in BOOLEAN_VALUES:
            errors.append(f"{var} must be one of {', '.join(BOOLEAN_VALUES)}, got {value!r}")

    level = env.get("REBALANCER_LOG_LEVEL")
    if level is not None and level.upper() not in LOG_LEVELS:
        errors.append(f"REBALANCER_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {level!r}")

    volume = env.get("REBALANCER_MIN_TRADE_VOLUME")
    if volume is not None:
        try:
            parsed = Decimal(volume.strip())
        except InvalidOperation:
            errors.append(f"REBALANCER_MIN_TRADE_VOLUME must be a decimal, got {volume!r}")
        else:
            if not parsed.is_finite() or parsed < 0:
                errors.append(
                    f"REBALANCER_MIN_TRADE_VOLUME must be a non-negative decimal, got {volume!r}"
                )

    if errors:
        raise ConfigurationError(
            "Invalid environment configuration:\n"
            + "\n".join(f"- {error}" for error in errors)
            + "\nPlease fix these in your environment or .env file."
        )
