"""
Structured logging for rebalancing runs.

Rebalancing events are emitted through structlog with keyword context
(portfolio, subtree, asset, amounts as strings). Debug mode renders them as
colored console lines, otherwise as one JSON object per line.

Usage:
    from config.logging import configure_structlog, get_logging_config

    configure_structlog(debug=True)
    logging.config.dictConfig(get_logging_config(debug=True, level="DEBUG"))
"""

import sys
from typing import Any

import structlog

TIMESTAMPER = structlog.processors.TimeStamper(fmt="iso", utc=True)


def _renderer(debug: bool) -> Any:
    if debug:
        return structlog.dev.ConsoleRenderer(colors=True)
    return structlog.processors.JSONRenderer()


def configure_structlog(debug: bool = False) -> None:
    """
    Configure structlog before the first rebalancing run logs anything.

    Args:
        debug: If True, use pretty console output with colors.
               If False, use JSON output for log aggregation.
    """
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        TIMESTAMPER,
        structlog.processors.StackInfoRenderer(),
    ]
    if not debug:
        # ReconciliationFailure tracebacks as structured data
        processors += [structlog.processors.format_exc_info, structlog.processors.dict_tracebacks]
    processors.append(_renderer(debug))

    structlog.configure(
        processors=processors,  # type: ignore
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logging_config(debug: bool = False, level: str = "INFO") -> dict[str, Any]:
    """
    Return a stdlib logging.config.dictConfig mapping.

    Records from other libraries go through the same renderer as the
    rebalancer's own events.

    Args:
        debug: If True, use console formatter with colors.
               If False, use JSON formatter for production.
        level: Level of the root logger. The rebalancer logger always logs
               DEBUG in debug mode.
    """
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structlog": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processor": _renderer(debug),
                "foreign_pre_chain": [
                    structlog.stdlib.add_log_level,
                    structlog.stdlib.add_logger_name,
                    TIMESTAMPER,
                ],
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "structlog",
                "stream": sys.stdout,
            },
        },
        "root": {
            "handlers": ["console"],
            "level": level,
        },
        "loggers": {
            "rebalancer": {
                "handlers": ["console"],
                "level": "DEBUG" if debug else level,
                "propagate": False,
            },
        },
    }
