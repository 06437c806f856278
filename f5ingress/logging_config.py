"""Structured logging for f5ingress.

State dumps are written to stdout, so every log line goes to stderr.
``LOG_LEVEL`` sets the level and ``LOG_FORMAT=json`` switches to one JSON
object per line.
"""

import logging
import os
import sys
from typing import Any

import structlog

Logger = structlog.stdlib.BoundLogger


def setup_logging(verbose: bool = False) -> None:
    """Configure structlog on top of the standard library root logger.

    Args:
        verbose: Force DEBUG, ignoring LOG_LEVEL
    """
    level_name = "DEBUG" if verbose else os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level, force=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _get_renderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    get_logger(__name__).debug("Logging configured", log_level=level_name, verbose=verbose)


def _get_renderer() -> Any:
    if os.getenv("LOG_FORMAT", "console").lower() == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stderr.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def get_logger(name: str) -> Logger:
    """Module logger; call with ``__name__``."""
    return structlog.get_logger(name)


def log_function_entry(logger: Logger, func_name: str, **kwargs: Any) -> None:
    logger.debug("Function entry", function=func_name, **kwargs)


def log_function_exit(logger: Logger, func_name: str, **kwargs: Any) -> None:
    logger.debug("Function exit", function=func_name, **kwargs)


def log_api_request(logger: Logger, method: str, path: str, **kwargs: Any) -> None:
    """Incoming request on the state API."""
    logger.info("API request", method=method, path=path, **kwargs)


def log_api_response(logger: Logger, method: str, path: str, status_code: int, **kwargs: Any) -> None:
    """Response sent by the state API, with its status code."""
    logger.info("API response", method=method, path=path, status_code=status_code, **kwargs)


def log_k8s_operation(logger: Logger, operation: str, **kwargs: Any) -> None:
    """A list call against the Kubernetes API, such as ``list_pods``."""
    logger.debug("Kubernetes operation", operation=operation, **kwargs)


def log_adc_operation(logger: Logger, operation: str, host: str, **kwargs: Any) -> None:
    """An iControl REST call against the BIG-IP management ``host``."""
    logger.debug("ADC operation", operation=operation, host=host, **kwargs)


def log_derivation_event(logger: Logger, event_type: str, **kwargs: Any) -> None:
    """Summary of one desired or current state computation.

    Args:
        logger: Module logger
        event_type: What was computed, e.g. ``desired_state_derived``
        **kwargs: Counts and other details
    """
    logger.info("Derivation event", event_type=event_type, **kwargs)
