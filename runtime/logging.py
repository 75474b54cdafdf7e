"""Centralized logging configuration for receiptwright.

Usage:
    from receiptwright.runtime import get_logger
    logger = get_logger(__name__)

    logger.info("Parsed receipt %s", receipt_id)

    log = receipt_logger(logger, receipt_id)
    log.warning("Item post failed")

Environment variables:
    RECEIPTWRIGHT_LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR). Default: INFO
"""

import logging
import os
import sys
from collections.abc import MutableMapping
from typing import Any

# Default log level, can be overridden by environment variable
DEFAULT_LOG_LEVEL = logging.INFO

LOG_NAMESPACE = "receiptwright"

# Format for log messages
LOG_FORMAT = "%(levelname)s [%(name)s] %(message)s"
LOG_FORMAT_DEBUG = "%(asctime)s %(levelname)s [%(name)s:%(lineno)d] %(message)s"

# Track if logging has been configured
_logging_configured = False


def configure_logging(level: int | None = None) -> None:
    """Configure the package logger.

    Args:
        level: Log level to use. If None, reads from RECEIPTWRIGHT_LOG_LEVEL env var
               or uses DEFAULT_LOG_LEVEL.
    """
    global _logging_configured

    if _logging_configured:
        return

    if level is None:
        env_level = os.environ.get("RECEIPTWRIGHT_LOG_LEVEL", "").upper()
        level_map = {
            "DEBUG": logging.DEBUG,
            "INFO": logging.INFO,
            "WARNING": logging.WARNING,
            "WARN": logging.WARNING,
            "ERROR": logging.ERROR,
        }
        level = level_map.get(env_level, DEFAULT_LOG_LEVEL)

    log_format = LOG_FORMAT_DEBUG if level == logging.DEBUG else LOG_FORMAT

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(log_format))

    root_logger = logging.getLogger(LOG_NAMESPACE)
    root_logger.setLevel(level)
    root_logger.addHandler(handler)
    root_logger.propagate = False

    _logging_configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given module name.

    Args:
        name: Module name, typically __name__

    Returns:
        Logger placed under the package namespace
    """
    configure_logging()

    if name == LOG_NAMESPACE or name.startswith(f"{LOG_NAMESPACE}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOG_NAMESPACE}.{name}")


class ReceiptLoggerAdapter(logging.LoggerAdapter):
    """Prefix every message with the receipt id being processed."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        return f"[receipt={self.extra['receipt_id']}] {msg}", kwargs


def receipt_logger(logger: logging.Logger, receipt_id: object) -> ReceiptLoggerAdapter:
    """Scope a logger to a single receipt."""
    return ReceiptLoggerAdapter(logger, {"receipt_id": str(receipt_id)})


def set_log_level(level: int) -> None:
    """Change the log level at runtime.

    Args:
        level: New log level (e.g., logging.DEBUG)
    """
    logger = logging.getLogger(LOG_NAMESPACE)
    logger.setLevel(level)

    for handler in logger.handlers:
        if level == logging.DEBUG:
            handler.setFormatter(logging.Formatter(LOG_FORMAT_DEBUG))
        else:
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
