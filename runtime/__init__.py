"""Runtime infrastructure for receiptwright.

This package provides process/runtime services including:
- Logging setup via get_logger()
- Path resolution via get_paths(), ProjectPaths
- Settings via load_settings(), get_settings()
- Bounded retry via retry_async()

Usage:
    from receiptwright.runtime import get_logger, get_settings

    logger = get_logger(__name__)
    settings = get_settings()
"""

from receiptwright.runtime.errors import (
    MalformedMessageError,
    OCRServiceError,
    ReceiptParseError,
    RetryExhaustedError,
    SourceTooLargeError,
)
from receiptwright.runtime.logging import (
    DEFAULT_LOG_LEVEL,
    LOG_FORMAT,
    LOG_FORMAT_DEBUG,
    configure_logging,
    get_logger,
    receipt_logger,
    set_log_level,
)
from receiptwright.runtime.paths import ProjectPaths, get_paths, reset_paths
from receiptwright.runtime.retry import ErrorClass, classify_error, retry_async
from receiptwright.runtime.settings import Settings, get_settings, load_settings

__all__ = [
    # Logging
    "get_logger",
    "receipt_logger",
    "configure_logging",
    "set_log_level",
    "DEFAULT_LOG_LEVEL",
    "LOG_FORMAT",
    "LOG_FORMAT_DEBUG",
    # Paths and settings
    "get_paths",
    "reset_paths",
    "ProjectPaths",
    "Settings",
    "get_settings",
    "load_settings",
    # Errors and retry
    "ReceiptParseError",
    "MalformedMessageError",
    "SourceTooLargeError",
    "RetryExhaustedError",
    "OCRServiceError",
    "ErrorClass",
    "classify_error",
    "retry_async",
]
