"""Exceptions that can escape a receipt parse job."""

from __future__ import annotations


class ReceiptParseError(Exception):
    """Base class for parse-job failures."""


class MalformedMessageError(ReceiptParseError, ValueError):
    """Inbound queue message could not be parsed or is missing fields."""


class SourceTooLargeError(ReceiptParseError):
    """Source object exceeds the configured size cap."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"Source object is {size} bytes; limit is {limit} bytes")
        self.size = size
        self.limit = limit


class RetryExhaustedError(ReceiptParseError, TimeoutError):
    """A transient failure persisted through every retry attempt.

    The last underlying error is chained as ``__cause__``.
    """

    def __init__(self, operation: str, attempts: int) -> None:
        super().__init__(f"{operation} failed after {attempts} attempt(s)")
        self.operation = operation
        self.attempts = attempts


class OCRServiceError(ReceiptParseError, RuntimeError):
    """OCR provider accepted the request but reported a processing error."""
