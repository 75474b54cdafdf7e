"""Bounded retry for network-facing steps of a parse job."""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

from receiptwright.runtime.errors import RetryExhaustedError
from receiptwright.runtime.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 0.25

_TRANSIENT_STATUS_CODES = frozenset({408, 429})


class ErrorClass(enum.Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"


def classify_error(exc: BaseException) -> ErrorClass:
    """Decide whether a failed attempt is worth repeating.

    Network-level failures, timeouts and HTTP 408/429/5xx responses are
    transient. Everything else, including other 4xx responses, is permanent.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status in _TRANSIENT_STATUS_CODES or status >= 500:
            return ErrorClass.TRANSIENT
        return ErrorClass.PERMANENT
    if isinstance(exc, (httpx.TransportError, TimeoutError, ConnectionError)):
        return ErrorClass.TRANSIENT
    return ErrorClass.PERMANENT


async def retry_async(
    operation: str,
    action: Callable[[], Awaitable[T]],
    *,
    timeout: float,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    classify: Callable[[BaseException], ErrorClass] = classify_error,
    log: logging.Logger | logging.LoggerAdapter | None = None,
) -> T:
    """
    Run ``action`` with a per-attempt deadline, retrying transient failures.

    ``action`` is called afresh for every attempt so each one gets its own
    request or stream. Cancellation of the calling task is never retried: it
    propagates as ``asyncio.CancelledError`` straight away.

    Args:
        operation: Name used in log lines and in the exhaustion error.
        action: Zero-argument coroutine factory.
        timeout: Deadline in seconds for a single attempt.
        max_attempts: Total attempts including the first.
        base_delay: Delay before attempt ``n + 1`` is ``base_delay * n`` seconds.
        classify: Maps an exception to transient or permanent.
        log: Logger for retry warnings.

    Returns:
        Whatever ``action`` returns on the first successful attempt.

    Raises:
        RetryExhaustedError: Every attempt failed transiently; the last error is chained.
        Exception: The first permanent error, unchanged.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    log = log or logger

    for attempt in range(1, max_attempts + 1):
        deadline = asyncio.timeout(timeout)
        try:
            async with deadline:
                return await action()
        except Exception as exc:
            timed_out = deadline.expired()
            if not timed_out and classify(exc) is ErrorClass.PERMANENT:
                raise
            reason = f"timed out after {timeout}s" if timed_out else f"{type(exc).__name__}: {exc}"
            if attempt >= max_attempts:
                log.warning("%s failed on attempt %d/%d (%s); giving up", operation, attempt, max_attempts, reason)
                raise RetryExhaustedError(operation, attempt) from exc
            log.warning("%s failed on attempt %d/%d (%s); retrying", operation, attempt, max_attempts, reason)
        await asyncio.sleep(base_delay * attempt)

    raise AssertionError("unreachable")
