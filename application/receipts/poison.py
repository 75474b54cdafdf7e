"""Handler for messages that exhausted their queue delivery attempts."""

from __future__ import annotations

from receiptwright.domain.receipt import ReceiptStatus
from receiptwright.runtime.errors import MalformedMessageError
from receiptwright.runtime.logging import get_logger
from receiptwright.runtime.receipt_api import ReceiptApi

from .messages import parse_receipt_parse_message

logger = get_logger(__name__)

POISON_NOTE = "Reached poison queue after retries."
_MAX_LOGGED_MESSAGE = 256


async def handle_poison_message(raw: str | bytes, api: ReceiptApi) -> bool:
    """
    Mark the receipt behind a dead-lettered message as FailedParse.

    Never raises; a failing poison handler would only dead-letter again.

    Returns:
        True when the record API was notified.
    """
    try:
        message = parse_receipt_parse_message(raw)
    except MalformedMessageError as exc:
        text = raw.decode("utf-8", "replace") if isinstance(raw, bytes) else raw
        logger.warning("Poison message invalid (%s). Raw=%s", exc, text[:_MAX_LOGGED_MESSAGE])
        return False

    rid = message.receipt_id
    try:
        await api.post_parse_error(rid, POISON_NOTE)
        await api.patch_status(rid, ReceiptStatus.FAILED_PARSE)
    except Exception as exc:
        logger.error("Poison handler failed for receipt %s: %s", rid, exc)
        return False

    logger.warning("Marked receipt %s as FailedParse from poison queue", rid)
    return True
