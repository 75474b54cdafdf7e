"""Receipt workflows."""

from receiptwright.application.receipts.messages import ReceiptParseMessage, parse_receipt_parse_message
from receiptwright.application.receipts.parse_job import ReceiptParseOrchestrator, ReceiptParseResult
from receiptwright.application.receipts.poison import handle_poison_message

__all__ = [
    "ReceiptParseMessage",
    "parse_receipt_parse_message",
    "ReceiptParseOrchestrator",
    "ReceiptParseResult",
    "handle_poison_message",
]
