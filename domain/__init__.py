"""Core domain models for receipt parsing.

Usage:
    from receiptwright.domain import HeuristicReceipt, ItemCandidate, ParseDecision
"""

from receiptwright.domain.receipt import (
    HeuristicReceipt,
    ItemCandidate,
    MerchantInfo,
    NormalizedItem,
    NormalizedReceipt,
    ObjectRef,
    ParseDecision,
    ParseEngine,
    ParseJob,
    ReceiptStatus,
)

__all__ = [
    "HeuristicReceipt",
    "ItemCandidate",
    "MerchantInfo",
    "NormalizedItem",
    "NormalizedReceipt",
    "ObjectRef",
    "ParseDecision",
    "ParseEngine",
    "ParseJob",
    "ReceiptStatus",
]
