"""Data models for receipt parsing."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID


@dataclass(frozen=True)
class ItemCandidate:
    """A purchasable line recovered from OCR text."""

    description: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal | None = None

    @property
    def total(self) -> Decimal:
        # Printed line total wins; otherwise derive it from quantity and unit price.
        if self.line_total is not None:
            return self.line_total
        return (self.unit_price * self.quantity).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class HeuristicReceipt:
    """Result of the rule-based extractor. Built once per parse attempt."""

    items: tuple[ItemCandidate, ...] = ()
    subtotal: Decimal | None = None
    tax: Decimal | None = None
    tip: Decimal | None = None
    total: Decimal | None = None

    @property
    def is_sane(self) -> bool:
        if self.items:
            return True
        return (self.subtotal or Decimal("0")) > 0 or (self.total or Decimal("0")) > 0


@dataclass
class NormalizedItem:
    description: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal
    notes: str | None = None


@dataclass
class MerchantInfo:
    name: str | None = None
    address: str | None = None
    phone: str | None = None


@dataclass
class NormalizedReceipt:
    """Structured receipt produced by the external normalizer.

    Only ``issues`` is expected to change after parsing; the orchestrator appends
    validation errors to it for traceability.
    """

    version: str
    currency: str
    items: list[NormalizedItem] = field(default_factory=list)
    subtotal: Decimal | None = None
    tax: Decimal | None = None
    tip: Decimal | None = None
    total: Decimal | None = None
    confidence: float = 0.0
    issues: list[str] = field(default_factory=list)
    merchant: MerchantInfo = field(default_factory=MerchantInfo)
    datetime: str | None = None


class ParseEngine(str, enum.Enum):
    HEURISTICS = "Heuristics"
    EXTERNAL_NORMALIZER = "ExternalNormalizer"


class ReceiptStatus(str, enum.Enum):
    """Status values understood by the receipt record API."""

    PARSED = "Parsed"
    PARSED_NEEDS_REVIEW = "ParsedNeedsReview"
    FAILED_PARSE = "FailedParse"


@dataclass(frozen=True)
class ParseDecision:
    """Which engine produced the persisted result, and why."""

    engine_used: ParseEngine
    external_attempted: bool
    external_accepted: bool | None = None
    reject_reason: str | None = None


@dataclass(frozen=True)
class ObjectRef:
    """Location of an object in the object store."""

    container: str
    name: str

    def __str__(self) -> str:
        return f"{self.container}/{self.name}"


@dataclass(frozen=True)
class ParseJob:
    """One delivery of a receipt parse request."""

    receipt_id: UUID
    source: ObjectRef
    lock: ObjectRef

    @classmethod
    def create(cls, receipt_id: UUID, source: ObjectRef, lock_container: str) -> ParseJob:
        return cls(receipt_id=receipt_id, source=source, lock=ObjectRef(lock_container, f"{receipt_id}.lock"))
