"""Decide whether heuristic output can be trusted, and pick the result to persist."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from receiptwright.domain.receipt import (
    HeuristicReceipt,
    ItemCandidate,
    NormalizedReceipt,
    ParseDecision,
    ParseEngine,
)

from .money import MONEY_TOLERANCE, ZERO, round_money
from .validation import DEFAULT_MAX_DISCOUNT_RATIO, SCHEMA_VERSION, validate_normalized_receipt

MAX_UNIT_PRICE = Decimal("10000")


def is_heuristics_strong(receipt: HeuristicReceipt) -> tuple[bool, str]:
    """
    Judge whether the heuristic result can be used without external normalization.

    Returns:
        ``(strong, reason)``; ``reason`` names the failed check or the passing rule.
    """
    if not receipt.items:
        return False, "no_items"

    computed = ZERO
    for item in receipt.items:
        if item.quantity <= 0:
            return False, f"non_positive_quantity ({item.description})"
        if item.unit_price < 0 or item.unit_price > MAX_UNIT_PRICE:
            return False, f"unit_price_out_of_range ({item.description}: {item.unit_price})"
        computed = round_money(computed + item.unit_price * item.quantity)

    if receipt.subtotal is not None and abs(receipt.subtotal - computed) > MONEY_TOLERANCE:
        return False, f"subtotal_mismatch (items={computed}, subtotal={receipt.subtotal})"

    if receipt.total is not None and receipt.total >= 0:
        return True, "printed_total"

    basis = receipt.subtotal if receipt.subtotal is not None else computed
    if round_money(basis + (receipt.tax or ZERO) + (receipt.tip or ZERO)) > 0:
        return True, "computed_total"
    return False, "no_positive_total"


@dataclass(frozen=True)
class ChosenResult:
    """Items and totals that will be written to the receipt record."""

    items: tuple[ItemCandidate, ...]
    subtotal: Decimal | None
    tax: Decimal | None
    tip: Decimal | None
    total: Decimal | None
    decision: ParseDecision
    needs_review: bool

    @property
    def final_total(self) -> Decimal:
        """Printed total, or subtotal + tax + tip when none was given."""
        if self.total is not None:
            return round_money(self.total)
        return round_money((self.subtotal or ZERO) + (self.tax or ZERO) + (self.tip or ZERO))


def accept_heuristics(receipt: HeuristicReceipt) -> ChosenResult:
    """Strong heuristics: persist as-is, no external call."""
    return ChosenResult(
        items=receipt.items,
        subtotal=receipt.subtotal,
        tax=receipt.tax,
        tip=receipt.tip,
        total=receipt.total,
        decision=ParseDecision(engine_used=ParseEngine.HEURISTICS, external_attempted=False),
        needs_review=False,
    )


def fall_back_to_heuristics(receipt: HeuristicReceipt, reject_reason: str) -> ChosenResult:
    """External normalization failed or was rejected; keep the heuristic result under review."""
    return ChosenResult(
        items=receipt.items,
        subtotal=receipt.subtotal,
        tax=receipt.tax,
        tip=receipt.tip,
        total=receipt.total,
        decision=ParseDecision(
            engine_used=ParseEngine.HEURISTICS,
            external_attempted=True,
            external_accepted=False,
            reject_reason=reject_reason,
        ),
        needs_review=True,
    )


def reconcile_external(
    heuristic: HeuristicReceipt,
    normalized: NormalizedReceipt,
    *,
    expected_version: str = SCHEMA_VERSION,
    max_discount_ratio: Decimal = DEFAULT_MAX_DISCOUNT_RATIO,
) -> ChosenResult:
    """
    Use the normalized receipt when it validates, else fall back to heuristics.

    A validation error is appended to ``normalized.issues`` and recorded as the
    reject reason.
    """
    result = validate_normalized_receipt(
        normalized,
        expected_version=expected_version,
        max_discount_ratio=max_discount_ratio,
    )
    if not result.ok:
        normalized.issues.append(result.error)
        return fall_back_to_heuristics(heuristic, result.error)

    items = tuple(
        ItemCandidate(
            description=item.description.strip(),
            quantity=item.quantity,
            unit_price=round_money(item.unit_price),
            line_total=round_money(item.line_total),
        )
        for item in normalized.items
    )
    return ChosenResult(
        items=items,
        subtotal=normalized.subtotal if normalized.subtotal is not None else result.items_sum,
        tax=normalized.tax,
        tip=normalized.tip,
        total=normalized.total,
        decision=ParseDecision(
            engine_used=ParseEngine.EXTERNAL_NORMALIZER,
            external_attempted=True,
            external_accepted=True,
            reject_reason=None,
        ),
        needs_review=False,
    )
