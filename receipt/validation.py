"""Internal-consistency checks for externally normalized receipts."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from receiptwright.domain.receipt import NormalizedReceipt

from .money import MONEY_TOLERANCE, ZERO, round_money

SCHEMA_VERSION = "parsed-receipt-v1"
DEFAULT_MAX_DISCOUNT_RATIO = Decimal("0.60")


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    error: str
    items_sum: Decimal

    def __bool__(self) -> bool:
        return self.ok


def _fail(error: str, items_sum: Decimal = ZERO) -> ValidationResult:
    return ValidationResult(ok=False, error=error, items_sum=items_sum)


def validate_normalized_receipt(
    receipt: NormalizedReceipt,
    *,
    expected_version: str = SCHEMA_VERSION,
    max_discount_ratio: Decimal = DEFAULT_MAX_DISCOUNT_RATIO,
) -> ValidationResult:
    """
    Check structure and arithmetic of a normalized receipt.

    A printed subtotal below the item sum is accepted as a discount when the
    discount is at most ``max_discount_ratio`` of the item sum and the total
    still adds up from the subtotal.

    Args:
        receipt: Receipt produced by the external normalizer. Not modified.
        expected_version: Schema tag the receipt must carry.
        max_discount_ratio: Largest accepted discount as a share of the item sum.

    Returns:
        ValidationResult with an error code (empty on success) and the rounded item sum.
    """
    if receipt.version != expected_version:
        return _fail("bad_version")
    if not (receipt.currency or "").strip():
        return _fail("missing_currency")
    if not receipt.items:
        return _fail("no_items")

    items_sum = ZERO
    for item in receipt.items:
        if not (item.description or "").strip():
            return _fail("item_missing_description", items_sum)
        if item.quantity < 0:
            return _fail("qty_negative", items_sum)
        if item.unit_price < 0 or item.line_total < 0:
            return _fail("price_negative", items_sum)

        expected = round_money(item.quantity * item.unit_price)
        if abs(expected - item.line_total) > MONEY_TOLERANCE:
            return _fail(f"line_total_mismatch (qty*price={expected}, line={item.line_total})", items_sum)
        items_sum = round_money(items_sum + item.line_total)

    subtotal = receipt.subtotal
    tax = round_money(receipt.tax or ZERO)
    tip = round_money(receipt.tip or ZERO)
    total = receipt.total

    if total is not None:
        basis = round_money(subtotal if subtotal is not None else items_sum)
        if abs(round_money(basis + tax + tip) - total) > MONEY_TOLERANCE:
            return _fail(f"total_mismatch (basis={basis}, tax={tax}, tip={tip}, total={total})", items_sum)

    if subtotal is not None:
        delta = round_money(items_sum - subtotal)
        if abs(delta) <= MONEY_TOLERANCE:
            return ValidationResult(ok=True, error="", items_sum=items_sum)

        if subtotal < items_sum:
            discount_cap = round_money(items_sum * max_discount_ratio)
            total_adds_up = total is None or abs(round_money(subtotal + tax + tip) - total) <= MONEY_TOLERANCE
            if delta <= discount_cap and total_adds_up:
                return ValidationResult(ok=True, error="", items_sum=items_sum)

        return _fail(f"items_do_not_sum_to_subtotal (items={items_sum}, subtotal={subtotal})", items_sum)

    return ValidationResult(ok=True, error="", items_sum=items_sum)
