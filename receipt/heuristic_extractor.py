"""Rule-based receipt extraction from raw OCR text."""

from __future__ import annotations

from decimal import Decimal

from receiptwright.domain.receipt import HeuristicReceipt, ItemCandidate

from .money import ZERO, round_money
from .ocr_parser import (
    TotalsField,
    _fallback_items,
    _match_item,
    _preview_subtotal,
    _read_totals_line,
    _repair_lines,
)
from .ocr_parser.common import _is_discount_line, _is_totals_label


def split_lines(raw_text: str | None) -> list[str]:
    """Split OCR text into trimmed, non-empty lines."""
    if not raw_text:
        return []
    return [line.strip() for line in raw_text.replace("\r", "").split("\n") if line.strip()]


def extract_receipt(raw_text: str | None) -> HeuristicReceipt:
    """
    Extract items and totals from raw OCR text.

    Works in two passes: line repair, then a sequential scan that reads totals
    labels everywhere and item shapes until the first totals label.

    Args:
        raw_text: Newline-separated OCR output.

    Returns:
        An immutable HeuristicReceipt. Empty or unreadable text yields no items
        and no totals.
    """
    lines = _repair_lines(split_lines(raw_text))
    if not lines:
        return HeuristicReceipt()

    preview_subtotal = _preview_subtotal(lines)
    totals: dict[TotalsField, Decimal] = {}
    items: list[ItemCandidate] = []
    running_sum = ZERO
    in_totals = False

    i = 0
    while i < len(lines):
        line = lines[i]
        if _is_totals_label(line):
            in_totals = True
            found = _read_totals_line(lines, i)
            if found is not None:
                field, amount, consumed = found
                # Cash and change are kept here but never read back.
                totals.setdefault(field, amount)
                i += consumed
                continue
            i += 1
            continue

        if in_totals or _is_discount_line(line):
            i += 1
            continue

        item, consumed = _match_item(lines, i, running_sum, preview_subtotal)
        if item is None:
            i += 1
            continue
        items.append(item)
        running_sum = round_money(running_sum + item.total)
        i += consumed

    if not items:
        items = _fallback_items(lines)

    subtotal = totals.get(TotalsField.SUBTOTAL)
    tax = totals.get(TotalsField.TAX)
    tip = totals.get(TotalsField.TIP)
    total = totals.get(TotalsField.TOTAL)

    if items:
        if subtotal is None:
            subtotal = ZERO
            for item in items:
                subtotal = round_money(subtotal + item.total)
        if total is None:
            total = round_money(subtotal + (tax or ZERO) + (tip or ZERO))

    return HeuristicReceipt(
        items=tuple(items),
        subtotal=subtotal,
        tax=tax,
        tip=tip,
        total=total,
    )
