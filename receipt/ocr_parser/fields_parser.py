"""Totals-block extraction helpers (subtotal, tax, tip, total, cash, change)."""

from decimal import Decimal

from ..money import parse_money
from .common import TotalsField, _is_money_only, _read_trailing_amount, classify_totals_label


def _read_totals_line(lines: list[str], i: int) -> tuple[TotalsField, Decimal, int] | None:
    """
    Read a totals label and its amount starting at ``lines[i]``.

    The amount is taken from the end of the same line or, failing that, from
    a money-only line immediately below.

    Args:
        lines: Repaired OCR lines.
        i: Index of the candidate label line.

    Returns:
        ``(field, amount, consumed)`` where ``consumed`` is 1 or 2, or None when
        the line is not a totals label or no amount could be read.
    """
    field = classify_totals_label(lines[i])
    if field is None:
        return None

    inline = _read_trailing_amount(lines[i])
    if inline is not None:
        return field, inline, 1

    if i + 1 < len(lines) and _is_money_only(lines[i + 1]):
        below = parse_money(lines[i + 1])
        if below is not None:
            return field, below, 2
    return None


def _preview_subtotal(lines: list[str]) -> Decimal | None:
    """Find the first printed subtotal without consuming anything."""
    for i in range(len(lines)):
        found = _read_totals_line(lines, i)
        if found is not None and found[0] is TotalsField.SUBTOTAL:
            return found[1]
    return None
