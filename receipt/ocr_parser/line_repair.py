"""Pass 0: text-level repairs applied before any line is classified."""

from .common import (
    UNIT_THEN_NO_TOTAL,
    UNIT_THEN_TOTAL,
    _ends_with_price,
    _has_negative_money,
    _has_qty_token,
    _is_money_only,
    _is_totals_label,
    _looks_like_item_name,
    _read_trailing_amount,
)


def _fix_interleaved_triples(lines: list[str]) -> list[str]:
    """
    Undo a unit price printed between two item names.

    ``Water`` / ``Muffin x2 $1.25`` / ``$2.00`` becomes
    ``Water $1.25`` / ``Muffin x2`` / ``$2.00``.

    Args:
        lines: Trimmed, non-empty OCR lines.

    Returns:
        A new list; the input is not modified.
    """
    repaired = list(lines)
    i = 0
    while i + 2 < len(repaired):
        first, second, third = repaired[i], repaired[i + 1], repaired[i + 2]
        if _is_totals_label(first) or _is_totals_label(second):
            i += 1
            continue

        match = UNIT_THEN_NO_TOTAL.match(second)
        first_has_price = _read_trailing_amount(first) is not None or _ends_with_price(first)
        if (
            match is not None
            and not first_has_price
            and UNIT_THEN_TOTAL.match(second) is None
            and _is_money_only(third)
            and _looks_like_item_name(first)
        ):
            repaired[i] = f"{first} {match.group('unit').strip()}"
            repaired[i + 1] = match.group("desc").strip()
            # Skip the line just rewritten so it is not treated as the head of a new triple.
            i += 2
            continue
        i += 1
    return repaired


def _merge_money_only_lines(lines: list[str]) -> list[str]:
    """Attach a lone amount to the item name printed on the line above it."""
    merged: list[str] = []
    in_totals = False

    for line in lines:
        if _is_totals_label(line):
            in_totals = True

        if not in_totals and merged and _is_money_only(line) and not _has_negative_money(line):
            prev = merged[-1]
            if (
                not _has_qty_token(prev)
                and not _is_totals_label(prev)
                and not _ends_with_price(prev)
                and _looks_like_item_name(prev)
            ):
                merged[-1] = f"{prev} {line}"
                continue

        merged.append(line)

    return merged


def _repair_lines(lines: list[str]) -> list[str]:
    return _merge_money_only_lines(_fix_interleaved_triples(lines))
