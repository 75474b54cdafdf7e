"""Text-line based receipt item extraction.

Each matcher looks at the line under the cursor (and possibly the one after
it) and returns ``(item, consumed)``. ``item`` is None when the shape does not
apply, in which case ``consumed`` is 0.
"""

from decimal import ROUND_HALF_UP, Decimal

from receiptwright.domain.receipt import ItemCandidate

from ..money import parse_money, round_money
from .common import (
    LEADING_QTY_THEN_UNIT,
    PRICE_AT_END,
    QTY_PREFIX,
    QTY_TIMES_UNIT,
    UNIT_THEN_NO_TOTAL,
    UNIT_THEN_TOTAL,
    _clean,
    _extract_qty_from_desc,
    _has_negative_money,
    _is_discount_line,
    _is_money_only,
    _is_totals_label,
    _strip_qty_tokens,
)

MAX_FALLBACK_ITEMS = 40
MIN_FALLBACK_DESCRIPTION = 2

# Keeps an exact tie on the unit-price reading.
_TIE_EPSILON = Decimal("0.0001")

ItemMatch = tuple[ItemCandidate | None, int]
_NO_MATCH: ItemMatch = (None, 0)


def _make_item(description: str, quantity: int, unit: Decimal, total: Decimal) -> ItemCandidate | None:
    """Build a candidate, rejecting empty descriptions and negative amounts."""
    if not description or quantity <= 0:
        return None
    if unit < 0 or total < 0:
        return None
    return ItemCandidate(
        description=description,
        quantity=Decimal(quantity),
        unit_price=unit,
        line_total=total,
    )


def _guess_qty(unit: Decimal, total: Decimal) -> int:
    """Infer a whole quantity from unit price and line total, minimum 1."""
    if unit <= 0:
        return 1
    ratio = (total / unit).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(int(ratio), 1)


def _match_leading_qty(line: str) -> ItemCandidate | None:
    match = LEADING_QTY_THEN_UNIT.match(line)
    if match is None:
        return None
    unit = parse_money(match.group("unit"))
    if unit is None:
        return None
    qty = int(match.group("qty"))
    return _make_item(_clean(match.group("desc")), qty, unit, round_money(unit * qty))


def _match_unit_then_total(line: str) -> ItemCandidate | None:
    match = UNIT_THEN_TOTAL.match(line)
    if match is None:
        return None
    unit = parse_money(match.group("unit"))
    total = parse_money(match.group("total"))
    if unit is None or total is None:
        return None
    return _make_item(_clean(match.group("desc")), _guess_qty(unit, total), unit, total)


def _match_two_line_unit_total(lines: list[str], i: int) -> ItemCandidate | None:
    match = UNIT_THEN_NO_TOTAL.match(lines[i])
    if match is None or i + 1 >= len(lines):
        return None
    below = lines[i + 1]
    if not _is_money_only(below) or _has_negative_money(below):
        return None
    unit = parse_money(match.group("unit"))
    total = parse_money(below)
    if unit is None or total is None:
        return None
    return _make_item(_clean(match.group("desc")), _guess_qty(unit, total), unit, total)


def _match_qty_times_unit(line: str) -> ItemCandidate | None:
    match = QTY_TIMES_UNIT.match(line)
    if match is None:
        return None
    unit = parse_money(match.group("unit"))
    if unit is None:
        return None
    qty = int(match.group("qty"))
    return _make_item(_clean(match.group("desc")), qty, unit, round_money(unit * qty))


def _match_price_at_end(line: str) -> ItemCandidate | None:
    match = PRICE_AT_END.match(line)
    if match is None:
        return None
    price = parse_money(match.group("price"))
    if price is None:
        return None
    description = _clean(QTY_PREFIX.sub("", match.group("desc")))
    return _make_item(description, 1, price, price)


def _match_bare_description(
    lines: list[str],
    i: int,
    running_sum: Decimal,
    preview_subtotal: Decimal | None,
) -> ItemCandidate | None:
    """
    Pair a bare description with the money-only line below it.

    With a quantity in the description the amount may be the unit price or
    the line total. The reading that keeps the running item sum closer to the
    previewed subtotal wins; ties and a missing subtotal keep the unit-price
    reading. Quantity 1 only consults the subtotal right above the totals block.
    """
    line = lines[i]
    if i + 1 >= len(lines) or _is_totals_label(line):
        return None
    below = lines[i + 1]
    if not _is_money_only(below) or _has_negative_money(below):
        return None
    money = parse_money(below)
    if money is None:
        return None
    description = _strip_qty_tokens(line)
    if not description:
        return None

    qty = _extract_qty_from_desc(line) or 1
    unit_a, total_a = money, round_money(money * qty)
    unit_b, total_b = round_money(money / qty), money

    near_totals = i + 2 < len(lines) and _is_totals_label(lines[i + 2])
    choose_line_total = False
    if preview_subtotal is not None and (qty > 1 or near_totals):
        gap_a = abs(round_money(running_sum + total_a) - preview_subtotal)
        gap_b = abs(round_money(running_sum + total_b) - preview_subtotal)
        choose_line_total = gap_b + _TIE_EPSILON < gap_a

    if choose_line_total:
        return _make_item(description, qty, unit_b, total_b)
    return _make_item(description, qty, unit_a, total_a)


def _match_item(
    lines: list[str],
    i: int,
    running_sum: Decimal,
    preview_subtotal: Decimal | None,
) -> ItemMatch:
    """Try every item shape at ``lines[i]`` in priority order; first match wins."""
    line = lines[i]

    for single_line in (_match_leading_qty, _match_unit_then_total):
        item = single_line(line)
        if item is not None:
            return item, 1

    item = _match_two_line_unit_total(lines, i)
    if item is not None:
        return item, 2

    for single_line in (_match_qty_times_unit, _match_price_at_end):
        item = single_line(line)
        if item is not None:
            return item, 1

    item = _match_bare_description(lines, i, running_sum, preview_subtotal)
    if item is not None:
        return item, 2

    return _NO_MATCH


def _fallback_items(lines: list[str]) -> list[ItemCandidate]:
    """Last-resort sweep for ``description price`` lines anywhere on the receipt."""
    items: list[ItemCandidate] = []
    seen: set[tuple[str, Decimal]] = set()

    for line in lines:
        if _is_totals_label(line) or _is_discount_line(line):
            continue
        item = _match_price_at_end(line)
        if item is None or len(item.description) < MIN_FALLBACK_DESCRIPTION:
            continue
        key = (item.description.lower(), item.total)
        if key in seen:
            continue
        seen.add(key)
        items.append(item)
        if len(items) >= MAX_FALLBACK_ITEMS:
            break

    return items
