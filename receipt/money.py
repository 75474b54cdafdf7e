"""Money token parsing and 2-decimal rounding."""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# Two amounts closer than this are treated as equal.
MONEY_TOLERANCE = Decimal("0.02")

_MAX_FRACTION_DIGITS = 4

_NUMERIC_RUN = re.compile(r"\d[\d,.]*")
_PAREN_NEGATIVE = re.compile(r"\(\s*[^()\d]*\d[\d,.]*\s*\)")
_TRAILING_MINUS = re.compile(r"\d\s*-\s*\)?\s*$")
_LEADING_MINUS = re.compile(r"^[^\d]*-")


def round_money(value: Decimal) -> Decimal:
    """Round to cents, halves away from zero."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def money_equal(a: Decimal, b: Decimal, tolerance: Decimal = MONEY_TOLERANCE) -> bool:
    return abs(a - b) <= tolerance


def _is_negative(token: str) -> bool:
    if _PAREN_NEGATIVE.search(token):
        return True
    if _TRAILING_MINUS.search(token):
        return True
    return _LEADING_MINUS.search(token) is not None


def _normalize_separators(run: str) -> str | None:
    run = run.rstrip(",.")
    if "," in run and "." in run:
        normalized = run.replace(",", "")
    elif "," in run:
        # A lone comma is a decimal point; several commas are thousands separators.
        normalized = run.replace(",", ".") if run.count(",") == 1 else run.replace(",", "")
    else:
        normalized = run

    if normalized.count(".") > 1:
        return None
    if "." in normalized and len(normalized.split(".", 1)[1]) > _MAX_FRACTION_DIGITS:
        return None
    return normalized


def parse_money(token: str) -> Decimal | None:
    """
    Parse a money token such as ``$1,234.56``, ``(12.34)`` or ``12,50-``.

    Negatives are recognized, in priority order, from parentheses, a trailing
    minus, then a leading minus.

    Args:
        token: Text containing a single amount, with optional currency symbol.

    Returns:
        Signed amount rounded to cents, or None when the token holds no usable number.
    """
    if not token:
        return None
    text = token.strip()
    match = _NUMERIC_RUN.search(text)
    if match is None:
        return None

    normalized = _normalize_separators(match.group(0))
    if normalized is None:
        return None
    try:
        value = Decimal(normalized)
    except InvalidOperation:
        return None

    amount = round_money(value)
    if amount and _is_negative(text):
        amount = -amount
    return amount


def format_money(amount: Decimal, symbol: str = "") -> str:
    """Render an amount as ``-$1,234.56`` style text that :func:`parse_money` reads back."""
    value = round_money(amount)
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"
