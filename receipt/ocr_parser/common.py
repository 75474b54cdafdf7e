"""Line classification patterns shared by the OCR receipt parser passes."""

import enum
import re
from decimal import Decimal

from ..money import parse_money

# Amount with mandatory cents, e.g. "3.50", "1,234.56", "3,50".
_AMOUNT = r"(?:\d{1,3}(?:,\d{3})+\.\d{2}|\d{1,6}[.,]\d{2})"
# Item price: cents optional, single cent digit tolerated ("3.5").
_PRICE = r"\$?\s*(?:\d{1,3}(?:,\d{3})+\.\d{1,2}|\d{1,6}(?:[.,]\d{1,2})?)"
_QTY_MARK = r"[xX×]"

MONEY_ONLY = re.compile(r"^\s*\(?\s*-?\s*\$?\s*-?\s*" + _AMOUNT + r"\s*\)?\s*-?\s*$")
TRAILING_AMOUNT = re.compile(r"(\(?\s*-?\s*\$?\s*-?\s*" + _AMOUNT + r"\s*\)?-?)\s*$")
ENDS_WITH_PRICE = re.compile(r"\s" + _PRICE + r"\s*$")

# Item shapes, tried in this order before the totals block.
LEADING_QTY_THEN_UNIT = re.compile(
    r"^(?P<qty>\d{1,3})\s*" + _QTY_MARK + r"\s*(?P<desc>.+?)\s+(?P<unit>" + _PRICE + r")$"
)
UNIT_THEN_TOTAL = re.compile(r"^(?P<desc>.+?)\s+(?P<unit>" + _PRICE + r")\s+(?P<total>" + _PRICE + r")$")
UNIT_THEN_NO_TOTAL = re.compile(r"^(?P<desc>.+?)\s+(?P<unit>" + _PRICE + r")$")
QTY_TIMES_UNIT = re.compile(
    r"^(?P<desc>.+?)\s+(?P<qty>\d{1,3})\s*" + _QTY_MARK + r"\s*(?P<unit>" + _PRICE + r")$"
)
PRICE_AT_END = re.compile(r"^(?P<desc>.+?)\s+(?P<price>" + _PRICE + r")$")

QTY_ANYWHERE = re.compile(
    r"(?:(?P<q1>\d{1,3})\s*" + _QTY_MARK + r"(?![A-Za-z]))|(?:(?<![A-Za-z])" + _QTY_MARK + r"\s*(?P<q2>\d{1,3}))"
)
QTY_PREFIX = re.compile(r"^\s*\d{1,3}\s*" + _QTY_MARK + r"\s*")
QTY_SUFFIX = re.compile(r"\s+(?:\d{1,3}\s*" + _QTY_MARK + r"|" + _QTY_MARK + r"\s*\d{1,3})\s*$")

TOTALS_LABEL = re.compile(
    r"^\s*(?P<label>subtotal|sub\s*total|total\s*amount|total|amount\s*due|"
    r"sales\s*tax|tax|tip|gratuity|service|cash|change)\b",
    re.IGNORECASE,
)

DISCOUNT_WORDING = re.compile(
    r"\b(?:discount|adjustment|promo(?:tion)?|coupon|savings?|you\s+saved|markdown|rebate|voucher)\b",
    re.IGNORECASE,
)
NEGATIVE_MONEY = re.compile(
    r"\(\s*\$?\s*\d{1,6}[.,]\d{2}\s*\)"
    r"|(?<![\w.,])-\s*\$?\s*\d{1,6}[.,]\d{1,2}"
    r"|\$\s*-\s*\d"
    r"|\d[.,]\d{2}\s*-\s*$"
)

_MULTI_SPACE = re.compile(r"\s{2,}")
_HAS_LETTER = re.compile(r"[A-Za-z]")

# Short all-caps text is usually a header or store name rather than an item.
MAX_CAPS_HEADER_LENGTH = 24


class TotalsField(enum.Enum):
    SUBTOTAL = "subtotal"
    TAX = "tax"
    TIP = "tip"
    TOTAL = "total"
    CASH = "cash"
    CHANGE = "change"


_SUBTOTAL_LABEL = re.compile(r"^\s*sub\s*total", re.IGNORECASE)
_TAX_LABEL = re.compile(r"\bsales\s*tax\b|\btax\b", re.IGNORECASE)
_TIP_LABEL = re.compile(r"^\s*(?:tip|gratuity|service)\b", re.IGNORECASE)
_TOTAL_LABEL = re.compile(r"^\s*(?:total\s*amount|total|amount\s*due)\b", re.IGNORECASE)
_CASH_LABEL = re.compile(r"^\s*cash\b", re.IGNORECASE)
_CHANGE_LABEL = re.compile(r"^\s*change\b", re.IGNORECASE)


def classify_totals_label(line: str) -> TotalsField | None:
    """Map a totals-block line to the field it sets, or None if it is not a totals label."""
    if not TOTALS_LABEL.match(line):
        return None
    if _SUBTOTAL_LABEL.match(line):
        return TotalsField.SUBTOTAL
    if _TAX_LABEL.search(line):
        return TotalsField.TAX
    if _TIP_LABEL.match(line):
        return TotalsField.TIP
    if _TOTAL_LABEL.match(line):
        return TotalsField.TOTAL
    if _CASH_LABEL.match(line):
        return TotalsField.CASH
    if _CHANGE_LABEL.match(line):
        return TotalsField.CHANGE
    return None


def _clean(text: str) -> str:
    return _MULTI_SPACE.sub(" ", text).strip()


def _is_totals_label(line: str) -> bool:
    return TOTALS_LABEL.match(line) is not None


def _is_money_only(line: str) -> bool:
    return MONEY_ONLY.match(line) is not None


def _has_negative_money(line: str) -> bool:
    return NEGATIVE_MONEY.search(line) is not None


def _is_discount_line(line: str) -> bool:
    """Discount, promo and adjustment lines are metadata, never items."""
    return DISCOUNT_WORDING.search(line) is not None or _has_negative_money(line)


def _has_qty_token(line: str) -> bool:
    return QTY_ANYWHERE.search(line) is not None


def _ends_with_price(line: str) -> bool:
    return ENDS_WITH_PRICE.search(line) is not None


def _looks_like_item_name(line: str) -> bool:
    """Return True for text with letters that is not a totals label or a short caps header."""
    text = line.strip()
    if not text or _is_totals_label(text):
        return False
    if not _HAS_LETTER.search(text):
        return False
    letters = [c for c in text if c.isalpha()]
    all_caps = all(c.isupper() for c in letters)
    return not (all_caps and len(text) <= MAX_CAPS_HEADER_LENGTH)


def _extract_qty_from_desc(text: str) -> int | None:
    match = QTY_ANYWHERE.search(text)
    if match is None:
        return None
    raw = match.group("q1") or match.group("q2")
    return int(raw) if raw else None


def _strip_qty_tokens(text: str) -> str:
    text = QTY_PREFIX.sub("", text)
    text = QTY_SUFFIX.sub("", text)
    return _clean(text)


def _read_trailing_amount(line: str) -> Decimal | None:
    match = TRAILING_AMOUNT.search(line)
    if match is None:
        return None
    return parse_money(match.group(1))
