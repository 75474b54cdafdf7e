"""Composable OCR receipt parser components."""

from .common import TotalsField, classify_totals_label
from .fields_parser import _preview_subtotal, _read_totals_line
from .items_text_parser import _fallback_items, _match_item
from .line_repair import _repair_lines

__all__ = [
    "TotalsField",
    "classify_totals_label",
    "_fallback_items",
    "_match_item",
    "_preview_subtotal",
    "_read_totals_line",
    "_repair_lines",
]
