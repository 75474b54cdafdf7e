"""Reading normalizer output and preparing hints for it."""

from __future__ import annotations

import json
from decimal import Decimal, InvalidOperation
from typing import Any

from receiptwright.domain.receipt import HeuristicReceipt, MerchantInfo, NormalizedItem, NormalizedReceipt

from .money import round_money


def _lookup(data: dict[str, Any], *keys: str) -> Any:
    """Case-insensitive key lookup over alternative spellings."""
    lowered = {str(k).lower(): v for k, v in data.items()}
    for key in keys:
        if key.lower() in lowered:
            return lowered[key.lower()]
    return None


def _decimal(value: Any, field: str) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a number")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field} must be a number, got {value!r}") from exc


def _text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _parse_item(raw: Any, index: int) -> NormalizedItem:
    if not isinstance(raw, dict):
        raise ValueError(f"items[{index}] must be an object")
    quantity = _decimal(_lookup(raw, "quantity", "qty"), f"items[{index}].quantity")
    unit_price = _decimal(_lookup(raw, "unitPrice", "unit_price"), f"items[{index}].unitPrice")
    line_total = _decimal(_lookup(raw, "lineTotal", "line_total"), f"items[{index}].lineTotal")
    if quantity is None:
        quantity = Decimal("1")
    if unit_price is None:
        if line_total is None:
            raise ValueError(f"items[{index}] has neither unitPrice nor lineTotal")
        unit_price = round_money(line_total / quantity) if quantity else line_total
    if line_total is None:
        line_total = round_money(quantity * unit_price)
    return NormalizedItem(
        description=_text(_lookup(raw, "description")) or "",
        quantity=quantity,
        unit_price=unit_price,
        line_total=line_total,
        notes=_text(_lookup(raw, "notes")),
    )


def parse_normalized_receipt(text: str) -> NormalizedReceipt:
    """
    Parse the normalizer's JSON reply into a NormalizedReceipt.

    Numbers are read as Decimal. Structural problems raise ValueError; the
    arithmetic is left to the validator.
    """
    try:
        data = json.loads(text, parse_float=Decimal)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Normalizer reply is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("Normalizer reply must be a JSON object")

    raw_items = _lookup(data, "items")
    if not isinstance(raw_items, list):
        raise ValueError("Normalizer reply has no items array")

    merchant_raw = _lookup(data, "merchant")
    merchant = MerchantInfo()
    if isinstance(merchant_raw, dict):
        merchant = MerchantInfo(
            name=_text(_lookup(merchant_raw, "name")),
            address=_text(_lookup(merchant_raw, "address")),
            phone=_text(_lookup(merchant_raw, "phone")),
        )

    issues_raw = _lookup(data, "issues")
    confidence = _lookup(data, "confidence")

    return NormalizedReceipt(
        version=_text(_lookup(data, "version")) or "",
        currency=_text(_lookup(data, "currency")) or "",
        items=[_parse_item(raw, index) for index, raw in enumerate(raw_items)],
        subtotal=_decimal(_lookup(data, "subTotal", "subtotal"), "subTotal"),
        tax=_decimal(_lookup(data, "tax"), "tax"),
        tip=_decimal(_lookup(data, "tip"), "tip"),
        total=_decimal(_lookup(data, "total"), "total"),
        confidence=float(confidence) if confidence is not None else 0.0,
        issues=[str(issue) for issue in issues_raw] if isinstance(issues_raw, list) else [],
        merchant=merchant,
        datetime=_text(_lookup(data, "datetime")),
    )


def _number(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def build_normalizer_hints(receipt: HeuristicReceipt) -> dict[str, Any]:
    """Heuristic values passed to the normalizer as non-binding hints."""
    return {
        "items": [
            {
                "description": item.description,
                "qty": _number(item.quantity),
                "unitPrice": _number(item.unit_price),
                "totalPrice": _number(item.line_total),
            }
            for item in receipt.items
        ],
        "subtotal": _number(receipt.subtotal),
        "tax": _number(receipt.tax),
        "tip": _number(receipt.tip),
        "total": _number(receipt.total),
    }
