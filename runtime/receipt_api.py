"""HTTP client for the receipt record API."""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID

import httpx

from receiptwright.domain.receipt import ItemCandidate, ParseDecision, ReceiptStatus
from receiptwright.runtime.logging import get_logger

logger = get_logger(__name__)

_MAX_LOGGED_BODY = 512


class ReceiptApi(Protocol):
    async def patch_raw_text(self, receipt_id: UUID, text: str) -> None: ...

    async def patch_totals(
        self,
        receipt_id: UUID,
        subtotal: Decimal | None,
        tax: Decimal | None,
        tip: Decimal | None,
        total: Decimal,
    ) -> None: ...

    async def patch_status(self, receipt_id: UUID, status: ReceiptStatus) -> None: ...

    async def patch_parse_meta(self, receipt_id: UUID, decision: ParseDecision) -> None: ...

    async def post_item(self, receipt_id: UUID, item: ItemCandidate, position: int) -> None: ...

    async def replace_items(self, receipt_id: UUID, items: Sequence[ItemCandidate]) -> None: ...

    async def post_parse_error(self, receipt_id: UUID, note: str) -> None: ...


def _number(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def item_payload(item: ItemCandidate, position: int) -> dict[str, Any]:
    """Body for one receipt line; ``position`` is 1-based."""
    return {
        "label": item.description,
        "qty": _number(item.quantity),
        "unitPrice": _number(item.unit_price),
        "lineTotal": _number(item.total),
        "position": position,
    }


def parse_meta_payload(decision: ParseDecision) -> dict[str, Any]:
    return {
        "engineUsed": decision.engine_used.value,
        "externalAttempted": decision.external_attempted,
        "externalAccepted": decision.external_accepted,
        "rejectReason": decision.reject_reason,
    }


def _truncate(text: str, limit: int = _MAX_LOGGED_BODY) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class ReceiptApiClient:
    """Thin wrapper over the record API.

    Every call raises ``httpx.HTTPStatusError`` on a non-2xx response except
    :meth:`post_parse_error`, which only logs. Retrying is left to the caller.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    async def _send(self, method: str, path: str, body: Any) -> httpx.Response:
        response = await self.client.request(method, path, json=body)
        if response.is_error:
            logger.warning("%s %s failed %s: %s", method, path, response.status_code, _truncate(response.text))
        response.raise_for_status()
        return response

    async def patch_raw_text(self, receipt_id: UUID, text: str) -> None:
        await self._send("PATCH", f"/api/receipts/{receipt_id}/rawtext", {"rawText": text})

    async def patch_totals(
        self,
        receipt_id: UUID,
        subtotal: Decimal | None,
        tax: Decimal | None,
        tip: Decimal | None,
        total: Decimal,
    ) -> None:
        body = {
            "subTotal": _number(subtotal),
            "tax": _number(tax),
            "tip": _number(tip),
            "total": _number(total),
        }
        await self._send("PATCH", f"/api/receipts/{receipt_id}/totals", body)

    async def patch_status(self, receipt_id: UUID, status: ReceiptStatus) -> None:
        await self._send("PATCH", f"/api/receipts/{receipt_id}/status", {"status": status.value})

    async def patch_parse_meta(self, receipt_id: UUID, decision: ParseDecision) -> None:
        await self._send("PATCH", f"/api/receipts/{receipt_id}/parse-meta", parse_meta_payload(decision))

    async def post_item(self, receipt_id: UUID, item: ItemCandidate, position: int) -> None:
        """Create one line item. Not idempotent: callers must not retry it."""
        await self._send("POST", f"/api/receipts/{receipt_id}/items", item_payload(item, position))

    async def replace_items(self, receipt_id: UUID, items: Sequence[ItemCandidate]) -> None:
        """Replace every line item in one idempotent call."""
        body = {"items": [item_payload(item, position) for position, item in enumerate(items, start=1)]}
        await self._send("PUT", f"/api/receipts/{receipt_id}/items", body)

    async def post_parse_error(self, receipt_id: UUID, note: str) -> None:
        """Record a terminal parse failure. Never raises for HTTP errors."""
        path = f"/api/receipts/{receipt_id}/parse-error"
        try:
            response = await self.client.post(path, json={"note": note})
        except httpx.HTTPError as exc:
            logger.error("Failed to mark receipt %s as FailedParse: %s", receipt_id, exc)
            return

        if response.is_success:
            return
        if response.status_code == 404:
            logger.info("Receipt %s not found when marking FailedParse", receipt_id)
            return
        logger.error(
            "Failed to mark receipt %s as FailedParse. Status=%s Body=%s",
            receipt_id,
            response.status_code,
            _truncate(response.text),
        )
