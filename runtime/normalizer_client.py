"""External receipt normalizer backed by a chat-completions endpoint."""

from __future__ import annotations

import json
import time
from typing import Any, Protocol

import httpx

from receiptwright.receipt.validation import SCHEMA_VERSION
from receiptwright.runtime.logging import get_logger

logger = get_logger(__name__)

RECEIPT_SCHEMA = {
    "version": SCHEMA_VERSION,
    "merchant": {"name": None, "address": None, "phone": None},
    "datetime": None,
    "currency": "USD",
    "items": [{"description": "string", "quantity": 1, "unitPrice": 0.00, "lineTotal": 0.00, "notes": None}],
    "subTotal": None,
    "tax": None,
    "tip": None,
    "total": None,
    "confidence": 0.0,
    "issues": [],
}

SYSTEM_PROMPT = """You are a precise receipt normalizer. Output valid JSON only.
Rules:
- Use decimals for money.
- If a value is unknown, use null.
- Parse patterns like "2x Bagel" => quantity: 2, description: "Bagel".
- Fix obvious OCR artifacts without inventing items or amounts.
- Currency must be a 3-letter code (default USD if unspecified)."""


class ReceiptNormalizer(Protocol):
    async def normalize(self, raw_text: str, hints: dict[str, Any] | None = None) -> str: ...


def build_user_prompt(raw_text: str, hints: dict[str, Any] | None) -> str:
    hints_json = json.dumps(hints) if hints is not None else "null"
    schema_json = json.dumps(RECEIPT_SCHEMA, indent=2)
    return (
        "RAW RECEIPT TEXT:\n---\n"
        f"{raw_text}\n---\n\n"
        "HINTS (may be null):\n"
        f"{hints_json}\n\n"
        "REQUIRED JSON SCHEMA:\n"
        f"{schema_json}\n\n"
        "Return ONLY one JSON object matching the schema."
    )


class ChatCompletionsNormalizer:
    """Azure-style deployment endpoint running in JSON mode."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        endpoint: str,
        deployment: str,
        api_key: str,
        api_version: str = "2024-06-01",
    ) -> None:
        if not endpoint or not deployment or not api_key:
            raise ValueError("Normalizer endpoint, deployment and API key are required")
        self.client = client
        self.url = f"{endpoint.rstrip('/')}/openai/deployments/{deployment}/chat/completions"
        self.api_key = api_key
        self.api_version = api_version

    async def normalize(self, raw_text: str, hints: dict[str, Any] | None = None) -> str:
        body = {
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(raw_text, hints)},
            ],
            "temperature": 0.1,
            "response_format": {"type": "json_object"},
        }

        start_time = time.monotonic()
        response = await self.client.post(
            self.url,
            params={"api-version": self.api_version},
            headers={"api-key": self.api_key},
            json=body,
        )
        logger.info("Normalizer returned %s in %.2f seconds", response.status_code, time.monotonic() - start_time)
        response.raise_for_status()

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ValueError("Normalizer response has no message content") from exc
        if not content or not str(content).strip():
            raise ValueError("Normalizer returned empty content")
        return str(content).strip()
