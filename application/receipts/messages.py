"""Inbound queue message parsing."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from receiptwright.domain.receipt import ObjectRef, ParseJob
from receiptwright.runtime.errors import MalformedMessageError

MESSAGE_VERSION = 1


@dataclass(frozen=True)
class ReceiptParseMessage:
    """``{"receiptId": ..., "container": ..., "blob": ..., "v": 1}``"""

    receipt_id: UUID
    container: str
    blob: str
    version: int = MESSAGE_VERSION

    def to_job(self, lock_container: str) -> ParseJob:
        return ParseJob.create(self.receipt_id, ObjectRef(self.container, self.blob), lock_container)


def _field(data: dict[str, Any], name: str) -> Any:
    for key, value in data.items():
        if isinstance(key, str) and key.lower() == name.lower():
            return value
    return None


def parse_receipt_parse_message(raw: str | bytes) -> ReceiptParseMessage:
    """
    Decode and check a receipt-parse queue message.

    Raises:
        MalformedMessageError: The payload is not JSON, a field is missing or
            empty, the receipt id is not a UUID, or the version is unsupported.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedMessageError(f"Message is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedMessageError("Message must be a JSON object")

    raw_id = _field(data, "receiptId")
    try:
        receipt_id = UUID(str(raw_id))
    except ValueError as exc:
        raise MalformedMessageError(f"Bad receiptId: {raw_id!r}") from exc

    container = _field(data, "container")
    blob = _field(data, "blob")
    for name, value in (("container", container), ("blob", blob)):
        if not isinstance(value, str) or not value.strip():
            raise MalformedMessageError(f"Message field {name!r} is missing or empty")

    version = _field(data, "v")
    if version is None:
        version = MESSAGE_VERSION
    if version != MESSAGE_VERSION:
        raise MalformedMessageError(f"Unsupported message version: {version!r}")

    return ReceiptParseMessage(receipt_id=receipt_id, container=container.strip(), blob=blob.strip())
