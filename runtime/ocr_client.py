"""OCR service clients."""

from __future__ import annotations

import time
from typing import Any, BinaryIO, Protocol

import httpx

from receiptwright.receipt.ocr_helpers import detect_image_media_type
from receiptwright.runtime.errors import OCRServiceError
from receiptwright.runtime.logging import get_logger

logger = get_logger(__name__)

OCR_SPACE_ENDPOINT = "https://api.ocr.space/parse/image"
MAX_UPLOAD_BYTES = 25 * 1024 * 1024

_FILENAMES = {
    "image/jpeg": "receipt.jpg",
    "image/png": "receipt.png",
    "image/gif": "receipt.gif",
    "image/bmp": "receipt.bmp",
    "image/tiff": "receipt.tif",
    "image/webp": "receipt.webp",
}


class OcrClient(Protocol):
    async def read(self, image: BinaryIO) -> str: ...


class OcrPageError(OCRServiceError):
    """The provider could not parse the page with the selected engine."""


class OcrSpaceClient:
    """Client for the OCR.Space ``parse/image`` API.

    Engine 2 is tried first; a page-level failure falls back once to engine 1.
    Retrying transient HTTP failures is left to the caller.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        endpoint: str = OCR_SPACE_ENDPOINT,
        language: str = "eng",
    ) -> None:
        if not api_key:
            raise ValueError("OCR API key is required")
        self.client = client
        self.api_key = api_key
        self.endpoint = endpoint
        self.language = language

    async def read(self, image: BinaryIO) -> str:
        image_bytes = image.read()
        if len(image_bytes) > MAX_UPLOAD_BYTES:
            raise OCRServiceError(f"OCR upload is {len(image_bytes)} bytes; limit is {MAX_UPLOAD_BYTES}")
        logger.info("OCR upload buffered: %d bytes", len(image_bytes))

        try:
            return await self._post(image_bytes, engine=2)
        except OcrPageError as exc:
            logger.warning("OCR engine 2 page error (%s); falling back to engine 1", exc)
            return await self._post(image_bytes, engine=1)

    async def _post(self, image_bytes: bytes, engine: int) -> str:
        media_type = detect_image_media_type(image_bytes)
        filename = _FILENAMES.get(media_type, "receipt.bin")
        data = {
            "apikey": self.api_key,
            "language": self.language,
            "OCREngine": str(engine),
            "scale": "true",
            "isTable": "true",
            "detectOrientation": "true",
        }

        start_time = time.monotonic()
        response = await self.client.post(
            self.endpoint,
            data=data,
            files={"file": (filename, image_bytes, media_type)},
        )
        logger.info("OCR service returned %s in %.2f seconds", response.status_code, time.monotonic() - start_time)
        response.raise_for_status()

        try:
            payload = response.json()
        except ValueError as exc:
            raise OCRServiceError("OCR service returned unreadable JSON") from exc
        return _parsed_text(payload)


def _error_message(payload: dict[str, Any]) -> str:
    message = payload.get("ErrorMessage")
    if isinstance(message, list):
        message = "; ".join(str(m) for m in message)
    details = payload.get("ErrorDetails")
    parts = [str(p) for p in (message, details) if p]
    return " | ".join(parts) or "unknown OCR error"


def _parsed_text(payload: Any) -> str:
    if not isinstance(payload, dict):
        raise OCRServiceError("OCR service returned unexpected JSON")

    results = payload.get("ParsedResults") or []
    if payload.get("IsErroredOnProcessing"):
        message = _error_message(payload)
        if results and any(r.get("FileParseExitCode") not in (1, None) for r in results):
            raise OcrPageError(message)
        raise OCRServiceError(message)
    if not results:
        raise OCRServiceError("OCR service returned no ParsedResults")

    pages: list[str] = []
    for result in results:
        if result.get("FileParseExitCode", 1) != 1:
            raise OcrPageError(result.get("ErrorMessage") or result.get("ErrorDetails") or "page error")
        pages.append(str(result.get("ParsedText") or ""))

    text = "\n".join(pages).replace("\r\n", "\n").replace("\r", "\n")
    return text.strip()


class NoopOcrClient:
    """OCR disabled: every image reads as empty text."""

    async def read(self, image: BinaryIO) -> str:
        logger.info("OCR disabled; returning empty text")
        return ""
