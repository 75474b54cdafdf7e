"""Build parse-job collaborators from settings."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import httpx
from fastapi import FastAPI

from receiptwright.runtime.image_preprocessor import PillowImagePreprocessor
from receiptwright.runtime.logging import get_logger
from receiptwright.runtime.normalizer_client import ChatCompletionsNormalizer, ReceiptNormalizer
from receiptwright.runtime.object_store import LocalObjectStore
from receiptwright.runtime.ocr_client import NoopOcrClient, OcrClient, OcrSpaceClient
from receiptwright.runtime.receipt_api import ReceiptApiClient, parse_meta_payload
from receiptwright.runtime.receipt_server import create_app
from receiptwright.runtime.settings import Settings

from .messages import parse_receipt_parse_message
from .parse_job import ReceiptParseOrchestrator, ReceiptParseResult
from .poison import handle_poison_message

logger = get_logger(__name__)


@dataclass(frozen=True)
class ParseServices:
    orchestrator: ReceiptParseOrchestrator
    api: ReceiptApiClient


def build_ocr_client(settings: Settings, http: httpx.AsyncClient) -> OcrClient:
    if settings.ocr_provider == "noop":
        return NoopOcrClient()
    if settings.ocr_provider != "ocrspace":
        raise ValueError(f"Unknown OCR provider: {settings.ocr_provider!r}")
    return OcrSpaceClient(
        http,
        api_key=settings.ocr_api_key or "",
        endpoint=settings.ocr_endpoint,
        language=settings.ocr_language,
    )


def build_normalizer(settings: Settings, http: httpx.AsyncClient) -> ReceiptNormalizer | None:
    if not (settings.normalizer_endpoint and settings.normalizer_deployment and settings.normalizer_api_key):
        logger.info("External normalizer not configured; weak extractions go straight to review")
        return None
    return ChatCompletionsNormalizer(
        http,
        endpoint=settings.normalizer_endpoint,
        deployment=settings.normalizer_deployment,
        api_key=settings.normalizer_api_key,
        api_version=settings.normalizer_api_version,
    )


@asynccontextmanager
async def open_parse_services(settings: Settings) -> AsyncIterator[ParseServices]:
    """Create HTTP clients and collaborators; close the clients on exit."""
    api_headers = {"x-api-key": settings.api_key} if settings.api_key else None
    async with (
        httpx.AsyncClient(base_url=settings.api_base_url, timeout=settings.api_timeout, headers=api_headers) as api_http,
        httpx.AsyncClient(timeout=max(settings.ocr_timeout, settings.normalizer_timeout)) as http,
    ):
        api = ReceiptApiClient(api_http)
        orchestrator = ReceiptParseOrchestrator(
            store=LocalObjectStore(settings.objects_root),
            preprocessor=PillowImagePreprocessor(),
            ocr=build_ocr_client(settings, http),
            api=api,
            normalizer=build_normalizer(settings, http),
            settings=settings,
        )
        yield ParseServices(orchestrator=orchestrator, api=api)


def result_payload(result: ReceiptParseResult) -> dict[str, Any]:
    payload: dict[str, Any] = {"status": result.status, "receiptId": str(result.receipt_id)}
    if result.decision is not None:
        payload["decision"] = parse_meta_payload(result.decision)
    if result.final_status is not None:
        payload["finalStatus"] = result.final_status.value
        payload["itemsWritten"] = result.items_written
    return payload


def build_server_app(settings: Settings) -> FastAPI:
    """FastAPI app whose collaborators live for the lifetime of the server."""
    holder: dict[str, ParseServices] = {}

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with open_parse_services(settings) as services:
            holder["services"] = services
            yield
            holder.clear()

    async def handle_parse(body: bytes) -> dict[str, Any]:
        message = parse_receipt_parse_message(body)
        result = await holder["services"].orchestrator.run(message)
        return result_payload(result)

    async def handle_poison(body: bytes) -> dict[str, Any]:
        notified = await handle_poison_message(body, holder["services"].api)
        return {"status": "notified" if notified else "ignored"}

    return create_app(handle_parse, handle_poison, lifespan=lifespan)
