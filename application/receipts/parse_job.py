"""Receipt parse job orchestration.

One job owns one receipt end to end::

    lock -> size guard -> read source -> preprocess -> OCR -> persist raw text
    -> heuristics -> decide (optional external normalizer) -> items -> totals
    -> parse meta -> status -> totals again -> release lock
"""

from __future__ import annotations

import asyncio
import io
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal, TypeVar
from uuid import UUID

from receiptwright.domain.receipt import (
    HeuristicReceipt,
    ItemCandidate,
    ParseDecision,
    ParseJob,
    ReceiptStatus,
)
from receiptwright.receipt.decision import (
    ChosenResult,
    accept_heuristics,
    fall_back_to_heuristics,
    is_heuristics_strong,
    reconcile_external,
)
from receiptwright.receipt.heuristic_extractor import extract_receipt
from receiptwright.receipt.money import ZERO, round_money
from receiptwright.receipt.normalized import build_normalizer_hints, parse_normalized_receipt
from receiptwright.runtime.errors import SourceTooLargeError
from receiptwright.runtime.image_preprocessor import ImagePreprocessor
from receiptwright.runtime.logging import get_logger, receipt_logger
from receiptwright.runtime.normalizer_client import ReceiptNormalizer
from receiptwright.runtime.object_store import ObjectStore
from receiptwright.runtime.ocr_client import OcrClient
from receiptwright.runtime.receipt_api import ReceiptApi
from receiptwright.runtime.retry import retry_async
from receiptwright.runtime.settings import Settings

from .messages import ReceiptParseMessage

logger = get_logger(__name__)

T = TypeVar("T")

ParseJobStatus = Literal["duplicate", "parsed"]

# Placeholder lines the record API creates itself.
_SKIPPED_ITEM_DESCRIPTIONS = frozenset({"adjustment", "discount/adjustment"})


@dataclass(frozen=True)
class ReceiptParseResult:
    """Outcome of one parse job."""

    status: ParseJobStatus
    receipt_id: UUID
    decision: ParseDecision | None = None
    final_status: ReceiptStatus | None = None
    items_written: int = 0


def _should_write_item(item: ItemCandidate) -> bool:
    description = item.description.strip()
    return bool(description) and description.lower() not in _SKIPPED_ITEM_DESCRIPTIONS


class ReceiptParseOrchestrator:
    """Runs parse jobs against injected collaborators.

    Jobs for different receipts may run concurrently on one instance; the
    object-store lock keeps a single receipt to one job at a time.
    """

    def __init__(
        self,
        store: ObjectStore,
        preprocessor: ImagePreprocessor,
        ocr: OcrClient,
        api: ReceiptApi,
        normalizer: ReceiptNormalizer | None,
        settings: Settings,
    ) -> None:
        self.store = store
        self.preprocessor = preprocessor
        self.ocr = ocr
        self.api = api
        self.normalizer = normalizer
        self.settings = settings

    async def _retry(
        self,
        operation: str,
        action: Callable[[], Awaitable[T]],
        timeout: float,
        log: logging.LoggerAdapter,
    ) -> T:
        return await retry_async(
            operation,
            action,
            timeout=timeout,
            max_attempts=self.settings.max_attempts,
            base_delay=self.settings.retry_base_delay,
            log=log,
        )

    async def run(self, message: ReceiptParseMessage) -> ReceiptParseResult:
        """
        Process one delivery.

        Returns:
            ``status="duplicate"`` when another delivery holds the lock, else the
            persisted decision.

        Raises:
            SourceTooLargeError: Source exceeds the size cap.
            RetryExhaustedError: A retried step kept failing transiently.
            httpx.HTTPStatusError: A permanent HTTP failure.
        """
        job = message.to_job(self.settings.lock_container)
        log = receipt_logger(logger, job.receipt_id)

        # Single attempt; a conflict means another delivery owns this receipt.
        # A hung lock store escalates as RetryExhaustedError after short_timeout.
        acquired = await retry_async(
            "store.acquireLock",
            lambda: self.store.create_if_absent(job.lock),
            timeout=self.settings.short_timeout,
            max_attempts=1,
            log=log,
        )
        if not acquired:
            log.info("DuplicateDelivery: lock %s already held; skipping", job.lock)
            return ReceiptParseResult(status="duplicate", receipt_id=job.receipt_id)

        try:
            log.info("ParseStarted: source %s", job.source)
            return await self._process(job, log)
        except Exception as exc:
            log.error("ParseFailed: %s: %s", type(exc).__name__, exc)
            raise
        finally:
            try:
                await self.store.delete(job.lock)
            except Exception as exc:
                log.warning("Failed to release lock %s: %s", job.lock, exc)

    async def _process(self, job: ParseJob, log: logging.LoggerAdapter) -> ReceiptParseResult:
        settings = self.settings
        rid = job.receipt_id

        size = await self._retry(
            "store.getSize", lambda: self.store.get_size(job.source), settings.short_timeout, log
        )
        if size > settings.max_source_bytes:
            raise SourceTooLargeError(size, settings.max_source_bytes)

        source = await self._retry(
            "store.openRead", lambda: self.store.open_read(job.source), settings.short_timeout, log
        )
        with source:
            prepared = await self.preprocessor.prepare(source)
            image_bytes = prepared.read()

        log.info("OcrRequested: %d bytes", len(image_bytes))
        raw_text = await self._retry(
            "ocr.read", lambda: self.ocr.read(io.BytesIO(image_bytes)), settings.ocr_timeout, log
        )

        await self._retry(
            "api.patchRawText", lambda: self.api.patch_raw_text(rid, raw_text), settings.api_timeout, log
        )

        heuristic = extract_receipt(raw_text)
        log.info(
            "Parsed: %d item(s), subtotal=%s tax=%s tip=%s total=%s sane=%s",
            len(heuristic.items),
            heuristic.subtotal,
            heuristic.tax,
            heuristic.tip,
            heuristic.total,
            heuristic.is_sane,
        )

        chosen = await self._decide(raw_text, heuristic, log)
        items_written = await self._write_items(rid, chosen.items, log)
        final_status = await self._finalize(rid, chosen, log)

        log.info(
            "Persisted: engine=%s status=%s items=%d",
            chosen.decision.engine_used.value,
            final_status.value,
            items_written,
        )
        return ReceiptParseResult(
            status="parsed",
            receipt_id=rid,
            decision=chosen.decision,
            final_status=final_status,
            items_written=items_written,
        )

    async def _decide(self, raw_text: str, heuristic: HeuristicReceipt, log: logging.LoggerAdapter) -> ChosenResult:
        strong, reason = is_heuristics_strong(heuristic)
        if strong:
            log.info("Heuristics accepted (%s)", reason)
            return accept_heuristics(heuristic)

        # The NeedsReview status itself is written once, in _finalize.
        log.info("NeedsReview: weak heuristic extraction (%s)", reason)
        if self.normalizer is None:
            return fall_back_to_heuristics(heuristic, "external_unavailable")

        normalizer = self.normalizer
        hints = build_normalizer_hints(heuristic)
        try:
            reply = await self._retry(
                "normalizer.normalize",
                lambda: normalizer.normalize(raw_text, hints),
                self.settings.normalizer_timeout,
                log,
            )
            normalized = parse_normalized_receipt(reply)
        except Exception as exc:
            log.warning("External normalization failed: %s: %s", type(exc).__name__, exc)
            return fall_back_to_heuristics(heuristic, f"external_failure ({type(exc).__name__})")

        chosen = reconcile_external(
            heuristic,
            normalized,
            expected_version=self.settings.expected_schema_version,
            max_discount_ratio=self.settings.discount_tolerance,
        )
        if chosen.decision.external_accepted:
            log.info("External normalization accepted: %d item(s)", len(chosen.items))
        else:
            log.info("External normalization rejected: %s", chosen.decision.reject_reason)
        return chosen

    async def _write_items(self, rid: UUID, items: tuple[ItemCandidate, ...], log: logging.LoggerAdapter) -> int:
        to_write = [item for item in items if _should_write_item(item)]
        if self.settings.replace_items:
            await self._retry(
                "api.replaceItems", lambda: self.api.replace_items(rid, to_write), self.settings.api_timeout, log
            )
            return len(to_write)

        written = 0
        for position, item in enumerate(to_write, start=1):
            # Creating an item is not idempotent: one attempt only.
            try:
                async with asyncio.timeout(self.settings.api_timeout):
                    await self.api.post_item(rid, item, position)
            except Exception as exc:
                log.warning(
                    "Item post failed for %r (position %d): %s: %s", item.description, position, type(exc).__name__, exc
                )
                continue
            written += 1
        return written

    async def _finalize(self, rid: UUID, chosen: ChosenResult, log: logging.LoggerAdapter) -> ReceiptStatus:
        timeout = self.settings.api_timeout
        subtotal = round_money(chosen.subtotal) if chosen.subtotal is not None else None
        tax = round_money(chosen.tax or ZERO)
        tip = round_money(chosen.tip or ZERO)
        total = chosen.final_total
        status = ReceiptStatus.PARSED_NEEDS_REVIEW if chosen.needs_review else ReceiptStatus.PARSED

        async def patch_totals() -> None:
            await self.api.patch_totals(rid, subtotal, tax, tip, total)

        await self._retry("api.patchTotals", patch_totals, timeout, log)
        await self._retry("api.patchParseMeta", lambda: self.api.patch_parse_meta(rid, chosen.decision), timeout, log)
        await self._retry("api.patchStatus", lambda: self.api.patch_status(rid, status), timeout, log)
        # Same values again so the record API reconciles after the status flip.
        await self._retry("api.patchTotalsFinal", patch_totals, timeout, log)
        return status
