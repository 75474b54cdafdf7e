import asyncio
import dataclasses
from decimal import Decimal
from pathlib import Path
from typing import Any, BinaryIO
from uuid import UUID

import httpx
import pytest

from receiptwright.application.receipts.messages import ReceiptParseMessage
from receiptwright.application.receipts.parse_job import ReceiptParseOrchestrator
from receiptwright.domain.receipt import ObjectRef, ParseEngine, ReceiptStatus
from receiptwright.runtime.errors import RetryExhaustedError, SourceTooLargeError
from receiptwright.runtime.image_preprocessor import PassthroughPreprocessor
from receiptwright.runtime.object_store import LocalObjectStore
from receiptwright.runtime.settings import Settings

RECEIPT_ID = UUID("0f8fad5b-d9cb-469f-a165-70867728950e")
MESSAGE = ReceiptParseMessage(receipt_id=RECEIPT_ID, container="receipts", blob="r1.jpg")
SOURCE = ObjectRef("receipts", "r1.jpg")
IMAGE = b"fake-image-bytes"

STRONG_TEXT = "Coffee $3.50\nSandwich $8.75\nTax: $1.54\nTotal: $13.79"
WEAK_TEXT = "\n".join(
    [
        "Coffee $3.50",
        "Sandwich $8.75",
        "Cookie 2x $2.00",
        "Soda $2.50",
        "Chips $1.50",
        "Subtotal: $19.25",
        "Tax: $1.54",
        "Tip: $2.00",
        "Total: $22.79",
    ]
)
NORMALIZED_REPLY = """{
  "version": "parsed-receipt-v1",
  "currency": "USD",
  "items": [
    {"description": "Coffee", "quantity": 1, "unitPrice": 3.50, "lineTotal": 3.50},
    {"description": "Sandwich", "quantity": 1, "unitPrice": 8.75, "lineTotal": 8.75},
    {"description": "Cookie", "quantity": 2, "unitPrice": 2.00, "lineTotal": 4.00},
    {"description": "Soda", "quantity": 1, "unitPrice": 2.50, "lineTotal": 2.50},
    {"description": "Chips", "quantity": 1, "unitPrice": 1.50, "lineTotal": 1.50},
    {"description": "Discount/Adjustment", "quantity": 1, "unitPrice": 0, "lineTotal": 0}
  ],
  "subTotal": 19.25,
  "tax": 1.54,
  "tip": 2.00,
  "total": 22.79
}"""


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("PATCH", "http://api.test/x")
    return httpx.HTTPStatusError("failed", request=request, response=httpx.Response(status, request=request))


class FakeApi:
    def __init__(
        self,
        failing_positions: tuple[int, ...] = (),
        failures: dict[str, list[Exception]] | None = None,
    ) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.failing_positions = failing_positions
        self.failures = failures or {}

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        pending = self.failures.get(name)
        if pending:
            raise pending.pop(0)

    def names(self) -> list[str]:
        return [call[0] for call in self.calls]

    async def patch_raw_text(self, receipt_id, text):
        self._record("patch_raw_text", text)

    async def patch_totals(self, receipt_id, subtotal, tax, tip, total):
        self._record("patch_totals", subtotal, tax, tip, total)

    async def patch_status(self, receipt_id, status):
        self._record("patch_status", status)

    async def patch_parse_meta(self, receipt_id, decision):
        self._record("patch_parse_meta", decision)

    async def post_item(self, receipt_id, item, position):
        self._record("post_item", item.description, position)
        if position in self.failing_positions:
            raise httpx.ConnectError("item endpoint down")

    async def replace_items(self, receipt_id, items):
        self._record("replace_items", [item.description for item in items])

    async def post_parse_error(self, receipt_id, note):
        self._record("post_parse_error", note)


class FakeOcr:
    def __init__(self, text: str, failures: list[BaseException] | None = None) -> None:
        self.text = text
        self.failures = list(failures or [])
        self.streams: list[BinaryIO] = []
        self.payloads: list[bytes] = []

    async def read(self, image: BinaryIO) -> str:
        self.streams.append(image)
        self.payloads.append(image.read())
        if self.failures:
            raise self.failures.pop(0)
        return self.text


class HangingOcr:
    def __init__(self) -> None:
        self.started = asyncio.Event()

    async def read(self, image: BinaryIO) -> str:
        self.started.set()
        await asyncio.sleep(30)
        return ""


class FakeNormalizer:
    def __init__(self, reply: str | Exception) -> None:
        self.reply = reply
        self.calls: list[tuple[str, dict | None]] = []

    async def normalize(self, raw_text: str, hints: dict | None = None) -> str:
        self.calls.append((raw_text, hints))
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


class CountingPreprocessor(PassthroughPreprocessor):
    def __init__(self) -> None:
        self.calls = 0

    async def prepare(self, stream: BinaryIO) -> BinaryIO:
        self.calls += 1
        return await super().prepare(stream)


class StickyLockStore(LocalObjectStore):
    async def delete(self, ref: ObjectRef) -> None:
        raise OSError("lock store unavailable")


class HangingLockStore(LocalObjectStore):
    async def create_if_absent(self, ref: ObjectRef, data: bytes = b"") -> bool:
        await asyncio.sleep(5)
        return True


class SlowItemApi(FakeApi):
    async def post_item(self, receipt_id, item, position):
        self._record("post_item", item.description, position)
        if position == 1:
            await asyncio.sleep(5)


def _store(settings: Settings, data: bytes = IMAGE) -> LocalObjectStore:
    store = LocalObjectStore(settings.objects_root)
    asyncio.run(store.put(SOURCE, data))
    return store


def _orchestrator(settings, store, ocr, api, normalizer=None, preprocessor=None) -> ReceiptParseOrchestrator:
    return ReceiptParseOrchestrator(
        store=store,
        preprocessor=preprocessor or PassthroughPreprocessor(),
        ocr=ocr,
        api=api,
        normalizer=normalizer,
        settings=settings,
    )


def _lock_path(settings: Settings) -> Path:
    return settings.objects_root / settings.lock_container / f"{RECEIPT_ID}.lock"


def test_strong_heuristics_are_persisted_in_order(settings: Settings) -> None:
    api = FakeApi()
    normalizer = FakeNormalizer(NORMALIZED_REPLY)
    orchestrator = _orchestrator(settings, _store(settings), FakeOcr(STRONG_TEXT), api, normalizer)

    result = asyncio.run(orchestrator.run(MESSAGE))

    assert result.status == "parsed"
    assert result.final_status is ReceiptStatus.PARSED
    assert result.decision.engine_used is ParseEngine.HEURISTICS
    assert result.decision.external_attempted is False
    assert result.items_written == 2
    assert normalizer.calls == []

    assert api.names() == [
        "patch_raw_text",
        "post_item",
        "post_item",
        "patch_totals",
        "patch_parse_meta",
        "patch_status",
        "patch_totals",
    ]
    assert api.calls[0] == ("patch_raw_text", STRONG_TEXT)
    assert api.calls[1] == ("post_item", "Coffee", 1)
    assert api.calls[2] == ("post_item", "Sandwich", 2)
    totals = ("patch_totals", Decimal("12.25"), Decimal("1.54"), Decimal("0.00"), Decimal("13.79"))
    assert api.calls[3] == totals
    assert api.calls[6] == totals
    assert api.calls[5] == ("patch_status", ReceiptStatus.PARSED)
    assert not _lock_path(settings).exists()


def test_weak_heuristics_use_valid_normalized_result(settings: Settings) -> None:
    api = FakeApi()
    normalizer = FakeNormalizer(NORMALIZED_REPLY)
    orchestrator = _orchestrator(settings, _store(settings), FakeOcr(WEAK_TEXT), api, normalizer)

    result = asyncio.run(orchestrator.run(MESSAGE))

    assert result.decision.engine_used is ParseEngine.EXTERNAL_NORMALIZER
    assert result.decision.external_accepted is True
    assert result.final_status is ReceiptStatus.PARSED

    raw_text, hints = normalizer.calls[0]
    assert raw_text == WEAK_TEXT
    assert len(hints["items"]) == 5
    assert hints["subtotal"] == 19.25

    posted = [call[1] for call in api.calls if call[0] == "post_item"]
    assert posted == ["Coffee", "Sandwich", "Cookie", "Soda", "Chips"]
    assert result.items_written == 5
    assert ("patch_totals", Decimal("19.25"), Decimal("1.54"), Decimal("2.00"), Decimal("22.79")) in api.calls


def test_rejected_normalized_result_falls_back_for_review(settings: Settings) -> None:
    api = FakeApi()
    reply = NORMALIZED_REPLY.replace("parsed-receipt-v1", "parsed-receipt-v0")
    orchestrator = _orchestrator(settings, _store(settings), FakeOcr(WEAK_TEXT), api, FakeNormalizer(reply))

    result = asyncio.run(orchestrator.run(MESSAGE))

    assert result.decision.engine_used is ParseEngine.HEURISTICS
    assert result.decision.external_attempted is True
    assert result.decision.external_accepted is False
    assert result.decision.reject_reason == "bad_version"
    assert result.final_status is ReceiptStatus.PARSED_NEEDS_REVIEW
    assert ("patch_status", ReceiptStatus.PARSED_NEEDS_REVIEW) in api.calls
    assert result.items_written == 5


def test_normalizer_failure_falls_back_for_review(settings: Settings) -> None:
    api = FakeApi()
    normalizer = FakeNormalizer(ValueError("Normalizer returned empty content"))
    orchestrator = _orchestrator(settings, _store(settings), FakeOcr(WEAK_TEXT), api, normalizer)

    result = asyncio.run(orchestrator.run(MESSAGE))

    assert len(normalizer.calls) == 1
    assert result.decision.reject_reason == "external_failure (ValueError)"
    assert result.final_status is ReceiptStatus.PARSED_NEEDS_REVIEW


def test_missing_normalizer_falls_back_for_review(settings: Settings) -> None:
    orchestrator = _orchestrator(settings, _store(settings), FakeOcr(WEAK_TEXT), FakeApi())

    result = asyncio.run(orchestrator.run(MESSAGE))

    assert result.decision.reject_reason == "external_unavailable"
    assert result.final_status is ReceiptStatus.PARSED_NEEDS_REVIEW


def test_duplicate_delivery_is_skipped(settings: Settings) -> None:
    store = _store(settings)
    lock = MESSAGE.to_job(settings.lock_container).lock
    assert asyncio.run(store.create_if_absent(lock))
    api = FakeApi()
    ocr = FakeOcr(STRONG_TEXT)

    result = asyncio.run(_orchestrator(settings, store, ocr, api).run(MESSAGE))

    assert result.status == "duplicate"
    assert result.decision is None
    assert api.calls == []
    assert ocr.streams == []
    assert _lock_path(settings).exists()


def test_oversized_source_is_refused(settings: Settings) -> None:
    small = dataclasses.replace(settings, max_source_bytes=4)
    api = FakeApi()
    ocr = FakeOcr(STRONG_TEXT)

    with pytest.raises(SourceTooLargeError) as excinfo:
        asyncio.run(_orchestrator(small, _store(small), ocr, api).run(MESSAGE))

    assert excinfo.value.size == len(IMAGE)
    assert ocr.streams == []
    assert api.calls == []
    assert not _lock_path(small).exists()


def test_ocr_retries_get_a_fresh_stream(settings: Settings) -> None:
    ocr = FakeOcr(STRONG_TEXT, failures=[httpx.ConnectError("reset"), TimeoutError()])
    preprocessor = CountingPreprocessor()
    orchestrator = _orchestrator(settings, _store(settings), ocr, FakeApi(), preprocessor=preprocessor)

    result = asyncio.run(orchestrator.run(MESSAGE))

    assert result.status == "parsed"
    assert preprocessor.calls == 1
    assert ocr.payloads == [IMAGE, IMAGE, IMAGE]
    assert len({id(stream) for stream in ocr.streams}) == 3


def test_ocr_exhaustion_releases_lock(settings: Settings) -> None:
    api = FakeApi()
    ocr = FakeOcr(STRONG_TEXT, failures=[httpx.ConnectError("down")] * 3)

    with pytest.raises(RetryExhaustedError):
        asyncio.run(_orchestrator(settings, _store(settings), ocr, api).run(MESSAGE))

    assert len(ocr.streams) == settings.max_attempts
    assert api.calls == []
    assert not _lock_path(settings).exists()


def test_permanent_api_failure_is_not_retried(settings: Settings) -> None:
    api = FakeApi(failures={"patch_raw_text": [_status_error(400)]})

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(_orchestrator(settings, _store(settings), FakeOcr(STRONG_TEXT), api).run(MESSAGE))

    assert api.names() == ["patch_raw_text"]
    assert not _lock_path(settings).exists()


def test_transient_api_failure_is_retried(settings: Settings) -> None:
    api = FakeApi(failures={"patch_status": [_status_error(503)]})

    result = asyncio.run(_orchestrator(settings, _store(settings), FakeOcr(STRONG_TEXT), api).run(MESSAGE))

    assert result.final_status is ReceiptStatus.PARSED
    assert api.names().count("patch_status") == 2


def test_item_post_is_attempted_once(settings: Settings) -> None:
    api = FakeApi(failing_positions=(1,))

    result = asyncio.run(_orchestrator(settings, _store(settings), FakeOcr(STRONG_TEXT), api).run(MESSAGE))

    assert [call for call in api.calls if call[0] == "post_item"] == [
        ("post_item", "Coffee", 1),
        ("post_item", "Sandwich", 2),
    ]
    assert result.items_written == 1
    assert result.final_status is ReceiptStatus.PARSED


def test_hung_item_post_times_out_and_is_skipped(settings: Settings) -> None:
    quick = dataclasses.replace(settings, api_timeout=0.05)
    api = SlowItemApi()

    result = asyncio.run(_orchestrator(quick, _store(quick), FakeOcr(STRONG_TEXT), api).run(MESSAGE))

    assert [call for call in api.calls if call[0] == "post_item"] == [
        ("post_item", "Coffee", 1),
        ("post_item", "Sandwich", 2),
    ]
    assert result.items_written == 1
    assert result.final_status is ReceiptStatus.PARSED
    assert not _lock_path(quick).exists()


def test_hung_lock_store_escalates_as_timeout(settings: Settings) -> None:
    quick = dataclasses.replace(settings, short_timeout=0.05)
    store = HangingLockStore(quick.objects_root)
    asyncio.run(store.put(SOURCE, IMAGE))
    api = FakeApi()
    ocr = FakeOcr(STRONG_TEXT)

    with pytest.raises(RetryExhaustedError) as excinfo:
        asyncio.run(_orchestrator(quick, store, ocr, api).run(MESSAGE))

    assert excinfo.value.attempts == 1
    assert isinstance(excinfo.value.__cause__, TimeoutError)
    assert ocr.streams == []
    assert api.calls == []


def test_replace_items_mode(settings: Settings) -> None:
    replacing = dataclasses.replace(settings, replace_items=True)
    api = FakeApi(failures={"replace_items": [httpx.ReadTimeout("slow")]})

    result = asyncio.run(_orchestrator(replacing, _store(replacing), FakeOcr(STRONG_TEXT), api).run(MESSAGE))

    assert "post_item" not in api.names()
    assert api.calls[1:3] == [
        ("replace_items", ["Coffee", "Sandwich"]),
        ("replace_items", ["Coffee", "Sandwich"]),
    ]
    assert result.items_written == 2


def test_lock_release_failure_does_not_fail_job(settings: Settings) -> None:
    store = StickyLockStore(settings.objects_root)
    asyncio.run(store.put(SOURCE, IMAGE))

    result = asyncio.run(_orchestrator(settings, store, FakeOcr(STRONG_TEXT), FakeApi()).run(MESSAGE))

    assert result.status == "parsed"


def test_cancellation_releases_lock(settings: Settings) -> None:
    store = _store(settings)
    ocr = HangingOcr()
    orchestrator = _orchestrator(settings, store, ocr, FakeApi())

    async def scenario() -> None:
        task = asyncio.create_task(orchestrator.run(MESSAGE))
        await ocr.started.wait()
        assert _lock_path(settings).exists()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert not _lock_path(settings).exists()


def test_empty_ocr_text_is_flagged_for_review(settings: Settings) -> None:
    api = FakeApi()

    result = asyncio.run(_orchestrator(settings, _store(settings), FakeOcr(""), api).run(MESSAGE))

    assert result.decision.reject_reason == "external_unavailable"
    assert result.final_status is ReceiptStatus.PARSED_NEEDS_REVIEW
    assert result.items_written == 0
    assert ("patch_totals", None, Decimal("0.00"), Decimal("0.00"), Decimal("0.00")) in api.calls
