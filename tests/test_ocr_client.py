import asyncio
import io
from collections.abc import Callable

import httpx
import pytest

from receiptwright.runtime import ocr_client
from receiptwright.runtime.errors import OCRServiceError
from receiptwright.runtime.ocr_client import NoopOcrClient, OcrSpaceClient

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def _read(handler: Callable[[httpx.Request], httpx.Response], image: bytes = PNG_BYTES) -> str:
    async def scenario() -> str:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await OcrSpaceClient(client, api_key="key").read(io.BytesIO(image))

    return asyncio.run(scenario())


def _engine(request: httpx.Request) -> int:
    for engine in (1, 2):
        if f'name="OCREngine"\r\n\r\n{engine}'.encode() in request.content:
            return engine
    raise AssertionError("no OCREngine field")


def test_parsed_text_is_joined_and_normalized() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "IsErroredOnProcessing": False,
                "ParsedResults": [{"FileParseExitCode": 1, "ParsedText": "Coffee $3.50\r\nTotal $3.50\r\n"}],
            },
        )

    assert _read(handler) == "Coffee $3.50\nTotal $3.50"
    assert len(requests) == 1
    assert str(requests[0].url) == ocr_client.OCR_SPACE_ENDPOINT
    assert _engine(requests[0]) == 2
    assert b'name="apikey"\r\n\r\nkey' in requests[0].content
    assert b'filename="receipt.png"' in requests[0].content


def test_page_error_falls_back_to_engine_one() -> None:
    engines: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        engines.append(_engine(request))
        if len(engines) == 1:
            return httpx.Response(
                200,
                json={
                    "IsErroredOnProcessing": True,
                    "ErrorMessage": ["Page could not be parsed"],
                    "ParsedResults": [{"FileParseExitCode": -10, "ParsedText": ""}],
                },
            )
        return httpx.Response(200, json={"ParsedResults": [{"FileParseExitCode": 1, "ParsedText": "Tea 2.00"}]})

    assert _read(handler) == "Tea 2.00"
    assert engines == [2, 1]


def test_request_level_error_is_not_a_page_error() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, json={"IsErroredOnProcessing": True, "ErrorMessage": "Invalid API key"})

    with pytest.raises(OCRServiceError, match="Invalid API key"):
        _read(handler)
    assert calls == 1


def test_http_error_raises_status_error() -> None:
    with pytest.raises(httpx.HTTPStatusError):
        _read(lambda request: httpx.Response(503, text="busy"))


def test_empty_results_raise() -> None:
    with pytest.raises(OCRServiceError):
        _read(lambda request: httpx.Response(200, json={"ParsedResults": []}))


def test_oversized_upload_is_refused(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(ocr_client, "MAX_UPLOAD_BYTES", 8)

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("should not be called")

    with pytest.raises(OCRServiceError):
        _read(handler)


def test_api_key_is_required() -> None:
    with pytest.raises(ValueError):
        OcrSpaceClient(httpx.AsyncClient(), api_key="")


def test_noop_client_reads_nothing() -> None:
    assert asyncio.run(NoopOcrClient().read(io.BytesIO(PNG_BYTES))) == ""
