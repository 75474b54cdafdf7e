"""HTTP push endpoint for receipt-parse queue deliveries.

The queue (or a relay in front of it) POSTs the raw message body. A 2xx reply
acknowledges the delivery; 5xx asks for redelivery; 4xx means the message
itself is bad and should go to the poison path.
"""

from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from receiptwright.runtime.errors import MalformedMessageError, RetryExhaustedError, SourceTooLargeError
from receiptwright.runtime.logging import get_logger

logger = get_logger(__name__)

MessageHandler = Callable[[bytes], Awaitable[dict[str, Any]]]
Lifespan = Callable[[FastAPI], AbstractAsyncContextManager[None]]


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"status": "error", "message": message}, status_code=status_code)


def create_app(
    handle_parse: MessageHandler,
    handle_poison: MessageHandler,
    lifespan: Lifespan | None = None,
) -> FastAPI:
    """Wire queue handlers into a FastAPI app."""
    app = FastAPI(title="Receipt Parser", lifespan=lifespan)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/queue/receipt-parse")
    async def receipt_parse(request: Request) -> JSONResponse:
        """Run one parse job for the delivered message."""
        body = await request.body()
        try:
            payload = await handle_parse(body)
        except MalformedMessageError as exc:
            logger.error("Rejected malformed message: %s", exc)
            return _error(str(exc), 400)
        except SourceTooLargeError as exc:
            return _error(str(exc), 413)
        except RetryExhaustedError as exc:
            return _error(str(exc), 503)
        except httpx.HTTPStatusError as exc:
            logger.error("Upstream call failed: %s", exc)
            return _error(f"Upstream returned {exc.response.status_code}", 502)
        return JSONResponse(payload)

    @app.post("/queue/receipt-parse-poison")
    async def receipt_parse_poison(request: Request) -> JSONResponse:
        """Mark the receipt FailedParse; always acknowledges."""
        body = await request.body()
        payload = await handle_poison(body)
        return JSONResponse(payload)

    return app
