"""Receipt command handlers used by the CLI."""

import argparse
import asyncio
import json
import sys
from decimal import Decimal
from pathlib import Path
from typing import Any

from receiptwright.domain.receipt import HeuristicReceipt
from receiptwright.runtime.logging import get_logger

logger = get_logger(__name__)


def _read_text(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _money(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def heuristic_receipt_to_dict(receipt: HeuristicReceipt) -> dict[str, Any]:
    return {
        "items": [
            {
                "description": item.description,
                "quantity": str(item.quantity),
                "unitPrice": _money(item.unit_price),
                "lineTotal": _money(item.line_total),
            }
            for item in receipt.items
        ],
        "subtotal": _money(receipt.subtotal),
        "tax": _money(receipt.tax),
        "tip": _money(receipt.tip),
        "total": _money(receipt.total),
        "isSane": receipt.is_sane,
    }


def _print_extraction(raw_text: str) -> None:
    from receiptwright.receipt.decision import is_heuristics_strong
    from receiptwright.receipt.heuristic_extractor import extract_receipt

    receipt = extract_receipt(raw_text)
    strong, reason = is_heuristics_strong(receipt)
    output = heuristic_receipt_to_dict(receipt)
    output["strong"] = strong
    output["reason"] = reason
    print(json.dumps(output, indent=2))


def cmd_extract(args: argparse.Namespace) -> int:
    """Print the heuristic extraction of an OCR text file."""
    try:
        raw_text = _read_text(args.text_file)
    except OSError as exc:
        print(f"Error: {exc}")
        return 1
    _print_extraction(raw_text)
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a normalized receipt; exit 1 when it fails."""
    from receiptwright.receipt.normalized import parse_normalized_receipt
    from receiptwright.receipt.validation import validate_normalized_receipt
    from receiptwright.runtime.settings import get_settings

    settings = get_settings()
    try:
        receipt = parse_normalized_receipt(_read_text(args.json_file))
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}")
        return 1

    result = validate_normalized_receipt(
        receipt,
        expected_version=settings.expected_schema_version,
        max_discount_ratio=settings.discount_tolerance,
    )
    if result.ok:
        print(f"OK: {len(receipt.items)} item(s), items sum {result.items_sum}")
        return 0
    print(f"Invalid: {result.error}")
    return 1


async def _scan(image_path: Path) -> str:
    import httpx

    from receiptwright.application.receipts.wiring import build_ocr_client
    from receiptwright.runtime.image_preprocessor import PillowImagePreprocessor
    from receiptwright.runtime.settings import get_settings

    settings = get_settings()
    async with httpx.AsyncClient(timeout=settings.ocr_timeout) as http:
        ocr = build_ocr_client(settings, http)
        with open(image_path, "rb") as source:
            prepared = await PillowImagePreprocessor().prepare(source)
        return await ocr.read(prepared)


def cmd_scan(args: argparse.Namespace) -> int:
    """OCR a local image and print the heuristic extraction."""
    image_path = Path(args.image)
    if not image_path.exists():
        print(f"Error: Receipt file not found: {image_path}")
        return 1
    try:
        raw_text = asyncio.run(_scan(image_path))
    except Exception as exc:
        logger.error("Scan failed: %s", exc)
        print(f"Scan failed: {exc}")
        return 1
    _print_extraction(raw_text)
    return 0


async def _run_job(raw_message: str) -> dict[str, Any]:
    from receiptwright.application.receipts.messages import parse_receipt_parse_message
    from receiptwright.application.receipts.wiring import open_parse_services, result_payload
    from receiptwright.runtime.settings import get_settings

    message = parse_receipt_parse_message(raw_message)
    async with open_parse_services(get_settings()) as services:
        result = await services.orchestrator.run(message)
    return result_payload(result)


def cmd_run(args: argparse.Namespace) -> int:
    """Run one parse job end to end."""
    from receiptwright.runtime.errors import MalformedMessageError

    raw_message = args.message
    if raw_message.startswith("@"):
        raw_message = _read_text(raw_message[1:])
    try:
        payload = asyncio.run(_run_job(raw_message))
    except MalformedMessageError as exc:
        print(f"Malformed message: {exc}")
        return 2
    except Exception as exc:
        logger.error("Parse job failed: %s", exc)
        print(f"Parse job failed: {exc}")
        return 1
    print(json.dumps(payload, indent=2))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the FastAPI queue push endpoint."""
    import uvicorn

    from receiptwright.application.receipts.wiring import build_server_app
    from receiptwright.runtime.settings import get_settings

    print(f"Starting receipt parser on {args.host}:{args.port}")
    print(f"Queue endpoints: http://{args.host}:{args.port}/queue/receipt-parse | /queue/receipt-parse-poison")
    print("Press Ctrl+C to stop")

    uvicorn.run(build_server_app(get_settings()), host=args.host, port=args.port)
    return 0
