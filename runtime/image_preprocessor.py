"""Image preprocessing adapter run ahead of OCR."""

from __future__ import annotations

import asyncio
import io
from typing import BinaryIO, Protocol

from PIL import UnidentifiedImageError

from receiptwright.receipt.ocr_helpers import MAX_IMAGE_EDGE, MAX_IMAGE_PIXELS, prepare_image_bytes
from receiptwright.runtime.logging import get_logger

logger = get_logger(__name__)


class ImagePreprocessor(Protocol):
    async def prepare(self, stream: BinaryIO) -> BinaryIO: ...


class PillowImagePreprocessor:
    """Resize and grayscale receipt photos with Pillow, off the event loop."""

    def __init__(self, max_edge: int = MAX_IMAGE_EDGE, max_pixels: int = MAX_IMAGE_PIXELS) -> None:
        self.max_edge = max_edge
        self.max_pixels = max_pixels

    def _prepare_sync(self, original: bytes) -> bytes:
        try:
            return prepare_image_bytes(original, self.max_edge, self.max_pixels)
        except UnidentifiedImageError:
            logger.warning("Unrecognized image format (%d bytes); passing through unchanged", len(original))
            return original

    async def prepare(self, stream: BinaryIO) -> BinaryIO:
        original = await asyncio.to_thread(stream.read)
        prepared = await asyncio.to_thread(self._prepare_sync, original)
        logger.debug("Preprocessed image: %d -> %d bytes", len(original), len(prepared))
        return io.BytesIO(prepared)


class PassthroughPreprocessor:
    """Leaves images untouched."""

    async def prepare(self, stream: BinaryIO) -> BinaryIO:
        return io.BytesIO(stream.read())
