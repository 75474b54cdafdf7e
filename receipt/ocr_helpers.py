"""Pure image helpers used before OCR."""

import io

MAX_IMAGE_EDGE = 2000  # Longest side after downscaling
MAX_IMAGE_PIXELS = 32_000_000  # Hard cap on width * height

_MAGIC_MEDIA_TYPES: tuple[tuple[bytes, str], ...] = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"BM", "image/bmp"),
    (b"II*\x00", "image/tiff"),
    (b"MM\x00*", "image/tiff"),
)


def detect_image_media_type(image_bytes: bytes) -> str:
    """Guess the media type from magic bytes, falling back to octet-stream."""
    for magic, media_type in _MAGIC_MEDIA_TYPES:
        if image_bytes.startswith(magic):
            return media_type
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "application/octet-stream"


def _target_size(width: int, height: int, max_edge: int, max_pixels: int) -> tuple[int, int]:
    scale = 1.0
    longest = max(width, height)
    if longest > max_edge:
        scale = max_edge / longest
    if width * height * scale * scale > max_pixels:
        scale = (max_pixels / (width * height)) ** 0.5
    if scale >= 1.0:
        return width, height
    return max(1, int(width * scale)), max(1, int(height * scale))


def prepare_image_bytes(
    image_bytes: bytes, max_edge: int = MAX_IMAGE_EDGE, max_pixels: int = MAX_IMAGE_PIXELS
) -> bytes:
    """
    Normalize a receipt photo for OCR.

    Applies EXIF orientation, downscales so the longest edge is at most
    ``max_edge`` and the area at most ``max_pixels``, converts to 8-bit
    grayscale and encodes as PNG.

    Args:
        image_bytes: Image data in any format Pillow can read
        max_edge: Maximum allowed length of the longest side
        max_pixels: Maximum allowed width * height

    Returns:
        PNG bytes

    Raises:
        PIL.UnidentifiedImageError: The bytes are not a readable image.
    """
    from PIL import Image, ImageOps

    img = Image.open(io.BytesIO(image_bytes))

    # Apply EXIF orientation so text runs the way OCR expects
    img = ImageOps.exif_transpose(img)

    width, height = img.size
    new_size = _target_size(width, height, max_edge, max_pixels)
    if new_size != (width, height):
        img = img.resize(new_size, Image.Resampling.LANCZOS)

    buffer = io.BytesIO()
    img.convert("L").save(buffer, format="PNG", optimize=True)
    return buffer.getvalue()
