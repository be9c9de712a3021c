"""
Upload validation and image preparation for the vision model.

Validation runs before a Submission exists: the format is decided by magic
bytes, never by the client's content type.
"""

import io
from typing import Optional

import structlog
from PIL import Image, ImageOps, UnidentifiedImageError
from pydantic import BaseModel

from flyerboard.pipeline.errors import InputValidationError

logger = structlog.get_logger(__name__)


class ImageInfo(BaseModel):
    format: str
    content_type: str
    extension: str
    size_bytes: int


# (prefix, format, content type, extension)
MAGIC_SIGNATURES = [
    (b"\xff\xd8\xff", "jpeg", "image/jpeg", "jpg"),
    (b"\x89PNG\r\n\x1a\n", "png", "image/png", "png"),
    (b"GIF87a", "gif", "image/gif", "gif"),
    (b"GIF89a", "gif", "image/gif", "gif"),
]


def detect_image_format(data: bytes) -> Optional[tuple[str, str, str]]:
    """(format, content_type, extension) from magic bytes, or None."""
    for prefix, fmt, content_type, ext in MAGIC_SIGNATURES:
        if data.startswith(prefix):
            return fmt, content_type, ext
    # RIFF....WEBP
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp", "image/webp", "webp"
    return None


def validate_image(data: bytes, max_bytes: int) -> ImageInfo:
    """Reject empty, oversized or non-image uploads with InputValidationError."""
    size = len(data)
    if size == 0:
        raise InputValidationError("Empty file uploaded", "ERR_EMPTY_FILE")

    if size > max_bytes:
        raise InputValidationError(
            f"File too large: {size} bytes. Max: {max_bytes} bytes",
            "ERR_FILE_TOO_LARGE",
        )

    detected = detect_image_format(data)
    if detected is None:
        raise InputValidationError(
            "Unsupported file type. Allowed: JPEG, PNG, WebP, GIF",
            "ERR_UNSUPPORTED_FORMAT",
        )

    fmt, content_type, ext = detected
    return ImageInfo(format=fmt, content_type=content_type, extension=ext, size_bytes=size)


def prepare_image(data: bytes, max_long_side: int = 2048, jpeg_quality: int = 85) -> bytes:
    """
    Normalize a photo for the vision model: apply EXIF orientation, drop
    alpha, shrink so the long side fits ``max_long_side``, re-encode as JPEG.
    """
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InputValidationError(f"Unreadable image: {e}", "ERR_UNREADABLE_IMAGE") from e

    # GIFs: first frame only
    if getattr(img, "is_animated", False):
        img.seek(0)

    img = ImageOps.exif_transpose(img)
    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")

    original_size = img.size
    if max(img.size) > max_long_side:
        img.thumbnail((max_long_side, max_long_side), Image.Resampling.LANCZOS)

    out = io.BytesIO()
    img.save(out, format="JPEG", quality=jpeg_quality, optimize=True)
    prepared = out.getvalue()

    logger.debug(
        "image_prepared",
        original_size=original_size,
        prepared_size=img.size,
        bytes_in=len(data),
        bytes_out=len(prepared),
    )
    return prepared
