"""
uploads.py — accepts an incoming prescription image and validates it.

Telegram compressed photos arrive without a MIME type, so the type is
sniffed from the magic bytes. Documents carry the sender's MIME type and are
checked against it before anything is sent over the network.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import config

logger = logging.getLogger(__name__)

INVALID_IMAGE_MESSAGE = "Please select a valid image file"


class ImageValidationError(ValueError):
    """Raised when an upload is not an acceptable image. str(exc) is user-facing."""


@dataclass(frozen=True)
class UploadedImage:
    """One accepted image. Replaced on new selection, dropped on clear."""
    data: bytes
    mime_type: str
    preview_id: Optional[str] = None    # Telegram file_id used to re-show the preview

    @property
    def size(self) -> int:
        return len(self.data)


def sniff_mime_type(data: bytes) -> str:
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if data[:4] == b"GIF8":
        return "image/gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    return "application/octet-stream"


def _fmt_mb(n_bytes: int) -> str:
    mb = n_bytes / (1024 * 1024)
    return f"{mb:.0f}MB" if mb == int(mb) else f"{mb:.1f}MB"


def _accepted_formats() -> str:
    names = sorted({m.split("/", 1)[1].upper() for m in config.ALLOWED_MIME_TYPES})
    return ", ".join(names)


def check_mime_type(mime_type: Optional[str]) -> str:
    """
    Validate a declared MIME type without looking at the content.
    Returns the normalised type; raises ImageValidationError.
    """
    mime = (mime_type or "").strip().lower()
    if not mime.startswith("image/"):
        raise ImageValidationError(INVALID_IMAGE_MESSAGE)
    if mime not in config.ALLOWED_MIME_TYPES:
        raise ImageValidationError(
            f"Unsupported image type ({mime}). Please upload {_accepted_formats()}."
        )
    return mime


def check_size(size: int) -> None:
    if size <= 0:
        raise ImageValidationError("The selected file is empty.")
    if size > config.MAX_IMAGE_BYTES:
        raise ImageValidationError(
            f"Image is too large ({_fmt_mb(size)}). "
            f"Maximum size is {_fmt_mb(config.MAX_IMAGE_BYTES)}."
        )


def validate_image(
    data: bytes,
    mime_type: Optional[str] = None,
    preview_id: Optional[str] = None,
) -> UploadedImage:
    """
    Build an UploadedImage from raw bytes.

    mime_type=None means "sniff it" (compressed Telegram photos).
    Raises ImageValidationError with a user-facing message on rejection.
    """
    if mime_type is None:
        mime_type = sniff_mime_type(data)
    mime = check_mime_type(mime_type)
    check_size(len(data))
    logger.debug("Accepted image: %s, %d bytes", mime, len(data))
    return UploadedImage(data=data, mime_type=mime, preview_id=preview_id)
