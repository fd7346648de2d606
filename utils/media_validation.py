"""Validation helpers for image payloads exchanged as data URLs."""

import base64
import binascii
import re
from typing import Optional, Tuple

from fastapi import HTTPException

ALLOWED_IMAGE_TYPES = {
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/webp",
    "image/gif",
}

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[\w-]+=[^;,]*)*)(?P<b64>;base64)?,(?P<data>.*)$", re.DOTALL)


def to_data_url(raw: bytes, mime_type: str = "image/png") -> str:
    """Encode bytes to a base64 data URL string."""
    encoded = base64.b64encode(raw).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


def split_data_url(url: str) -> Tuple[str, bytes]:
    """Return (mime_type, raw bytes) for a base64 data URL.

    Raises:
        ValueError: If `url` is not a base64 data URL.
    """
    match = _DATA_URL_RE.match(url.strip())
    if not match or not match.group("b64"):
        raise ValueError("Expected a base64 data URL.")
    try:
        raw = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Data URL payload is not valid base64.") from exc
    return (match.group("mime") or "application/octet-stream").lower(), raw


def ensure_image_data_url(value: str) -> str:
    """Return an image data URL, wrapping bare base64 PNG input when necessary."""
    text = value.strip()
    if text.startswith("data:"):
        mime_type, _ = split_data_url(text)
        if mime_type not in ALLOWED_IMAGE_TYPES:
            raise ValueError(f"Unsupported image content type: {mime_type}")
        return text
    try:
        raw = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Image must be a data URL or base64 encoded bytes.") from exc
    return to_data_url(raw, "image/png")


def require_image(value: Optional[str]) -> str:
    """Validate a request image field, translating problems to HTTP 400."""
    if not value or not value.strip():
        raise HTTPException(status_code=400, detail="No image provided")
    try:
        return ensure_image_data_url(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
