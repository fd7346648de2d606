"""Thumbnail generator service.

Small wrapper around Pillow that shrinks board renders for the dashboard.
Input is base64-encoded image data; output is a base64-encoded PNG that fits
within `max_size` while preserving aspect ratio.

Public class: `ThumbnailGenerator`

Example:
    tg = ThumbnailGenerator(max_size=(480, 270))
    thumb_b64 = tg.create_thumbnail_from_base64(b64_input)
"""
from __future__ import annotations

import base64
import io
from typing import Tuple

from PIL import Image


class ThumbnailGenerator:
    """Generate PNG thumbnails from base64 image data.

    Args:
        max_size: Maximum width and height for the thumbnail. Defaults to (480, 270).
        background: Color to flatten transparent pixels onto. None keeps the
            alpha channel, which is what board previews use.
    """

    def __init__(self, max_size: Tuple[int, int] = (480, 270), background: Tuple[int, int, int] | None = None):
        self.max_size = max_size
        self.background = background

    def create_thumbnail_from_base64(self, data: str | bytes) -> str:
        """Create a thumbnail from base64-encoded image data.

        Returns:
            A base64-encoded PNG string.

        Raises:
            ValueError: If the data cannot be decoded or opened as an image.
        """
        data_bytes = data.encode("utf-8") if isinstance(data, str) else data

        try:
            raw = base64.b64decode(data_bytes, validate=True)
        except Exception as exc:
            raise ValueError("Invalid base64 data provided") from exc

        try:
            src = Image.open(io.BytesIO(raw))
            src.load()
        except Exception as exc:
            raise ValueError("Decoded bytes are not a supported image format") from exc

        src = src.convert("RGBA")
        src.thumbnail(self.max_size, Image.LANCZOS)

        if self.background is not None:
            flattened = Image.new("RGB", src.size, self.background)
            flattened.paste(src, mask=src.getchannel("A"))
            src = flattened

        out_io = io.BytesIO()
        src.save(out_io, format="PNG", optimize=True)
        return base64.b64encode(out_io.getvalue()).decode("utf-8")
