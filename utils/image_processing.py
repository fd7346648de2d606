"""Pixel level cleanup for generated overlay images."""

from __future__ import annotations

import io

from PIL import Image


def correct_yellowed_whites(raw: bytes, threshold: int = 240) -> bytes:
    """Push near-white and slightly yellowed pixels to pure white.

    A pixel is rewritten when every channel is at least `threshold`, or when
    red and green are at least `threshold` and blue is at least
    ``threshold - 15``. Alpha is preserved. Returns PNG bytes.

    Raises:
        ValueError: If `raw` cannot be opened as an image.
    """
    try:
        src = Image.open(io.BytesIO(raw))
        src.load()
    except Exception as exc:
        raise ValueError("Failed to load image for processing") from exc

    image = src.convert("RGBA")
    pixels = image.load()
    width, height = image.size
    blue_floor = threshold - 15
    for y in range(height):
        for x in range(width):
            r, g, b, a = pixels[x, y]
            if r >= threshold and g >= threshold and b >= blue_floor:
                pixels[x, y] = (255, 255, 255, a)

    out_io = io.BytesIO()
    image.save(out_io, format="PNG")
    return out_io.getvalue()
