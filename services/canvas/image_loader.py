"""Decode generated images to learn their pixel size before placement."""

from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass
from typing import Optional, Tuple

import httpx
from PIL import Image

from services.errors import BackendError
from utils.media_validation import split_data_url, to_data_url


@dataclass
class LoadedImage:
    data_url: str
    width: int
    height: int
    mime_type: str


def _measure(raw: bytes) -> Tuple[int, int]:
    try:
        with Image.open(io.BytesIO(raw)) as image:
            image.load()
            return image.size
    except Exception as exc:
        raise ValueError("Generated image could not be decoded") from exc


class ImageLoader:
    """Resolve data or http(s) URLs to a decoded, measured image.

    Remote images are downloaded and re-encoded as data URLs so the canvas
    can rasterize them later without network access.
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None, timeout: float = 30.0) -> None:
        self.http_client = http_client
        self.timeout = timeout

    async def __call__(self, url: str) -> LoadedImage:
        return await self.load(url)

    async def load(self, url: str) -> LoadedImage:
        """Raises ValueError for undecodable input and BackendError for failed downloads."""
        if url.startswith("data:"):
            mime_type, raw = split_data_url(url)
        elif url.startswith(("http://", "https://")):
            mime_type, raw = await self._download(url)
        else:
            raise ValueError("Unsupported image URL scheme")

        width, height = await asyncio.to_thread(_measure, raw)
        if width <= 0 or height <= 0:
            raise ValueError("Generated image has no pixels")
        return LoadedImage(data_url=to_data_url(raw, mime_type), width=width, height=height, mime_type=mime_type)

    async def _download(self, url: str) -> Tuple[str, bytes]:
        try:
            if self.http_client is not None:
                response = await self.http_client.get(url)
            else:
                async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                    response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise BackendError(f"Image download failed: {exc}", status_code=exc.response.status_code) from exc
        except httpx.HTTPError as exc:
            raise BackendError(f"Image download failed: {exc}") from exc
        mime_type = response.headers.get("content-type", "image/png").split(";", 1)[0].strip() or "image/png"
        return mime_type, response.content
