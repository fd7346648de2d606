"""Raster captures of the canvas for change detection and AI input."""

from __future__ import annotations

from typing import Callable, Collection, Optional, Sequence

from models.canvas_models import Bounds
from services.canvas.document import CanvasDocument
from utils.media_validation import to_data_url


class CanvasSnapshotter:
    """Capture visible work as PNG, leaving out pending overlays.

    Fingerprint captures always use scale 1, padding 0 and a white
    background so an unchanged canvas yields byte-identical output.
    """

    def __init__(self, document: CanvasDocument, pending_ids: Optional[Callable[[], Collection[str]]] = None) -> None:
        self.document = document
        self._pending_ids = pending_ids or (lambda: ())

    async def capture(self, shape_ids: Optional[Sequence[str]] = None, bounds: Optional[Bounds] = None) -> Optional[bytes]:
        """Return PNG bytes of `shape_ids` minus pending shapes, or None if nothing is left."""
        excluded = set(self._pending_ids())
        candidates = self.document.shape_ids() if shape_ids is None else shape_ids
        included = [shape_id for shape_id in candidates if shape_id not in excluded]
        if not included:
            return None
        return await self.document.to_image(
            included,
            bounds=bounds or self.document.viewport,
            scale=1,
            padding=0,
            background=True,
        )

    async def fingerprint(self, shape_ids: Optional[Sequence[str]] = None, bounds: Optional[Bounds] = None) -> Optional[str]:
        """Data URL of `capture()`; doubles as the upload payload."""
        raw = await self.capture(shape_ids, bounds)
        return to_data_url(raw, "image/png") if raw is not None else None

    async def capture_all(self) -> Optional[str]:
        """Everything in the viewport, pending overlays included, as a data URL."""
        ids = self.document.shape_ids()
        if not ids:
            return None
        raw = await self.document.to_image(ids, bounds=self.document.viewport, scale=1, padding=0, background=True)
        return to_data_url(raw, "image/png") if raw is not None else None

    async def preview(self) -> Optional[bytes]:
        """Half-scale transparent render of all content for dashboard thumbnails."""
        ids = self.document.shape_ids()
        if not ids:
            return None
        return await self.document.to_image(ids, scale=0.5, padding=0, background=False)
