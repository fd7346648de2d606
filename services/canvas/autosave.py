"""Debounced persistence of the board snapshot and its dashboard preview."""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from services.canvas.debouncer import ActivityDebouncer
from services.canvas.document import CanvasDocument
from services.canvas.snapshotter import CanvasSnapshotter
from services.errors import SnapshotSerializationError
from services.thumbnail_generator import ThumbnailGenerator

LOGGER = logging.getLogger(__name__)

SaveFn = Callable[[str, Optional[bytes]], Awaitable[Any]]


def serialize_snapshot(snapshot: Dict[str, Any]) -> str:
    try:
        return json.dumps(snapshot, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise SnapshotSerializationError(f"Snapshot is not serializable: {exc}") from exc


class BoardAutosaver:
    """Save the document after it has been quiet for `delay` seconds.

    Failures are logged and never propagate into the interactive session.
    """

    def __init__(
        self,
        document: CanvasDocument,
        snapshotter: CanvasSnapshotter,
        save: SaveFn,
        delay: float = 2.0,
        thumbnails: Optional[ThumbnailGenerator] = None,
    ) -> None:
        self.document = document
        self.snapshotter = snapshotter
        self.save = save
        self.thumbnails = thumbnails or ThumbnailGenerator(max_size=(480, 270), background=None)
        self.saves = 0
        self._saved_at: Optional[float] = None
        self._task: Optional[asyncio.Task] = None
        self._debouncer = ActivityDebouncer(self._schedule, quiet_period=delay)

    def start(self) -> None:
        """Watch the document; unlike generation, our own writes are saved too."""
        self._debouncer.arm(self.document, start_timer=False)

    @property
    def dirty(self) -> bool:
        """True when edits arrived after the last successful save began."""
        last_event = self._debouncer.session.last_event_at
        return last_event is not None and (self._saved_at is None or last_event > self._saved_at)

    def stop(self) -> None:
        self._debouncer.disarm()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def close(self) -> bool:
        """Stop watching and write any unsaved edits."""
        self.stop()
        if not self.dirty:
            return False
        return await self.flush()

    def _schedule(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.ensure_future(self.flush())

    async def flush(self) -> bool:
        """Save now. Returns True when the board row was written."""
        started = asyncio.get_running_loop().time()
        try:
            data = serialize_snapshot(self.document.get_snapshot())
        except SnapshotSerializationError as exc:
            LOGGER.error("Autosave skipped: %s", exc)
            return False

        preview: Optional[bytes] = None
        try:
            raw = await self.snapshotter.preview()
            if raw is not None:
                encoded = await asyncio.to_thread(
                    self.thumbnails.create_thumbnail_from_base64, base64.b64encode(raw)
                )
                preview = base64.b64decode(encoded)
        except ValueError as exc:
            LOGGER.warning("Autosave preview failed, saving without it: %s", exc)

        try:
            await self.save(data, preview)
        except Exception as exc:
            LOGGER.error("Autosave failed: %s", exc)
            return False
        self._saved_at = started
        self.saves += 1
        LOGGER.debug("Autosaved board (%d bytes)", len(data))
        return True
