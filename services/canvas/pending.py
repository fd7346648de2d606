"""Lifecycle of generated overlays awaiting review."""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Callable, List, Optional

from models.canvas_models import PendingArtifact
from services.canvas.document import CanvasDocument
from services.canvas.mutation_guard import SelfMutationGuard

LOGGER = logging.getLogger(__name__)


class PendingArtifactManager:
    """Track ghost overlays and commit or discard them.

    Every canvas write happens under the shared mutation guard so the
    debouncer and the orchestrator ignore it.
    """

    def __init__(
        self,
        document: CanvasDocument,
        guard: SelfMutationGuard,
        on_change: Optional[Callable[[List[str]], None]] = None,
    ) -> None:
        self.document = document
        self.guard = guard
        self.on_change = on_change
        self._pending: "OrderedDict[str, PendingArtifact]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, shape_id: object) -> bool:
        return shape_id in self._pending

    def ids(self) -> List[str]:
        return list(self._pending)

    def get(self, shape_id: str) -> Optional[PendingArtifact]:
        return self._pending.get(shape_id)

    def current(self) -> Optional[str]:
        """Most recently registered pending shape id."""
        return next(reversed(self._pending), None)

    def register(self, artifact: PendingArtifact) -> None:
        self._pending[artifact.shape_id] = artifact
        self._changed()

    def accept(self, shape_id: str) -> PendingArtifact:
        """Commit an overlay: full opacity, locked.

        Raises:
            KeyError: If `shape_id` is not pending or no longer on the canvas.
        """
        artifact = self._take(shape_id)
        with self.guard.hold():
            self.document.update_shape(shape_id, is_locked=False)
            self.document.update_shape(shape_id, opacity=1.0)
            self.document.update_shape(shape_id, is_locked=True)
        artifact.opacity = 1.0
        artifact.locked = True
        LOGGER.info("Accepted overlay %s", shape_id)
        self._changed()
        return artifact

    def reject(self, shape_id: str) -> PendingArtifact:
        """Delete an overlay. Its asset stays in the store unreferenced.

        Raises:
            KeyError: If `shape_id` is not pending or no longer on the canvas.
        """
        artifact = self._take(shape_id)
        with self.guard.hold():
            self.document.update_shape(shape_id, is_locked=False)
            self.document.delete_shape(shape_id)
        LOGGER.info("Rejected overlay %s", shape_id)
        self._changed()
        return artifact

    def accept_all(self) -> List[PendingArtifact]:
        return [self.accept(shape_id) for shape_id in self.ids()]

    def reject_all(self) -> List[PendingArtifact]:
        return [self.reject(shape_id) for shape_id in self.ids()]

    def _take(self, shape_id: str) -> PendingArtifact:
        artifact = self._pending.pop(shape_id, None)
        if artifact is None:
            raise KeyError(f"No pending artifact {shape_id}")
        if self.document.get_shape(shape_id) is None:
            self._changed()
            raise KeyError(f"Shape {shape_id} is no longer on the canvas")
        return artifact

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self.ids())
