"""Canvas document and generation pipeline models."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4


class AssistanceMode(str, Enum):
    """How intrusive a generated overlay is allowed to be."""

    FEEDBACK = "feedback"
    SUGGEST = "suggest"
    ANSWER = "answer"

    @classmethod
    def parse(cls, value: Any, default: Optional["AssistanceMode"] = None) -> Optional["AssistanceMode"]:
        """Return the mode named by `value`, or `default` when it is empty.

        Raises:
            ValueError: If `value` is a non-empty string that names no mode.
        """
        if value is None or value == "":
            return default
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown assistance mode: {value!r}") from exc


class GenerationStage(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    COMPARING_FINGERPRINT = "comparing_fingerprint"
    OCR = "ocr"
    NEED_CHECK = "need_check"
    GENERATING = "generating"
    MATERIALIZING = "materializing"
    ABORTED = "aborted"
    ERRORED = "errored"


class RequestSource(str, Enum):
    DEBOUNCE = "debounce"
    VOICE = "voice"
    MANUAL = "manual"


class OutcomeKind(str, Enum):
    """Terminal result of one orchestrator run."""

    BUSY = "busy"
    EMPTY = "empty"
    VOICE_ACTIVE = "voice_active"
    UNCHANGED = "unchanged"
    NO_HELP_NEEDED = "no_help_needed"
    DECLINED = "declined"
    MATERIALIZED = "materialized"
    CANCELLED = "cancelled"
    ERRORED = "errored"


@dataclass
class Bounds:
    """Axis-aligned rectangle in document space."""

    x: float
    y: float
    w: float
    h: float

    @property
    def center(self) -> tuple[float, float]:
        return self.x + self.w / 2, self.y + self.h / 2

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "w": self.w, "h": self.h}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bounds":
        w = float(data.get("w", data.get("width", 0)))
        h = float(data.get("h", data.get("height", 0)))
        if w <= 0 or h <= 0:
            raise ValueError("Bounds must have a positive width and height.")
        return cls(x=float(data.get("x", 0)), y=float(data.get("y", 0)), w=w, h=h)


@dataclass
class CanvasShape:
    """A single shape record.

    Attributes:
        id: Record id, e.g. ``shape:3f2a``.
        type: One of ``draw``, ``geo``, ``text`` or ``image``.
        x: Left edge in document space.
        y: Top edge in document space.
        props: Type specific properties (points, w/h, text, assetId, color).
        opacity: 0.0 to 1.0.
        is_locked: Locked shapes are not selectable by the user.
    """

    id: str
    type: str
    x: float = 0.0
    y: float = 0.0
    props: Dict[str, Any] = field(default_factory=dict)
    opacity: float = 1.0
    is_locked: bool = False
    parent_id: str = "page:page"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "x": self.x,
            "y": self.y,
            "props": dict(self.props),
            "opacity": self.opacity,
            "isLocked": self.is_locked,
            "parentId": self.parent_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CanvasShape":
        shape_id = data.get("id")
        shape_type = data.get("type")
        if not shape_id or not shape_type:
            raise ValueError("Shape records require an id and a type.")
        return cls(
            id=str(shape_id),
            type=str(shape_type),
            x=float(data.get("x", 0)),
            y=float(data.get("y", 0)),
            props=dict(data.get("props") or {}),
            opacity=float(data.get("opacity", 1.0)),
            is_locked=bool(data.get("isLocked", data.get("is_locked", False))),
            parent_id=str(data.get("parentId", "page:page")),
        )


@dataclass
class CanvasAsset:
    """Binary asset (image) referenced by image shapes."""

    id: str
    src: str
    w: int
    h: int
    name: str = "image.png"
    mime_type: str = "image/png"
    type: str = "image"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "props": {
                "name": self.name,
                "src": self.src,
                "w": self.w,
                "h": self.h,
                "mimeType": self.mime_type,
                "isAnimated": False,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CanvasAsset":
        props = data.get("props") or {}
        if not data.get("id") or not props.get("src"):
            raise ValueError("Asset records require an id and a src.")
        return cls(
            id=str(data["id"]),
            src=str(props["src"]),
            w=int(props.get("w", 0)),
            h=int(props.get("h", 0)),
            name=str(props.get("name", "image.png")),
            mime_type=str(props.get("mimeType", "image/png")),
            type=str(data.get("type", "image")),
        )


@dataclass
class MutationEvent:
    """Change notification emitted by the canvas document."""

    kind: str
    record_id: Optional[str]
    source: str = "user"
    scope: str = "document"
    origin: str = "local"

    @property
    def qualifies(self) -> bool:
        """True for user-sourced, document-scoped changes."""
        return self.source == "user" and self.scope == "document"


@dataclass
class GenerationRequest:
    """One in-flight pipeline run; `cancel_event` is its shared cancellation signal."""

    source: RequestSource
    mode: Optional[AssistanceMode]
    force: bool = False
    prompt: Optional[str] = None
    request_id: str = field(default_factory=lambda: uuid4().hex)
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    stage: GenerationStage = GenerationStage.IDLE
    fingerprint: Optional[str] = None
    ocr_text: Optional[str] = None
    started_at: float = field(default_factory=time.monotonic)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


@dataclass
class GenerationOutcome:
    kind: OutcomeKind
    request_id: Optional[str] = None
    shape_id: Optional[str] = None
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind not in (OutcomeKind.ERRORED, OutcomeKind.BUSY, OutcomeKind.VOICE_ACTIVE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "request_id": self.request_id,
            "shape_id": self.shape_id,
            "text": self.text,
            "error": self.error,
        }


@dataclass
class PendingArtifact:
    """Generated overlay awaiting accept or reject."""

    shape_id: str
    asset_id: str
    opacity: float
    locked: bool = True
    mode: Optional[AssistanceMode] = None
    created_at: float = field(default_factory=time.time)
