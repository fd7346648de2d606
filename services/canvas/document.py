"""In-memory canvas document mirrored from the browser editor.

The browser sends its shape edits over the board websocket; the server keeps
this copy so it can rasterize the visible work, write generated overlays and
persist snapshots. Every mutation notifies listeners synchronously with a
`MutationEvent`.
"""

from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

from models.canvas_models import Bounds, CanvasAsset, CanvasShape, MutationEvent
from utils.media_validation import split_data_url

LOGGER = logging.getLogger(__name__)

Listener = Callable[[MutationEvent], None]

DEFAULT_VIEWPORT = Bounds(x=0, y=0, w=1280, h=720)
SNAPSHOT_VERSION = 1

COLORS: Dict[str, Tuple[int, int, int]] = {
    "black": (29, 29, 29),
    "grey": (158, 158, 158),
    "blue": (68, 101, 233),
    "light-blue": (75, 161, 241),
    "green": (9, 146, 104),
    "light-green": (76, 176, 5),
    "orange": (225, 105, 25),
    "red": (224, 49, 49),
    "light-red": (248, 119, 119),
    "violet": (174, 62, 201),
    "yellow": (241, 172, 75),
}
STROKE_WIDTHS = {"s": 2, "m": 3.5, "l": 5, "xl": 10}


class CanvasDocument:
    """Shape and asset store with viewport bounds and change notifications."""

    def __init__(self, viewport: Optional[Bounds] = None) -> None:
        self.viewport = viewport or replace(DEFAULT_VIEWPORT)
        self._shapes: Dict[str, CanvasShape] = {}
        self._assets: Dict[str, CanvasAsset] = {}
        self._listeners: List[Listener] = []

    # -- observation -------------------------------------------------------

    def listen(self, listener: Listener) -> Callable[[], None]:
        """Subscribe to mutation events. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: MutationEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    # -- reads -------------------------------------------------------------

    def shape_ids(self) -> List[str]:
        return list(self._shapes)

    def get_shape(self, shape_id: str) -> Optional[CanvasShape]:
        return self._shapes.get(shape_id)

    def get_asset(self, asset_id: str) -> Optional[CanvasAsset]:
        return self._assets.get(asset_id)

    def __len__(self) -> int:
        return len(self._shapes)

    # -- writes ------------------------------------------------------------

    def create_asset(self, asset: CanvasAsset, *, source: str = "user", origin: str = "local") -> CanvasAsset:
        self._assets[asset.id] = asset
        self._emit(MutationEvent("asset", asset.id, source=source, origin=origin))
        return asset

    def create_shape(self, shape: CanvasShape, *, source: str = "user", origin: str = "local") -> CanvasShape:
        if shape.id in self._shapes:
            raise ValueError(f"Shape {shape.id} already exists")
        self._shapes[shape.id] = shape
        self._emit(MutationEvent("create", shape.id, source=source, origin=origin))
        return shape

    def update_shape(self, shape_id: str, *, source: str = "user", origin: str = "local", **changes: Any) -> CanvasShape:
        """Apply attribute changes to a shape.

        Raises:
            KeyError: If the shape does not exist.
        """
        shape = self._shapes.get(shape_id)
        if shape is None:
            raise KeyError(f"Shape {shape_id} not found")
        props = changes.pop("props", None)
        if props is not None:
            changes["props"] = {**shape.props, **props}
        updated = replace(shape, **changes)
        self._shapes[shape_id] = updated
        self._emit(MutationEvent("update", shape_id, source=source, origin=origin))
        return updated

    def delete_shape(self, shape_id: str, *, source: str = "user", origin: str = "local") -> None:
        if self._shapes.pop(shape_id, None) is None:
            raise KeyError(f"Shape {shape_id} not found")
        self._emit(MutationEvent("delete", shape_id, source=source, origin=origin))

    def set_viewport(self, bounds: Bounds) -> None:
        """Camera moves are session scoped and never count as document activity."""
        self.viewport = bounds
        self._emit(MutationEvent("viewport", None, source="user", scope="session"))

    def apply_ops(self, ops: Iterable[Dict[str, Any]], *, source: str = "user") -> int:
        """Apply a batch of client edits atomically. Returns the number of ops applied.

        Each op is ``{"op": "create" | "update" | "delete" | "asset", ...}``.
        Records must carry ``shape`` (create/update), ``id`` (delete) or
        ``asset`` (asset). ``create`` of an existing id and ``update`` of a
        missing id are both upserts. Every record is built before the first
        write, so a bad op leaves the document untouched.

        Raises:
            ValueError: On an unknown op or a malformed record.
        """
        plan: List[Tuple[str, Any]] = []
        staged: Dict[str, Optional[CanvasShape]] = {}

        def current(shape_id: str) -> Optional[CanvasShape]:
            return staged[shape_id] if shape_id in staged else self._shapes.get(shape_id)

        ops = list(ops)
        for index, op in enumerate(ops):
            if not isinstance(op, dict):
                raise ValueError(f"Canvas op {index} must be an object.")
            kind = op.get("op")
            try:
                if kind in ("create", "update"):
                    record = op.get("shape") or {}
                    if not isinstance(record, dict):
                        raise ValueError("Shape records must be objects.")
                    base = current(str(record.get("id") or ""))
                    if base is not None and kind == "update":
                        record = {**base.to_dict(), **record}
                    shape = CanvasShape.from_dict(record)
                    plan.append(("create" if base is None else "update", shape))
                    staged[shape.id] = shape
                elif kind == "delete":
                    shape_id = op.get("id")
                    if shape_id and current(shape_id) is not None:
                        plan.append(("delete", shape_id))
                        staged[shape_id] = None
                elif kind == "asset":
                    record = op.get("asset") or {}
                    if not isinstance(record, dict):
                        raise ValueError("Asset records must be objects.")
                    plan.append(("asset", CanvasAsset.from_dict(record)))
                else:
                    raise ValueError(f"Unsupported canvas op: {kind!r}")
            except (TypeError, ValueError) as exc:
                raise ValueError(f"Canvas op {index} ({kind!r}) is invalid: {exc}") from exc

        for action, item in plan:
            if action == "asset":
                self.create_asset(item, source=source, origin="client")
            elif action == "delete":
                self.delete_shape(item, source=source, origin="client")
            else:
                self._shapes[item.id] = item
                self._emit(MutationEvent(action, item.id, source=source, origin="client"))
        return len(ops)

    # -- snapshots ---------------------------------------------------------

    def get_snapshot(self) -> Dict[str, Any]:
        return {
            "version": SNAPSHOT_VERSION,
            "shapes": [shape.to_dict() for shape in self._shapes.values()],
            "assets": [asset.to_dict() for asset in self._assets.values()],
            "viewport": self.viewport.to_dict(),
        }

    def load_snapshot(self, snapshot: Dict[str, Any]) -> None:
        """Replace the document contents. Emits a single remote-sourced event."""
        shapes = [CanvasShape.from_dict(item) for item in snapshot.get("shapes") or []]
        assets = [CanvasAsset.from_dict(item) for item in snapshot.get("assets") or []]
        viewport = snapshot.get("viewport")
        self._shapes = {shape.id: shape for shape in shapes}
        self._assets = {asset.id: asset for asset in assets}
        if viewport:
            self.viewport = Bounds.from_dict(viewport)
        self._emit(MutationEvent("load", None, source="remote"))

    # -- rendering ---------------------------------------------------------

    def content_bounds(self, shape_ids: Optional[Sequence[str]] = None) -> Optional[Bounds]:
        """Union of the extents of `shape_ids` (all shapes by default)."""
        ids = self.shape_ids() if shape_ids is None else shape_ids
        boxes = [_shape_extent(self._shapes[i]) for i in ids if i in self._shapes]
        if not boxes:
            return None
        left = min(b[0] for b in boxes)
        top = min(b[1] for b in boxes)
        right = max(b[2] for b in boxes)
        bottom = max(b[3] for b in boxes)
        return Bounds(x=left, y=top, w=max(right - left, 1), h=max(bottom - top, 1))

    async def to_image(
        self,
        shape_ids: Sequence[str],
        *,
        bounds: Optional[Bounds] = None,
        scale: float = 1.0,
        padding: int = 0,
        background: bool = True,
    ) -> Optional[bytes]:
        """Rasterize `shape_ids` clipped to `bounds` and return PNG bytes.

        Returns None when none of the ids exist. Identical inputs produce
        byte-identical output.
        """
        shapes = [self._shapes[i] for i in shape_ids if i in self._shapes]
        if not shapes:
            return None
        region = bounds or self.content_bounds([s.id for s in shapes]) or self.viewport
        assets = {
            s.props.get("assetId"): self._assets[s.props["assetId"]]
            for s in shapes
            if s.type == "image" and s.props.get("assetId") in self._assets
        }
        return await asyncio.to_thread(_rasterize, shapes, assets, region, scale, padding, background)


def _shape_extent(shape: CanvasShape) -> Tuple[float, float, float, float]:
    if shape.type == "draw":
        points = _points(shape)
        if points:
            xs = [p[0] for p in points]
            ys = [p[1] for p in points]
            return shape.x + min(xs), shape.y + min(ys), shape.x + max(xs), shape.y + max(ys)
        return shape.x, shape.y, shape.x + 1, shape.y + 1
    if shape.type == "text":
        text = str(shape.props.get("text", ""))
        lines = text.splitlines() or [""]
        width = max(len(line) for line in lines) * 8
        return shape.x, shape.y, shape.x + max(width, 1), shape.y + 16 * len(lines)
    w = float(shape.props.get("w", 1))
    h = float(shape.props.get("h", 1))
    return shape.x, shape.y, shape.x + w, shape.y + h


def _points(shape: CanvasShape) -> List[Tuple[float, float]]:
    raw = shape.props.get("points")
    if raw is None:
        segments = shape.props.get("segments") or []
        raw = [p for segment in segments for p in segment.get("points", [])]
    points: List[Tuple[float, float]] = []
    for point in raw:
        if isinstance(point, dict):
            points.append((float(point.get("x", 0)), float(point.get("y", 0))))
        else:
            points.append((float(point[0]), float(point[1])))
    return points


def _rasterize(
    shapes: Sequence[CanvasShape],
    assets: Dict[str, CanvasAsset],
    region: Bounds,
    scale: float,
    padding: int,
    background: bool,
) -> bytes:
    width = max(int(round(region.w * scale)) + 2 * padding, 1)
    height = max(int(round(region.h * scale)) + 2 * padding, 1)
    fill = (255, 255, 255, 255) if background else (0, 0, 0, 0)
    canvas = Image.new("RGBA", (width, height), fill)

    def project(x: float, y: float) -> Tuple[float, float]:
        return (x - region.x) * scale + padding, (y - region.y) * scale + padding

    for shape in shapes:
        layer = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)
        color = COLORS.get(str(shape.props.get("color", "black")), COLORS["black"]) + (255,)
        stroke = max(int(round(STROKE_WIDTHS.get(str(shape.props.get("size", "m")), 3.5) * scale)), 1)

        if shape.type == "draw":
            points = [project(shape.x + px, shape.y + py) for px, py in _points(shape)]
            if len(points) == 1:
                x, y = points[0]
                draw.ellipse((x - stroke / 2, y - stroke / 2, x + stroke / 2, y + stroke / 2), fill=color)
            elif points:
                draw.line(points, fill=color, width=stroke, joint="curve")
        elif shape.type == "geo":
            left, top = project(shape.x, shape.y)
            right, bottom = project(shape.x + float(shape.props.get("w", 0)), shape.y + float(shape.props.get("h", 0)))
            box = (min(left, right), min(top, bottom), max(left, right), max(top, bottom))
            if shape.props.get("geo") == "ellipse":
                draw.ellipse(box, outline=color, width=stroke)
            else:
                draw.rectangle(box, outline=color, width=stroke)
        elif shape.type == "text":
            draw.text(project(shape.x, shape.y), str(shape.props.get("text", "")), fill=color, font=ImageFont.load_default())
        elif shape.type == "image":
            asset = assets.get(shape.props.get("assetId"))
            if asset is None:
                continue
            _paste_asset(layer, asset, shape, project, scale)
        else:
            LOGGER.debug("Skipping unsupported shape type %s", shape.type)
            continue

        if shape.opacity < 1.0:
            alpha = layer.getchannel("A").point(lambda a, o=max(shape.opacity, 0.0): int(a * o))
            layer.putalpha(alpha)
        canvas.alpha_composite(layer)

    out_io = io.BytesIO()
    canvas.save(out_io, format="PNG")
    return out_io.getvalue()


def _paste_asset(layer: Image.Image, asset: CanvasAsset, shape: CanvasShape, project, scale: float) -> None:
    try:
        _, raw = split_data_url(asset.src)
        src = Image.open(io.BytesIO(raw)).convert("RGBA")
    except Exception as exc:
        raise ValueError(f"Asset {asset.id} could not be decoded") from exc
    w = max(int(round(float(shape.props.get("w", asset.w)) * scale)), 1)
    h = max(int(round(float(shape.props.get("h", asset.h)) * scale)), 1)
    src = src.resize((w, h), Image.LANCZOS)
    x, y = project(shape.x, shape.y)
    layer.paste(src, (int(round(x)), int(round(y))), src)
