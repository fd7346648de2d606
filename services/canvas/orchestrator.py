"""Activity driven generation pipeline for one canvas view.

Flow per request::

    Idle -> Capturing -> ComparingFingerprint -> [OCR -> NeedCheck] -> Generating -> Materializing -> Idle

The bracketed stages run only with the ``staged`` pipeline. Any stage can
end in Aborted (cancellation) and any AI stage in Errored.

Only one request is in flight at a time. The check-and-set in `begin()` runs
before the first await, so concurrent triggers on the event loop cannot both
pass it. Each request owns an `asyncio.Event`; every network call is raced
against it and the losing call is cancelled, which aborts its HTTP request.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional
from uuid import uuid4

from models.canvas_models import (
    AssistanceMode,
    Bounds,
    CanvasAsset,
    CanvasShape,
    GenerationOutcome,
    GenerationRequest,
    GenerationStage,
    MutationEvent,
    OutcomeKind,
    PendingArtifact,
    RequestSource,
)
from services.canvas.document import CanvasDocument
from services.canvas.image_loader import ImageLoader, LoadedImage
from services.canvas.modes import ModeProfile, profile_for
from services.canvas.mutation_guard import SelfMutationGuard
from services.canvas.pending import PendingArtifactManager
from services.canvas.snapshotter import CanvasSnapshotter
from services.canvas.status import StatusIndicator
from services.errors import GenerationCancelled
from services.openai.clients import AIServices
from utils.image_processing import correct_yellowed_whites
from utils.media_validation import split_data_url, to_data_url

LOGGER = logging.getLogger(__name__)

PIPELINES = ("consolidated", "staged")


def fit_to_viewport(viewport: Bounds, width: float, height: float) -> Bounds:
    """Uniformly scale a `width` x `height` image to fit inside `viewport`, centered."""
    scale = min(viewport.w / width, viewport.h / height)
    w = width * scale
    h = height * scale
    return Bounds(x=viewport.x + (viewport.w - w) / 2, y=viewport.y + (viewport.h - h) / 2, w=w, h=h)


class GenerationOrchestrator:
    def __init__(
        self,
        document: CanvasDocument,
        snapshotter: CanvasSnapshotter,
        pending: PendingArtifactManager,
        guard: SelfMutationGuard,
        services: AIServices,
        status: StatusIndicator,
        *,
        image_loader: Optional[Callable[[str], Awaitable[LoadedImage]]] = None,
        pipeline: str = "consolidated",
        mode: Optional[AssistanceMode] = AssistanceMode.SUGGEST,
        pending_opacity: Optional[float] = None,
        correct_whites: bool = False,
        voice_active: Optional[Callable[[], bool]] = None,
        on_outcome: Optional[Callable[[GenerationOutcome], None]] = None,
    ) -> None:
        if pipeline not in PIPELINES:
            raise ValueError(f"Unknown pipeline {pipeline!r}")
        self.document = document
        self.snapshotter = snapshotter
        self.pending = pending
        self.guard = guard
        self.services = services
        self.status = status
        self.image_loader = image_loader or ImageLoader()
        self.pipeline = pipeline
        self.mode = mode
        self.pending_opacity = pending_opacity
        self.correct_whites = correct_whites
        self._voice_active = voice_active or (lambda: False)
        self.on_outcome = on_outcome

        self.active: Optional[GenerationRequest] = None
        self.last_fingerprint: Optional[str] = None
        self.last_outcome: Optional[GenerationOutcome] = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def stage(self) -> GenerationStage:
        return self.active.stage if self.active is not None else GenerationStage.IDLE

    @property
    def in_flight(self) -> bool:
        return self.active is not None

    # -- entry points ------------------------------------------------------

    def begin(
        self,
        source: RequestSource = RequestSource.DEBOUNCE,
        *,
        mode: Optional[AssistanceMode] = None,
        force: bool = False,
        prompt: Optional[str] = None,
    ) -> Optional[GenerationRequest]:
        """Claim the single-flight slot. Returns None when refused."""
        refusal = self._refusal(source)
        if refusal is not None:
            LOGGER.debug("Generation refused (%s) for %s trigger", refusal.value, source.value)
            self.last_outcome = GenerationOutcome(refusal)
            return None
        request = GenerationRequest(source=source, mode=mode or self.mode, force=force, prompt=prompt)
        self.active = request
        LOGGER.info("Generation %s started (%s, mode=%s)", request.request_id, source.value, request.mode)
        return request

    def trigger(
        self,
        source: RequestSource = RequestSource.DEBOUNCE,
        *,
        mode: Optional[AssistanceMode] = None,
        force: bool = False,
        prompt: Optional[str] = None,
    ) -> Optional[asyncio.Task]:
        """Start a request in the background. Returns its task, or None when refused."""
        request = self.begin(source, mode=mode, force=force, prompt=prompt)
        if request is None:
            return None
        self._task = asyncio.ensure_future(self.execute(request))
        return self._task

    async def run(
        self,
        source: RequestSource = RequestSource.MANUAL,
        *,
        mode: Optional[AssistanceMode] = None,
        force: bool = False,
        prompt: Optional[str] = None,
    ) -> GenerationOutcome:
        """Start a request and wait for its outcome."""
        task = self.trigger(source, mode=mode, force=force, prompt=prompt)
        if task is None:
            return self.last_outcome or GenerationOutcome(OutcomeKind.BUSY)
        return await task

    def on_quiet(self) -> None:
        """Debouncer callback."""
        self.trigger(RequestSource.DEBOUNCE)

    def on_document_event(self, event: MutationEvent) -> None:
        """New user work invalidates the in-flight answer."""
        if self.active is None or not event.qualifies or self.guard.active:
            return
        self.cancel("canvas changed")

    def cancel(self, reason: str = "cancelled") -> bool:
        """Abort the in-flight request, if any. Frees the slot immediately."""
        request = self.active
        if request is None:
            return False
        request.cancel_event.set()
        request.stage = GenerationStage.ABORTED
        self.active = None
        self.status.clear()
        LOGGER.info("Generation %s cancelled: %s", request.request_id, reason)
        return True

    def close(self) -> None:
        self._closed = True
        self.cancel("teardown")
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self.status.close()

    # -- pipeline ----------------------------------------------------------

    async def execute(self, request: GenerationRequest) -> GenerationOutcome:
        """Run all stages for a request claimed by `begin()`. Never raises pipeline errors."""
        try:
            outcome = await self._run_stages(request)
        except GenerationCancelled:
            outcome = GenerationOutcome(OutcomeKind.CANCELLED, request_id=request.request_id)
        except Exception as exc:
            if request.cancelled:
                outcome = GenerationOutcome(OutcomeKind.CANCELLED, request_id=request.request_id)
            else:
                LOGGER.error("Generation %s failed during %s: %s", request.request_id, request.stage.value, exc)
                request.stage = GenerationStage.ERRORED
                message = str(exc) or exc.__class__.__name__
                self.status.fail(message)
                outcome = GenerationOutcome(OutcomeKind.ERRORED, request_id=request.request_id, error=message)
        finally:
            if self.active is request:
                self.active = None
            if self._task is not None and self._task is asyncio.current_task():
                self._task = None

        LOGGER.info(
            "Generation %s finished as %s in %.2fs",
            request.request_id,
            outcome.kind.value,
            time.monotonic() - request.started_at,
        )
        self.last_outcome = outcome
        if self.on_outcome is not None:
            self.on_outcome(outcome)
        return outcome

    async def _run_stages(self, request: GenerationRequest) -> GenerationOutcome:
        profile = profile_for(request.mode, self.pending_opacity)
        mode_name = request.mode.value if request.mode is not None else None

        self._advance(request, GenerationStage.CAPTURING)
        fingerprint = await self.snapshotter.fingerprint()
        self._ensure_live(request)
        if fingerprint is None:
            return self._finish(request, OutcomeKind.EMPTY)

        self._advance(request, GenerationStage.COMPARING_FINGERPRINT)
        if not request.force and fingerprint == self.last_fingerprint:
            return self._finish(request, OutcomeKind.UNCHANGED)
        self.last_fingerprint = fingerprint
        request.fingerprint = fingerprint
        self.status.working(profile.working_message)

        if self.pipeline == "staged":
            self._advance(request, GenerationStage.OCR)
            request.ocr_text = await self._race(
                request, self.services.ocr.extract(fingerprint, request_id=request.request_id)
            )
            self._advance(request, GenerationStage.NEED_CHECK)
            decision = await self._race(
                request,
                self.services.help_classifier.check(
                    text=request.ocr_text or None,
                    image_data_url=fingerprint,
                    request_id=request.request_id,
                ),
            )
            if not decision.needs_help:
                LOGGER.info(
                    "Generation %s: no help needed (confidence %.2f): %s",
                    request.request_id,
                    decision.confidence,
                    decision.reason,
                )
                self.status.clear()
                return self._finish(request, OutcomeKind.NO_HELP_NEEDED, text=decision.reason)

        self._advance(request, GenerationStage.GENERATING)
        result = await self._race(
            request,
            self.services.solution_generator.generate(
                fingerprint,
                mode=mode_name,
                prompt=request.prompt,
                ocr_text=request.ocr_text,
                request_id=request.request_id,
            ),
        )
        if result.image_url is None:
            LOGGER.info("Generation %s: generator declined to draw: %s", request.request_id, result.text_content[:500])
            self.status.clear()
            return self._finish(request, OutcomeKind.DECLINED, text=result.text_content)

        self._advance(request, GenerationStage.MATERIALIZING)
        shape_id = await self._materialize(request, result.image_url, profile)
        self.status.succeed(profile.done_message)
        return self._finish(request, OutcomeKind.MATERIALIZED, shape_id=shape_id, text=result.text_content)

    async def _materialize(self, request: GenerationRequest, image_url: str, profile: ModeProfile) -> str:
        loaded = await self._race(request, self.image_loader(image_url))
        if self.correct_whites:
            _, raw = split_data_url(loaded.data_url)
            corrected = await asyncio.to_thread(correct_yellowed_whites, raw)
            self._ensure_live(request)
            loaded = LoadedImage(to_data_url(corrected), loaded.width, loaded.height, "image/png")

        placement = fit_to_viewport(self.document.viewport, loaded.width, loaded.height)
        asset_id = f"asset:{uuid4().hex}"
        shape_id = f"shape:{uuid4().hex}"

        with self.guard.hold():
            self.document.create_asset(
                CanvasAsset(
                    id=asset_id,
                    src=loaded.data_url,
                    w=loaded.width,
                    h=loaded.height,
                    name="generated-solution.png",
                    mime_type=loaded.mime_type,
                )
            )
            self.document.create_shape(
                CanvasShape(
                    id=shape_id,
                    type="image",
                    x=placement.x,
                    y=placement.y,
                    props={"assetId": asset_id, "w": placement.w, "h": placement.h},
                    opacity=profile.opacity,
                    is_locked=True,
                )
            )

        if profile.reviewable:
            self.pending.register(
                PendingArtifact(shape_id=shape_id, asset_id=asset_id, opacity=profile.opacity, mode=request.mode)
            )
        LOGGER.info(
            "Generation %s placed %s at (%.0f, %.0f) %.0fx%.0f",
            request.request_id,
            shape_id,
            placement.x,
            placement.y,
            placement.w,
            placement.h,
        )
        return shape_id

    async def _race(self, request: GenerationRequest, call: Awaitable[Any]) -> Any:
        """Await `call` unless the request is cancelled first; the loser is cancelled."""
        self._ensure_live(request)
        task = asyncio.ensure_future(call)
        waiter = asyncio.ensure_future(request.cancel_event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
        self._ensure_live(request)
        return task.result()

    @staticmethod
    def _ensure_live(request: GenerationRequest) -> None:
        if request.cancelled:
            raise GenerationCancelled(request.request_id)

    @staticmethod
    def _advance(request: GenerationRequest, stage: GenerationStage) -> None:
        request.stage = stage
        LOGGER.debug("Generation %s -> %s", request.request_id, stage.value)

    @staticmethod
    def _finish(request: GenerationRequest, kind: OutcomeKind, **fields: Any) -> GenerationOutcome:
        request.stage = GenerationStage.IDLE
        return GenerationOutcome(kind, request_id=request.request_id, **fields)

    def _refusal(self, source: RequestSource) -> Optional[OutcomeKind]:
        if self._closed or self.active is not None:
            return OutcomeKind.BUSY
        if len(self.document) == 0:
            return OutcomeKind.EMPTY
        if source == RequestSource.DEBOUNCE and self._voice_active():
            return OutcomeKind.VOICE_ACTIVE
        return None
