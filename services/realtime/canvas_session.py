"""Per-connection composition of the canvas pipeline and voice tutor."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from models.canvas_models import AssistanceMode, GenerationOutcome, MutationEvent
from models.session_models import VoiceSession
from services.canvas.autosave import BoardAutosaver
from services.canvas.debouncer import ActivityDebouncer
from services.canvas.document import CanvasDocument
from services.canvas.image_loader import ImageLoader
from services.canvas.mutation_guard import SelfMutationGuard
from services.canvas.orchestrator import GenerationOrchestrator
from services.canvas.pending import PendingArtifactManager
from services.canvas.snapshotter import CanvasSnapshotter
from services.canvas.status import StatusIndicator, StatusSnapshot
from services.openai.clients import AIServices
from services.realtime.tools import VoiceTools
from services.realtime.voice_bridge import VoiceToolBridge
from utils.settings import Settings

LOGGER = logging.getLogger(__name__)

SaveFn = Callable[[str, Optional[bytes]], Awaitable[Any]]


class CanvasSession:
	"""Everything one open board view needs, wired together.

	Outbound messages for the browser are queued on `outbox`.
	"""

	def __init__(
		self,
		board_id: str,
		services: AIServices,
		settings: Settings,
		*,
		save: Optional[SaveFn] = None,
		transport_factory: Optional[Callable[[], Any]] = None,
		image_loader: Optional[Callable[[str], Awaitable[Any]]] = None,
		http_client: Optional[httpx.AsyncClient] = None,
	) -> None:
		self.board_id = board_id
		self.settings = settings
		self.outbox: asyncio.Queue = asyncio.Queue()
		self.closed = False

		self.document = CanvasDocument()
		self.guard = SelfMutationGuard(settings.suppression_grace_seconds)
		self.pending = PendingArtifactManager(self.document, self.guard, on_change=self._pending_changed)
		self.snapshotter = CanvasSnapshotter(self.document, self.pending.ids)
		self.status = StatusIndicator(
			self._status_changed,
			success_seconds=settings.success_display_seconds,
			error_seconds=settings.error_display_seconds,
		)
		self.orchestrator = GenerationOrchestrator(
			self.document,
			self.snapshotter,
			self.pending,
			self.guard,
			services,
			self.status,
			image_loader=image_loader or ImageLoader(http_client),
			pipeline=settings.pipeline,
			mode=AssistanceMode.parse(settings.default_mode),
			pending_opacity=settings.pending_opacity,
			correct_whites=settings.correct_generated_whites,
			voice_active=lambda: self.voice.active,
			on_outcome=self._outcome,
		)
		self.tools = VoiceTools(self.snapshotter, services.workspace_analyzer, self.orchestrator)
		self.voice = VoiceToolBridge(
			services.realtime_tokens,
			transport_factory or _missing_transport,
			handlers=self.tools.handlers,
			tool_definitions=self.tools.definitions,
			realtime_url=settings.realtime_url,
			model=settings.realtime_model,
			http_client=http_client,
			on_status=self._voice_changed,
		)
		self.debouncer = ActivityDebouncer(
			self.orchestrator.on_quiet,
			quiet_period=settings.quiet_period_seconds,
			is_suppressed=lambda: self.guard.active,
		)
		self.autosaver = (
			BoardAutosaver(self.document, self.snapshotter, save, delay=settings.autosave_delay_seconds)
			if save is not None
			else None
		)
		self._unsubscribe: Optional[Callable[[], None]] = None

	def open(self, snapshot: Optional[Dict[str, Any]] = None) -> None:
		"""Load the stored snapshot and start watching for activity."""
		if snapshot:
			try:
				self.document.load_snapshot(snapshot)
			except (KeyError, TypeError, ValueError) as exc:
				LOGGER.error("Board %s snapshot could not be loaded, starting empty: %s", self.board_id, exc)
		self._unsubscribe = self.document.listen(self._on_document_event)
		self.debouncer.arm(self.document)
		if self.autosaver is not None:
			self.autosaver.start()

	async def close(self) -> None:
		"""Tear down timers, the in-flight request and the voice session."""
		if self.closed:
			return
		self.closed = True
		self.debouncer.disarm()
		self.orchestrator.close()
		await self.voice.stop()
		if self.autosaver is not None:
			await self.autosaver.close()
		if self._unsubscribe is not None:
			self._unsubscribe()
			self._unsubscribe = None
		self.guard.reset()

	def set_mode(self, mode: Optional[AssistanceMode]) -> None:
		self.orchestrator.mode = mode

	def ready_payload(self) -> Dict[str, Any]:
		return {
			"type": "session.ready",
			"board_id": self.board_id,
			"mode": self.orchestrator.mode.value if self.orchestrator.mode else None,
			"snapshot": self.document.get_snapshot(),
			"pending": self.pending.ids(),
		}

	def emit(self, payload: Dict[str, Any]) -> None:
		if not self.closed:
			self.outbox.put_nowait(payload)

	# -- listeners ---------------------------------------------------------

	def _on_document_event(self, event: MutationEvent) -> None:
		self.orchestrator.on_document_event(event)
		if event.origin != "local" or event.record_id is None:
			return
		if event.kind == "asset":
			asset = self.document.get_asset(event.record_id)
			if asset is not None:
				self.emit({"type": "canvas.asset_created", "asset": asset.to_dict()})
		elif event.kind == "delete":
			self.emit({"type": "canvas.shape_deleted", "id": event.record_id})
		elif event.kind in ("create", "update"):
			shape = self.document.get_shape(event.record_id)
			if shape is not None:
				self.emit({"type": f"canvas.shape_{event.kind}d", "shape": shape.to_dict()})

	def _pending_changed(self, ids) -> None:
		self.emit({"type": "artifacts.pending", "pending": list(ids), "current": ids[-1] if ids else None})

	def _status_changed(self, snapshot: StatusSnapshot) -> None:
		self.emit({"type": "status", **snapshot.to_dict()})

	def _voice_changed(self, session: VoiceSession) -> None:
		self.emit(
			{
				"type": "voice.status",
				"state": session.state.value,
				"status": session.status,
				"muted": session.muted,
				"active": session.active,
			}
		)

	def _outcome(self, outcome: GenerationOutcome) -> None:
		self.emit({"type": "generation.outcome", **outcome.to_dict()})


def _missing_transport() -> Any:
	raise RuntimeError("Voice transport is not configured")
