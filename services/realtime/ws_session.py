"""Dispatch board websocket events to the canvas session."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from models.canvas_models import AssistanceMode, Bounds, RequestSource
from services.realtime.canvas_session import CanvasSession

LOGGER = logging.getLogger(__name__)


class BoardMessageHandler:
	"""Route websocket messages for a single open board."""

	def __init__(self, session: CanvasSession) -> None:
		self.session = session
		self._voice_task: Optional[asyncio.Task] = None

	async def handle(self, payload: Dict[str, Any]) -> None:
		"""Process a single inbound websocket payload."""
		request_id = payload.get("request_id")
		message_type = payload.get("type")
		try:
			if message_type == "canvas.ops":
				result = self._apply_ops(payload)
			elif message_type == "canvas.viewport":
				result = self._set_viewport(payload)
			elif message_type == "assist.mode":
				result = self._set_mode(payload)
			elif message_type == "artifact.accept":
				result = self._accept(payload)
			elif message_type == "artifact.reject":
				result = self._reject(payload)
			elif message_type == "artifact.accept_all":
				accepted = self.session.pending.accept_all()
				result = {"type": "artifact.accepted", "ids": [a.shape_id for a in accepted]}
			elif message_type == "generation.request":
				result = self._request_generation(payload)
			elif message_type == "generation.cancel":
				result = {"type": "generation.cancelled", "cancelled": self.session.orchestrator.cancel("client request")}
			elif message_type == "voice.start":
				result = self._start_voice()
			elif message_type == "voice.stop":
				await self.session.voice.stop()
				result = None
			elif message_type == "voice.mute":
				self.session.voice.set_muted(bool(payload.get("muted", True)))
				result = None
			else:
				raise ValueError("Unsupported message type.")
			if result is not None:
				result["request_id"] = request_id
				self.session.emit(result)
		except KeyError as exc:
			self._send_error(request_id, str(exc.args[0]) if exc.args else "Not found")
		except Exception as exc:
			self._send_error(request_id, str(exc))

	async def close(self) -> None:
		if self._voice_task is not None and not self._voice_task.done():
			self._voice_task.cancel()

	def _apply_ops(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
		ops = payload.get("ops")
		if not isinstance(ops, list):
			raise ValueError("canvas.ops requires an ops list.")
		self.session.document.apply_ops(ops)
		return None

	def _set_viewport(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
		bounds = payload.get("bounds")
		if not isinstance(bounds, dict):
			raise ValueError("canvas.viewport requires bounds.")
		self.session.document.set_viewport(Bounds.from_dict(bounds))
		return None

	def _set_mode(self, payload: Dict[str, Any]) -> Dict[str, Any]:
		mode = AssistanceMode.parse(payload.get("mode"))
		self.session.set_mode(mode)
		return {"type": "assist.mode", "mode": mode.value if mode else None}

	def _accept(self, payload: Dict[str, Any]) -> Dict[str, Any]:
		shape_id = payload.get("id") or self.session.pending.current()
		if not shape_id:
			raise ValueError("No pending artifact to accept.")
		self.session.pending.accept(shape_id)
		return {"type": "artifact.accepted", "ids": [shape_id]}

	def _reject(self, payload: Dict[str, Any]) -> Dict[str, Any]:
		shape_id = payload.get("id") or self.session.pending.current()
		if not shape_id:
			raise ValueError("No pending artifact to reject.")
		self.session.pending.reject(shape_id)
		return {"type": "artifact.rejected", "ids": [shape_id]}

	def _request_generation(self, payload: Dict[str, Any]) -> Dict[str, Any]:
		mode = AssistanceMode.parse(payload.get("mode"))
		task = self.session.orchestrator.trigger(
			RequestSource.MANUAL,
			mode=mode,
			force=bool(payload.get("force", True)),
			prompt=payload.get("prompt"),
		)
		if task is None:
			outcome = self.session.orchestrator.last_outcome
			return {"type": "generation.refused", "reason": outcome.kind.value if outcome else "busy"}
		return {"type": "generation.started"}

	def _start_voice(self) -> Dict[str, Any]:
		if self.session.voice.active:
			raise RuntimeError("Voice session already active.")
		self._voice_task = asyncio.ensure_future(self.session.voice.start())
		return {"type": "voice.starting"}

	def _send_error(self, request_id: Any, detail: str) -> None:
		self.session.emit({"type": "error", "request_id": request_id, "detail": detail})
