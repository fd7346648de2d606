"""WebRTC session with the OpenAI Realtime API and its tool-call protocol.

Lifecycle::

    Idle -> Connecting -> GatheringIce -> Listening <-> Thinking <-> CallingTool -> Idle

Errors land in Error, a refused microphone in PermissionDenied. Every tool
call is answered with a ``function_call_output`` item followed by
``response.create``, whether the tool succeeded or not.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Set

import httpx

from models.session_models import VoiceSession, VoiceState
from services.errors import BackendError, ConfigurationError, MicrophonePermissionError, VoiceConnectionError
from services.openai.realtime_token import RealtimeTokenService
from services.realtime.prompts import tutor_instructions
from services.realtime.tool_accumulator import ToolCallAccumulator
from services.realtime.tools import ToolHandler
from utils.settings import OPENAI_REALTIME_URL

LOGGER = logging.getLogger(__name__)

DATA_CHANNEL_LABEL = "oai-events"
DEFAULT_REALTIME_MODEL = "gpt-4o-realtime-preview-2024-12-17"

_STATUS_EVENTS = {
	"input_audio_buffer.speech_started": (VoiceState.LISTENING, "Listening..."),
	"input_audio_buffer.speech_stopped": (VoiceState.THINKING, "Thinking..."),
	"response.created": (VoiceState.THINKING, "Responding..."),
	"response.done": (VoiceState.LISTENING, "Listening..."),
}


async def exchange_sdp(
	offer_sdp: str,
	client_secret: str,
	*,
	url: str = OPENAI_REALTIME_URL,
	model: str = DEFAULT_REALTIME_MODEL,
	http_client: Optional[httpx.AsyncClient] = None,
	timeout: float = 20.0,
) -> str:
	"""POST the local offer and return the answer SDP."""
	headers = {"Authorization": f"Bearer {client_secret}", "Content-Type": "application/sdp"}
	try:
		if http_client is not None:
			response = await http_client.post(url, params={"model": model}, content=offer_sdp, headers=headers)
		else:
			async with httpx.AsyncClient(timeout=timeout) as client:
				response = await client.post(url, params={"model": model}, content=offer_sdp, headers=headers)
	except httpx.HTTPError as exc:
		raise VoiceConnectionError(f"SDP exchange failed: {exc}") from exc
	if response.status_code >= 400:
		raise VoiceConnectionError(f"SDP exchange failed with status {response.status_code}")
	answer = response.text
	if not answer.strip():
		raise VoiceConnectionError("SDP exchange returned an empty answer")
	return answer


class VoiceToolBridge:
	"""Drive one realtime voice session for a canvas view.

	`transport_factory` returns an object with the `AiortcTransport` surface
	(see `services.realtime.rtc_transport`).
	"""

	def __init__(
		self,
		token_service: RealtimeTokenService,
		transport_factory: Callable[[], Any],
		*,
		handlers: Optional[Dict[str, ToolHandler]] = None,
		tool_definitions: Optional[List[Dict[str, Any]]] = None,
		instructions: Optional[str] = None,
		realtime_url: str = OPENAI_REALTIME_URL,
		model: str = DEFAULT_REALTIME_MODEL,
		http_client: Optional[httpx.AsyncClient] = None,
		on_status: Optional[Callable[[VoiceSession], None]] = None,
	) -> None:
		self.token_service = token_service
		self.transport_factory = transport_factory
		self.handlers: Dict[str, ToolHandler] = dict(handlers or {})
		self.tool_definitions = list(tool_definitions or [])
		self.instructions = instructions or tutor_instructions()
		self.realtime_url = realtime_url
		self.model = model
		self.http_client = http_client
		self.on_status = on_status

		self.session = VoiceSession()
		self.accumulator = ToolCallAccumulator()
		self._transport: Optional[Any] = None
		self._tool_tasks: Set[asyncio.Task] = set()
		self._start_task: Optional[asyncio.Task] = None

	@property
	def active(self) -> bool:
		return self.session.active

	# -- lifecycle ---------------------------------------------------------

	async def start(self) -> None:
		"""Connect microphone, data channel and peer connection.

		Failures are reported through the session status, never raised.
		"""
		if self.session.active:
			return
		self._start_task = asyncio.current_task()
		self._set_state(VoiceState.CONNECTING, "Connecting...")
		try:
			client_secret = await self.token_service.create_client_secret()

			transport = self.transport_factory()
			self._transport = transport
			transport.on_connection_state = self._connection_changed
			await transport.start_microphone()
			transport.open_data_channel(
				DATA_CHANNEL_LABEL,
				on_open=self._channel_opened,
				on_message=self.receive,
				on_close=self._channel_closed,
			)
			transport.attach_remote_audio()

			self._set_state(VoiceState.GATHERING_ICE, "Connecting...")
			offer = await transport.create_offer()
			answer = await exchange_sdp(
				offer,
				client_secret,
				url=self.realtime_url,
				model=self.model,
				http_client=self.http_client,
			)
			await transport.apply_answer(answer)
			self.session.connection_state = transport.connection_state
		except MicrophonePermissionError as exc:
			LOGGER.warning("Microphone permission denied: %s", exc)
			await self._fail("Microphone permission denied", VoiceState.PERMISSION_DENIED)
		except (ConfigurationError, BackendError, VoiceConnectionError) as exc:
			LOGGER.error("Voice session failed to start: %s", exc)
			await self._fail(f"Error: {exc}")
		except asyncio.CancelledError:
			await self._teardown()
			raise
		except Exception as exc:
			LOGGER.exception("Unexpected voice start failure")
			await self._fail(f"Error: {exc}")
		finally:
			self._start_task = None

	async def stop(self) -> None:
		"""Tear everything down and reset state. Safe to call repeatedly."""
		start_task = self._start_task
		if start_task is not None and start_task is not asyncio.current_task() and not start_task.done():
			start_task.cancel()
		await self._teardown()
		self.session.reset()
		self._notify()

	def set_muted(self, muted: bool) -> None:
		"""Enable or disable the outgoing audio track; the session stays live."""
		if self._transport is None or not self.session.active:
			raise RuntimeError("No active voice session")
		self._transport.set_muted(muted)
		self.session.muted = muted
		self._notify()

	async def _teardown(self) -> None:
		for task in list(self._tool_tasks):
			task.cancel()
		self._tool_tasks.clear()
		self.accumulator.clear()
		transport, self._transport = self._transport, None
		if transport is not None:
			try:
				await transport.close()
			except Exception as exc:
				LOGGER.warning("Error while closing voice transport: %s", exc)

	# -- transport callbacks ----------------------------------------------

	def _channel_opened(self) -> None:
		self.session.data_channel_state = "open"
		self.session.registered_tools = [d["name"] for d in self.tool_definitions]
		self._send(
			{
				"type": "session.update",
				"session": {
					"modalities": ["text", "audio"],
					"instructions": self.instructions,
					"tools": self.tool_definitions,
					"tool_choice": "auto",
				},
			}
		)
		self._set_state(VoiceState.LISTENING, "Connected")

	def _channel_closed(self) -> None:
		self.session.data_channel_state = "closed"
		self._notify()

	def _connection_changed(self, state: str) -> None:
		self.session.connection_state = state
		if state in ("failed", "closed", "disconnected") and self._transport is not None:
			LOGGER.warning("Voice connection %s", state)
			asyncio.ensure_future(self._fail(f"Connection {state}"))
		else:
			self._notify()

	async def _fail(self, message: str, state: VoiceState = VoiceState.ERROR) -> None:
		"""Tear down and clear mute and channel state, keeping the connection state."""
		await self._teardown()
		connection_state = self.session.connection_state
		self.session.reset()
		self.session.connection_state = connection_state
		self._set_state(state, message)

	# -- incoming events ---------------------------------------------------

	def receive(self, raw: Any) -> None:
		"""Handle one data-channel message. Runs synchronously to keep arrival order."""
		try:
			event = json.loads(raw)
		except (TypeError, ValueError):
			LOGGER.warning("Malformed realtime event: %r", str(raw)[:200])
			self.session.status = "Received a malformed event"
			self._notify()
			return
		if not isinstance(event, dict):
			return

		event_type = event.get("type")
		if event_type == "response.function_call_arguments.delta":
			self.accumulator.append(event.get("call_id", ""), event.get("delta"))
		elif event_type == "response.function_call_arguments.done":
			call_id = event.get("call_id", "")
			name, arguments = self.accumulator.finish(call_id, fallback=event.get("arguments"))
			self._dispatch(call_id, event.get("name") or name, arguments)
		elif event_type in ("response.output_item.added", "conversation.item.created"):
			item = event.get("item") or {}
			if item.get("type") == "function_call" and item.get("call_id"):
				self.accumulator.register(item["call_id"], item.get("name"))
		elif event_type == "error":
			detail = (event.get("error") or {}).get("message") or "Realtime error"
			LOGGER.error("Realtime server error: %s", detail)
			self.session.status = f"Error: {detail}"
			self._notify()
		elif event_type == "response.cancelled":
			self.accumulator.clear()
			self._set_state(VoiceState.LISTENING, "Listening...")
		elif event_type in _STATUS_EVENTS:
			if event_type == "response.done":
				# calls still open when the response ends will never complete
				self.accumulator.clear()
			if event_type == "response.done" and self._tool_tasks:
				return
			state, status = _STATUS_EVENTS[event_type]
			self._set_state(state, status)

	def _dispatch(self, call_id: str, name: Optional[str], arguments: str) -> None:
		self._set_state(VoiceState.CALLING_TOOL, f"Running {name or 'tool'}...")
		task = asyncio.ensure_future(self._run_tool(call_id, name, arguments))
		self._tool_tasks.add(task)
		task.add_done_callback(self._tool_tasks.discard)

	async def _run_tool(self, call_id: str, name: Optional[str], arguments: str) -> Dict[str, Any]:
		output = await self._invoke(name, arguments)
		self._send(
			{
				"type": "conversation.item.create",
				"item": {"type": "function_call_output", "call_id": call_id, "output": json.dumps(output)},
			}
		)
		self._send({"type": "response.create"})
		if self.session.active:
			self._set_state(VoiceState.THINKING, "Thinking...")
		return output

	async def _invoke(self, name: Optional[str], arguments: str) -> Dict[str, Any]:
		try:
			parsed = json.loads(arguments or "{}")
		except ValueError as exc:
			LOGGER.warning("Malformed arguments for %s: %s", name, exc)
			return {"status": "error", "error": f"Malformed tool arguments: {exc}"}
		if not isinstance(parsed, dict):
			return {"status": "error", "error": "Tool arguments must be a JSON object"}

		handler = self.handlers.get(name or "")
		if handler is None:
			return {"status": "error", "error": f"Unknown tool: {name}"}
		try:
			return await handler(parsed)
		except asyncio.CancelledError:
			raise
		except Exception as exc:
			LOGGER.error("Tool %s failed: %s", name, exc)
			return {"status": "error", "error": str(exc) or exc.__class__.__name__}

	# -- helpers -----------------------------------------------------------

	def _send(self, payload: Dict[str, Any]) -> None:
		transport = self._transport
		if transport is None or transport.channel_state != "open":
			LOGGER.warning("Dropping %s; data channel is not open", payload.get("type"))
			return
		transport.send(json.dumps(payload))

	def _set_state(self, state: VoiceState, status: str) -> None:
		self.session.state = state
		self.session.status = status
		self._notify()

	def _notify(self) -> None:
		if self.on_status is not None:
			self.on_status(self.session)
