"""aiortc peer connection used by the voice bridge."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from aiortc import MediaStreamTrack, RTCPeerConnection, RTCSessionDescription
from aiortc.contrib.media import MediaBlackhole, MediaPlayer, MediaRecorder

from services.errors import MicrophonePermissionError, VoiceConnectionError

LOGGER = logging.getLogger(__name__)


class MutableAudioTrack(MediaStreamTrack):
	"""Relay a source audio track, emitting silence while disabled."""

	kind = "audio"

	def __init__(self, source: MediaStreamTrack) -> None:
		super().__init__()
		self.source = source
		self.enabled = True

	async def recv(self):
		frame = await self.source.recv()
		if not self.enabled:
			for plane in frame.planes:
				plane.update(bytes(plane.buffer_size))
		return frame

	def stop(self) -> None:
		super().stop()
		self.source.stop()


class AiortcTransport:
	"""Microphone, data channel and remote audio sink over one RTCPeerConnection.

	Args:
		audio_input: Capture device or file for MediaPlayer (e.g. "default" with
			format "pulse"). None sends no audio and only receives.
		audio_format: MediaPlayer format for `audio_input`.
		audio_output: File path to record the tutor's voice into. None discards it.
	"""

	def __init__(
		self,
		audio_input: Optional[str] = None,
		audio_format: Optional[str] = None,
		audio_output: Optional[str] = None,
		ice_timeout: float = 10.0,
	) -> None:
		self.audio_input = audio_input
		self.audio_format = audio_format
		self.audio_output = audio_output
		self.ice_timeout = ice_timeout
		self.on_connection_state: Optional[Callable[[str], None]] = None

		self._pc: Optional[RTCPeerConnection] = None
		self._channel: Any = None
		self._player: Optional[MediaPlayer] = None
		self._track: Optional[MutableAudioTrack] = None
		self._sink: Any = None
		self._remote_audio = False

	@property
	def connection_state(self) -> str:
		return self._pc.connectionState if self._pc is not None else "closed"

	@property
	def channel_state(self) -> str:
		return self._channel.readyState if self._channel is not None else "closed"

	async def start_microphone(self) -> None:
		"""Create the peer connection and attach the local microphone track."""
		self._pc = RTCPeerConnection()
		self._pc.on("connectionstatechange", self._connection_changed)
		self._pc.on("track", self._on_track)

		if self.audio_input is None:
			self._pc.addTransceiver("audio", direction="recvonly")
			return
		try:
			self._player = MediaPlayer(self.audio_input, format=self.audio_format)
		except PermissionError as exc:
			raise MicrophonePermissionError(f"Microphone access denied: {exc}") from exc
		except OSError as exc:
			raise VoiceConnectionError(f"Could not open audio input {self.audio_input!r}: {exc}") from exc
		if self._player.audio is None:
			raise VoiceConnectionError(f"Audio input {self.audio_input!r} has no audio stream")
		self._track = MutableAudioTrack(self._player.audio)
		self._pc.addTrack(self._track)

	def open_data_channel(
		self,
		label: str,
		*,
		on_open: Callable[[], None],
		on_message: Callable[[Any], None],
		on_close: Callable[[], None],
	) -> None:
		self._channel = self._pc.createDataChannel(label)
		self._channel.on("open", on_open)
		self._channel.on("message", on_message)
		self._channel.on("close", on_close)

	def attach_remote_audio(self) -> None:
		self._remote_audio = True
		self._sink = MediaRecorder(self.audio_output) if self.audio_output else MediaBlackhole()

	async def create_offer(self) -> str:
		"""Create the local offer and return it once ICE gathering is complete."""
		offer = await self._pc.createOffer()
		await self._pc.setLocalDescription(offer)
		loop = asyncio.get_running_loop()
		deadline = loop.time() + self.ice_timeout
		while self._pc.iceGatheringState != "complete":
			if loop.time() > deadline:
				raise VoiceConnectionError("ICE gathering did not complete")
			await asyncio.sleep(0.05)
		return self._pc.localDescription.sdp

	async def apply_answer(self, sdp: str) -> None:
		await self._pc.setRemoteDescription(RTCSessionDescription(sdp=sdp, type="answer"))

	def send(self, text: str) -> None:
		self._channel.send(text)

	def set_muted(self, muted: bool) -> None:
		if self._track is not None:
			self._track.enabled = not muted

	async def close(self) -> None:
		"""Close channel and connection, stop local tracks and detach remote audio."""
		if self._channel is not None:
			self._channel.close()
			self._channel = None
		if self._track is not None:
			self._track.stop()
			self._track = None
		self._player = None
		if self._sink is not None:
			await self._sink.stop()
			self._sink = None
		self._remote_audio = False
		if self._pc is not None:
			await self._pc.close()
			self._pc = None

	def _connection_changed(self) -> None:
		if self.on_connection_state is not None and self._pc is not None:
			self.on_connection_state(self._pc.connectionState)

	def _on_track(self, track: MediaStreamTrack) -> None:
		if track.kind != "audio" or not self._remote_audio or self._sink is None:
			return
		self._sink.addTrack(track)
		asyncio.ensure_future(self._sink.start())
