"""Session domain models for realtime workflows."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


@dataclass
class ActivitySession:
	"""Countdown state for one debounced canvas view.

	At most one timer is live; restarting cancels the previous handle first.
	"""

	last_event_at: Optional[float] = None
	timer: Optional[asyncio.TimerHandle] = None
	quiet_count: int = 0


class VoiceState(str, Enum):
	IDLE = "idle"
	CONNECTING = "connecting"
	GATHERING_ICE = "gathering_ice"
	LISTENING = "listening"
	THINKING = "thinking"
	CALLING_TOOL = "calling_tool"
	CLOSED = "closed"
	ERROR = "error"
	PERMISSION_DENIED = "permission_denied"


@dataclass
class VoiceSession:
	"""Live state of the realtime voice tutor for one canvas view."""

	state: VoiceState = VoiceState.IDLE
	status: str = "Idle"
	connection_state: str = "new"
	data_channel_state: str = "closed"
	muted: bool = False
	registered_tools: List[str] = field(default_factory=list)

	@property
	def active(self) -> bool:
		return self.state not in (
			VoiceState.IDLE,
			VoiceState.CLOSED,
			VoiceState.ERROR,
			VoiceState.PERMISSION_DENIED,
		)

	def reset(self) -> None:
		self.state = VoiceState.IDLE
		self.status = "Idle"
		self.connection_state = "closed"
		self.data_channel_state = "closed"
		self.muted = False
		self.registered_tools = []
