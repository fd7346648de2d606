"""Simple in-memory store for live canvas sessions."""

from __future__ import annotations

from typing import Callable, Dict
from uuid import uuid4

from services.realtime.canvas_session import CanvasSession


class SessionStore:
	"""Track the open canvas sessions, one per websocket connection."""

	def __init__(self, factory: Callable[[str], CanvasSession]) -> None:
		self.factory = factory
		self._sessions: Dict[str, CanvasSession] = {}

	def create(self, board_id: str) -> tuple[str, CanvasSession]:
		"""Create a session for `board_id` and return (session id, session)."""
		session_id = uuid4().hex
		session = self.factory(board_id)
		self._sessions[session_id] = session
		return session_id, session

	def get(self, session_id: str) -> CanvasSession:
		"""Return a session or raise KeyError if missing."""
		session = self._sessions.get(session_id)
		if session is None:
			raise KeyError(f"Session {session_id} not found")
		return session

	async def close(self, session_id: str) -> None:
		"""Tear a session down and forget it. Unknown ids are ignored."""
		session = self._sessions.pop(session_id, None)
		if session is not None:
			await session.close()

	async def close_all(self) -> None:
		for session_id in list(self._sessions):
			await self.close(session_id)

	def __len__(self) -> int:
		return len(self._sessions)
