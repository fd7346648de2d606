"""Canvas session wiring for board websockets."""

from __future__ import annotations

from typing import Any, Callable, Optional

from dal.board_dal import BoardDAL
from services.openai.clients import AIServices
from services.realtime.canvas_session import CanvasSession
from services.realtime.rtc_transport import AiortcTransport
from utils.settings import Settings


def build_session_factory(
	settings: Settings,
	services: AIServices,
	db_initializer,
	transport_factory: Optional[Callable[[], Any]] = None,
) -> Callable[[str], CanvasSession]:
	"""Return a factory creating a fully wired `CanvasSession` for a board id."""
	dal = BoardDAL(db_initializer)

	def default_transport() -> AiortcTransport:
		return AiortcTransport(
			audio_input=settings.voice_audio_input,
			audio_format=settings.voice_audio_format,
			audio_output=settings.voice_audio_output,
		)

	def factory(board_id: str) -> CanvasSession:
		async def save(data: str, preview: Optional[bytes]) -> bool:
			return await dal.update_board(board_id, data=data, preview=preview)

		return CanvasSession(
			board_id,
			services,
			settings,
			save=save,
			transport_factory=transport_factory or default_transport,
		)

	return factory
