"""WebSocket endpoint for a live whiteboard session."""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket
from starlette.websockets import WebSocketDisconnect

from dal.board_dal import BoardDAL
from services.realtime.canvas_session import CanvasSession
from services.realtime.session_store import SessionStore
from services.realtime.ws_session import BoardMessageHandler

LOGGER = logging.getLogger(__name__)

router = APIRouter()


def _require_session_store(websocket: WebSocket) -> SessionStore:
	store = getattr(websocket.app.state, "session_store", None)
	if store is None:
		raise HTTPException(status_code=500, detail="Session store unavailable")
	return store


async def _pump_outbox(websocket: WebSocket, session: CanvasSession) -> None:
	while True:
		message = await session.outbox.get()
		await websocket.send_text(json.dumps(message))


@router.websocket("/ws/boards/{board_id}")
async def board_socket(websocket: WebSocket, board_id: str, store: SessionStore = Depends(_require_session_store)):
	"""Drive one board: canvas edits in, shapes, status and outcomes out."""
	await websocket.accept()
	record = await BoardDAL(websocket.app.state.db_initializer).get_board(board_id)
	if record is None:
		await websocket.send_text(json.dumps({"type": "error", "detail": "Board not found"}))
		await websocket.close()
		return

	snapshot = None
	if record.data:
		try:
			snapshot = json.loads(record.data)
		except ValueError as exc:
			LOGGER.error("Stored snapshot for board %s is not valid JSON: %s", board_id, exc)

	session_id, session = store.create(board_id)
	session.open(snapshot)
	session.emit(session.ready_payload())
	handler = BoardMessageHandler(session)
	sender = asyncio.create_task(_pump_outbox(websocket, session))
	try:
		while True:
			try:
				raw = await websocket.receive_text()
			except WebSocketDisconnect:
				break
			except Exception:
				session.emit({"type": "error", "detail": "Invalid websocket frame"})
				continue
			try:
				payload = json.loads(raw)
			except Exception:
				session.emit({"type": "error", "detail": "Payload must be JSON"})
				continue
			if not isinstance(payload, dict):
				session.emit({"type": "error", "detail": "Payload must be a JSON object"})
				continue
			await handler.handle(payload)
	finally:
		await handler.close()
		await store.close(session_id)
		sender.cancel()
		try:
			await sender
		except (asyncio.CancelledError, Exception):
			pass
	try:
		await websocket.close()
	except Exception:
		pass
