from fastapi import Request, HTTPException
from fastapi.responses import Response
from typing import Dict, Any, List, Optional
import json

from dal.board_dal import BoardDAL
from models.board_record import BoardRecord


def _dal(request: Request) -> BoardDAL:
    return BoardDAL(request.app.state.db_initializer)


def _board_payload(record: BoardRecord) -> Dict[str, Any]:
    payload = record.to_summary()
    payload["data"] = json.loads(record.data) if record.data else None
    return payload


async def create_board(request: Request, title: Optional[str] = None) -> Dict[str, Any]:
    """Create an empty board and return its summary."""
    record = await _dal(request).create_board(title)
    return record.to_summary()


async def list_boards(request: Request, search: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[Dict[str, Any]]:
    """Dashboard listing, newest first, optionally filtered by title."""
    records = await _dal(request).list_boards(search=search, limit=limit, offset=offset)
    return [record.to_summary() for record in records]


async def get_board(request: Request, board_id: str) -> Dict[str, Any]:
    """Return a board including its parsed snapshot.

    Raises:
        HTTPException(404) if the board does not exist.
    """
    record = await _dal(request).get_board(board_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Board not found")
    return _board_payload(record)


async def rename_board(request: Request, board_id: str, title: str) -> Dict[str, Any]:
    dal = _dal(request)
    try:
        changed = await dal.rename_board(board_id, title)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not changed:
        raise HTTPException(status_code=404, detail="Board not found")
    record = await dal.get_board(board_id)
    return record.to_summary()


async def save_snapshot(request: Request, board_id: str, snapshot: Dict[str, Any]) -> Dict[str, Any]:
    """Persist a client supplied snapshot (last write wins)."""
    try:
        data = json.dumps(snapshot, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"Snapshot is not serializable: {exc}") from exc
    if not await _dal(request).update_board(board_id, data=data):
        raise HTTPException(status_code=404, detail="Board not found")
    return {"id": board_id, "saved": True}


async def get_preview(request: Request, board_id: str) -> Response:
    """Return the stored PNG preview for a board.

    Raises:
        HTTPException(404) if the board or its preview is missing.
    """
    record = await _dal(request).get_board(board_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Board not found")
    if not record.preview:
        raise HTTPException(status_code=404, detail="Preview not available for this board")
    return Response(content=record.preview, media_type="image/png")


async def delete_board(request: Request, board_id: str) -> Dict[str, Any]:
    if not await _dal(request).delete_board(board_id):
        raise HTTPException(status_code=404, detail="Board not found")
    return {"id": board_id, "deleted": True}
