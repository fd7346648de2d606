"""FastAPI routes for whiteboard persistence."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.board_controller import (
	create_board,
	delete_board,
	get_board,
	get_preview,
	list_boards,
	rename_board,
	save_snapshot,
)

router = APIRouter(prefix="/boards")


class CreatePayload(BaseModel):
	title: Optional[str] = None


class RenamePayload(BaseModel):
	title: str


class SnapshotPayload(BaseModel):
	snapshot: Dict[str, Any]


@router.post("")
async def create_board_route(request: Request, payload: CreatePayload):
	try:
		return await create_board(request, payload.title)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("")
async def list_boards_route(request: Request, q: Optional[str] = None, limit: int = 100, offset: int = 0):
	try:
		return await list_boards(request, q, limit, offset)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{board_id}")
async def get_board_route(request: Request, board_id: str):
	try:
		return await get_board(request, board_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.patch("/{board_id}")
async def rename_board_route(request: Request, board_id: str, payload: RenamePayload):
	try:
		return await rename_board(request, board_id, payload.title)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.put("/{board_id}/snapshot")
async def save_snapshot_route(request: Request, board_id: str, payload: SnapshotPayload):
	try:
		return await save_snapshot(request, board_id, payload.snapshot)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{board_id}/preview")
async def get_preview_route(request: Request, board_id: str):
	try:
		return await get_preview(request, board_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/{board_id}")
async def delete_board_route(request: Request, board_id: str):
	try:
		return await delete_board(request, board_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
