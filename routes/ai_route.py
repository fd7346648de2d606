"""FastAPI routes wrapping the AI backends used by the canvas."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.ai_controller import (
	analyze_workspace,
	check_help_needed,
	create_voice_token,
	generate_solution,
	run_ocr,
)

router = APIRouter(prefix="/api")


class ImagePayload(BaseModel):
	image: Optional[str] = None


class HelpPayload(BaseModel):
	text: Optional[str] = None
	image: Optional[str] = None


class SolutionPayload(BaseModel):
	image: Optional[str] = None
	prompt: Optional[str] = None
	mode: Optional[str] = "suggest"


class AnalyzePayload(BaseModel):
	image: Optional[str] = None
	focus: Optional[str] = None


@router.post("/ocr")
async def ocr_route(request: Request, payload: ImagePayload):
	try:
		return await run_ocr(request, payload.image)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/check-help-needed")
async def check_help_route(request: Request, payload: HelpPayload):
	try:
		return await check_help_needed(request, payload.text, payload.image)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/generate-solution")
async def generate_solution_route(request: Request, payload: SolutionPayload):
	try:
		return await generate_solution(request, payload.image, payload.prompt, payload.mode)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/voice/analyze-workspace")
async def analyze_workspace_route(request: Request, payload: AnalyzePayload):
	try:
		return await analyze_workspace(request, payload.image, payload.focus)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.api_route("/voice/token", methods=["GET", "POST"])
async def voice_token_route(request: Request):
	try:
		return await create_voice_token(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
