"""Tools exposed to the realtime voice tutor."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List

from models.canvas_models import AssistanceMode, OutcomeKind, RequestSource
from services.canvas.orchestrator import GenerationOrchestrator
from services.canvas.snapshotter import CanvasSnapshotter
from services.openai.canvas_prompts import build_voice_draw_prompt
from services.openai.workspace_analyzer import WorkspaceAnalyzer

LOGGER = logging.getLogger(__name__)

ToolHandler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]

ANALYZE_WORKSPACE = "analyze_workspace"
DRAW_ON_CANVAS = "draw_on_canvas"
SOLVE_CANVAS = "solve_canvas"

ANALYZE_WORKSPACE_DEFINITION = {
	"type": "function",
	"name": ANALYZE_WORKSPACE,
	"description": "Look at the current whiteboard and describe what the user is working on, their progress and any mistakes.",
	"parameters": {
		"type": "object",
		"properties": {
			"focus": {
				"type": "string",
				"description": "Optional aspect to concentrate on, e.g. 'the second equation'.",
			},
		},
		"required": [],
	},
}

DRAW_ON_CANVAS_DEFINITION = {
	"type": "function",
	"name": DRAW_ON_CANVAS,
	"description": "Generate a handwritten overlay for the current whiteboard and place it on the board.",
	"parameters": {
		"type": "object",
		"properties": {
			"prompt": {
				"type": "string",
				"description": "Instructions for how to solve or modify the content on the canvas, e.g. 'solve the equation and write the steps'.",
			},
			"mode": {
				"type": "string",
				"enum": [mode.value for mode in AssistanceMode],
				"description": "feedback for light annotations, suggest for a hint, answer for a full solution.",
			},
		},
		"required": [],
	},
}

_DRAW_RESULTS = {
	OutcomeKind.MATERIALIZED: ("ok", "The drawing was added to the canvas."),
	OutcomeKind.DECLINED: ("ok", "The model decided no drawing was needed."),
	OutcomeKind.NO_HELP_NEEDED: ("ok", "The canvas does not appear to need help."),
	OutcomeKind.UNCHANGED: ("ok", "The canvas has not changed since the last drawing."),
	OutcomeKind.EMPTY: ("error", "The canvas is empty."),
	OutcomeKind.BUSY: ("error", "A drawing is already being generated."),
	OutcomeKind.VOICE_ACTIVE: ("error", "Drawing is unavailable right now."),
	OutcomeKind.CANCELLED: ("error", "The drawing was cancelled because the canvas changed."),
	OutcomeKind.ERRORED: ("error", "The drawing failed."),
}


class VoiceTools:
	"""Handlers plus the schema list sent in `session.update`."""

	def __init__(
		self,
		snapshotter: CanvasSnapshotter,
		analyzer: WorkspaceAnalyzer,
		orchestrator: GenerationOrchestrator,
	) -> None:
		self.snapshotter = snapshotter
		self.analyzer = analyzer
		self.orchestrator = orchestrator
		self.handlers: Dict[str, ToolHandler] = {
			ANALYZE_WORKSPACE: self.analyze_workspace,
			DRAW_ON_CANVAS: self.draw_on_canvas,
			SOLVE_CANVAS: self.draw_on_canvas,
		}

	@property
	def definitions(self) -> List[Dict[str, Any]]:
		return [ANALYZE_WORKSPACE_DEFINITION, DRAW_ON_CANVAS_DEFINITION]

	async def analyze_workspace(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
		"""Capture the canvas and return the analyzer's description."""
		image = await self.snapshotter.capture_all()
		if image is None:
			return {"status": "error", "error": "The canvas is empty."}
		analysis = await self.analyzer.analyze(image, focus=arguments.get("focus"))
		return {"status": "ok", "analysis": analysis}

	async def draw_on_canvas(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
		"""Run the generation pipeline immediately, bypassing change detection."""
		mode = AssistanceMode.parse(arguments.get("mode"))
		outcome = await self.orchestrator.run(
			RequestSource.VOICE,
			mode=mode,
			force=True,
			prompt=build_voice_draw_prompt(arguments.get("prompt")),
		)
		status, message = _DRAW_RESULTS[outcome.kind]
		LOGGER.info("Voice drawing finished: %s", outcome.kind.value)
		result: Dict[str, Any] = {"status": status}
		if status == "ok":
			result["result"] = message
		else:
			result["error"] = outcome.error or message
		if outcome.shape_id:
			result["shape_id"] = outcome.shape_id
		if outcome.text:
			result["text"] = outcome.text
		return result
