from fastapi import HTTPException, Request
from typing import Any, Dict, Optional
import logging
import time
from uuid import uuid4

from services.errors import BackendError, ConfigurationError
from services.openai.clients import AIServices
from utils.media_validation import require_image

LOGGER = logging.getLogger(__name__)


def _services(request: Request) -> AIServices:
    services = getattr(request.app.state, "ai_services", None)
    if services is None:
        raise HTTPException(status_code=500, detail="AI services unavailable")
    return services


def _backend_failure(action: str, request_id: str, started: float, exc: Exception) -> HTTPException:
    """Log a failed backend call and build the matching 500 response."""
    LOGGER.error("%s failed [%s] after %.2fs: %s", action, request_id, time.monotonic() - started, exc)
    if isinstance(exc, ConfigurationError):
        return HTTPException(status_code=500, detail=str(exc))
    return HTTPException(status_code=500, detail=f"Failed to {action.lower()}: {exc}")


async def run_ocr(request: Request, image: Optional[str]) -> Dict[str, Any]:
    """Extract handwritten text from a canvas image.

    Returns:
        ``{"success": True, "text": ...}``
    """
    image_url = require_image(image)
    request_id = uuid4().hex
    started = time.monotonic()
    try:
        text = await _services(request).ocr.extract(image_url, request_id=request_id)
    except (ConfigurationError, BackendError) as exc:
        raise _backend_failure("Perform OCR", request_id, started, exc) from exc
    return {"success": True, "text": text}


async def check_help_needed(request: Request, text: Optional[str], image: Optional[str]) -> Dict[str, Any]:
    """Ask the classifier whether the canvas shows someone who needs help."""
    if not text and not image:
        raise HTTPException(status_code=400, detail="No text or image provided")
    image_url = require_image(image) if image else None
    request_id = uuid4().hex
    started = time.monotonic()
    try:
        decision = await _services(request).help_classifier.check(
            text=text, image_data_url=image_url, request_id=request_id
        )
    except (ConfigurationError, BackendError) as exc:
        raise _backend_failure("Check if help is needed", request_id, started, exc) from exc
    return {"success": True, **decision.to_dict()}


async def generate_solution(
    request: Request,
    image: Optional[str],
    prompt: Optional[str] = None,
    mode: Optional[str] = "suggest",
) -> Dict[str, Any]:
    """Generate an overlay image for a canvas capture.

    A text-only model reply is not an error: the response carries
    ``success: False`` with ``imageUrl: None`` and the model's text.
    """
    image_url = require_image(image)
    if mode and mode not in ("feedback", "suggest", "answer"):
        raise HTTPException(status_code=400, detail=f"Unknown assistance mode: {mode}")
    request_id = uuid4().hex
    started = time.monotonic()
    try:
        result = await _services(request).solution_generator.generate(
            image_url, mode=mode, prompt=prompt, request_id=request_id
        )
    except (ConfigurationError, BackendError) as exc:
        raise _backend_failure("Generate solution", request_id, started, exc) from exc
    return result.to_dict()


async def analyze_workspace(request: Request, image: Optional[str], focus: Optional[str] = None) -> Dict[str, Any]:
    """Describe the canvas for the voice tutor."""
    image_url = require_image(image)
    request_id = uuid4().hex
    started = time.monotonic()
    try:
        analysis = await _services(request).workspace_analyzer.analyze(image_url, focus=focus, request_id=request_id)
    except (ConfigurationError, BackendError) as exc:
        raise _backend_failure("Analyze workspace", request_id, started, exc) from exc
    return {"success": True, "analysis": analysis}


async def create_voice_token(request: Request) -> Dict[str, Any]:
    """Mint an ephemeral Realtime client secret for a browser voice session."""
    started = time.monotonic()
    try:
        secret = await _services(request).realtime_tokens.create_client_secret()
    except (ConfigurationError, BackendError) as exc:
        raise _backend_failure("Create Realtime session", "token", started, exc) from exc
    return {"client_secret": secret}
