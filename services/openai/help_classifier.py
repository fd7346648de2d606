"""Decide whether the canvas shows someone who is stuck."""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from services.errors import BackendError
from services.openai.backend_calls import call_backend, require_client
from services.openai.canvas_prompts import build_help_prompt
from services.openai.response_parser import parse_help_decision
from services.openai.response_utils import extract_usage, first_message

LOGGER = logging.getLogger(__name__)


@dataclass
class HelpDecision:
    needs_help: bool
    confidence: float
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"needsHelp": self.needs_help, "confidence": self.confidence, "reason": self.reason}


class HelpClassifier:
    """JSON-mode classifier over OCR text and/or the canvas image."""

    def __init__(self, client: Optional[AsyncOpenAI], model: str = "openai/gpt-4o-mini") -> None:
        self.client = client
        self.model = model

    async def check(
        self,
        text: Optional[str] = None,
        image_data_url: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> HelpDecision:
        """Return the classifier's decision.

        Raises:
            ValueError: If neither text nor image is given.
            ConfigurationError: If OPENROUTER_API_KEY is not configured.
            BackendError: If the call fails or the reply is not a JSON object.
        """
        if not text and not image_data_url:
            raise ValueError("No text or image provided")
        client = require_client(self.client, "OPENROUTER_API_KEY")
        start_time = time.monotonic()

        content: List[Dict[str, Any]] = []
        if image_data_url:
            content.append({"type": "image_url", "image_url": {"url": image_data_url}})
        content.append({"type": "text", "text": build_help_prompt(text)})

        response = await call_backend(
            "Help check",
            request_id,
            client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": content}],
                response_format={"type": "json_object"},
            ),
        )

        try:
            parsed = parse_help_decision(first_message(response).get("content"))
        except ValueError as exc:
            raise BackendError(str(exc)) from exc

        decision = HelpDecision(**parsed)
        LOGGER.info(
            "Help check completed [%s] in %.2fs: needs_help=%s confidence=%.2f reason=%s usage=%s",
            request_id,
            time.monotonic() - start_time,
            decision.needs_help,
            decision.confidence,
            decision.reason,
            extract_usage(response),
        )
        return decision
