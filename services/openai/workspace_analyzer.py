"""Natural language description of the canvas for the voice tutor."""

import logging
import time
from typing import Optional

from openai import AsyncOpenAI

from services.openai.backend_calls import call_backend, require_client
from services.openai.canvas_prompts import WORKSPACE_SYSTEM_PROMPT, build_workspace_prompt
from services.openai.response_parser import extract_text
from services.openai.response_utils import extract_usage, first_message

LOGGER = logging.getLogger(__name__)


class WorkspaceAnalyzer:
    def __init__(self, client: Optional[AsyncOpenAI], model: str = "google/gemini-2.5-flash") -> None:
        self.client = client
        self.model = model

    async def analyze(self, image_data_url: str, focus: Optional[str] = None, request_id: Optional[str] = None) -> str:
        """Return the model's analysis text."""
        client = require_client(self.client, "OPENROUTER_API_KEY")
        start_time = time.monotonic()

        response = await call_backend(
            "Workspace analysis",
            request_id,
            client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": WORKSPACE_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {"type": "image_url", "image_url": {"url": image_data_url}},
                            {"type": "text", "text": build_workspace_prompt(focus)},
                        ],
                    },
                ],
            ),
        )

        analysis = extract_text(first_message(response))
        LOGGER.info(
            "Workspace analysis completed [%s] in %.2fs, %d chars, usage=%s",
            request_id,
            time.monotonic() - start_time,
            len(analysis),
            extract_usage(response),
        )
        return analysis
