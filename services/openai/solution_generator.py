"""Overlay generation with an image-output model via OpenRouter."""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from openai import AsyncOpenAI

from services.openai.backend_calls import call_backend, require_client
from services.openai.canvas_prompts import build_generation_prompt
from services.openai.response_parser import extract_image_url, extract_text
from services.openai.response_utils import extract_usage, first_message

LOGGER = logging.getLogger(__name__)

NO_IMAGE_REASON = "Model did not return an image (likely decided help was not needed)."


@dataclass
class SolutionResult:
    """Generator output. `image_url` is None when the model chose not to draw."""

    image_url: Optional[str]
    text_content: str
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.image_url is not None,
            "imageUrl": self.image_url,
            "textContent": self.text_content,
        }
        if self.reason:
            payload["reason"] = self.reason
        return payload


class SolutionGenerator:
    """Send the canvas capture plus a mode prompt and collect the drawn overlay."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI],
        model: str = "google/gemini-3-pro-image-preview",
        reasoning_effort: str = "minimal",
    ) -> None:
        self.client = client
        self.model = model
        self.reasoning_effort = reasoning_effort

    async def generate(
        self,
        image_data_url: str,
        *,
        mode: Optional[str] = None,
        prompt: Optional[str] = None,
        ocr_text: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> SolutionResult:
        """Request an overlay image.

        A response without an image is a valid outcome and comes back as a
        `SolutionResult` with `image_url=None`.

        Raises:
            ConfigurationError: If OPENROUTER_API_KEY is not configured.
            BackendError: If the API call fails.
        """
        client = require_client(self.client, "OPENROUTER_API_KEY")
        start_time = time.monotonic()
        final_prompt = build_generation_prompt(mode, ocr_text=ocr_text, prompt=prompt)
        LOGGER.info("Solution generation started [%s] mode=%s", request_id, mode)

        response = await call_backend(
            "Solution generation",
            request_id,
            client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "image_url", "image_url": {"url": image_data_url}},
                            {"type": "text", "text": final_prompt},
                        ],
                    }
                ],
                extra_body={"modalities": ["image", "text"], "reasoning_effort": self.reasoning_effort},
            ),
        )

        message = first_message(response)
        image_url = extract_image_url(message)
        text_content = extract_text(message)
        duration = time.monotonic() - start_time

        if image_url is None:
            LOGGER.info(
                "Solution generation completed without image [%s] in %.2fs: %s",
                request_id,
                duration,
                text_content[:500],
            )
            return SolutionResult(image_url=None, text_content=text_content, reason=NO_IMAGE_REASON)

        LOGGER.info(
            "Solution generation completed [%s] in %.2fs, image %d chars, usage=%s",
            request_id,
            duration,
            len(image_url),
            extract_usage(response),
        )
        return SolutionResult(image_url=image_url, text_content=text_content)
