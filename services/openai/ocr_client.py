"""Handwriting OCR through Mistral's Pixtral vision model."""

import logging
import time
from typing import Optional

from openai import AsyncOpenAI

from services.openai.backend_calls import call_backend, require_client
from services.openai.canvas_prompts import OCR_PROMPT
from services.openai.response_utils import extract_usage, first_message
from services.openai.response_parser import extract_text

LOGGER = logging.getLogger(__name__)


class OCRClient:
    """Extract handwritten and typed text from a canvas capture."""

    def __init__(self, client: Optional[AsyncOpenAI], model: str = "pixtral-12b-2409", max_tokens: int = 1000) -> None:
        self.client = client
        self.model = model
        self.max_tokens = max_tokens

    async def extract(self, image_data_url: str, request_id: Optional[str] = None) -> str:
        """Return the extracted text (possibly empty).

        Raises:
            ConfigurationError: If MISTRAL_API_KEY is not configured.
            BackendError: If the API call fails.
        """
        client = require_client(self.client, "MISTRAL_API_KEY")
        start_time = time.monotonic()
        LOGGER.info("OCR request started [%s]", request_id)

        # Mistral takes image_url as a bare string rather than an object.
        response = await call_backend(
            "OCR",
            request_id,
            client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "image_url", "image_url": image_data_url},
                            {"type": "text", "text": OCR_PROMPT},
                        ],
                    }
                ],
                max_tokens=self.max_tokens,
            ),
        )

        text = extract_text(first_message(response))
        LOGGER.info(
            "OCR completed [%s] in %.2fs, %d chars, usage=%s",
            request_id,
            time.monotonic() - start_time,
            len(text),
            extract_usage(response),
        )
        return text
