"""Construction of the AI service handles shared by one application instance."""

import inspect
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from openai import AsyncOpenAI

from services.openai.help_classifier import HelpClassifier
from services.openai.ocr_client import OCRClient
from services.openai.realtime_token import RealtimeTokenService
from services.openai.solution_generator import SolutionGenerator
from services.openai.workspace_analyzer import WorkspaceAnalyzer
from utils.settings import MISTRAL_BASE_URL, OPENROUTER_BASE_URL, Settings

LOGGER = logging.getLogger(__name__)


def build_openrouter_client(settings: Settings) -> Optional[AsyncOpenAI]:
    """AsyncOpenAI pointed at OpenRouter, or None without a key."""
    if not settings.openrouter_api_key:
        LOGGER.warning("OPENROUTER_API_KEY is not set; help check, generation and analysis are disabled")
        return None
    return AsyncOpenAI(
        api_key=settings.openrouter_api_key,
        base_url=OPENROUTER_BASE_URL,
        default_headers={"HTTP-Referer": settings.site_url, "X-Title": settings.app_title},
    )


def build_mistral_client(settings: Settings) -> Optional[AsyncOpenAI]:
    """AsyncOpenAI pointed at Mistral's OpenAI-compatible API, or None without a key."""
    if not settings.mistral_api_key:
        LOGGER.warning("MISTRAL_API_KEY is not set; OCR is disabled")
        return None
    return AsyncOpenAI(api_key=settings.mistral_api_key, base_url=MISTRAL_BASE_URL)


@dataclass
class AIServices:
    """Explicit handles passed into the orchestrator, the voice tools and the routes."""

    ocr: OCRClient
    help_classifier: HelpClassifier
    solution_generator: SolutionGenerator
    workspace_analyzer: WorkspaceAnalyzer
    realtime_tokens: RealtimeTokenService
    owned_clients: List[AsyncOpenAI] = field(default_factory=list)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AIServices":
        openrouter = build_openrouter_client(settings)
        mistral = build_mistral_client(settings)
        return cls(
            ocr=OCRClient(mistral, model=settings.ocr_model),
            help_classifier=HelpClassifier(openrouter, model=settings.help_model),
            solution_generator=SolutionGenerator(openrouter, model=settings.solution_model),
            workspace_analyzer=WorkspaceAnalyzer(openrouter, model=settings.analysis_model),
            realtime_tokens=RealtimeTokenService(
                settings.openai_api_key,
                model=settings.realtime_session_model,
                sessions_url=settings.realtime_sessions_url,
            ),
            owned_clients=[c for c in (openrouter, mistral) if c is not None],
        )

    async def aclose(self) -> None:
        """Close the SDK clients this instance created."""
        for client in self.owned_clients:
            close = getattr(client, "close", None)
            if close is None:
                continue
            result = close()
            if inspect.isawaitable(result):
                await result
        self.owned_clients = []
