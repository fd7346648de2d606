import asyncio
import io
from typing import Any, Dict, List, Optional

import pytest
from PIL import Image

from models.canvas_models import CanvasShape
from services.canvas.document import CanvasDocument
from services.openai.clients import AIServices
from services.openai.help_classifier import HelpDecision
from services.openai.solution_generator import SolutionResult
from utils.media_validation import to_data_url


def png_bytes(width: int = 8, height: int = 8, color=(255, 0, 0, 255)) -> bytes:
    image = Image.new("RGBA", (width, height), color)
    out = io.BytesIO()
    image.save(out, format="PNG")
    return out.getvalue()


def png_data_url(width: int = 8, height: int = 8, color=(255, 0, 0, 255)) -> str:
    return to_data_url(png_bytes(width, height, color), "image/png")


def stroke(shape_id: str = "shape:stroke", x: float = 100, y: float = 100) -> CanvasShape:
    return CanvasShape(
        id=shape_id,
        type="draw",
        x=x,
        y=y,
        props={"points": [[0, 0], [40, 20], [80, 0]], "color": "black", "size": "m"},
    )


def drawn_document(*shapes: CanvasShape) -> CanvasDocument:
    document = CanvasDocument()
    for shape in shapes or (stroke(),):
        document.create_shape(shape)
    return document


class FakeOCR:
    def __init__(self, text: str = "2x + 3 = 7") -> None:
        self.text = text
        self.calls: List[str] = []

    async def extract(self, image_data_url: str, request_id: Optional[str] = None) -> str:
        self.calls.append(image_data_url)
        return self.text


class FakeHelpClassifier:
    def __init__(self, needs_help: bool = True, confidence: float = 0.9, reason: str = "stuck") -> None:
        self.decision = HelpDecision(needs_help, confidence, reason)
        self.calls: List[Dict[str, Any]] = []

    async def check(self, text=None, image_data_url=None, request_id=None) -> HelpDecision:
        self.calls.append({"text": text, "image": image_data_url})
        return self.decision


class FakeSolutionGenerator:
    """Returns `result`; when `gate` is set, waits on it first so tests can race cancellation."""

    def __init__(self, image_url: Optional[str] = None, text: str = "", error: Optional[Exception] = None) -> None:
        self.image_url = image_url if image_url is not None else png_data_url(800, 600)
        self.text = text
        self.error = error
        self.gate: Optional[asyncio.Event] = None
        self.started: Optional[asyncio.Event] = None
        self.calls: List[Dict[str, Any]] = []
        self.cancelled = 0

    def declines(self, text: str = "Looks right to me.") -> "FakeSolutionGenerator":
        self.image_url = None
        self.text = text
        return self

    async def generate(self, image_data_url, *, mode=None, prompt=None, ocr_text=None, request_id=None) -> SolutionResult:
        self.calls.append({"image": image_data_url, "mode": mode, "prompt": prompt, "ocr_text": ocr_text})
        if self.started is not None:
            self.started.set()
        if self.gate is not None:
            try:
                await self.gate.wait()
            except asyncio.CancelledError:
                self.cancelled += 1
                raise
        if self.error is not None:
            raise self.error
        return SolutionResult(image_url=self.image_url, text_content=self.text)


class FakeAnalyzer:
    def __init__(self, analysis: str = "The user is solving a linear equation.") -> None:
        self.analysis = analysis
        self.calls: List[Dict[str, Any]] = []

    async def analyze(self, image_data_url: str, focus: Optional[str] = None, request_id: Optional[str] = None) -> str:
        self.calls.append({"image": image_data_url, "focus": focus})
        return self.analysis


class FakeTokens:
    def __init__(self, secret: str = "ek_test", error: Optional[Exception] = None) -> None:
        self.secret = secret
        self.error = error
        self.calls = 0

    async def create_client_secret(self) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.secret


def fake_services(**overrides: Any) -> AIServices:
    parts = {
        "ocr": FakeOCR(),
        "help_classifier": FakeHelpClassifier(),
        "solution_generator": FakeSolutionGenerator(),
        "workspace_analyzer": FakeAnalyzer(),
        "realtime_tokens": FakeTokens(),
    }
    parts.update(overrides)
    return AIServices(**parts)


class FakeTransport:
    """In-memory stand-in for the WebRTC transport surface used by the voice bridge."""

    def __init__(self, microphone_error: Optional[Exception] = None) -> None:
        self.microphone_error = microphone_error
        self.on_connection_state = None
        self.sent: List[str] = []
        self.muted = False
        self.closed = 0
        self.channel_state = "connecting"
        self.connection_state = "new"
        self.answer: Optional[str] = None
        self._on_open = None
        self._on_message = None
        self._on_close = None

    async def start_microphone(self) -> None:
        if self.microphone_error is not None:
            raise self.microphone_error

    def open_data_channel(self, label, *, on_open, on_message, on_close) -> None:
        self.label = label
        self._on_open = on_open
        self._on_message = on_message
        self._on_close = on_close

    def attach_remote_audio(self) -> None:
        pass

    async def create_offer(self) -> str:
        return "v=0\r\noffer"

    async def apply_answer(self, answer: str) -> None:
        self.answer = answer
        self.connection_state = "connected"

    def open_channel(self) -> None:
        self.channel_state = "open"
        self._on_open()

    def deliver(self, raw: str) -> None:
        self._on_message(raw)

    def send(self, text: str) -> None:
        self.sent.append(text)

    def set_muted(self, muted: bool) -> None:
        self.muted = muted

    async def close(self) -> None:
        self.closed += 1
        self.channel_state = "closed"


@pytest.fixture
def services() -> AIServices:
    return fake_services()


@pytest.fixture
def db_dir(tmp_path):
    return tmp_path / "db"
