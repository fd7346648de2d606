"""Transient status shown over the canvas."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class StatusKind(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    SUCCESS = "success"
    ERROR = "error"


DEFAULT_MESSAGES = {
    StatusKind.IDLE: "",
    StatusKind.GENERATING: "Generating solution...",
    StatusKind.SUCCESS: "Solution added",
    StatusKind.ERROR: "Error occurred",
}


@dataclass
class StatusSnapshot:
    kind: StatusKind
    message: str

    def to_dict(self) -> dict:
        return {"status": self.kind.value, "message": self.message}


class StatusIndicator:
    """Holds the current status; success and error states clear themselves."""

    def __init__(
        self,
        on_change: Optional[Callable[[StatusSnapshot], None]] = None,
        success_seconds: float = 2.0,
        error_seconds: float = 3.0,
    ) -> None:
        self.on_change = on_change
        self.success_seconds = success_seconds
        self.error_seconds = error_seconds
        self.current = StatusSnapshot(StatusKind.IDLE, "")
        self._clear_handle: Optional[asyncio.TimerHandle] = None

    def working(self, message: Optional[str] = None) -> None:
        self._set(StatusKind.GENERATING, message)

    def succeed(self, message: Optional[str] = None) -> None:
        self._set(StatusKind.SUCCESS, message, self.success_seconds)

    def fail(self, message: Optional[str] = None) -> None:
        self._set(StatusKind.ERROR, message, self.error_seconds)

    def clear(self) -> None:
        self._set(StatusKind.IDLE, None)

    def close(self) -> None:
        self._cancel_clear()

    def _set(self, kind: StatusKind, message: Optional[str], clear_after: Optional[float] = None) -> None:
        self._cancel_clear()
        self.current = StatusSnapshot(kind, message or DEFAULT_MESSAGES[kind])
        if self.on_change is not None:
            self.on_change(self.current)
        if clear_after is not None:
            self._clear_handle = asyncio.get_running_loop().call_later(clear_after, self._expire)

    def _expire(self) -> None:
        self._clear_handle = None
        self.clear()

    def _cancel_clear(self) -> None:
        if self._clear_handle is not None:
            self._clear_handle.cancel()
            self._clear_handle = None
