"""Exception types shared by the generation pipeline and the voice bridge."""

from typing import Optional


class ConfigurationError(RuntimeError):
    """A backend credential or setting is missing; raised before any network call."""


class BackendError(RuntimeError):
    """An AI backend answered with a non-success status or an unusable payload."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GenerationCancelled(Exception):
    """The in-flight generation request was cancelled. Not a failure."""


class MicrophonePermissionError(PermissionError):
    """Microphone access was refused by the host."""


class VoiceConnectionError(RuntimeError):
    """Token fetch, SDP exchange or transport setup failed."""


class SnapshotSerializationError(ValueError):
    """The canvas snapshot could not be serialized for persistence."""
