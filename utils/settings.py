"""Environment driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
MISTRAL_BASE_URL = "https://api.mistral.ai/v1"
OPENAI_REALTIME_SESSIONS_URL = "https://api.openai.com/v1/realtime/sessions"
OPENAI_REALTIME_URL = "https://api.openai.com/v1/realtime"


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from exc


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_str(env: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


@dataclass
class Settings:
    """Runtime configuration read once at startup.

    API keys may be absent; each backend raises `ConfigurationError` when it is
    used without its key rather than failing the whole application.
    """

    openai_api_key: Optional[str] = None
    openrouter_api_key: Optional[str] = None
    mistral_api_key: Optional[str] = None
    site_url: str = "http://localhost:8000"
    app_title: str = "Canvas Coach"

    ocr_model: str = "pixtral-12b-2409"
    help_model: str = "openai/gpt-4o-mini"
    solution_model: str = "google/gemini-3-pro-image-preview"
    analysis_model: str = "google/gemini-2.5-flash"
    realtime_session_model: str = "gpt-realtime"
    realtime_model: str = "gpt-4o-realtime-preview-2024-12-17"
    realtime_sessions_url: str = OPENAI_REALTIME_SESSIONS_URL
    realtime_url: str = OPENAI_REALTIME_URL

    quiet_period_seconds: float = 2.0
    autosave_delay_seconds: float = 2.0
    suppression_grace_seconds: float = 0.1
    error_display_seconds: float = 3.0
    success_display_seconds: float = 2.0
    pending_opacity: float = 0.3
    pipeline: str = "consolidated"
    default_mode: str = "suggest"
    correct_generated_whites: bool = False

    voice_audio_input: Optional[str] = None
    voice_audio_format: Optional[str] = None
    voice_audio_output: Optional[str] = None

    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from `env` (defaults to `os.environ`)."""
        env = os.environ if env is None else env
        pipeline = (_env_str(env, "PIPELINE", "consolidated") or "consolidated").lower()
        if pipeline not in ("consolidated", "staged"):
            raise RuntimeError(f"PIPELINE must be 'consolidated' or 'staged', got {pipeline!r}")

        return cls(
            openai_api_key=_env_str(env, "OPENAI_API_KEY"),
            openrouter_api_key=_env_str(env, "OPENROUTER_API_KEY"),
            mistral_api_key=_env_str(env, "MISTRAL_API_KEY"),
            site_url=_env_str(env, "SITE_URL", cls.site_url),
            app_title=_env_str(env, "APP_TITLE", cls.app_title),
            ocr_model=_env_str(env, "OCR_MODEL", cls.ocr_model),
            help_model=_env_str(env, "HELP_MODEL", cls.help_model),
            solution_model=_env_str(env, "SOLUTION_MODEL", cls.solution_model),
            analysis_model=_env_str(env, "ANALYSIS_MODEL", cls.analysis_model),
            realtime_session_model=_env_str(env, "REALTIME_SESSION_MODEL", cls.realtime_session_model),
            realtime_model=_env_str(env, "REALTIME_MODEL", cls.realtime_model),
            realtime_sessions_url=_env_str(env, "REALTIME_SESSIONS_URL", cls.realtime_sessions_url),
            realtime_url=_env_str(env, "REALTIME_URL", cls.realtime_url),
            quiet_period_seconds=_env_float(env, "QUIET_PERIOD_SECONDS", cls.quiet_period_seconds),
            autosave_delay_seconds=_env_float(env, "AUTOSAVE_DELAY_SECONDS", cls.autosave_delay_seconds),
            suppression_grace_seconds=_env_float(env, "SUPPRESSION_GRACE_SECONDS", cls.suppression_grace_seconds),
            error_display_seconds=_env_float(env, "ERROR_DISPLAY_SECONDS", cls.error_display_seconds),
            success_display_seconds=_env_float(env, "SUCCESS_DISPLAY_SECONDS", cls.success_display_seconds),
            pending_opacity=_env_float(env, "PENDING_OPACITY", cls.pending_opacity),
            pipeline=pipeline,
            default_mode=(_env_str(env, "DEFAULT_MODE", cls.default_mode) or cls.default_mode).lower(),
            correct_generated_whites=_env_bool(env, "CORRECT_GENERATED_WHITES"),
            voice_audio_input=_env_str(env, "VOICE_AUDIO_INPUT"),
            voice_audio_format=_env_str(env, "VOICE_AUDIO_FORMAT"),
            voice_audio_output=_env_str(env, "VOICE_AUDIO_OUTPUT"),
            log_level=(_env_str(env, "LOG_LEVEL", cls.log_level) or cls.log_level).upper(),
        )
