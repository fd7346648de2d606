"""Shared call wrapper for OpenAI-compatible backends."""

import logging
import time
from typing import Any, Awaitable, Optional

import openai
from openai import AsyncOpenAI

from services.errors import BackendError, ConfigurationError

LOGGER = logging.getLogger(__name__)


def require_client(client: Optional[AsyncOpenAI], key_name: str) -> AsyncOpenAI:
    """Return `client` or raise before any network call when its key is missing."""
    if client is None:
        raise ConfigurationError(f"{key_name} not configured")
    return client


async def call_backend(label: str, request_id: Optional[str], call: Awaitable[Any]) -> Any:
    """Await `call`, translating SDK failures into `BackendError`."""
    start_time = time.monotonic()
    try:
        response = await call
    except openai.APIStatusError as exc:
        LOGGER.error("%s failed [%s] status=%s: %s", label, request_id, exc.status_code, exc)
        raise BackendError(f"{label} failed: {exc.message}", status_code=exc.status_code) from exc
    except openai.APIConnectionError as exc:
        LOGGER.error("%s connection error [%s]: %s", label, request_id, exc)
        raise BackendError(f"{label} failed: {exc}") from exc
    LOGGER.debug("%s returned in %.2fs [%s]", label, time.monotonic() - start_time, request_id)
    return response
