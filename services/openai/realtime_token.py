"""Ephemeral client secrets for the OpenAI Realtime API."""

import logging
import time
from typing import Any, Optional

import httpx

from services.errors import BackendError, ConfigurationError
from utils.settings import OPENAI_REALTIME_SESSIONS_URL

LOGGER = logging.getLogger(__name__)


def parse_client_secret(payload: Any) -> Optional[str]:
    """Pull the secret out of a sessions response.

    Checks ``client_secret.value``, then ``client_secret`` as a string, then
    ``client_secret_key``.
    """
    if not isinstance(payload, dict):
        return None
    secret = payload.get("client_secret")
    if isinstance(secret, dict):
        secret = secret.get("value")
    if not secret:
        secret = payload.get("client_secret_key")
    return secret if isinstance(secret, str) and secret else None


class RealtimeTokenService:
    """Create short-lived Realtime sessions with the server API key."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-realtime",
        sessions_url: str = OPENAI_REALTIME_SESSIONS_URL,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.sessions_url = sessions_url
        self.http_client = http_client
        self.timeout = timeout

    async def create_client_secret(self) -> str:
        """Return an ephemeral client secret.

        Raises:
            ConfigurationError: If OPENAI_API_KEY is not configured.
            BackendError: On a non-success status or a response without a secret.
        """
        if not self.api_key:
            raise ConfigurationError("OPENAI_API_KEY not configured")
        start_time = time.monotonic()

        try:
            if self.http_client is not None:
                response = await self._post(self.http_client)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._post(client)
        except httpx.HTTPError as exc:
            LOGGER.error("Realtime session request failed: %s", exc)
            raise BackendError(f"Failed to create Realtime session: {exc}") from exc

        if response.status_code >= 400:
            LOGGER.error("Failed to create Realtime session: %s %s", response.status_code, response.text[:1000])
            raise BackendError("Failed to create Realtime session", status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            raise BackendError("Realtime session response was not JSON") from exc

        secret = parse_client_secret(payload)
        if secret is None:
            LOGGER.error("Realtime session created but client secret missing: %s", str(payload)[:1000])
            raise BackendError("Realtime session created but client secret missing or invalid")

        LOGGER.info("Realtime session created in %.2fs", time.monotonic() - start_time)
        return secret

    async def _post(self, client: httpx.AsyncClient) -> httpx.Response:
        return await client.post(
            self.sessions_url,
            headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
            json={"model": self.model},
        )
