"""Async HTTP clients for the remote text-to-speech services.

WHY: Both remote backends follow the same shape: send one paragraph, get
back one complete audio clip. Wrapping each service behind a small client
class keeps request construction and authentication out of the playback
code, and gives tests a single seam (the httpx transport) to stub.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. Each client is an
async context manager: enter it to get an authenticated connection pool,
exit to close it. synthesize() POSTs the paragraph and returns the raw
audio bytes.

RULES:
- Always use the async context manager (async with OpenAISpeechClient(...) as client:)
- A non-2xx response raises SpeechAPIError; there is no retry
- Transport failures propagate as httpx.HTTPError
- The API key is required at construction; resolving it is the caller's job
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from readaloud.config import (
    ELEVENLABS_BASE_URL,
    ELEVENLABS_MODEL,
    ELEVENLABS_SIMILARITY_BOOST,
    ELEVENLABS_STABILITY,
    OPENAI_BASE_URL,
    OPENAI_TTS_MODEL,
    REQUEST_TIMEOUT_S,
)

logger = logging.getLogger(__name__)


class SpeechAPIError(Exception):
    """Raised when a speech service returns a non-success response.

    WHY: Callers need to tell a service rejection (bad key, bad voice,
    quota) apart from a network failure when classifying the error.

    HOW: Wraps the HTTP status code and the response body.

    RULES:
    - Always include status_code and message
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Speech API error {status_code}: {message}")


class _SpeechClient:
    """Shared connection handling for the speech service clients."""

    service_name = ""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not api_key:
            raise ValueError(f"{self.service_name} client requires an API key")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _auth_headers(self) -> dict[str, str]:
        raise NotImplementedError

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._auth_headers(),
            timeout=httpx.Timeout(REQUEST_TIMEOUT_S, connect=30.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                f"{type(self).__name__} must be used as an async context manager"
            )
        return self._client

    async def _post_for_audio(self, path: str, body: dict) -> bytes:
        client = self._ensure_client()
        resp = await client.post(path, json=body)
        if not 200 <= resp.status_code < 300:
            raise SpeechAPIError(resp.status_code, resp.text)
        logger.debug(
            "%s returned %d bytes (%s)",
            self.service_name, len(resp.content), resp.headers.get("content-type", "?"),
        )
        return resp.content


class OpenAISpeechClient(_SpeechClient):
    """Client for the OpenAI speech endpoint (POST /audio/speech).

    RULES:
    - Bearer token authentication
    - Body: {model, voice, input, speed}
    """

    service_name = "OpenAI"

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(api_key, base_url or OPENAI_BASE_URL, transport)
        self._model = model or OPENAI_TTS_MODEL

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    async def synthesize(self, text: str, voice: str, speed: float = 1.0) -> bytes:
        """Synthesize one paragraph and return the audio clip bytes."""
        body = {
            "model": self._model,
            "voice": voice,
            "input": text,
            "speed": speed,
        }
        return await self._post_for_audio("/audio/speech", body)


class ElevenLabsClient(_SpeechClient):
    """Client for the ElevenLabs text-to-speech endpoint.

    RULES:
    - xi-api-key header authentication
    - The voice id is part of the URL path
    - Body: {text, model_id, voice_settings: {stability, similarity_boost, speed}}
    """

    service_name = "Eleven Labs"

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(api_key, base_url or ELEVENLABS_BASE_URL, transport)
        self._model = model or ELEVENLABS_MODEL

    def _auth_headers(self) -> dict[str, str]:
        return {"xi-api-key": self._api_key}

    async def synthesize(self, text: str, voice: str, speed: float = 1.0) -> bytes:
        """Synthesize one paragraph and return the audio clip bytes."""
        body = {
            "text": text,
            "model_id": self._model,
            "voice_settings": {
                "stability": ELEVENLABS_STABILITY,
                "similarity_boost": ELEVENLABS_SIMILARITY_BOOST,
                "speed": speed,
            },
        }
        return await self._post_for_audio(f"/text-to-speech/{voice}", body)
