"""Remote clip backends: one HTTP request per paragraph, then local playback.

WHY: OpenAI and ElevenLabs return a complete audio clip for each request
and no timing metadata. Their adapters therefore only ever report three
things: the clip started sounding, the clip finished, or something went
wrong. Everything else (word highlighting) is estimated by the core.

HOW: RemoteClipBackend composes a service client factory (from
readaloud.api.client) with a ClipPlayer. synthesize_and_play() starts an
asyncio task that requests the clip, hands it to the player, emits
on_ready, and then polls the mixer on the event loop until the clip ends.
ClipPlayer wraps pygame.mixer.music, which plays from memory and supports
native pause/unpause.

RULES:
- A failed request is terminal for the session: no retry, ever
- Non-2xx → HTTP_STATUS, transport error → NETWORK, bad clip → PLAYBACK
- Any other exception in the request task → UNKNOWN; none escapes the task
- cancel() cancels the request task, stops the mixer, and retires the
  utterance token so no late event can fire
- Missing credentials are caught by the create_* builders, before any
  backend (and therefore any request) exists
"""

from __future__ import annotations

import asyncio
import io
import logging
import os
from collections.abc import Callable
from typing import Any, Optional

import httpx

# pygame prints a banner to stdout on import unless this is set.
os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")
import pygame  # noqa: E402

from readaloud.api.client import ElevenLabsClient, OpenAISpeechClient, SpeechAPIError
from readaloud.api.voices import resolve_voice
from readaloud.backends.base import (
    BackendErrorKind,
    SpeechBackendError,
    SpeechEvents,
    UtteranceGuard,
)
from readaloud.config import (
    CLIP_POLL_INTERVAL_S,
    SERVICE_ELEVENLABS,
    SERVICE_OPENAI,
    resolve_api_key,
)
from readaloud.core.models import VoiceParams

logger = logging.getLogger(__name__)


class ClipPlayer:
    """Plays one in-memory audio clip at a time through pygame.mixer.music.

    RULES:
    - The mixer is initialised lazily on first play
    - is_busy() is True while a clip is loaded and not finished (paused counts)
    - is_finished() is True once a loaded, unpaused clip stops sounding
    - pause(), resume(), stop() are no-ops when they do not apply
    """

    def __init__(self, namehint: str = "mp3") -> None:
        self._namehint = namehint
        self._loaded = False
        self._paused = False

    @property
    def paused(self) -> bool:
        return self._paused

    def play(self, audio: bytes, volume: float = 1.0) -> None:
        try:
            if not pygame.mixer.get_init():
                pygame.mixer.init()
            pygame.mixer.music.load(io.BytesIO(audio), self._namehint)
            pygame.mixer.music.set_volume(max(0.0, min(1.0, volume)))
            pygame.mixer.music.play()
        except pygame.error as exc:
            raise SpeechBackendError(BackendErrorKind.PLAYBACK, f"Error playing audio: {exc}") from exc
        self._loaded = True
        self._paused = False

    def pause(self) -> None:
        if self._loaded and not self._paused:
            pygame.mixer.music.pause()
            self._paused = True

    def resume(self) -> None:
        if self._loaded and self._paused:
            pygame.mixer.music.unpause()
            self._paused = False

    def stop(self) -> None:
        if not self._loaded:
            return
        pygame.mixer.music.stop()
        pygame.mixer.music.unload()
        self._loaded = False
        self._paused = False

    def is_busy(self) -> bool:
        return self._loaded and (self._paused or pygame.mixer.music.get_busy())

    def is_finished(self) -> bool:
        return self._loaded and not self._paused and not pygame.mixer.music.get_busy()


class RemoteClipBackend:
    """SpeechBackend for services that return a finished audio clip."""

    supports_word_boundaries = False

    def __init__(
        self,
        name: str,
        client_factory: Callable[[], Any],
        player: Optional[ClipPlayer] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        poll_interval_s: float = CLIP_POLL_INTERVAL_S,
    ) -> None:
        self.name = name
        self._client_factory = client_factory
        self._player = player or ClipPlayer()
        self._loop = loop
        self._poll_interval_s = poll_interval_s
        self._guard = UtteranceGuard()
        self._task: Optional[asyncio.Task] = None
        self._poll_handle: Optional[asyncio.TimerHandle] = None

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def synthesize_and_play(self, text: str, voice: VoiceParams, events: SpeechEvents) -> None:
        self.cancel()
        token = self._guard.begin(events)
        logger.info("%s: requesting %d characters", self.name, len(text))
        self._task = self._get_loop().create_task(self._run(token, text, voice))

    async def _run(self, token: int, text: str, voice: VoiceParams) -> None:
        try:
            async with self._client_factory() as client:
                audio = await client.synthesize(
                    text, resolve_voice(self.name, voice.voice), voice.speed
                )
        except SpeechAPIError as exc:
            logger.error("%s rejected the request: %s", self.name, exc)
            self._guard.emit(
                token, "on_error", BackendErrorKind.HTTP_STATUS,
                f"Error generating speech ({self.name}): HTTP {exc.status_code}",
            )
            return
        except httpx.HTTPError as exc:
            logger.error("%s request failed: %s", self.name, exc)
            self._guard.emit(
                token, "on_error", BackendErrorKind.NETWORK,
                f"Error generating speech ({self.name}): {exc}",
            )
            return
        except Exception as exc:
            logger.exception("%s request failed unexpectedly", self.name)
            self._guard.emit(
                token, "on_error", BackendErrorKind.UNKNOWN,
                f"Error generating speech ({self.name}): {exc}",
            )
            return

        if not self._guard.is_current(token):
            return

        try:
            self._player.play(audio, voice.volume)
        except SpeechBackendError as exc:
            logger.error("%s: %s", self.name, exc.message)
            self._guard.emit(token, "on_error", exc.kind, exc.message)
            return

        self._guard.emit(token, "on_ready")
        self._schedule_poll(token)

    def _schedule_poll(self, token: int) -> None:
        self._poll_handle = self._get_loop().call_later(
            self._poll_interval_s, self._check_finished, token
        )

    def _check_finished(self, token: int) -> None:
        self._poll_handle = None
        if not self._guard.is_current(token):
            return
        if self._player.is_finished():
            self._player.stop()
            self._guard.emit(token, "on_paragraph_end")
            return
        self._schedule_poll(token)

    def pause(self) -> None:
        self._player.pause()

    def resume(self) -> None:
        self._player.resume()

    def cancel(self) -> None:
        self._guard.invalidate()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        if self._poll_handle is not None:
            self._poll_handle.cancel()
            self._poll_handle = None
        self._player.stop()

    def is_speaking(self) -> bool:
        in_flight = self._task is not None and not self._task.done()
        return in_flight or self._player.is_busy()

    def is_paused(self) -> bool:
        return self._player.paused

    def close(self) -> None:
        self.cancel()


def create_openai_backend(settings, loop: Optional[asyncio.AbstractEventLoop] = None) -> RemoteClipBackend:
    """Build the OpenAI backend, failing fast when the API key is missing."""
    api_key = resolve_api_key(SERVICE_OPENAI, settings.openai_api_key)
    return RemoteClipBackend(
        SERVICE_OPENAI, lambda: OpenAISpeechClient(api_key), loop=loop
    )


def create_elevenlabs_backend(settings, loop: Optional[asyncio.AbstractEventLoop] = None) -> RemoteClipBackend:
    """Build the ElevenLabs backend, failing fast when the API key is missing."""
    api_key = resolve_api_key(SERVICE_ELEVENLABS, settings.elevenlabs_api_key)
    return RemoteClipBackend(
        SERVICE_ELEVENLABS, lambda: ElevenLabsClient(api_key), loop=loop
    )
