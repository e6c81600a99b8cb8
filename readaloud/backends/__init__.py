"""Speech backends and the registry that builds one per session.

RULES:
- BACKENDS maps a voice service key to a builder(settings, loop) → SpeechBackend
- create_backend() raises ConfigurationError for unknown services and for
  remote services without credentials, before any request is made
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Optional

from readaloud.backends.base import (
    BackendErrorKind,
    SpeechBackend,
    SpeechBackendError,
    SpeechEvents,
    UtteranceGuard,
)
from readaloud.backends.local import LocalEngineBackend, create_local_backend
from readaloud.backends.remote import (
    ClipPlayer,
    RemoteClipBackend,
    create_elevenlabs_backend,
    create_openai_backend,
)
from readaloud.config import (
    SERVICE_ELEVENLABS,
    SERVICE_OPENAI,
    SERVICE_SYSTEM,
    ConfigurationError,
)

BackendBuilder = Callable[..., SpeechBackend]

BACKENDS: dict[str, BackendBuilder] = {
    SERVICE_SYSTEM: create_local_backend,
    SERVICE_ELEVENLABS: create_elevenlabs_backend,
    SERVICE_OPENAI: create_openai_backend,
}


def create_backend(settings, loop: Optional[asyncio.AbstractEventLoop] = None) -> SpeechBackend:
    """Build the backend for ``settings.voice_service``."""
    builder = BACKENDS.get(settings.voice_service)
    if builder is None:
        raise ConfigurationError(f"Unknown voice service: {settings.voice_service}")
    return builder(settings, loop=loop)


__all__ = [
    "BACKENDS",
    "BackendErrorKind",
    "ClipPlayer",
    "LocalEngineBackend",
    "RemoteClipBackend",
    "SpeechBackend",
    "SpeechBackendError",
    "SpeechEvents",
    "UtteranceGuard",
    "create_backend",
]
