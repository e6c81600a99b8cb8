"""Speech backend contract: events, error kinds, and the capability protocol.

WHY: Three very different speech services must look identical to the
playback controller. The on-device engine reports every word boundary;
the remote services return a finished clip and say nothing until it
ends. A single contract lets the controller choose the right highlight
strategy by reading one flag instead of branching on service names.

HOW: SpeechBackend is a runtime-checkable Protocol. SpeechEvents bundles
the callbacks for one utterance. UtteranceGuard is the small helper every
implementation uses to make cancel() final: each utterance gets a token,
and callbacks carrying a stale token are dropped.

RULES:
- synthesize_and_play() returns immediately; progress arrives as events
- pause(), resume(), cancel() are idempotent and safe in any state
- After cancel() returns, no event for the cancelled utterance fires
- on_word_boundary is only emitted when supports_word_boundaries is True
- is_speaking() is the drain predicate: True while anything is audible
  or about to become audible
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from readaloud.core.models import VoiceParams

logger = logging.getLogger(__name__)


class BackendErrorKind(str, enum.Enum):
    """Classification of backend failures.

    RULES:
    - interrupted: caused by our own cancel/stop; never shown to the user
    - synthesis_failed: one paragraph failed; skip it and continue
    - network / http_status / playback / unknown: terminal for the session
    """

    INTERRUPTED = "interrupted"
    SYNTHESIS_FAILED = "synthesis_failed"
    NETWORK = "network"
    HTTP_STATUS = "http_status"
    PLAYBACK = "playback"
    UNKNOWN = "unknown"


class SpeechBackendError(RuntimeError):
    """A classified backend failure.

    WHY: Lets backend internals raise a failure with its kind attached and
    have it reported through on_error in one place.
    """

    def __init__(self, kind: BackendErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


def _noop(*_args: object) -> None:
    return None


@dataclass
class SpeechEvents:
    """Callbacks for one utterance."""

    on_ready: Callable[[], None] = _noop
    on_word_boundary: Callable[[int, int], None] = _noop
    on_paragraph_end: Callable[[], None] = _noop
    on_error: Callable[[BackendErrorKind, str], None] = _noop


@runtime_checkable
class SpeechBackend(Protocol):
    """Capability interface implemented by every speech service adapter."""

    name: str
    supports_word_boundaries: bool

    def synthesize_and_play(self, text: str, voice: VoiceParams, events: SpeechEvents) -> None:
        ...

    def pause(self) -> None:
        ...

    def resume(self) -> None:
        ...

    def cancel(self) -> None:
        ...

    def is_speaking(self) -> bool:
        ...

    def is_paused(self) -> bool:
        ...

    def close(self) -> None:
        ...


class UtteranceGuard:
    """Token bookkeeping that makes cancel() final for callbacks.

    HOW: begin() issues a new token and remembers the utterance's events.
    emit() forwards an event only while its token is current. invalidate()
    retires the current token; every later emit() for it is dropped.
    """

    def __init__(self) -> None:
        self._token = 0
        self._events: SpeechEvents | None = None

    @property
    def token(self) -> int:
        return self._token

    @property
    def active(self) -> bool:
        return self._events is not None

    def begin(self, events: SpeechEvents) -> int:
        self._token += 1
        self._events = events
        return self._token

    def invalidate(self) -> None:
        self._token += 1
        self._events = None

    def is_current(self, token: int) -> bool:
        return self._events is not None and token == self._token

    def emit(self, token: int, name: str, *args: object) -> bool:
        """Deliver an event for ``token`` if it is still current."""
        if not self.is_current(token):
            logger.debug("Dropped stale %s event (token %d, current %d)", name, token, self._token)
            return False
        events = self._events
        if name == "on_paragraph_end" or (
            name == "on_error" and args and args[0] is not BackendErrorKind.INTERRUPTED
        ):
            # Terminal events close the utterance.
            self._events = None
        getattr(events, name)(*args)
        return True
