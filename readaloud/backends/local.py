"""On-device speech backend built on pyttsx3.

WHY: The system engine is the only backend that reports true word
boundaries while it speaks, so it gets exact word highlighting for free.
It also needs no network and no API key, which makes it the default.

HOW: pyttsx3 runs in external-loop mode (startLoop(False)); the backend
pumps engine.iterate() from the asyncio loop every few milliseconds so
everything stays on one thread. Engine callbacks are re-posted with
loop.call_soon and checked against the utterance token on delivery,
which makes cancel() final even for callbacks already queued.

pyttsx3 has no pause. pause() stops the engine and remembers where the
word being spoken starts; resume() speaks the rest of the paragraph from
that word and shifts boundary offsets back into paragraph coordinates.
Completed words are never replayed.

RULES:
- started-utterance → on_ready (once per paragraph)
- started-word → on_word_boundary(location + offset, length)
- finished-utterance of the live engine utterance → on_paragraph_end
- OSError / RuntimeError while synthesizing → SYNTHESIS_FAILED (recoverable)
- Any other engine exception → UNKNOWN (terminal)
- Stops we cause are never reported (they would be INTERRUPTED)
- is_speaking() is engine.isBusy(): the drain predicate used on navigation
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Optional

import pyttsx3

from readaloud.api.voices import VoiceOption
from readaloud.backends.base import BackendErrorKind, SpeechEvents, UtteranceGuard
from readaloud.config import ENGINE_PUMP_INTERVAL_S, SERVICE_SYSTEM
from readaloud.core.models import VoiceParams

logger = logging.getLogger(__name__)

_PREFERRED_VOICE_NAMES = ("samantha", "alex")


def classify_engine_error(exc: BaseException) -> BackendErrorKind:
    """Map an engine exception to a backend error kind."""
    if isinstance(exc, (OSError, RuntimeError)):
        return BackendErrorKind.SYNTHESIS_FAILED
    return BackendErrorKind.UNKNOWN


def _voice_languages(voice: Any) -> list[str]:
    languages = []
    for lang in getattr(voice, "languages", None) or []:
        if isinstance(lang, bytes):
            lang = lang.decode("utf-8", errors="ignore")
        languages.append(str(lang).lower().lstrip("\x05"))
    return languages


def select_voice(voices: list[Any], requested: str, current_id: Optional[str]) -> Optional[str]:
    """Choose an engine voice id.

    RULES:
    - An explicit request matches a voice id or a case-insensitive name
    - Otherwise keep the engine's current (system default) voice
    - Otherwise the first English voice, or one named samantha / alex
    - Otherwise the first voice; None when the engine has no voices
    """
    if requested and requested != "default":
        for voice in voices:
            if voice.id == requested or (voice.name or "").lower() == requested.lower():
                return voice.id
        logger.warning("Voice %r not found; using the system default", requested)

    if current_id and any(voice.id == current_id for voice in voices):
        return current_id

    for voice in voices:
        name = (voice.name or "").lower()
        if any(lang.startswith("en") for lang in _voice_languages(voice)) or any(
            preferred in name for preferred in _PREFERRED_VOICE_NAMES
        ):
            return voice.id

    return voices[0].id if voices else None


def system_voice_options(engine_factory: Callable[[], Any] = pyttsx3.init) -> list[VoiceOption]:
    """List the voices installed for the system engine."""
    engine = engine_factory()
    return [VoiceOption(voice.id, voice.name) for voice in engine.getProperty("voices")]


class LocalEngineBackend:
    """SpeechBackend over pyttsx3 with native word-boundary events."""

    name = SERVICE_SYSTEM
    supports_word_boundaries = True

    def __init__(
        self,
        engine_factory: Callable[[], Any] = pyttsx3.init,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        pump_interval_s: float = ENGINE_PUMP_INTERVAL_S,
    ) -> None:
        self._engine_factory = engine_factory
        self._engine: Any = None
        self._loop = loop
        self._pump_interval_s = pump_interval_s
        self._pump_handle: Optional[asyncio.TimerHandle] = None
        self._base_rate: Optional[int] = None
        self._connections: list[Any] = []

        self._guard = UtteranceGuard()
        self._text = ""
        self._offset = 0            # paragraph offset of the current engine utterance
        self._word_start = 0        # paragraph offset of the word being spoken
        self._segment = 0
        self._engine_utterance: Optional[str] = None
        self._ready_sent = False
        self._paused = False

    # ------------------------------------------------------------------
    # Engine lifecycle
    # ------------------------------------------------------------------

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _ensure_engine(self) -> Any:
        if self._engine is not None:
            return self._engine
        engine = self._engine_factory()
        self._connections = [
            engine.connect("started-utterance", self._on_started_utterance),
            engine.connect("started-word", self._on_started_word),
            engine.connect("finished-utterance", self._on_finished_utterance),
            engine.connect("error", self._on_engine_error),
        ]
        engine.startLoop(False)
        self._engine = engine
        self._base_rate = int(engine.getProperty("rate") or 200)
        self._schedule_pump()
        return engine

    def _schedule_pump(self) -> None:
        self._pump_handle = self._get_loop().call_later(self._pump_interval_s, self._pump)

    def _pump(self) -> None:
        self._pump_handle = None
        if self._engine is None:
            return
        try:
            self._engine.iterate()
        except Exception as exc:
            logger.exception("Speech engine loop failed")
            self._report_error(self._guard.token, exc)
        self._schedule_pump()

    def _apply_voice(self, engine: Any, voice: VoiceParams) -> None:
        voice_id = select_voice(
            list(engine.getProperty("voices") or []), voice.voice, engine.getProperty("voice")
        )
        if voice_id:
            engine.setProperty("voice", voice_id)
        engine.setProperty("rate", max(1, int(self._base_rate * voice.speed)))
        engine.setProperty("volume", max(0.0, min(1.0, voice.volume)))
        if voice.pitch != 1.0:
            logger.debug("Pitch %.2f is not supported by the system engine", voice.pitch)

    # ------------------------------------------------------------------
    # SpeechBackend
    # ------------------------------------------------------------------

    def synthesize_and_play(self, text: str, voice: VoiceParams, events: SpeechEvents) -> None:
        self.cancel()
        engine = self._ensure_engine()
        token = self._guard.begin(events)
        self._text = text
        self._ready_sent = False
        self._paused = False
        self._word_start = 0
        self._apply_voice(engine, voice)
        self._speak_from(token, 0)

    def _speak_from(self, token: int, offset: int) -> None:
        self._offset = offset
        self._segment += 1
        name = f"utt-{token}-{self._segment}"
        self._engine_utterance = name
        try:
            self._engine.say(self._text[offset:], name)
        except (OSError, RuntimeError) as exc:
            logger.warning("Engine rejected utterance: %s", exc)
            self._engine_utterance = None
            self._report_error(token, exc)

    def pause(self) -> None:
        if self._paused or not self._guard.active or self._engine is None:
            return
        self._paused = True
        # Retire the engine utterance so the stop below is not reported.
        self._engine_utterance = None
        self._engine.stop()
        logger.debug("Paused at paragraph offset %d", self._word_start)

    def resume(self) -> None:
        if not self._paused:
            return
        self._paused = False
        if not self._guard.active:
            return
        token = self._guard.token
        if not self._text[self._word_start:].strip():
            self._post(token, "on_paragraph_end")
            return
        self._speak_from(token, self._word_start)

    def cancel(self) -> None:
        # A paused utterance has already been stopped.
        needs_stop = self._guard.active and not self._paused
        self._guard.invalidate()
        self._engine_utterance = None
        self._paused = False
        if needs_stop and self._engine is not None:
            self._engine.stop()

    def is_speaking(self) -> bool:
        return self._engine is not None and bool(self._engine.isBusy())

    def is_paused(self) -> bool:
        return self._paused

    def close(self) -> None:
        self.cancel()
        if self._pump_handle is not None:
            self._pump_handle.cancel()
            self._pump_handle = None
        if self._engine is not None:
            engine, self._engine = self._engine, None
            # pyttsx3.init() caches engines per driver; detach from the shared one.
            for token in self._connections:
                engine.disconnect(token)
            self._connections = []
            try:
                engine.endLoop()
            except RuntimeError:
                logger.debug("Engine loop already ended")

    # ------------------------------------------------------------------
    # Engine callbacks (run inside engine.iterate(), keyword arguments only)
    # ------------------------------------------------------------------

    def _post(self, token: int, name: str, *args: object) -> None:
        self._get_loop().call_soon(self._guard.emit, token, name, *args)

    def _on_started_utterance(self, name: Optional[str] = None) -> None:
        if name != self._engine_utterance or self._ready_sent:
            return
        self._ready_sent = True
        self._post(self._guard.token, "on_ready")

    def _on_started_word(self, name: Optional[str] = None, location: int = 0, length: int = 0) -> None:
        if name != self._engine_utterance:
            return
        self._word_start = self._offset + location
        self._post(self._guard.token, "on_word_boundary", self._word_start, length)

    def _on_finished_utterance(self, name: Optional[str] = None, completed: bool = True) -> None:
        if name != self._engine_utterance:
            return
        if not completed:
            logger.debug("Utterance %s ended early", name)
        self._engine_utterance = None
        self._post(self._guard.token, "on_paragraph_end")

    def _on_engine_error(self, name: Optional[str] = None, exception: Optional[BaseException] = None) -> None:
        if name != self._engine_utterance:
            logger.debug("Ignoring error from retired utterance %s: %s", name, exception)
            return
        self._engine_utterance = None
        self._report_error(self._guard.token, exception or RuntimeError("unknown engine error"))

    def _report_error(self, token: int, exc: BaseException) -> None:
        kind = classify_engine_error(exc)
        self._post(token, "on_error", kind, f"Speech synthesis error: {exc}")


def create_local_backend(settings, loop: Optional[asyncio.AbstractEventLoop] = None) -> LocalEngineBackend:
    return LocalEngineBackend(loop=loop)
