"""Shared fakes for the readaloud test suite.

WHY: The playback core talks to three collaborators that are slow, noisy,
or hardware-bound in real life: a frame clock, a speech backend, and a
host document. Tests need deterministic stand-ins they can drive by hand
and inspect afterwards.

HOW: FakeFrameClock advances time only when a test ticks it. SpyBackend
records every call and lets the test fire events. FakeEngine mimics the
pyttsx3 engine surface used by the local backend, and FakePlayer the
ClipPlayer surface used by the remote backend. RecordingDocument is a
TextDocument that also logs every create/clear call.

RULES:
- Nothing here touches audio hardware, the network, or wall-clock time
  (the local backend fakes still run on a real asyncio loop)
- Fakes keep the method names of what they replace
- Test modules reach the fakes through fixtures (make_* return the class)
- FakeEngine delivers callbacks by keyword, exactly as pyttsx3 does
"""

from __future__ import annotations

import asyncio
import itertools
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from readaloud.backends import BACKENDS
from readaloud.backends.base import BackendErrorKind, SpeechEvents
from readaloud.core.document import TextDocument
from readaloud.core.models import HighlightStyle, VoiceParams


# ---------------------------------------------------------------------------
# Frame clock
# ---------------------------------------------------------------------------


class FakeFrameClock:
    """FrameClock whose time only moves when the test calls tick()."""

    def __init__(self, start_ms: float = 0.0, frame_ms: float = 10.0) -> None:
        self.now_ms = start_ms
        self.frame_ms = frame_ms
        self._ids = itertools.count(1)
        self._pending: Dict[int, Callable[[float], None]] = {}

    @property
    def pending(self) -> int:
        return len(self._pending)

    def request(self, callback: Callable[[float], None]) -> int:
        handle = next(self._ids)
        self._pending[handle] = callback
        return handle

    def cancel(self, handle: Any) -> None:
        self._pending.pop(handle, None)

    def tick(self, ms: Optional[float] = None) -> None:
        self.now_ms += self.frame_ms if ms is None else ms
        callbacks = list(self._pending.values())
        self._pending.clear()
        for callback in callbacks:
            callback(self.now_ms)

    def run_until(self, ms: float) -> None:
        while self.now_ms < ms:
            self.tick()


# ---------------------------------------------------------------------------
# Speech backend
# ---------------------------------------------------------------------------


class SpyBackend:
    """SpeechBackend that records calls and lets tests fire events."""

    name = "spy"

    def __init__(self, supports_word_boundaries: bool = True) -> None:
        self.supports_word_boundaries = supports_word_boundaries
        self.spoken: List[str] = []
        self.voices: List[VoiceParams] = []
        self.calls: List[str] = []
        self.events: Optional[SpeechEvents] = None
        self.speaking = False
        self.paused = False
        self.closed = False
        self.busy_after_cancel = 0

    # -- SpeechBackend ------------------------------------------------

    def synthesize_and_play(self, text: str, voice: VoiceParams, events: SpeechEvents) -> None:
        self.calls.append("synthesize")
        self.spoken.append(text)
        self.voices.append(voice)
        self.events = events
        self.speaking = True
        self.paused = False

    def pause(self) -> None:
        self.calls.append("pause")
        if self.speaking:
            self.paused = True

    def resume(self) -> None:
        self.calls.append("resume")
        self.paused = False

    def cancel(self) -> None:
        self.calls.append("cancel")
        self.speaking = False
        self.paused = False

    def is_speaking(self) -> bool:
        if self.busy_after_cancel > 0:
            self.busy_after_cancel -= 1
            return True
        return self.speaking

    def is_paused(self) -> bool:
        return self.paused

    def close(self) -> None:
        self.calls.append("close")
        self.closed = True

    # -- Test drivers -------------------------------------------------

    def ready(self) -> None:
        self.events.on_ready()

    def boundary(self, char_index: int, char_length: int) -> None:
        self.events.on_word_boundary(char_index, char_length)

    def finish(self) -> None:
        self.speaking = False
        self.events.on_paragraph_end()

    def fail(self, kind: BackendErrorKind, message: str = "boom") -> None:
        self.speaking = False
        self.events.on_error(kind, message)


class AutoBackend(SpyBackend):
    """SpyBackend that finishes each paragraph on its own, one loop turn later."""

    def synthesize_and_play(self, text: str, voice: VoiceParams, events: SpeechEvents) -> None:
        super().synthesize_and_play(text, voice, events)
        loop = asyncio.get_running_loop()
        loop.call_soon(self.ready)
        loop.call_soon(self.finish)


class EventLog:
    """Records the SpeechEvents a backend delivers, in order."""

    def __init__(self) -> None:
        self.entries: List[Tuple[Any, ...]] = []

    def events(self) -> SpeechEvents:
        return SpeechEvents(
            on_ready=lambda: self.entries.append(("ready",)),
            on_word_boundary=lambda index, length: self.entries.append(("word", index, length)),
            on_paragraph_end=lambda: self.entries.append(("end",)),
            on_error=lambda kind, message: self.entries.append(("error", kind)),
        )

    def names(self) -> List[str]:
        return [entry[0] for entry in self.entries]


class SpyFactory:
    """Backend factory that hands out one SpyBackend and counts builds."""

    def __init__(self, backend: Optional[SpyBackend] = None) -> None:
        self.backend = backend or SpyBackend()
        self.builds = 0

    def __call__(self, settings, loop=None) -> SpyBackend:
        self.builds += 1
        return self.backend


# ---------------------------------------------------------------------------
# pyttsx3 engine
# ---------------------------------------------------------------------------


def _voice(voice_id: str, name: str, languages: Optional[List[str]] = None) -> SimpleNamespace:
    return SimpleNamespace(id=voice_id, name=name, languages=languages or [])


class FakeEngine:
    """The slice of the pyttsx3 Engine API the local backend uses."""

    def __init__(self, voices: Optional[List[SimpleNamespace]] = None, rate: int = 200) -> None:
        self.properties: Dict[str, Any] = {
            "rate": rate,
            "volume": 1.0,
            "voice": None,
            "voices": voices if voices is not None else [
                _voice("com.fr.thomas", "Thomas", ["fr_FR"]),
                _voice("com.en.samantha", "Samantha", ["en_US"]),
            ],
        }
        self.callbacks: Dict[str, List[Callable[..., None]]] = {}
        self.said: List[Tuple[str, Optional[str]]] = []
        self.stops = 0
        self.iterations = 0
        self.loop_started = False
        self.driver_loop: Optional[bool] = None
        self.loop_ended = False
        self.busy = False
        self.say_error: Optional[BaseException] = None

    def connect(self, topic: str, callback: Callable[..., None]) -> Dict[str, Any]:
        self.callbacks.setdefault(topic, []).append(callback)
        return {"topic": topic, "cb": callback}

    def disconnect(self, token: Dict[str, Any]) -> None:
        self.callbacks[token["topic"]].remove(token["cb"])

    def startLoop(self, useDriverLoop: bool = True) -> None:  # noqa: N802
        self.loop_started = True
        self.driver_loop = useDriverLoop

    def endLoop(self) -> None:  # noqa: N802
        self.loop_ended = True

    def iterate(self) -> None:
        self.iterations += 1

    def getProperty(self, name: str) -> Any:  # noqa: N802
        return self.properties[name]

    def setProperty(self, name: str, value: Any) -> None:  # noqa: N802
        self.properties[name] = value

    def say(self, text: str, name: Optional[str] = None) -> None:
        if self.say_error is not None:
            raise self.say_error
        self.said.append((text, name))
        self.busy = True

    def stop(self) -> None:
        self.stops += 1
        was_busy, self.busy = self.busy, False
        if was_busy and self.said:
            self.fire("finished-utterance", name=self.said[-1][1], completed=False)

    def isBusy(self) -> bool:  # noqa: N802
        return self.busy

    # -- Test drivers -------------------------------------------------

    @property
    def utterance(self) -> Optional[str]:
        return self.said[-1][1] if self.said else None

    def fire(self, topic: str, **kwargs: Any) -> None:
        """Deliver a callback the way pyttsx3 does: keyword arguments only."""
        for callback in list(self.callbacks.get(topic, [])):
            callback(**kwargs)

    def start(self) -> None:
        self.fire("started-utterance", name=self.utterance)

    def word(self, location: int, length: int) -> None:
        self.fire("started-word", name=self.utterance, location=location, length=length)

    def finish(self) -> None:
        self.busy = False
        self.fire("finished-utterance", name=self.utterance, completed=True)

    def error(self, exc: BaseException) -> None:
        self.busy = False
        self.fire("error", name=self.utterance, exception=exc)


# ---------------------------------------------------------------------------
# Clip player
# ---------------------------------------------------------------------------


class FakePlayer:
    """ClipPlayer stand-in: the test decides when a clip finishes."""

    def __init__(self) -> None:
        self.played: List[Tuple[bytes, float]] = []
        self.loaded = False
        self._paused = False
        self.finished = False
        self.stops = 0
        self.play_error: Optional[BaseException] = None

    @property
    def paused(self) -> bool:
        return self._paused

    def play(self, audio: bytes, volume: float = 1.0) -> None:
        if self.play_error is not None:
            raise self.play_error
        self.played.append((audio, volume))
        self.loaded = True
        self.finished = False
        self._paused = False

    def pause(self) -> None:
        if self.loaded:
            self._paused = True

    def resume(self) -> None:
        self._paused = False

    def stop(self) -> None:
        self.stops += 1
        self.loaded = False
        self._paused = False

    def is_busy(self) -> bool:
        return self.loaded and (self._paused or not self.finished)

    def is_finished(self) -> bool:
        return self.loaded and not self._paused and self.finished


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class RecordingDocument(TextDocument):
    """TextDocument that logs every highlight call it receives."""

    def __init__(self, text: str = "") -> None:
        super().__init__(text)
        self.created: List[Tuple[Any, Any, HighlightStyle]] = []
        self.cleared: List[Any] = []

    def create_highlight(self, from_pos, to_pos, style):
        self.created.append((from_pos, to_pos, style))
        return super().create_highlight(from_pos, to_pos, style)

    def clear_highlight(self, handle):
        self.cleared.append(handle)
        super().clear_highlight(handle)

    def drawn_texts(self) -> List[str]:
        return sorted(self.highlighted_text(handle) for handle in self.highlights)


class FailingDocument(TextDocument):
    """TextDocument whose decorator calls always fail."""

    def create_highlight(self, from_pos, to_pos, style):
        raise RuntimeError("decorator rejected range")

    def clear_highlight(self, handle):
        raise RuntimeError("decorator rejected clear")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


THREE_PARAGRAPHS = "First paragraph here.\n\nSecond one.\n\nThird and last."


@pytest.fixture
def frame_clock():
    return FakeFrameClock()


@pytest.fixture
def spy_factory():
    return SpyFactory()


@pytest.fixture
def document():
    return RecordingDocument(THREE_PARAGRAPHS)


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def fake_player():
    return FakePlayer()


@pytest.fixture
def three_paragraphs():
    return THREE_PARAGRAPHS


@pytest.fixture
def make_clock():
    return FakeFrameClock


@pytest.fixture
def make_backend():
    return SpyBackend


@pytest.fixture
def make_factory():
    return SpyFactory


@pytest.fixture
def make_event_log():
    return EventLog


@pytest.fixture
def make_engine():
    return FakeEngine


@pytest.fixture
def make_voice():
    return _voice


@pytest.fixture
def make_document():
    return RecordingDocument


@pytest.fixture
def failing_document():
    return FailingDocument("alpha beta")


@pytest.fixture
def auto_backend(monkeypatch):
    """Register an AutoBackend as the "system" service for one test."""
    backend = AutoBackend()
    monkeypatch.setitem(BACKENDS, "system", lambda settings, loop=None: backend)
    return backend
