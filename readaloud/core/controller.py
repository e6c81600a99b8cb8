"""Playback controller: the state machine that reads a document aloud.

WHY: Reading aloud is a sequence of per-paragraph synthesis requests
whose events arrive asynchronously, can be cancelled at any moment, and
must keep a highlight on the right characters. Exactly one object owns
that sequence so hosts only ever issue commands (play, pause, next) and
observe state.

HOW: play() snapshots the document, cleans and segments it, builds a
backend through the injected factory, and starts the first paragraph.
Each paragraph start bumps the session generation; every backend event is
wrapped so it is dropped unless it carries the live session and
generation. on_ready moves to SPEAKING and draws the paragraph highlight.
Word highlights come from native boundaries (system engine) or from an
estimated WordSchedule (clip backends). Skips cancel the backend, drain
it by polling is_speaking(), and then start the target paragraph from an
asyncio task.

RULES:
- States: idle → loading → speaking ⇄ paused → idle; loading|speaking|paused → error → idle
- play() while not idle means stop
- While loading, play / toggle_pause / navigation only show a notice
- In idle, navigation, pause and resume do nothing
- A paragraph that ends while paused holds the next one until resume()
- A whitespace-only paragraph is never sent to a backend
- interrupted errors are ignored; synthesis_failed skips to the next
  paragraph; any other error shows one notice and tears the session down
- No exception raised by an event handler ever reaches the backend or host
- Teardown: generation bump, schedule stop, backend cancel + close,
  highlights cleared, session None, state idle
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Optional

from readaloud.backends import create_backend
from readaloud.backends.base import BackendErrorKind, SpeechBackend, SpeechEvents
from readaloud.config import (
    DRAIN_POLL_INTERVAL_S,
    DRAIN_POLL_MAX_ATTEMPTS,
    ConfigurationError,
)
from readaloud.core.document import DocumentProvider
from readaloud.core.highlight import HighlightSynchronizer
from readaloud.core.models import Paragraph, PlaybackSession, PlaybackState, Word
from readaloud.core.segmenter import clean_document, segment_paragraphs, segment_words, word_at
from readaloud.core.timing import AsyncioFrameClock, FrameClock, WordSchedule, average_word_duration_ms
from readaloud.settings import ReaderSettings

logger = logging.getLogger(__name__)

LOADING_NOTICE = "Please wait, audio is being generated..."
NOTHING_TO_READ_NOTICE = "Nothing to read"


def _log_notice(message: str) -> None:
    logger.warning("Notice: %s", message)


class PlaybackController:
    """Owns the playback session, the backend handle, and the highlights."""

    def __init__(
        self,
        document: DocumentProvider,
        settings: Optional[ReaderSettings] = None,
        backend_factory: Callable[..., SpeechBackend] = create_backend,
        frame_clock: Optional[FrameClock] = None,
        notify: Optional[Callable[[str], None]] = None,
        on_state_change: Optional[Callable[[PlaybackState], None]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._document = document
        self.settings = settings or ReaderSettings()
        self._backend_factory = backend_factory
        self._loop = loop
        self._frame_clock = frame_clock or AsyncioFrameClock(loop)
        self._notify = notify or _log_notice
        self._on_state_change = on_state_change

        self._state = PlaybackState.IDLE
        self._session: Optional[PlaybackSession] = None
        self._backend: Optional[SpeechBackend] = None
        self._schedule: Optional[WordSchedule] = None
        self._skip_task: Optional[asyncio.Task] = None
        self._pending_start: Optional[int] = None
        self._highlighter = HighlightSynchronizer(document)

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def session(self) -> Optional[PlaybackSession]:
        return self._session

    @property
    def current_paragraph_index(self) -> Optional[int]:
        if self._session is None:
            return None
        return self._session.current_paragraph_index

    @property
    def highlighter(self) -> HighlightSynchronizer:
        return self._highlighter

    def _set_state(self, state: PlaybackState) -> None:
        if state is self._state:
            return
        logger.debug("State %s → %s", self._state.value, state.value)
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def play(self, text: Optional[str] = None) -> None:
        """Start reading ``text`` (default: the document), or stop if playing."""
        if self._state is PlaybackState.LOADING:
            self._notify(LOADING_NOTICE)
            return
        if self._state is not PlaybackState.IDLE:
            self.stop()
            return

        source = self._document.get_text() if text is None else text
        cleaned = clean_document(source)
        if not cleaned.text.strip():
            self._notify(NOTHING_TO_READ_NOTICE)
            return
        paragraphs = segment_paragraphs(cleaned.text)

        settings = self.settings
        try:
            backend = self._backend_factory(settings, loop=self._loop)
        except ConfigurationError as exc:
            logger.warning("Cannot start playback: %s", exc)
            self._notify(str(exc))
            return

        self._backend = backend
        self._session = PlaybackSession(
            document=cleaned,
            paragraphs=paragraphs,
            backend_kind=backend.name,
            voice=settings.voice_params(),
        )
        self._highlighter.style = settings.highlight_style_spec()
        self._highlighter.highlight_enabled = settings.highlight_enabled
        self._highlighter.highlight_word = settings.highlight_word
        self._highlighter.bind(cleaned)

        logger.info(
            "Reading %d paragraph(s) with %s backend", len(paragraphs), backend.name
        )
        self._start_paragraph(0)

    def toggle_pause(self) -> None:
        """Primary control: play when idle, otherwise pause or resume."""
        if self._state is PlaybackState.IDLE:
            self.play()
        elif self._state is PlaybackState.LOADING:
            self._notify(LOADING_NOTICE)
        elif self._state is PlaybackState.SPEAKING:
            self.pause()
        elif self._state is PlaybackState.PAUSED:
            self.resume()

    def pause(self) -> None:
        if self._state is not PlaybackState.SPEAKING or self._backend is None:
            return
        self._backend.pause()
        self._set_state(PlaybackState.PAUSED)

    def resume(self) -> None:
        if self._state is not PlaybackState.PAUSED or self._backend is None:
            return
        if self._pending_start is not None:
            self._start_paragraph(self._pending_start)
            return
        self._backend.resume()
        self._set_state(PlaybackState.SPEAKING)

    def stop(self) -> None:
        """Stop playback in any state, including a hung loading state."""
        if self._session is None and self._state is PlaybackState.IDLE:
            return
        logger.info("Playback stopped")
        self._teardown()

    def next_paragraph(self) -> Optional[asyncio.Task]:
        return self._skip(1)

    def previous_paragraph(self) -> Optional[asyncio.Task]:
        return self._skip(-1)

    # ------------------------------------------------------------------
    # Paragraph sequencing
    # ------------------------------------------------------------------

    def _speakable_index(self, index: int, step: int = 1) -> Optional[int]:
        paragraphs = self._session.paragraphs
        while 0 <= index < len(paragraphs):
            if not paragraphs[index].is_blank:
                return index
            index += step
        return None

    def _start_paragraph(self, index: int, step: int = 1) -> None:
        session = self._session
        if session is None:
            return
        self._pending_start = None
        target = self._speakable_index(index, step)
        if target is None and step < 0:
            target = self._speakable_index(index, 1)
        if target is None:
            logger.info("Finished reading")
            self._teardown()
            return

        self._stop_schedule()
        self._highlighter.clear_all()
        session.current_paragraph_index = target
        session.generation += 1
        generation = session.generation
        paragraph = session.paragraphs[target]
        self._set_state(PlaybackState.LOADING)
        logger.info("Paragraph %d/%d", target + 1, len(session.paragraphs))

        events = SpeechEvents(
            on_ready=self._guarded(session, generation, self._handle_ready),
            on_word_boundary=self._guarded(session, generation, self._handle_word_boundary),
            on_paragraph_end=self._guarded(session, generation, self._handle_paragraph_end),
            on_error=self._guarded(session, generation, self._handle_error),
        )
        try:
            self._backend.synthesize_and_play(paragraph.text, session.voice, events)
        except Exception as exc:
            logger.exception("Backend failed to start paragraph %d", target)
            self._fail(f"Error starting speech: {exc}")

    def _guarded(
        self, session: PlaybackSession, generation: int, handler: Callable[..., None]
    ) -> Callable[..., None]:
        def callback(*args: Any) -> None:
            if self._session is not session or session.generation != generation:
                logger.debug("Dropped %s for stale generation %d", handler.__name__, generation)
                return
            try:
                handler(*args)
            except Exception as exc:
                logger.exception("Playback event handler %s failed", handler.__name__)
                if self._session is session:
                    self._fail(f"Playback error: {exc}")

        return callback

    def _handle_ready(self) -> None:
        session = self._session
        paragraph = session.current_paragraph
        self._set_state(PlaybackState.SPEAKING)
        session.active_highlight = self._highlighter.show_paragraph(paragraph)
        if not self._backend.supports_word_boundaries and self._highlighter.words_enabled:
            self._start_schedule(session, paragraph)

    def _handle_word_boundary(self, char_index: int, char_length: int) -> None:
        paragraph = self._session.current_paragraph
        word = word_at(paragraph.text, char_index)
        if word is None:
            logger.debug("No word at %d (length %d)", char_index, char_length)
            return
        self._highlighter.show_word(paragraph, word)

    def _handle_paragraph_end(self) -> None:
        session = self._session
        session.completed.append(session.current_paragraph_index)
        self._advance(session.current_paragraph_index + 1)

    def _advance(self, index: int) -> None:
        """Start paragraph ``index``, or hold it until resume() when paused."""
        if self._state is PlaybackState.PAUSED:
            self._stop_schedule()
            self._pending_start = index
            logger.debug("Paragraph %d waits for resume", index)
            return
        self._start_paragraph(index)

    def _handle_error(self, kind: BackendErrorKind, message: str) -> None:
        if kind is BackendErrorKind.INTERRUPTED:
            logger.debug("Ignoring interruption: %s", message)
            return
        if kind is BackendErrorKind.SYNTHESIS_FAILED:
            index = self._session.current_paragraph_index
            logger.warning("Skipping paragraph %d: %s", index, message)
            self._advance(index + 1)
            return
        logger.error("Speech backend error (%s): %s", kind.value, message)
        self._fail(message)

    # ------------------------------------------------------------------
    # Estimated word highlighting
    # ------------------------------------------------------------------

    def _start_schedule(self, session: PlaybackSession, paragraph: Paragraph) -> None:
        self._stop_schedule()
        words = segment_words(paragraph.text)
        average_ms = average_word_duration_ms(paragraph.text, len(words), session.voice.speed)
        if average_ms <= 0:
            return
        generation = session.generation
        backend = self._backend

        def is_live() -> bool:
            return (
                self._session is session
                and session.generation == generation
                and self._state in (PlaybackState.SPEAKING, PlaybackState.PAUSED)
            )

        def on_word(word: Word) -> None:
            self._highlighter.show_word(paragraph, word)

        self._schedule = WordSchedule(
            words,
            average_ms,
            self._frame_clock,
            on_word=on_word,
            is_paused=lambda: self._state is PlaybackState.PAUSED or backend.is_paused(),
            is_live=is_live,
        )
        self._schedule.start()

    def _stop_schedule(self) -> None:
        if self._schedule is not None:
            self._schedule.stop()
            self._schedule = None

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _skip(self, delta: int) -> Optional[asyncio.Task]:
        if self._state is PlaybackState.LOADING:
            self._notify(LOADING_NOTICE)
            return None
        if self._state not in (PlaybackState.SPEAKING, PlaybackState.PAUSED):
            return None

        session = self._session
        count = len(session.paragraphs)
        target = max(0, min(count - 1, session.current_paragraph_index + delta))

        session.generation += 1
        self._pending_start = None
        self._stop_schedule()
        self._highlighter.clear_all()
        backend = self._backend
        backend.cancel()
        session.current_paragraph_index = target
        self._set_state(PlaybackState.LOADING)
        logger.info("Skipping to paragraph %d", target + 1)

        loop = self._loop or asyncio.get_running_loop()
        self._skip_task = loop.create_task(
            self._drain_then_start(session, session.generation, backend, target, delta)
        )
        return self._skip_task

    async def _drain_then_start(
        self,
        session: PlaybackSession,
        generation: int,
        backend: SpeechBackend,
        target: int,
        step: int,
    ) -> None:
        for _ in range(DRAIN_POLL_MAX_ATTEMPTS):
            if not backend.is_speaking():
                break
            await asyncio.sleep(DRAIN_POLL_INTERVAL_S)
        else:
            logger.warning(
                "Backend still busy after %d drain polls; continuing",
                DRAIN_POLL_MAX_ATTEMPTS,
            )

        if self._session is not session or session.generation != generation:
            logger.debug("Session changed during drain; not starting paragraph %d", target)
            return
        self._start_paragraph(target, 1 if step > 0 else -1)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def _fail(self, message: str) -> None:
        self._set_state(PlaybackState.ERROR)
        self._notify(message)
        self._teardown()

    def _teardown(self) -> None:
        session = self._session
        if session is not None:
            session.generation += 1
        self._stop_schedule()
        self._pending_start = None

        backend, self._backend = self._backend, None
        if backend is not None:
            backend.cancel()
            backend.close()

        task, self._skip_task = self._skip_task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

        self._highlighter.unbind()
        self._session = None
        self._set_state(PlaybackState.IDLE)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
