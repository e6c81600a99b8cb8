"""Frame clock and estimated word-highlight schedule.

WHY: Remote speech services return a finished audio clip with no timing
metadata, yet the reader still expects the highlight to walk through the
paragraph. The schedule estimates when each word is spoken from the
paragraph length, word count, and playback speed. It is driven by a frame
clock rather than a fixed timer so that pausing the audio freezes the
highlight on the very next frame and resuming continues exactly where it
stopped.

HOW: FrameClock is a one-shot "call me on the next frame" API (like a
browser animation frame). WordSchedule re-requests a frame after each
tick, checks the backend's pause state every frame, and dispatches the
next word once enough unpaused time has elapsed.

RULES:
- average duration (ms) = (len(text) / word_count) * (60 / speed)
- The first word is dispatched on the first frame
- Paused time never counts toward the next word
- A schedule dispatches each word at most once and never more than
  word_count events
- A schedule ends on stop(), when its liveness check fails, or after the
  last word; it never requests another frame after ending
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Any, Optional, Protocol

from readaloud.config import FRAME_INTERVAL_S
from readaloud.core.models import Word

logger = logging.getLogger(__name__)


class FrameClock(Protocol):
    """Per-frame one-shot callbacks with millisecond timestamps."""

    def request(self, callback: Callable[[float], None]) -> Any:
        ...

    def cancel(self, handle: Any) -> None:
        ...


class AsyncioFrameClock:
    """FrameClock backed by the running asyncio loop at display rate."""

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        interval_s: float = FRAME_INTERVAL_S,
    ) -> None:
        self._loop = loop
        self._interval_s = interval_s

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def request(self, callback: Callable[[float], None]) -> asyncio.TimerHandle:
        loop = self._get_loop()
        return loop.call_later(self._interval_s, lambda: callback(loop.time() * 1000.0))

    def cancel(self, handle: Any) -> None:
        if handle is not None:
            handle.cancel()


def average_word_duration_ms(text: str, word_count: int, speed: float) -> float:
    """Estimated time per word for a paragraph, in milliseconds."""
    if word_count <= 0 or speed <= 0:
        return 0.0
    return (len(text) / word_count) * (60.0 / speed)


class WordSchedule:
    """Dispatches words of one paragraph on estimated timing.

    WHY: The controller needs a single object it can start, stop, and
    forget, that guarantees no highlight callback runs after stop().

    HOW: Each frame: bail out if no longer live; if the backend reports
    paused, remember when the pause began; on the first unpaused frame
    after a pause, shift the reference timestamp forward by the paused
    interval; dispatch the next word once the reference is at least
    ``average_ms`` in the past.

    RULES:
    - on_word receives the Word objects in paragraph order
    - is_live() is checked before anything else on every frame
    - is_paused() is read every frame, never cached
    """

    def __init__(
        self,
        words: Sequence[Word],
        average_ms: float,
        clock: FrameClock,
        on_word: Callable[[Word], None],
        is_paused: Callable[[], bool],
        is_live: Callable[[], bool] = lambda: True,
    ) -> None:
        self._words = list(words)
        self._average_ms = average_ms
        self._clock = clock
        self._on_word = on_word
        self._is_paused = is_paused
        self._is_live = is_live

        self._next_index = 0
        self._last_ms: Optional[float] = None
        self._paused_at: Optional[float] = None
        self._handle: Any = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def dispatched(self) -> int:
        return self._next_index

    def start(self) -> None:
        if self._running or self._next_index >= len(self._words):
            return
        self._running = True
        self._handle = self._clock.request(self._on_frame)

    def stop(self) -> None:
        self._running = False
        if self._handle is not None:
            self._clock.cancel(self._handle)
            self._handle = None

    def _on_frame(self, now_ms: float) -> None:
        self._handle = None
        if not self._running:
            return
        if not self._is_live() or self._next_index >= len(self._words):
            self._running = False
            return

        if self._is_paused():
            if self._paused_at is None:
                self._paused_at = now_ms
        else:
            if self._paused_at is not None:
                if self._last_ms is not None:
                    self._last_ms += now_ms - self._paused_at
                self._paused_at = None
            if self._last_ms is None or now_ms - self._last_ms >= self._average_ms:
                word = self._words[self._next_index]
                self._next_index += 1
                self._last_ms = now_ms
                logger.debug("Estimated word %d: %r", self._next_index - 1, word.text)
                self._on_word(word)

        if not self._running:
            return
        if self._next_index >= len(self._words):
            self._running = False
            return
        self._handle = self._clock.request(self._on_frame)
