"""Data model for playback sessions, text offsets, and highlight spans.

WHY: The controller, segmenter, timing estimator, and highlight
synchronizer all talk about the same things: paragraphs with absolute
offsets, words with paragraph-relative offsets, the voice parameters of a
session, and the spans drawn in the document. One set of well-typed
dataclasses keeps the offset arithmetic honest across modules.

HOW: Plain dataclasses and str-valued enums. CleanedDocument carries the
piecewise offset map produced by preprocessing so highlight offsets can
be translated back to the document the host actually displays.

RULES:
- Paragraph offsets are absolute offsets into the cleaned text
- Word offsets are relative to the owning paragraph's text
- end_offset - start_offset == len(text) for every Paragraph
- HighlightSpan.handle is opaque; only the synchronizer touches it
"""

from __future__ import annotations

import bisect
import enum
from dataclasses import dataclass, field
from typing import Any


class PlaybackState(str, enum.Enum):
    """States of the playback controller.

    RULES:
    - idle: no session
    - loading: a synthesis request (or drain) is in flight; navigation disabled
    - speaking: audio is audible
    - paused: backend paused, highlight schedule frozen
    - error: transient, always followed by idle
    """

    IDLE = "idle"
    LOADING = "loading"
    SPEAKING = "speaking"
    PAUSED = "paused"
    ERROR = "error"


class HighlightKind(str, enum.Enum):
    PARAGRAPH = "paragraph"
    WORD = "word"


@dataclass(frozen=True)
class Paragraph:
    """A maximal run of non-blank lines; the unit of speech synthesis."""

    index: int
    text: str
    start_offset: int
    end_offset: int

    @property
    def is_blank(self) -> bool:
        return not self.text.strip()


@dataclass(frozen=True)
class Word:
    """A whitespace-delimited run inside a paragraph."""

    text: str
    start: int
    length: int

    @property
    def end(self) -> int:
        return self.start + self.length


@dataclass(frozen=True)
class VoiceParams:
    """Voice settings snapshot taken at session start.

    RULES:
    - speed is a multiplier (1.0 = normal)
    - pitch is a multiplier, honoured only by backends that support it
    - volume is 0.0–1.0
    """

    voice: str = "default"
    speed: float = 1.0
    pitch: float = 1.0
    volume: float = 1.0


@dataclass(frozen=True)
class HighlightStyle:
    """How the host should draw a highlight.

    WHY: Hosts render highlights differently (CSS decorations, tk tags).
    The style is passed through create_highlight() untouched; css() gives
    the same string the settings screen previews.
    """

    mode: str = "underline"  # "background" or "underline"
    color: str = "#1f26ea"
    animated: bool = True

    def css(self) -> str:
        transition = "transition: all 0.3s ease;" if self.animated else ""
        if self.mode == "background":
            return f"background-color: {self.color}; border-radius: 3px; {transition}".strip()
        return f"border-bottom: 2px solid {self.color}; {transition}".strip()


@dataclass
class HighlightSpan:
    """A highlight currently drawn in the document."""

    absolute_start: int
    absolute_end: int
    kind: HighlightKind
    handle: Any = None


@dataclass(frozen=True)
class CleanedDocument:
    """Document text after preprocessing, with a map back to the source.

    WHY: Metadata blocks and property lines are removed before reading,
    so offsets in the spoken text no longer line up with the document the
    host displays. The span list records where each kept run of the
    cleaned text came from.

    HOW: spans is a sorted list of (cleaned_start, source_start, length)
    triples covering the cleaned text end to end. to_source_offset() finds
    the span containing an offset with bisect.

    RULES:
    - Offsets at a span boundary map to the start of the later span
    - The end offset (len(text)) maps to just past the last kept character
    """

    source: str
    text: str
    spans: tuple[tuple[int, int, int], ...] = ()

    @classmethod
    def unchanged(cls, text: str) -> CleanedDocument:
        return cls(source=text, text=text, spans=((0, 0, len(text)),) if text else ())

    def to_source_offset(self, offset: int) -> int:
        if not self.spans:
            return offset
        starts = [span[0] for span in self.spans]
        i = bisect.bisect_right(starts, offset) - 1
        if i < 0:
            i = 0
        cleaned_start, source_start, length = self.spans[i]
        return source_start + min(offset - cleaned_start, length)


@dataclass
class PlaybackSession:
    """Mutable state of one play-through, owned by the controller.

    RULES:
    - generation is bumped on every paragraph start, skip, and teardown;
      backend events carrying an older generation are dropped
    - paragraphs and document never change after creation
    """

    document: CleanedDocument
    paragraphs: list[Paragraph]
    backend_kind: str
    voice: VoiceParams
    current_paragraph_index: int = 0
    generation: int = 0
    active_highlight: HighlightSpan | None = None
    completed: list[int] = field(default_factory=list)

    @property
    def current_paragraph(self) -> Paragraph | None:
        if 0 <= self.current_paragraph_index < len(self.paragraphs):
            return self.paragraphs[self.current_paragraph_index]
        return None
