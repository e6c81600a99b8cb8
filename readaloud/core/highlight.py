"""Highlight synchronizer: owns the paragraph and word spans in the document.

WHY: Highlights are the visible half of read-along. They must land on the
characters being spoken, never pile up, and never take playback down with
them when the host editor rejects a range.

HOW: The synchronizer is bound to the session's CleanedDocument at start.
Absolute offsets are computed as paragraph.start_offset + word.start in
cleaned-text space, mapped back to source offsets through the cleaned
document, converted to host positions, and handed to the document
provider. One span of each kind is tracked and cleared before its
replacement is drawn.

RULES:
- At most one paragraph span and one word span exist at any time
- Offsets come from the frozen session text, never the live document
- Every provider call is wrapped: failures are logged, never raised
- Paragraph spans need highlight_enabled; word spans also need highlight_word
"""

from __future__ import annotations

import logging
from typing import Optional

from readaloud.core.document import DocumentProvider
from readaloud.core.models import (
    CleanedDocument,
    HighlightKind,
    HighlightSpan,
    HighlightStyle,
    Paragraph,
    Word,
)

logger = logging.getLogger(__name__)


class HighlightSynchronizer:
    """Draws and clears reading-position highlights through a DocumentProvider."""

    def __init__(
        self,
        document: DocumentProvider,
        style: Optional[HighlightStyle] = None,
        highlight_enabled: bool = True,
        highlight_word: bool = True,
    ) -> None:
        self._document = document
        self.style = style or HighlightStyle()
        self.highlight_enabled = highlight_enabled
        self.highlight_word = highlight_word
        self._bound: Optional[CleanedDocument] = None
        self._spans: dict[HighlightKind, HighlightSpan] = {}

    def bind(self, document: CleanedDocument) -> None:
        """Freeze the text that offsets are computed against for this session."""
        self.clear_all()
        self._bound = document

    def unbind(self) -> None:
        self.clear_all()
        self._bound = None

    def span(self, kind: HighlightKind) -> Optional[HighlightSpan]:
        return self._spans.get(kind)

    @property
    def words_enabled(self) -> bool:
        return self.highlight_enabled and self.highlight_word

    def show_paragraph(self, paragraph: Paragraph) -> Optional[HighlightSpan]:
        if not self.highlight_enabled:
            return None
        return self._show(HighlightKind.PARAGRAPH, paragraph.start_offset, paragraph.end_offset)

    def show_word(self, paragraph: Paragraph, word: Word) -> Optional[HighlightSpan]:
        if not self.words_enabled:
            return None
        start = paragraph.start_offset + word.start
        return self._show(HighlightKind.WORD, start, start + word.length)

    def clear(self, kind: HighlightKind) -> None:
        span = self._spans.pop(kind, None)
        if span is None or span.handle is None:
            return
        try:
            self._document.clear_highlight(span.handle)
        except Exception:
            logger.warning("Failed to clear %s highlight", kind.value, exc_info=True)

    def clear_all(self) -> None:
        for kind in list(self._spans):
            self.clear(kind)

    def _show(self, kind: HighlightKind, start: int, end: int) -> Optional[HighlightSpan]:
        self.clear(kind)

        if self._bound is None:
            logger.warning("Highlight requested with no bound document")
            return None
        if start < 0 or end > len(self._bound.text) or start >= end:
            logger.warning(
                "Invalid %s highlight range %d-%d (text length %d)",
                kind.value, start, end, len(self._bound.text),
            )
            return None

        source_start = self._bound.to_source_offset(start)
        source_end = self._bound.to_source_offset(end)
        try:
            from_pos = self._document.offset_to_position(source_start)
            to_pos = self._document.offset_to_position(source_end)
            handle = self._document.create_highlight(from_pos, to_pos, self.style)
        except Exception:
            logger.warning("Failed to apply %s highlight", kind.value, exc_info=True)
            return None

        span = HighlightSpan(absolute_start=start, absolute_end=end, kind=kind, handle=handle)
        self._spans[kind] = span
        logger.debug("Highlighted %s %d-%d", kind.value, start, end)
        return span
