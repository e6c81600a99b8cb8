"""Document provider contract and an in-memory implementation.

WHY: The playback core never owns the editor. It needs exactly four
operations from whatever hosts it: read the text, turn a character offset
into a display position, draw a highlight, and remove one. Everything
else about the host is out of reach by construction.

HOW: DocumentProvider is a runtime-checkable Protocol. TextDocument is a
plain-Python implementation whose positions are (line, column) tuples and
whose highlights are kept in a dict; the CLI uses it directly and tests
use it to assert on what was drawn.

RULES:
- Offsets are character offsets into get_text()
- create_highlight() returns an opaque handle accepted by clear_highlight()
- clear_highlight() on an unknown handle is a no-op
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from readaloud.core.models import HighlightStyle


@runtime_checkable
class DocumentProvider(Protocol):
    """The four host operations the playback core relies on."""

    def get_text(self) -> str:
        ...

    def offset_to_position(self, offset: int) -> Any:
        ...

    def create_highlight(self, from_pos: Any, to_pos: Any, style: HighlightStyle) -> Any:
        ...

    def clear_highlight(self, handle: Any) -> None:
        ...


@dataclass
class DrawnHighlight:
    """A highlight drawn on a TextDocument."""

    start: tuple[int, int]
    end: tuple[int, int]
    style: HighlightStyle


class TextDocument:
    """In-memory document; positions are zero-based (line, column) tuples."""

    def __init__(self, text: str = "") -> None:
        self._text = text
        self._ids = itertools.count(1)
        self.highlights: dict[int, DrawnHighlight] = {}

    def get_text(self) -> str:
        return self._text

    def offset_to_position(self, offset: int) -> tuple[int, int]:
        if offset < 0 or offset > len(self._text):
            raise IndexError(f"Offset {offset} outside document of length {len(self._text)}")
        before = self._text[:offset]
        line = before.count("\n")
        column = offset - (before.rfind("\n") + 1)
        return line, column

    def position_to_offset(self, position: tuple[int, int]) -> int:
        line, column = position
        lines = self._text.split("\n")
        return sum(len(item) + 1 for item in lines[:line]) + column

    def create_highlight(
        self, from_pos: tuple[int, int], to_pos: tuple[int, int], style: HighlightStyle
    ) -> int:
        handle = next(self._ids)
        self.highlights[handle] = DrawnHighlight(start=from_pos, end=to_pos, style=style)
        return handle

    def clear_highlight(self, handle: Any) -> None:
        self.highlights.pop(handle, None)

    def highlighted_text(self, handle: int) -> str:
        """Return the characters covered by a drawn highlight."""
        drawn = self.highlights[handle]
        start = self.position_to_offset(drawn.start)
        end = self.position_to_offset(drawn.end)
        return self._text[start:end]
