"""Document cleaning, paragraph segmentation, and word segmentation.

WHY: Speech is synthesized one paragraph at a time and highlighted one
word at a time. Both need exact character offsets: a paragraph's
absolute position in the cleaned text, and each word's position inside
its paragraph. Off-by-one errors here show up as highlights drifting
across the page.

HOW: clean_document() strips a leading metadata block, property lines,
and leading blank lines while recording which source ranges were kept.
segment_paragraphs() walks the blank-line separators with re.finditer so
each separator's real width is consumed. segment_words() collects
whitespace-delimited runs.

RULES:
- Paragraph separator: a newline, optional whitespace, and a newline
  (r"\\r?\\n\\s*\\n"); its width comes from the match, never a constant
- Re-joining paragraphs with their separators rebuilds the input exactly
- Empty input yields no paragraphs and no words
- Words never include whitespace; runs of whitespace collapse
"""

from __future__ import annotations

import re

from readaloud.core.models import CleanedDocument, Paragraph, Word

_PARAGRAPH_SEPARATOR_RE = re.compile(r"\r?\n\s*\n")

_WORD_RE = re.compile(r"\S+")

# Fenced metadata block at the very start of the document.
_METADATA_BLOCK_RE = re.compile(r"\A---\r?\n.*?\r?\n---(?:\r?\n|\Z)", re.DOTALL)

# Standalone "key:: value" property line.
_PROPERTY_LINE_RE = re.compile(r"^[A-Za-z0-9_-]+::.*$")


def segment_paragraphs(text: str) -> list[Paragraph]:
    """Split text into paragraphs with absolute offsets.

    Args:
        text: The cleaned document text.

    Returns:
        Paragraphs in document order. Whitespace-only pieces (for example
        after a trailing separator) are kept so offsets stay contiguous;
        callers decide whether to speak them.
    """
    if not text:
        return []

    paragraphs: list[Paragraph] = []
    start = 0
    for match in _PARAGRAPH_SEPARATOR_RE.finditer(text):
        paragraphs.append(_make_paragraph(len(paragraphs), text, start, match.start()))
        start = match.end()
    paragraphs.append(_make_paragraph(len(paragraphs), text, start, len(text)))
    return paragraphs


def _make_paragraph(index: int, text: str, start: int, end: int) -> Paragraph:
    return Paragraph(index=index, text=text[start:end], start_offset=start, end_offset=end)


def segment_words(paragraph_text: str) -> list[Word]:
    """Split a paragraph into words with paragraph-relative offsets."""
    return [
        Word(text=m.group(0), start=m.start(), length=len(m.group(0)))
        for m in _WORD_RE.finditer(paragraph_text)
    ]


def word_at(paragraph_text: str, char_index: int) -> Word | None:
    """Resolve a word-boundary event to the whole word starting there.

    WHY: Engines report boundaries with unreliable lengths (some report 0
    or the length of a sub-token). Highlighting the full whitespace run
    starting at the reported index matches what the reader sees.

    RULES:
    - Returns None if char_index is out of range or points at whitespace
    """
    if char_index < 0 or char_index >= len(paragraph_text):
        return None
    match = _WORD_RE.match(paragraph_text, char_index)
    if match is None:
        return None
    return Word(text=match.group(0), start=char_index, length=len(match.group(0)))


def clean_document(text: str) -> CleanedDocument:
    """Remove content that must not be spoken and record the offset map.

    WHY: Notes often start with a fenced key-value header and contain
    "key:: value" property lines. Neither should be read aloud or counted
    as a paragraph, but highlights must still land on the right characters
    of the displayed (uncleaned) document.

    HOW: Works line by line over the source, keeping (source_start, end)
    ranges for every retained line, then concatenates them and builds the
    (cleaned_start, source_start, length) span list.

    RULES:
    - Metadata block: only when "---" is the very first line
    - Property lines are removed together with their line ending
    - Leading blank lines are trimmed after the removals above
    """
    if not text:
        return CleanedDocument.unchanged(text)

    position = 0
    header = _METADATA_BLOCK_RE.match(text)
    if header:
        position = header.end()

    kept: list[tuple[int, int]] = []
    seen_content = False
    for line in text[position:].splitlines(keepends=True):
        line_start = position
        position += len(line)
        body = line.rstrip("\r\n")
        if _PROPERTY_LINE_RE.match(body):
            continue
        if not seen_content and not body.strip():
            continue
        seen_content = True
        _extend_ranges(kept, line_start, position)

    pieces: list[str] = []
    spans: list[tuple[int, int, int]] = []
    cleaned_length = 0
    for start, end in kept:
        pieces.append(text[start:end])
        spans.append((cleaned_length, start, end - start))
        cleaned_length += end - start

    return CleanedDocument(source=text, text="".join(pieces), spans=tuple(spans))


def _extend_ranges(ranges: list[tuple[int, int]], start: int, end: int) -> None:
    """Append a source range, merging it with the previous one when adjacent."""
    if ranges and ranges[-1][1] == start:
        ranges[-1] = (ranges[-1][0], end)
    else:
        ranges.append((start, end))
