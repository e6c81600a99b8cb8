"""Playback core: segmentation, timing, highlighting, and the controller.

WHY: This is the part of the reader that does not care which speech
service is used or which editor hosts the document.

HOW: segmenter.py turns text into paragraphs and words, timing.py
estimates word timing for clip backends, highlight.py draws spans
through a DocumentProvider, and controller.py sequences it all.

RULES:
- Nothing in core imports a host (cli, gui)
- Offsets are always computed against the session's cleaned text
"""
