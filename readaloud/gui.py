"""Tkinter reader window: an editable text area read aloud with highlights.

WHY: Read-along is a visual feature; a window with the document and a
moving highlight is the natural way to use it outside of the terminal.

HOW: ReaderApp builds a text area, an Open button, and a status bar with
previous / play-pause / next controls. The text area is wrapped in a
TkTextDocument, which implements the DocumentProvider contract with tk
tags. Instead of tk.mainloop(), the app pumps Tk from an asyncio task
(root.update() every few milliseconds), so Tk events, backend callbacks,
frame ticks, and HTTP requests all run on the one asyncio thread.

RULES:
- The controller is the only owner of playback state; widgets only
  forward commands and reflect on_state_change
- Previous / next are disabled unless speaking or paused
- Ctrl+click on play restarts from the top
- Ctrl+} / Ctrl+{ skip to the next / previous paragraph
- Notices are shown in the status bar, never in a blocking dialog
- Closing the window stops playback before the loop exits
"""

from __future__ import annotations

import argparse
import asyncio
import itertools
import logging
import tkinter as tk
from pathlib import Path
from tkinter import filedialog, ttk
from typing import Any, List, Optional

from readaloud.config import VOICE_SERVICES
from readaloud.core.controller import PlaybackController
from readaloud.core.models import HighlightStyle, PlaybackState
from readaloud.settings import ReaderSettings, load_settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_WINDOW_TITLE = "Read Aloud"
_WINDOW_MIN_WIDTH = 560
_WINDOW_MIN_HEIGHT = 420
_PAD = 8
_TK_PUMP_INTERVAL_S = 0.01

_STATE_LABELS = {
    PlaybackState.IDLE: "Ready",
    PlaybackState.LOADING: "Loading...",
    PlaybackState.SPEAKING: "Reading",
    PlaybackState.PAUSED: "Paused",
    PlaybackState.ERROR: "Error",
}


class TkTextDocument:
    """DocumentProvider over a tk.Text widget; highlights are tags.

    RULES:
    - Positions are Tk indices ("line.column")
    - Each highlight is its own tag; clearing deletes the tag
    - Newer tags are raised so a word shows above its paragraph
    """

    def __init__(self, widget: tk.Text) -> None:
        self._widget = widget
        self._ids = itertools.count(1)

    def get_text(self) -> str:
        return self._widget.get("1.0", "end-1c")

    def offset_to_position(self, offset: int) -> str:
        length = len(self.get_text())
        if offset < 0 or offset > length:
            raise IndexError("Offset {} outside document of length {}".format(offset, length))
        return self._widget.index("1.0 + {} chars".format(offset))

    def create_highlight(self, from_pos: str, to_pos: str, style: HighlightStyle) -> str:
        tag = "readaloud-{}".format(next(self._ids))
        if style.mode == "background":
            self._widget.tag_configure(tag, background=style.color, foreground="white")
        else:
            self._widget.tag_configure(tag, underline=True, foreground=style.color)
        self._widget.tag_add(tag, from_pos, to_pos)
        self._widget.tag_raise(tag)
        if style.animated:
            self._widget.see(from_pos)
        return tag

    def clear_highlight(self, handle: Any) -> None:
        self._widget.tag_delete(handle)


class ReaderApp:
    """Main window: document text plus a playback status bar."""

    def __init__(self, root: tk.Tk, settings: ReaderSettings) -> None:
        self._root = root
        self._root.title(_WINDOW_TITLE)
        self._root.minsize(_WINDOW_MIN_WIDTH, _WINDOW_MIN_HEIGHT)
        self._running = True

        self._build_ui()

        self._document = TkTextDocument(self._text)
        self.controller = PlaybackController(
            self._document,
            settings,
            notify=self._show_notice,
            on_state_change=self._on_state_change,
        )
        self._on_state_change(PlaybackState.IDLE)

        self._root.protocol("WM_DELETE_WINDOW", self._close)
        self._root.bind("<Control-braceright>", lambda _e: self._next())
        self._root.bind("<Control-braceleft>", lambda _e: self._previous())

    # ------------------------------------------------------------------
    # UI Construction
    # ------------------------------------------------------------------

    def _build_ui(self) -> None:
        main = ttk.Frame(self._root, padding=_PAD)
        main.pack(fill=tk.BOTH, expand=True)

        top = ttk.Frame(main)
        top.pack(fill=tk.X, pady=(0, _PAD))
        ttk.Button(top, text="Open...", command=self._open_file).pack(side=tk.LEFT)
        self._file_label = ttk.Label(top, text="Untitled", foreground="gray")
        self._file_label.pack(side=tk.LEFT, padx=(_PAD, 0), fill=tk.X, expand=True)

        text_frame = ttk.Frame(main)
        text_frame.pack(fill=tk.BOTH, expand=True)
        self._text = tk.Text(text_frame, wrap=tk.WORD, undo=True, font=("TkDefaultFont", 12))
        scrollbar = ttk.Scrollbar(text_frame, orient=tk.VERTICAL, command=self._text.yview)
        self._text.configure(yscrollcommand=scrollbar.set)
        scrollbar.pack(side=tk.RIGHT, fill=tk.Y)
        self._text.pack(fill=tk.BOTH, expand=True)

        # --- Status bar ---
        bar = ttk.Frame(main)
        bar.pack(fill=tk.X, pady=(_PAD, 0))

        self._prev_btn = ttk.Button(bar, text="<<", width=4, command=self._previous)
        self._prev_btn.pack(side=tk.LEFT)
        self._play_btn = ttk.Button(bar, text="Play", width=8, command=self._toggle)
        self._play_btn.pack(side=tk.LEFT, padx=(4, 0))
        self._play_btn.bind("<Control-Button-1>", self._restart)
        self._next_btn = ttk.Button(bar, text=">>", width=4, command=self._next)
        self._next_btn.pack(side=tk.LEFT, padx=(4, 0))

        self._status_label = ttk.Label(bar, text="", foreground="gray")
        self._status_label.pack(side=tk.LEFT, padx=(_PAD, 0), fill=tk.X, expand=True)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _open_file(self) -> None:
        path = filedialog.askopenfilename(
            title="Open document",
            filetypes=[("Text files", "*.txt *.md"), ("All files", "*.*")],
        )
        if path:
            self.load_file(Path(path))

    def load_file(self, path: Path) -> None:
        self.controller.stop()
        self._text.delete("1.0", tk.END)
        self._text.insert("1.0", path.read_text(encoding="utf-8"))
        self._file_label.configure(text=path.name, foreground="")

    def _toggle(self) -> None:
        self.controller.toggle_pause()

    def _restart(self, _event: Any) -> str:
        self.controller.stop()
        self.controller.play()
        return "break"

    def _next(self) -> None:
        self.controller.next_paragraph()

    def _previous(self) -> None:
        self.controller.previous_paragraph()

    def _close(self) -> None:
        self.controller.stop()
        self._running = False

    # ------------------------------------------------------------------
    # Controller hooks
    # ------------------------------------------------------------------

    def _show_notice(self, message: str) -> None:
        self._status_label.configure(text=message, foreground="red")

    def _on_state_change(self, state: PlaybackState) -> None:
        speaking = state in (PlaybackState.SPEAKING, PlaybackState.PAUSED)
        self._play_btn.configure(text="Pause" if state is PlaybackState.SPEAKING else "Play")
        nav_state = tk.NORMAL if speaking else tk.DISABLED
        self._prev_btn.configure(state=nav_state)
        self._next_btn.configure(state=nav_state)

        label = _STATE_LABELS[state]
        index = self.controller.current_paragraph_index
        if speaking and index is not None:
            label = "{} paragraph {}".format(label, index + 1)
        if state is not PlaybackState.ERROR:
            service = VOICE_SERVICES.get(self.controller.settings.voice_service, "")
            self._status_label.configure(text="{} ({})".format(label, service), foreground="gray")

    # ------------------------------------------------------------------
    # Event loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Pump Tk from asyncio until the window is closed."""
        try:
            while self._running:
                self._root.update()
                await asyncio.sleep(_TK_PUMP_INTERVAL_S)
        except tk.TclError:
            logger.debug("Window destroyed")
        finally:
            self.controller.stop()
            try:
                self._root.destroy()
            except tk.TclError:
                pass


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> None:
    """Launch the reader window.

    RULES:
    - Blocks until the window is closed
    - Must be called from the main thread
    """
    parser = argparse.ArgumentParser(prog="readaloud --gui")
    parser.add_argument("file", nargs="?", help="Document to open.")
    parser.add_argument("--settings", default=None, help="Path to a JSON settings file.")
    args, _unknown = parser.parse_known_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    settings = load_settings(Path(args.settings) if args.settings else None)
    root = tk.Tk()
    app = ReaderApp(root, settings)
    if args.file:
        app.load_file(Path(args.file))
    asyncio.run(app.run())


if __name__ == "__main__":
    main()
