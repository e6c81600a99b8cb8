"""Command-line interface: read a text or Markdown file aloud.

WHY: The playback core is host-agnostic; the CLI is the smallest host
that exercises all of it. It also makes backends easy to try out
(--list-voices, --test-voice) without opening an editor.

HOW: Loads ReaderSettings (optionally from --settings), applies flag
overrides, wraps the file in a ConsoleDocument (a TextDocument that
prints each highlight to stderr), and runs a PlaybackController on
asyncio.run() until it returns to idle. Ctrl+C stops playback cleanly.

RULES:
- Positional argument: the file to read (not needed for --list-voices
  or --test-voice)
- Status output goes to stderr (not stdout); --list-voices prints to stdout
- Flag overrides are validated by the same pydantic model as the file
- Exit codes: 0 finished, 1 could not start, 130 interrupted
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from readaloud.api.voices import SAMPLE_TEXT, available_voices
from readaloud.backends.local import system_voice_options
from readaloud.config import SERVICE_SYSTEM, VOICE_SERVICES, ConfigurationError, resolve_api_key
from readaloud.core.controller import PlaybackController
from readaloud.core.document import TextDocument
from readaloud.core.models import HighlightStyle, PlaybackState
from readaloud.settings import ReaderSettings, load_settings

_HIGHLIGHT_MODES = {
    "none": (False, False),
    "paragraph": (True, False),
    "word": (True, True),
}


def _status(msg: str) -> None:
    """Print a status message to stderr."""
    print(msg, file=sys.stderr, flush=True)


class ConsoleDocument(TextDocument):
    """TextDocument that echoes every drawn highlight to stderr."""

    def create_highlight(
        self, from_pos: tuple[int, int], to_pos: tuple[int, int], style: HighlightStyle
    ) -> int:
        handle = super().create_highlight(from_pos, to_pos, style)
        text = " ".join(self.highlighted_text(handle).split())
        if len(text) > 60:
            text = text[:57] + "..."
        _status("  [{}:{}] {}".format(from_pos[0] + 1, from_pos[1] + 1, text))
        return handle


def _settings_from_args(args: argparse.Namespace) -> ReaderSettings:
    """Layer command-line overrides over the stored settings.

    RULES:
    - Only flags the user actually passed override stored values
    - The merged values are validated (ValidationError on bad input)
    """
    settings = load_settings(Path(args.settings) if args.settings else None)
    overrides = {}
    if args.service:
        overrides["voice_service"] = args.service
    if args.voice:
        overrides["playback_voice"] = args.voice
    if args.speed is not None:
        overrides["playback_speed"] = args.speed
    if args.highlight:
        enabled, word = _HIGHLIGHT_MODES[args.highlight]
        overrides["highlight_enabled"] = enabled
        overrides["highlight_word"] = word
    if not overrides:
        return settings
    return ReaderSettings.model_validate({**settings.model_dump(), **overrides})


def _list_voices(settings: ReaderSettings) -> None:
    service = settings.voice_service
    api_key = ""
    if service != SERVICE_SYSTEM:
        try:
            api_key = resolve_api_key(service, settings.api_key_for(service))
        except ConfigurationError:
            api_key = ""
    voices = available_voices(service, api_key, system_voices=system_voice_options)
    print("Voices for {}:".format(VOICE_SERVICES.get(service, service)))
    for voice in voices:
        print("  {:<24} {}".format(voice.id, voice.name))


async def _read_aloud(text: str, settings: ReaderSettings) -> int:
    """Run one playback session to completion.

    HOW: Plays the text, then waits for the controller to report idle.
    Cancellation (Ctrl+C under asyncio.run) stops playback before the
    CancelledError propagates.
    """
    document = ConsoleDocument(text)
    finished = asyncio.Event()
    notices: List[str] = []

    def on_notice(message: str) -> None:
        notices.append(message)
        _status("Notice: {}".format(message))

    def on_state_change(state: PlaybackState) -> None:
        if state is PlaybackState.IDLE:
            finished.set()
        elif state is PlaybackState.LOADING:
            _status("Loading...")

    controller = PlaybackController(
        document,
        settings,
        notify=on_notice,
        on_state_change=on_state_change,
    )
    controller.play()
    if controller.session is None and controller.state is PlaybackState.IDLE:
        return 1

    try:
        await finished.wait()
    except asyncio.CancelledError:
        controller.stop()
        raise

    return 1 if notices else 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    RULES:
    - Positional: file (optional only with --list-voices / --test-voice)
    - Optional: --service, --voice, --speed, --highlight, --settings
    """
    parser = argparse.ArgumentParser(
        prog="readaloud",
        description="Read a text or Markdown file aloud with a synchronized highlight.",
    )

    parser.add_argument(
        "file",
        nargs="?",
        help="Path to the text file to read.",
    )

    parser.add_argument(
        "--service",
        choices=sorted(VOICE_SERVICES),
        default=None,
        help="Voice service (default: from settings, else system).",
    )

    parser.add_argument(
        "--voice",
        default=None,
        help="Voice id or name for the selected service ('default' picks one).",
    )

    parser.add_argument(
        "--speed",
        type=float,
        default=None,
        help="Playback speed multiplier, 0.25-4.0.",
    )

    parser.add_argument(
        "--highlight",
        choices=sorted(_HIGHLIGHT_MODES),
        default=None,
        help="What to highlight while reading (default: from settings).",
    )

    parser.add_argument(
        "--settings",
        default=None,
        help="Path to a JSON settings file.",
    )

    parser.add_argument(
        "--list-voices",
        action="store_true",
        help="List the voices available for the selected service and exit.",
    )

    parser.add_argument(
        "--test-voice",
        action="store_true",
        help="Speak a short sample with the selected voice and exit.",
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args([arg for arg in (argv if argv is not None else sys.argv[1:]) if arg != "--gui"])

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        settings = _settings_from_args(args)
    except ValidationError as e:
        print("Error: invalid settings: {}".format(e), file=sys.stderr)
        sys.exit(1)

    if args.list_voices:
        _list_voices(settings)
        return

    if args.test_voice:
        text = SAMPLE_TEXT
    else:
        if not args.file:
            parser.error("a file to read is required")
        input_path = Path(args.file).resolve()
        if not input_path.is_file():
            print("Error: File not found: {}".format(input_path), file=sys.stderr)
            sys.exit(1)
        text = input_path.read_text(encoding="utf-8")

    _status("Reading with {} voice...".format(VOICE_SERVICES[settings.voice_service]))
    try:
        code = asyncio.run(_read_aloud(text, settings))
    except KeyboardInterrupt:
        _status("\nStopped by user.")
        sys.exit(130)

    if code == 0:
        _status("Done.")
    sys.exit(code)


if __name__ == "__main__":
    main()
