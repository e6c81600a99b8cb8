"""Persisted reader settings (voice service, voice, speed, highlighting).

WHY: Settings are written by a settings screen and read by the playback
core at session start. A pydantic model validates ranges and closed sets
(voice service, highlight style) at load time, so the core never has to
second-guess a speed of 0 or an unknown service name.

HOW: ReaderSettings is a pydantic BaseModel whose defaults match a fresh
install. load_settings() reads a JSON file, layering stored values over
the defaults and ignoring keys it does not know. voice_params() and
highlight_style() take the immutable snapshots the core works with.

RULES:
- Every field has a default; a missing or empty file yields defaults
- Unknown keys are ignored (settings files outlive schema changes)
- The playback core reads settings but never mutates them
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from readaloud.core.models import HighlightStyle, VoiceParams

logger = logging.getLogger(__name__)


class ReaderSettings(BaseModel):
    """User-configurable playback and highlight settings."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    voice_service: Literal["system", "elevenlabs", "openai"] = Field(
        default="system",
        description="Which speech backend reads the document.",
    )
    playback_voice: str = Field(
        default="default",
        description="Voice identifier for the selected service ('default' picks one).",
    )
    playback_speed: float = Field(default=1.0, ge=0.25, le=4.0, description="Speed multiplier.")
    pitch: float = Field(default=1.0, ge=0.0, le=2.0, description="Pitch multiplier.")
    volume: float = Field(default=1.0, ge=0.0, le=1.0, description="Playback volume.")
    highlight_enabled: bool = Field(default=False, description="Highlight the paragraph being read.")
    highlight_word: bool = Field(default=False, description="Also highlight the current word.")
    word_color: str = Field(default="#1f26ea", description="Highlight color.")
    highlight_style: Literal["background", "underline"] = Field(
        default="underline",
        description="Draw highlights as a background fill or an underline.",
    )
    highlight_animation: bool = Field(default=True, description="Animate highlight transitions.")
    elevenlabs_api_key: str = Field(default="", description="Eleven Labs API key.")
    openai_api_key: str = Field(default="", description="OpenAI API key.")

    def voice_params(self) -> VoiceParams:
        return VoiceParams(
            voice=self.playback_voice,
            speed=self.playback_speed,
            pitch=self.pitch,
            volume=self.volume,
        )

    def highlight_style_spec(self) -> HighlightStyle:
        return HighlightStyle(
            mode=self.highlight_style,
            color=self.word_color,
            animated=self.highlight_animation,
        )

    def api_key_for(self, service: str) -> str:
        if service == "openai":
            return self.openai_api_key
        if service == "elevenlabs":
            return self.elevenlabs_api_key
        return ""


def load_settings(path: Optional[Path] = None) -> ReaderSettings:
    """Load settings from a JSON file, falling back to defaults.

    RULES:
    - path None, missing, or empty file → defaults
    - Invalid values raise pydantic.ValidationError (caller reports it)
    """
    if path is None:
        return ReaderSettings()
    path = Path(path)
    if not path.is_file():
        logger.info("Settings file %s not found; using defaults", path)
        return ReaderSettings()
    raw = path.read_text(encoding="utf-8").strip()
    if not raw:
        return ReaderSettings()
    return ReaderSettings.model_validate_json(raw)
