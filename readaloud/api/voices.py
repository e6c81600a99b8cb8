"""Voice catalog for each speech service.

WHY: The settings screen and the CLI need to offer a voice list that
matches the selected service, and a sensible default when the user has
not picked one. Remote services have fixed, well-known voice ids; the
system engine's voices depend on the machine.

HOW: Remote voices are plain data (id, label). System voices are listed
through a callable supplied by the caller, so this module never has to
start a speech engine itself.

RULES:
- A remote service without an API key yields a single placeholder entry
- "default" as a remote voice resolves to default_voice_for(service)
- Unknown services fall back to a single "default" entry
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

from readaloud.config import SERVICE_ELEVENLABS, SERVICE_OPENAI, SERVICE_SYSTEM


@dataclass(frozen=True)
class VoiceOption:
    id: str
    name: str


ELEVENLABS_VOICES: list[VoiceOption] = [
    VoiceOption("21m00Tcm4TlvDq8ikWAM", "Rachel (Warm and Professional)"),
    VoiceOption("AZnzlk1XvdvUeBnXmlld", "Domi (Strong and Energetic)"),
    VoiceOption("EXAVITQu4vr4xnSDxMaL", "Bella (Soft and Gentle)"),
    VoiceOption("ErXwobaYiN019PkySvjV", "Antoni (Well-Rounded)"),
    VoiceOption("MF3mGyEYCl7XYWbV9V6O", "Elli (Approachable and Friendly)"),
    VoiceOption("TxGEqnHWrfWFTfGW9XjX", "Josh (Deep and Clear)"),
    VoiceOption("VR6AewLTigWG4xSOukaG", "Arnold (Confident and Rugged)"),
    VoiceOption("pNInz6obpgDQGcFmaJgB", "Adam (Professional and Engaging)"),
    VoiceOption("yoZ06aMxZJJ28mfd3POQ", "Sam (Serious and Grounded)"),
    VoiceOption("jsCqWAovK2LkecY7zXl4", "Emily (Warm and Engaging)"),
]

OPENAI_VOICES: list[VoiceOption] = [
    VoiceOption("alloy", "Alloy (Neutral)"),
    VoiceOption("echo", "Echo (Warm)"),
    VoiceOption("fable", "Fable (Expressive)"),
    VoiceOption("onyx", "Onyx (Deep)"),
    VoiceOption("nova", "Nova (Friendly)"),
    VoiceOption("shimmer", "Shimmer (Clear)"),
]

_DEFAULT_VOICES: dict[str, str] = {
    SERVICE_SYSTEM: "default",
    SERVICE_ELEVENLABS: ELEVENLABS_VOICES[0].id,
    SERVICE_OPENAI: OPENAI_VOICES[0].id,
}

SAMPLE_TEXT = "This is a test of the selected voice."


def default_voice_for(service: str) -> str:
    return _DEFAULT_VOICES.get(service, "default")


def resolve_voice(service: str, voice: str) -> str:
    """Return the concrete voice id to send to a service."""
    if not voice or voice == "default":
        return default_voice_for(service)
    return voice


def available_voices(
    service: str,
    api_key: str = "",
    system_voices: Optional[Callable[[], list[VoiceOption]]] = None,
) -> list[VoiceOption]:
    """List the voices a user can pick for ``service``."""
    if service == SERVICE_SYSTEM:
        voices = system_voices() if system_voices else []
        return voices or [VoiceOption("default", "Default System Voice")]
    if service == SERVICE_ELEVENLABS:
        if not api_key:
            return [VoiceOption("eleven-default", "Eleven Labs API Key Required")]
        return list(ELEVENLABS_VOICES)
    if service == SERVICE_OPENAI:
        if not api_key:
            return [VoiceOption("openai-default", "OpenAI API Key Required")]
        return list(OPENAI_VOICES)
    return [VoiceOption("default", "Default System Voice")]
