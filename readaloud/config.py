"""Configuration constants, service endpoints, and .env loading.

WHY: Centralizes every tunable value (service URLs, model identifiers,
frame rate, drain polling) so they are easy to find and override. API
credentials are resolved in one place so a missing key is reported as a
configuration problem before any network request is attempted.

HOW: python-dotenv loads the .env file on import. Constants are plain
module-level values, each overridable through an environment variable.
resolve_api_key() prefers the persisted setting and falls back to the
environment.

RULES:
- API keys are never hardcoded
- A missing key raises ConfigurationError, never a network error
- Timing constants are in seconds unless the name says otherwise
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

# Load .env from the working directory
load_dotenv()

# ---------------------------------------------------------------------------
# Voice services
# ---------------------------------------------------------------------------

SERVICE_SYSTEM = "system"
SERVICE_OPENAI = "openai"
SERVICE_ELEVENLABS = "elevenlabs"

VOICE_SERVICES: dict[str, str] = {
    SERVICE_SYSTEM: "System Native",
    SERVICE_ELEVENLABS: "Eleven Labs",
    SERVICE_OPENAI: "OpenAI",
}
"""Service key → human-readable label."""

_API_KEY_ENV: dict[str, str] = {
    SERVICE_OPENAI: "OPENAI_API_KEY",
    SERVICE_ELEVENLABS: "ELEVENLABS_API_KEY",
}

_API_KEY_LABELS: dict[str, str] = {
    SERVICE_OPENAI: "OpenAI",
    SERVICE_ELEVENLABS: "Eleven Labs",
}

# ---------------------------------------------------------------------------
# Remote service defaults
# ---------------------------------------------------------------------------

OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_TTS_MODEL = os.getenv("OPENAI_TTS_MODEL", "tts-1")

ELEVENLABS_BASE_URL = os.getenv("ELEVENLABS_BASE_URL", "https://api.elevenlabs.io/v1")
ELEVENLABS_MODEL = os.getenv("ELEVENLABS_MODEL", "eleven_monolingual_v1")
ELEVENLABS_STABILITY = 0.5
ELEVENLABS_SIMILARITY_BOOST = 0.75

REQUEST_TIMEOUT_S = float(os.getenv("READALOUD_REQUEST_TIMEOUT_S", "120"))
"""Transport-level read timeout; no retry is layered on top."""

# ---------------------------------------------------------------------------
# Event loop timing
# ---------------------------------------------------------------------------

FRAME_INTERVAL_S = 1.0 / 60.0
"""Frame clock period (display refresh rate)."""

DRAIN_POLL_INTERVAL_S = 0.05
DRAIN_POLL_MAX_ATTEMPTS = 100  # 5 seconds at 50ms

ENGINE_PUMP_INTERVAL_S = 0.02
"""How often the pyttsx3 external loop is iterated."""

CLIP_POLL_INTERVAL_S = 0.05
"""How often the mixer is checked for the end of a clip."""


class ConfigurationError(ValueError):
    """Raised when a voice service cannot be used as configured.

    WHY: A missing credential is a setup problem, not a network failure.
    Detecting it before any request lets the controller show a precise
    notice and never start a session.

    HOW: Raised by resolve_api_key() and by the backend factory.

    RULES:
    - Raised before any request is issued
    - Message tells the user what to configure
    """


def resolve_api_key(service: str, configured: str = "") -> str:
    """Return the API key for a remote service.

    WHY: Keys can come from the persisted settings (what the user typed in
    the settings screen) or from the environment (.env for development).

    HOW: Uses the configured value when non-blank, otherwise reads the
    service's environment variable.

    RULES:
    - Raises ConfigurationError when both sources are empty
    - Raises ConfigurationError for services that take no key
    """
    env_name = _API_KEY_ENV.get(service)
    if env_name is None:
        raise ConfigurationError(f"Voice service '{service}' does not use an API key.")

    key = (configured or "").strip() or os.getenv(env_name, "").strip()
    if not key:
        raise ConfigurationError(
            "Please enter your {} API key in settings (or set {} in .env).".format(
                _API_KEY_LABELS[service], env_name
            )
        )
    return key
