"""readaloud: read a document aloud with a synchronized reading highlight.

WHY: Listening to notes is easier when the eye can follow the voice. The
hard part is not speaking text but keeping a highlight on the right word
when speech backends disagree about timing: an on-device engine reports
word boundaries, while remote services only hand back a finished clip.

HOW: Three layers. The core (segmenter, timing estimator, highlight
synchronizer, playback controller) is pure orchestration driven by one
asyncio event loop. Backends (local pyttsx3 engine, OpenAI and ElevenLabs
clip services) satisfy a single event contract. Hosts (CLI, tkinter GUI)
supply a document provider and forward user commands.

RULES:
- The PlaybackController is the only owner of playback state
- Backends are looked up by key in readaloud.backends.BACKENDS
- All work happens on a single thread; backends report via callbacks
"""

__version__ = "0.1.0"
