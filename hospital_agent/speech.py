"""Speech input/output collaborators.

Audio itself is out of scope; these are the contracts the assistant talks
to, plus console stand-ins used by the CLI.  Speech output picks a voice
from the language's preference list and cancels whatever it was saying
when a new utterance arrives.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from hospital_agent.languages import LanguageConfig

logger = logging.getLogger(__name__)

SPEECH_RATE = 0.9
SPEECH_PITCH = 1.0


@dataclass(frozen=True)
class Voice:
    name: str
    lang: str


@dataclass(frozen=True)
class SpeechRequest:
    text: str
    voice: Voice | None
    rate: float = SPEECH_RATE
    pitch: float = SPEECH_PITCH


class SpeechInput(Protocol):
    def listen(self, language: LanguageConfig) -> str | None:
        """Block until one finalized utterance is heard; ``None`` ends listening."""


class SpeechOutput(Protocol):
    def speak(self, text: str, language: LanguageConfig) -> None: ...

    def cancel(self) -> None: ...


def select_voice(voices: Sequence[Voice], language: LanguageConfig) -> Voice | None:
    """Return the first voice matching the language's preferences, in order."""
    for pref in language.voice_preferences:
        for voice in voices:
            if voice.lang != pref.lang:
                continue
            if pref.name_contains and pref.name_contains not in voice.name:
                continue
            return voice
    return None


# ── Console stand-ins ────────────────────────────────────────────────


DEFAULT_VOICES: tuple[Voice, ...] = (
    Voice(name="Google English (India)", lang="en-IN"),
    Voice(name="Malayalam", lang="ml-IN"),
)


class ConsoleSpeechInput:
    """Reads typed utterances from stdin."""

    def __init__(self, prompt: str = "You: "):
        self._prompt = prompt

    def listen(self, language: LanguageConfig) -> str | None:
        try:
            return input(self._prompt)
        except EOFError:
            return None


class ConsoleSpeechOutput:
    """Prints what would be spoken and remembers the last request."""

    def __init__(self, voices: Sequence[Voice] = DEFAULT_VOICES, *, echo: bool = True):
        self._voices = tuple(voices)
        self._echo = echo
        self.current: SpeechRequest | None = None

    def speak(self, text: str, language: LanguageConfig) -> None:
        self.cancel()
        voice = select_voice(self._voices, language)
        self.current = SpeechRequest(text=text, voice=voice)
        logger.debug("Speaking with voice %s: %s", voice.name if voice else "default", text)
        if self._echo:
            print(f"  (speaking) {text}")

    def cancel(self) -> None:
        self.current = None
