"""Supported conversation languages.

A language selection fixes three things for the lifetime of a session: the
tag handed to speech recognition, the dialect instruction appended to the
system prompt, and the voice preferences used for speech output.
"""

from __future__ import annotations

from dataclasses import dataclass

from hospital_agent.errors import UnsupportedLanguage


@dataclass(frozen=True)
class VoicePreference:
    """Match rule for a speech-synthesis voice."""

    lang: str
    name_contains: str | None = None


@dataclass(frozen=True)
class LanguageConfig:
    tag: str
    display_name: str
    dialect_instruction: str
    listening_status: str
    voice_preferences: tuple[VoicePreference, ...]


ENGLISH = LanguageConfig(
    tag="en-US",
    display_name="English",
    dialect_instruction="Reply in clear, simple English for both fields.",
    listening_status="Listening...",
    voice_preferences=(
        VoicePreference(lang="en-IN", name_contains="Google"),
        VoicePreference(lang="en-IN"),
    ),
)

MALAYALAM = LanguageConfig(
    tag="ml-IN",
    display_name="മലയാളം",
    dialect_instruction=(
        "The patient has chosen Malayalam. Write the screen text in Malayalam "
        "script and the speech text in Manglish (Malayalam written in Latin "
        "letters) so an Indian English voice can read it aloud."
    ),
    listening_status="ശ്രദ്ധിക്കുന്നു...",
    voice_preferences=(
        VoicePreference(lang="ml-IN"),
        VoicePreference(lang="en-IN"),
    ),
)

LANGUAGES: dict[str, LanguageConfig] = {
    ENGLISH.tag: ENGLISH,
    MALAYALAM.tag: MALAYALAM,
}


def get_language(tag: str) -> LanguageConfig:
    """Look up a language by its BCP-47 tag."""
    try:
        return LANGUAGES[tag]
    except KeyError:
        raise UnsupportedLanguage(
            f"Unsupported language {tag!r}; expected one of {sorted(LANGUAGES)}"
        ) from None


def toggle_language(tag: str) -> LanguageConfig:
    """Return the other supported language (the UI switch flips between two)."""
    return MALAYALAM if tag == ENGLISH.tag else ENGLISH
