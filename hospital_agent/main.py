"""CLI entry point for the hospital voice booking assistant.

Typed lines stand in for finalized speech utterances, and replies are
"spoken" to the console.  For the HTTP API use ``hospital_agent.server``.

Usage:
    python -m hospital_agent.main                 # normal mode (quiet)
    python -m hospital_agent.main --debug         # debug mode (shows API calls)
    python -m hospital_agent.main --language ml-IN
"""

from __future__ import annotations

import argparse
import logging

from dotenv import load_dotenv

from hospital_agent.assistant import VoiceAssistant
from hospital_agent.config import DEFAULT_LANGUAGE
from hospital_agent.languages import LANGUAGES
from hospital_agent.models import ASSISTANT_NAME
from hospital_agent.speech import ConsoleSpeechInput, ConsoleSpeechOutput

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("hospital_agent").setLevel(logging.DEBUG if debug else logging.INFO)


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Hospital voice booking assistant CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    parser.add_argument(
        "--language", choices=sorted(LANGUAGES), default=DEFAULT_LANGUAGE,
        help="Conversation language",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    print("\n" + "=" * 60)
    print("  Hospital Voice Assistant - CLI")
    print("=" * 60)
    print("  Type what you would say and press Enter.")
    print("  Commands: 'quit' to exit, 'lang' to switch language.")
    print("=" * 60 + "\n")

    speech_in = ConsoleSpeechInput()
    assistant = VoiceAssistant(language_tag=args.language, speech_output=ConsoleSpeechOutput())
    print(f">> Language: {assistant.language.display_name}\n")

    try:
        while True:
            assistant.start_listening()
            try:
                utterance = speech_in.listen(assistant.language)
            except KeyboardInterrupt:
                utterance = None
            if utterance is None:
                print("\n\nGoodbye!")
                break

            command = utterance.strip().lower()
            if command in ("exit", "quit", "q"):
                print("\nGoodbye! Take care.")
                break
            if command == "lang":
                language = assistant.toggle_language()
                print(f"\n>> Language: {language.display_name} (new conversation)\n")
                continue

            try:
                result = assistant.handle_utterance(utterance)
            except Exception as e:
                logger.exception("Error processing utterance")
                print(f"\n{ASSISTANT_NAME}: I'm sorry, something went wrong: {e}\n")
                continue

            if result is None:
                continue
            print(f"\n{ASSISTANT_NAME}: {result.reply.display_text}")
            print(f"  [{result.status}]\n")
    finally:
        assistant.shutdown()


if __name__ == "__main__":
    main()
