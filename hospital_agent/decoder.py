"""Turn raw model text into a ``Reply``.

The model is asked to answer with ``{"text": ..., "speech": ...}`` but
nothing enforces that.  Decoding is therefore tolerant: a reply that does
not parse is shown and spoken verbatim.  A broken output contract must
never block the conversation, so ``decode_reply`` does not raise.
"""

from __future__ import annotations

import json
import logging
import re

from hospital_agent.errors import MalformedModelOutput
from hospital_agent.models import Reply

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)

EMPTY_REPLY = Reply(
    display_text="I'm sorry, I didn't catch that. Could you say it again?",
    speech_text="Sorry, I didn't catch that. Could you say it again?",
)


def strip_code_fences(text: str) -> str:
    """Remove Markdown code-fence markers (```json / ```) and trim."""
    return _FENCE_RE.sub("", text).strip()


def parse_structured_reply(raw: str) -> Reply:
    """Strictly parse *raw* into a ``Reply``.

    Raises:
        MalformedModelOutput: the text is not a JSON object carrying a
            non-empty ``text`` or ``speech`` string.
    """
    try:
        data = json.loads(strip_code_fences(raw))
    except json.JSONDecodeError as exc:
        raise MalformedModelOutput(f"Reply is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise MalformedModelOutput(f"Reply JSON is a {type(data).__name__}, not an object")

    text = data.get("text")
    speech = data.get("speech")
    text = text.strip() if isinstance(text, str) else ""
    speech = speech.strip() if isinstance(speech, str) else ""
    if not text and not speech:
        raise MalformedModelOutput("Reply JSON has neither 'text' nor 'speech'")

    # A half-filled object still carries a usable answer
    return Reply(display_text=text or speech, speech_text=speech or text)


def decode_reply(raw: str | None) -> Reply:
    """Decode *raw*, falling back to the verbatim text on any parse failure."""
    if not raw or not raw.strip():
        logger.warning("Model returned an empty reply")
        return EMPTY_REPLY
    try:
        return parse_structured_reply(raw)
    except MalformedModelOutput as exc:
        logger.debug("Using verbatim model reply: %s", exc)
        fallback = raw.strip()
        return Reply(display_text=fallback, speech_text=fallback)
