"""Conversation session with the remote booking model.

A ``ConversationSession`` owns one multi-turn exchange under a fixed
language configuration.  It keeps two ordered stores:

* the **model history** (LangChain messages) sent on every turn, and
* the **transcript** (``TranscriptEntry``) that the UI scrollback and the
  sentiment recorder read.  The session updates it synchronously, so a
  snapshot taken at confirmation time always holds every finished turn.

Sessions are created by ``SessionManager``, which keeps at most one active
session per language selection and discards it when the language changes.
"""

from __future__ import annotations

import logging
import threading
import uuid

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, AnyMessage, HumanMessage, SystemMessage, ToolMessage

from hospital_agent.config import (
    ANTHROPIC_API_KEY,
    DEFAULT_LANGUAGE,
    MODEL_MAX_RETRIES,
    MODEL_NAME,
    MODEL_TIMEOUT_SECONDS,
)
from hospital_agent.errors import ModelUnavailable
from hospital_agent.languages import LanguageConfig, get_language
from hospital_agent.models import RawModelResponse, Speaker, ToolCall, TranscriptEntry
from hospital_agent.prompts import get_system_prompt
from hospital_agent.services.metrics import metrics
from hospital_agent.tools.hospital import ALL_TOOLS

logger = logging.getLogger(__name__)

NOT_EXECUTED_RESULT = "Not executed: only one tool call is handled per turn."


def _build_chat_llm():
    """Build the booking model with both tools bound."""
    llm = ChatAnthropic(
        model=MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=0.2,
        max_tokens=1024,
        timeout=MODEL_TIMEOUT_SECONDS,
        max_retries=MODEL_MAX_RETRIES,
    )
    return llm.bind_tools(ALL_TOOLS)


def message_text(message: AnyMessage) -> str:
    """Concatenate the text blocks of a chat message."""
    content = message.content
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def to_raw_response(message: AIMessage) -> RawModelResponse:
    calls = tuple(
        ToolCall(name=tc["name"], args=dict(tc.get("args") or {}), id=tc.get("id"))
        for tc in (getattr(message, "tool_calls", None) or [])
    )
    return RawModelResponse(text=message_text(message), tool_calls=calls)


class ConversationSession:
    """One ordered exchange with the model for a single language selection."""

    def __init__(self, language: LanguageConfig, *, session_id: str | None = None):
        self.language = language
        self.session_id = session_id or uuid.uuid4().hex
        self._llm = None
        self._system: SystemMessage | None = None
        self._messages: list[AnyMessage] = []
        self._transcript: list[TranscriptEntry] = []
        # Tool calls from the last model reply still waiting for a result
        self._pending: dict[str, ToolCall] = {}
        self._lock = threading.Lock()
        self._closed = False

    # ── Lifecycle ────────────────────────────────────────────────────

    @property
    def started(self) -> bool:
        return self._llm is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Mark the session as discarded.  Calls already in flight still finish."""
        self._closed = True
        logger.info("Session %s (%s) closed", self.session_id[:8], self.language.tag)

    def _ensure_started(self) -> None:
        if self._llm is None:
            self._system = SystemMessage(content=get_system_prompt(self.language))
            self._llm = _build_chat_llm()
            logger.info(
                "Session %s started — model: %s, language: %s",
                self.session_id[:8], MODEL_NAME, self.language.tag,
            )

    # ── Model turns ──────────────────────────────────────────────────

    def submit(self, text: str) -> RawModelResponse:
        """Send a user utterance and return the model's raw response.

        Raises:
            ModelUnavailable: the model call failed; history is left exactly
                as it was before this call.
        """
        with self._lock:
            self._ensure_started()
            checkpoint = len(self._messages)
            pending_before = dict(self._pending)
            self._close_pending_tool_calls()
            self._messages.append(HumanMessage(content=text))
            try:
                return self._invoke("chat_turn")
            except ModelUnavailable:
                del self._messages[checkpoint:]
                self._pending = pending_before
                raise

    def submit_tool_result(self, call: ToolCall, result: str) -> RawModelResponse:
        """Feed a tool result back and return the model's follow-up response.

        The tool result stays in history even when the follow-up fails,
        since the tool did run.
        """
        with self._lock:
            self._ensure_started()
            self._append_tool_result(call, result)
            checkpoint = len(self._messages)
            try:
                return self._invoke("tool_follow_up")
            except ModelUnavailable:
                del self._messages[checkpoint:]
                raise

    def record_tool_result(self, call: ToolCall, result: str) -> None:
        """Append a tool result to history without asking the model to reply."""
        with self._lock:
            self._append_tool_result(call, result)

    def _invoke(self, operation: str) -> RawModelResponse:
        try:
            with metrics.timed("anthropic", operation):
                message = self._llm.invoke([self._system, *self._messages])
        except Exception as exc:
            logger.warning(
                "Model call failed in session %s (%s): %s",
                self.session_id[:8], operation, exc,
            )
            raise ModelUnavailable(f"Model call failed: {type(exc).__name__}") from exc

        self._messages.append(message)
        response = to_raw_response(message)
        self._pending = {c.id: c for c in response.tool_calls if c.id}
        logger.debug(
            "Session %s %s: %d chars, tool calls: %s",
            self.session_id[:8], operation, len(response.text),
            [c.name for c in response.tool_calls] or "none",
        )
        return response

    def _append_tool_result(self, call: ToolCall, result: str) -> None:
        if call.id is None:
            self._messages.append(HumanMessage(content=result))
            return
        self._pending.pop(call.id, None)
        self._messages.append(ToolMessage(content=result, tool_call_id=call.id))
        # Results for sibling calls must directly follow the same model message
        self._close_pending_tool_calls()

    def _close_pending_tool_calls(self) -> None:
        """Answer tool calls that were never executed so the history stays valid."""
        for call_id, call in self._pending.items():
            logger.debug("Closing unexecuted tool call %s (%s)", call.name, call_id)
            self._messages.append(ToolMessage(content=NOT_EXECUTED_RESULT, tool_call_id=call_id))
        self._pending = {}

    @property
    def history(self) -> tuple[AnyMessage, ...]:
        return tuple(self._messages)

    # ── Transcript ───────────────────────────────────────────────────

    def record_user(self, text: str) -> TranscriptEntry:
        entry = TranscriptEntry(Speaker.USER, text)
        self._transcript.append(entry)
        return entry

    def record_assistant(self, text: str) -> TranscriptEntry:
        entry = TranscriptEntry(Speaker.ASSISTANT, text)
        self._transcript.append(entry)
        return entry

    @property
    def transcript(self) -> tuple[TranscriptEntry, ...]:
        """Read-only snapshot of the transcript so far."""
        return tuple(self._transcript)


class SessionManager:
    """Keeps the single active session for the current language selection."""

    def __init__(self, language_tag: str = DEFAULT_LANGUAGE):
        self._language = get_language(language_tag)
        self._session: ConversationSession | None = None
        self._lock = threading.Lock()

    @property
    def language(self) -> LanguageConfig:
        return self._language

    def current(self) -> ConversationSession:
        """Return the active session, creating it on first use."""
        with self._lock:
            if self._session is None:
                self._session = ConversationSession(self._language)
            return self._session

    def peek(self) -> ConversationSession | None:
        return self._session

    def switch_language(self, language_tag: str) -> LanguageConfig:
        """Select a new language and discard the current session entirely."""
        language = get_language(language_tag)
        with self._lock:
            if self._session is not None:
                self._session.close()
            self._session = None
            self._language = language
        logger.info("Language switched to %s; conversation reset", language.tag)
        return language
