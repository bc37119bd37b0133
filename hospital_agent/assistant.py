"""Turn orchestration for the hospital voice booking assistant.

Architecture:
  Each user turn runs through a small LangGraph ``StateGraph``:

    1. **model**   — ``ConversationSession.submit`` with the utterance
    2. **tools**   — ``ToolDispatcher`` executes the first tool call, if any
    3. **decode**  — ``decode_reply`` turns raw model text into a ``Reply``

  Routing:
    model → (tool call?)    → tools → (final reply?)   → END
                                    → (follow-up text?) → decode → END
    model → (no tool call?) → decode → END

  The graph holds no memory of its own.  History lives in the session
  passed in with each turn, and ``VoiceAssistant`` owns the session through
  a ``SessionManager`` so a language switch starts over with a fresh one.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future
from dataclasses import dataclass

from langgraph.graph import END, StateGraph
from typing_extensions import TypedDict

from hospital_agent.config import DEFAULT_LANGUAGE, MAX_ACTIVE_ASSISTANTS
from hospital_agent.decoder import decode_reply
from hospital_agent.dispatcher import ToolDispatcher
from hospital_agent.errors import ModelUnavailable, SessionBusy
from hospital_agent.languages import LanguageConfig, toggle_language
from hospital_agent.models import RawModelResponse, Reply, TranscriptEntry
from hospital_agent.sentiment import BackgroundRecorder
from hospital_agent.session import ConversationSession, SessionManager
from hospital_agent.speech import SpeechOutput

logger = logging.getLogger(__name__)

STATUS_READY = "Ready"
STATUS_THINKING = "Thinking..."
STATUS_API_ERROR = "API Error"

ERROR_REPLY = Reply(
    display_text="I'm sorry, I encountered an error. Please try again.",
    speech_text="I'm sorry, I encountered an error. Please try again.",
)


# ── State schema ─────────────────────────────────────────────────────


class TurnState(TypedDict, total=False):
    """State that flows through one turn of the graph."""

    session: ConversationSession
    utterance: str
    response: RawModelResponse
    reply: Reply
    recording: Future | None


# ── Nodes ────────────────────────────────────────────────────────────


def model_node(state: TurnState) -> dict:
    """Send the utterance to the model."""
    return {"response": state["session"].submit(state["utterance"])}


def _make_tools_node(dispatcher: ToolDispatcher):
    def tools_node(state: TurnState) -> dict:
        result = dispatcher.dispatch(state["response"], state["session"])
        if result.reply is not None:
            return {"reply": result.reply, "recording": result.recording}
        return {"response": result.follow_up}

    return tools_node


def decode_node(state: TurnState) -> dict:
    return {"reply": decode_reply(state["response"].text)}


# ── Conditional edges ────────────────────────────────────────────────


def should_dispatch(state: TurnState) -> str:
    """Route to the dispatcher only when the model asked for a tool."""
    if state["response"].has_tool_call:
        return "tools"
    return "decode"


def after_tools(state: TurnState) -> str:
    if state.get("reply") is not None:
        return END
    return "decode"


# ── Graph assembly ───────────────────────────────────────────────────


def create_turn_graph(dispatcher: ToolDispatcher):
    """Build and compile the per-turn pipeline.

    Invoke with ``{"session": session, "utterance": text}``; the result
    carries ``reply`` and, for confirmations, the ``recording`` future.
    """
    graph = StateGraph(TurnState)

    graph.add_node("model", model_node)
    graph.add_node("tools", _make_tools_node(dispatcher))
    graph.add_node("decode", decode_node)

    graph.set_entry_point("model")
    graph.add_conditional_edges(
        "model", should_dispatch, {"tools": "tools", "decode": "decode"},
    )
    graph.add_conditional_edges(
        "tools", after_tools, {"decode": "decode", END: END},
    )
    graph.add_edge("decode", END)

    return graph.compile()


# ── Utterance ingest ─────────────────────────────────────────────────


def ingest_utterance(raw: str | None) -> str | None:
    """Normalise a finalized utterance; blank input yields ``None``."""
    if raw is None:
        return None
    text = " ".join(raw.split())
    return text or None


# ── Assistant facade ─────────────────────────────────────────────────


@dataclass(frozen=True)
class TurnResult:
    reply: Reply
    status: str
    error: bool = False
    recording: Future | None = None


class VoiceAssistant:
    """One patient's assistant: language selection, turns, transcript, speech."""

    def __init__(
        self,
        *,
        language_tag: str = DEFAULT_LANGUAGE,
        background: BackgroundRecorder | None = None,
        speech_output: SpeechOutput | None = None,
    ):
        self._sessions = SessionManager(language_tag)
        self._owns_background = background is None
        self._background = background or BackgroundRecorder()
        self._graph = create_turn_graph(ToolDispatcher(self._background))
        self._speech = speech_output
        self._turn_lock = threading.Lock()
        self.status = STATUS_READY

    @property
    def language(self) -> LanguageConfig:
        return self._sessions.language

    @property
    def session(self) -> ConversationSession:
        return self._sessions.current()

    @property
    def transcript(self) -> tuple[TranscriptEntry, ...]:
        """Scrollback projection of the active session's transcript."""
        session = self._sessions.peek()
        return session.transcript if session is not None else ()

    @property
    def busy(self) -> bool:
        return self._turn_lock.locked()

    def handle_utterance(self, raw: str | None) -> TurnResult | None:
        """Run one full turn.  Returns ``None`` for blank utterances.

        Raises:
            SessionBusy: a previous turn has not finished yet.
        """
        text = ingest_utterance(raw)
        if text is None:
            return None
        if not self._turn_lock.acquire(blocking=False):
            raise SessionBusy("A turn is already being processed")
        try:
            return self._run_turn(text)
        finally:
            self._turn_lock.release()

    def _run_turn(self, text: str) -> TurnResult:
        session = self._sessions.current()
        session.record_user(text)
        self.status = STATUS_THINKING

        try:
            result = self._graph.invoke({"session": session, "utterance": text})
        except ModelUnavailable as exc:
            logger.error("Turn failed in session %s: %s", session.session_id[:8], exc)
            self.status = STATUS_API_ERROR
            self._say(ERROR_REPLY.speech_text)
            return TurnResult(reply=ERROR_REPLY, status=self.status, error=True)
        except Exception:
            self.status = STATUS_API_ERROR
            raise

        reply: Reply = result["reply"]
        session.record_assistant(reply.display_text)
        self._say(reply.speech_text)
        self.status = STATUS_READY
        return TurnResult(reply=reply, status=self.status, recording=result.get("recording"))

    def _say(self, text: str) -> None:
        if self._speech is not None:
            self._speech.speak(text, self.language)

    def start_listening(self) -> str:
        """Silence any speech in progress and show the listening status."""
        if self._speech is not None:
            self._speech.cancel()
        self.status = self.language.listening_status
        return self.status

    def switch_language(self, language_tag: str) -> LanguageConfig:
        """Change language; the transcript and model history start over."""
        language = self._sessions.switch_language(language_tag)
        self.status = STATUS_READY
        return language

    def toggle_language(self) -> LanguageConfig:
        return self.switch_language(toggle_language(self.language.tag).tag)

    def shutdown(self) -> None:
        """Wait for background recordings started by this assistant's own recorder."""
        if self._owns_background:
            self._background.shutdown(wait=True)


class AssistantRegistry:
    """Per-client ``VoiceAssistant`` instances sharing one background recorder.

    Bounded to ``max_assistants`` entries; the least recently used client
    is dropped first.
    """

    def __init__(
        self,
        background: BackgroundRecorder | None = None,
        *,
        max_assistants: int = MAX_ACTIVE_ASSISTANTS,
    ):
        self._background = background or BackgroundRecorder()
        self._max_assistants = max_assistants
        self._assistants: OrderedDict[str, VoiceAssistant] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def background(self) -> BackgroundRecorder:
        return self._background

    def __len__(self) -> int:
        return len(self._assistants)

    def get(self, client_id: str) -> VoiceAssistant | None:
        with self._lock:
            assistant = self._assistants.get(client_id)
            if assistant is not None:
                self._assistants.move_to_end(client_id)
            return assistant

    def get_or_create(self, client_id: str) -> VoiceAssistant:
        with self._lock:
            assistant = self._assistants.get(client_id)
            if assistant is not None:
                self._assistants.move_to_end(client_id)
                return assistant

            assistant = VoiceAssistant(background=self._background)
            self._assistants[client_id] = assistant
            logger.info("Created assistant for client %s", client_id)
            while len(self._assistants) > self._max_assistants:
                evicted, _ = self._assistants.popitem(last=False)
                logger.info("Evicted idle assistant for client %s", evicted)
            return assistant

    def remove(self, client_id: str) -> bool:
        """Forget a client's assistant.  Returns ``False`` if it was unknown."""
        with self._lock:
            return self._assistants.pop(client_id, None) is not None

    def shutdown(self) -> None:
        self._background.shutdown(wait=True)
