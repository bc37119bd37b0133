"""Post-booking sentiment enrichment and persistence.

Once a booking is confirmed the full transcript is scored by the model and
the booking is written to the persistence sink together with the score::

    Idle → Analyzing → Persisted
                   ↘ Failed → Persisted   (sentiment falls back to Unknown/0)

Analysis failure never stops persistence.  Persistence is attempted exactly
once; a failure is logged and the outcome records it.  The whole step runs
off the conversation path via ``BackgroundRecorder`` so that confirmation is
never delayed by it.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import HumanMessage

from hospital_agent.config import ANALYSIS_MODEL_NAME, ANTHROPIC_API_KEY, MODEL_TIMEOUT_SECONDS
from hospital_agent.decoder import strip_code_fences
from hospital_agent.errors import AnalysisFailure, PersistenceFailure
from hospital_agent.models import AppointmentDetails, Sentiment, SentimentResult, TranscriptEntry
from hospital_agent.prompts import get_sentiment_prompt
from hospital_agent.services.metrics import metrics
from hospital_agent.services.persistence_client import PersistenceClient
from hospital_agent.session import message_text

logger = logging.getLogger(__name__)


class RecorderState(str, Enum):
    IDLE = "Idle"
    ANALYZING = "Analyzing"
    FAILED = "Failed"
    PERSISTED = "Persisted"


@dataclass(frozen=True)
class RecordingOutcome:
    details: AppointmentDetails
    sentiment: SentimentResult
    states: tuple[RecorderState, ...]
    record_id: int | None = None
    analysis_error: str | None = None
    persistence_error: str | None = None

    @property
    def state(self) -> RecorderState:
        return self.states[-1]

    @property
    def persisted(self) -> bool:
        """True when the sink acknowledged the record."""
        return self.record_id is not None


def _build_analysis_llm() -> ChatAnthropic:
    """Build a tool-less model for one-shot sentiment classification."""
    return ChatAnthropic(
        model=ANALYSIS_MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=0.0,
        max_tokens=100,
        timeout=MODEL_TIMEOUT_SECONDS,
    )


def render_transcript(transcript: Sequence[TranscriptEntry]) -> str:
    return "\n".join(entry.render() for entry in transcript)


def parse_sentiment(raw: str) -> SentimentResult:
    """Parse the analyser's JSON answer.

    Raises:
        AnalysisFailure: not a JSON object, unsupported label, or a
            confidence that is not a number.
    """
    try:
        data = json.loads(strip_code_fences(raw))
    except json.JSONDecodeError as exc:
        raise AnalysisFailure(f"Sentiment reply is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise AnalysisFailure("Sentiment reply is not a JSON object")

    label = str(data.get("sentiment", "")).strip().capitalize()
    try:
        sentiment = Sentiment(label)
    except ValueError:
        raise AnalysisFailure(f"Unsupported sentiment label {label!r}") from None

    confidence = data.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float, str)):
        raise AnalysisFailure(f"Confidence is not a number: {confidence!r}")
    try:
        value = float(confidence)
    except ValueError:
        raise AnalysisFailure(f"Confidence is not a number: {confidence!r}") from None

    return SentimentResult(sentiment=sentiment, confidence=min(1.0, max(0.0, value)))


class SentimentRecorder:
    """Scores a confirmed booking's transcript and persists the record."""

    def __init__(self, persistence: PersistenceClient | None = None):
        self._persistence = persistence or PersistenceClient()
        self._llm = None
        self._llm_lock = threading.Lock()

    def _get_llm(self):
        with self._llm_lock:
            if self._llm is None:
                self._llm = _build_analysis_llm()
            return self._llm

    def analyze(self, transcript: Sequence[TranscriptEntry]) -> SentimentResult:
        """Classify the patient's sentiment over the whole transcript."""
        prompt = get_sentiment_prompt(render_transcript(transcript))
        try:
            with metrics.timed("anthropic", "sentiment_analysis"):
                response = self._get_llm().invoke([HumanMessage(content=prompt)])
        except Exception as exc:
            raise AnalysisFailure(f"Sentiment model call failed: {type(exc).__name__}") from exc
        return parse_sentiment(message_text(response))

    def record(
        self,
        details: AppointmentDetails,
        transcript: Sequence[TranscriptEntry],
    ) -> RecordingOutcome:
        """Run the full Idle → Analyzing → Persisted sequence for one booking."""
        states = [RecorderState.IDLE, RecorderState.ANALYZING]
        analysis_error = None
        try:
            sentiment = self.analyze(transcript)
        except AnalysisFailure as exc:
            logger.warning("Sentiment analysis failed for %s: %s", details.patient_name, exc)
            analysis_error = str(exc)
            sentiment = SentimentResult.unknown()
            states.append(RecorderState.FAILED)

        payload = {
            **details.to_payload(),
            "sentiment": sentiment.sentiment.value,
            "confidence": sentiment.confidence,
        }
        record_id = None
        persistence_error = None
        try:
            record_id = self._persistence.log_appointment(payload)
            logger.info(
                "Saved appointment %s for %s (sentiment=%s, confidence=%.2f)",
                record_id, details.patient_name,
                sentiment.sentiment.value, sentiment.confidence,
            )
        except PersistenceFailure as exc:
            logger.error("Appointment for %s was not saved: %s", details.patient_name, exc)
            persistence_error = str(exc)
        states.append(RecorderState.PERSISTED)

        return RecordingOutcome(
            details=details,
            sentiment=sentiment,
            states=tuple(states),
            record_id=record_id,
            analysis_error=analysis_error,
            persistence_error=persistence_error,
        )


OutcomeCallback = Callable[[RecordingOutcome | None, BaseException | None], None]


class BackgroundRecorder:
    """Runs ``SentimentRecorder.record`` off the conversation path.

    Each submission returns a ``Future``.  Completion is always logged, and
    every subscribed callback receives ``(outcome, None)`` on completion or
    ``(None, exc)`` if the task itself crashed.
    """

    def __init__(self, recorder: SentimentRecorder | None = None, *, max_workers: int = 2):
        self._recorder = recorder or SentimentRecorder()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="sentiment-recorder",
        )
        self._subscribers: list[OutcomeCallback] = []

    def subscribe(self, callback: OutcomeCallback) -> None:
        self._subscribers.append(callback)

    def submit(
        self,
        details: AppointmentDetails,
        transcript: Sequence[TranscriptEntry],
    ) -> Future:
        snapshot = tuple(transcript)
        future = self._executor.submit(self._recorder.record, details, snapshot)
        future.add_done_callback(self._on_done)
        logger.debug("Scheduled sentiment recording for %s", details.patient_name)
        return future

    def _on_done(self, future: Future) -> None:
        exc = future.exception()
        outcome = None if exc else future.result()
        if exc is not None:
            logger.error("Sentiment recording task crashed", exc_info=exc)
        elif outcome.persisted:
            logger.debug("Sentiment recording finished: record %s", outcome.record_id)
        else:
            logger.warning("Sentiment recording finished without persisting the appointment")

        for callback in self._subscribers:
            try:
                callback(outcome, exc)
            except Exception:
                logger.exception("Recording subscriber failed")

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
