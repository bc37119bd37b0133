"""End-to-end turn tests for VoiceAssistant with a mocked model and sink."""

from __future__ import annotations

import json
import threading
from unittest.mock import MagicMock, patch

import pytest
from langchain_core.messages import AIMessage

from hospital_agent.assistant import (
    ERROR_REPLY,
    STATUS_API_ERROR,
    STATUS_READY,
    AssistantRegistry,
    VoiceAssistant,
    ingest_utterance,
)
from hospital_agent.dispatcher import APOLOGY_REPLY
from hospital_agent.errors import SessionBusy
from hospital_agent.models import Sentiment, Speaker
from hospital_agent.sentiment import BackgroundRecorder, RecorderState, SentimentRecorder

BOOKING_ARGS = {
    "patientName": "John Doe",
    "department": "Cardiology",
    "symptoms": "headache",
    "timeSlot": "10 AM",
}


def _tool_call(name: str, args: dict, call_id: str = "c1") -> AIMessage:
    return AIMessage(content="", tool_calls=[{"name": name, "args": args, "id": call_id}])


def _json_reply(text: str, speech: str | None = None) -> AIMessage:
    return AIMessage(content=json.dumps({"text": text, "speech": speech or text}))


@pytest.fixture
def background(persistence):
    recorder = BackgroundRecorder(SentimentRecorder(persistence))
    yield recorder
    recorder.shutdown()


@pytest.fixture
def speech():
    return MagicMock()


# ── Utterance ingest ─────────────────────────────────────────────────


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("  hello   there ", "hello there"),
        ("", None),
        ("   \n ", None),
        (None, None),
    ],
)
def test_ingest_utterance(raw, expected):
    assert ingest_utterance(raw) == expected


def test_blank_utterance_is_ignored(background):
    assistant = VoiceAssistant(background=background)
    assert assistant.handle_utterance("   ") is None
    assert assistant.transcript == ()


# ── Plain replies ────────────────────────────────────────────────────


class TestPlainReplies:
    @patch("hospital_agent.session._build_chat_llm")
    def test_structured_reply_is_shown_and_spoken(self, mock_build, mock_llm, background, speech):
        mock_build.return_value = mock_llm(
            _json_reply("Hello! What's your name?", "Hello, what is your name?")
        )
        assistant = VoiceAssistant(background=background, speech_output=speech)

        result = assistant.handle_utterance("Hi")

        assert result.reply.display_text == "Hello! What's your name?"
        assert result.status == STATUS_READY
        speech.speak.assert_called_once_with("Hello, what is your name?", assistant.language)
        assert [e.render() for e in assistant.transcript] == [
            "You: Hi", "Puck: Hello! What's your name?",
        ]

    @patch("hospital_agent.session._build_chat_llm")
    def test_unstructured_reply_falls_back_to_raw_text(self, mock_build, mock_llm, background):
        mock_build.return_value = mock_llm(AIMessage(content="Sure, which department?"))
        assistant = VoiceAssistant(background=background)

        result = assistant.handle_utterance("I need a doctor")
        assert result.reply.display_text == "Sure, which department?"
        assert result.reply.speech_text == "Sure, which department?"


# ── Booking scenarios ────────────────────────────────────────────────


class TestAvailabilityScenario:
    @patch("hospital_agent.session._build_chat_llm")
    def test_cardiology_slots_are_offered(self, mock_build, mock_llm, background, persistence):
        llm = mock_llm(
            _tool_call("get_doctor_availability", {"department": "Cardiology"}),
            _json_reply(
                "Dr. Smith is free tomorrow at 10 AM, or Dr. Jones at 2 PM.",
                "Doctor Smith at ten, or Doctor Jones at two?",
            ),
        )
        mock_build.return_value = llm
        assistant = VoiceAssistant(background=background)

        result = assistant.handle_utterance("I need a cardiology appointment")

        assert "10 AM" in result.reply.display_text
        assert result.recording is None
        assert llm.invoke.call_count == 2
        persistence.log_appointment.assert_not_called()


class TestConfirmationScenario:
    @patch("hospital_agent.sentiment._build_analysis_llm")
    @patch("hospital_agent.session._build_chat_llm")
    def test_confirmation_persists_exactly_once(
        self, mock_build, mock_analysis, mock_llm, background, persistence
    ):
        mock_build.return_value = mock_llm(
            _json_reply("What is your name?"),
            _tool_call("confirm_appointment", BOOKING_ARGS),
        )
        analysis = MagicMock()
        analysis.invoke.return_value = AIMessage(content='{"sentiment": "Happy", "confidence": 0.9}')
        mock_analysis.return_value = analysis
        assistant = VoiceAssistant(background=background)

        assistant.handle_utterance("Book cardiology for tomorrow 10 AM")
        result = assistant.handle_utterance("John Doe, headache, yes please book it")

        assert result.reply.display_text == (
            "Appointment Confirmed for John Doe. Details have been saved."
        )
        outcome = result.recording.result(timeout=5)
        assert outcome.sentiment.sentiment is Sentiment.HAPPY
        assert outcome.record_id == 1_000
        persistence.log_appointment.assert_called_once()
        payload = persistence.log_appointment.call_args[0][0]
        assert payload == {
            "patientName": "John Doe",
            "department": "Cardiology",
            "doctorName": "General",
            "symptoms": "headache",
            "timeSlot": "10 AM",
            "sentiment": "Happy",
            "confidence": 0.9,
        }

    @patch("hospital_agent.sentiment._build_analysis_llm")
    @patch("hospital_agent.session._build_chat_llm")
    def test_analysis_failure_still_persists_unknown(
        self, mock_build, mock_analysis, mock_llm, background, persistence
    ):
        mock_build.return_value = mock_llm(_tool_call("confirm_appointment", BOOKING_ARGS))
        analysis = MagicMock()
        analysis.invoke.side_effect = RuntimeError("analysis down")
        mock_analysis.return_value = analysis
        assistant = VoiceAssistant(background=background)

        result = assistant.handle_utterance("Yes, book it")
        outcome = result.recording.result(timeout=5)

        assert RecorderState.FAILED in outcome.states
        payload = persistence.log_appointment.call_args[0][0]
        assert payload["sentiment"] == "Unknown"
        assert payload["confidence"] == 0.0

    @patch("hospital_agent.sentiment._build_analysis_llm")
    @patch("hospital_agent.session._build_chat_llm")
    def test_analysis_sees_transcript_up_to_confirmation(
        self, mock_build, mock_analysis, mock_llm, background
    ):
        mock_build.return_value = mock_llm(
            _json_reply("Which department?"),
            _tool_call("confirm_appointment", BOOKING_ARGS),
        )
        analysis = MagicMock()
        analysis.invoke.return_value = AIMessage(content='{"sentiment": "Neutral", "confidence": 0.5}')
        mock_analysis.return_value = analysis
        assistant = VoiceAssistant(background=background)

        assistant.handle_utterance("Hello")
        result = assistant.handle_utterance("Cardiology, book it")
        result.recording.result(timeout=5)

        prompt = analysis.invoke.call_args[0][0][0].content
        assert "You: Hello" in prompt
        assert "Puck: Which department?" in prompt
        assert "You: Cardiology, book it" in prompt
        assert "Appointment Confirmed" not in prompt

    @patch("hospital_agent.session._build_chat_llm")
    def test_missing_field_apologises_and_does_not_persist(
        self, mock_build, mock_llm, background, persistence
    ):
        args = {k: v for k, v in BOOKING_ARGS.items() if k != "timeSlot"}
        mock_build.return_value = mock_llm(_tool_call("confirm_appointment", args))
        assistant = VoiceAssistant(background=background)

        result = assistant.handle_utterance("book it")
        background.shutdown()

        assert result.reply == APOLOGY_REPLY
        assert result.recording is None
        persistence.log_appointment.assert_not_called()


# ── Failures ─────────────────────────────────────────────────────────


class TestFailures:
    @patch("hospital_agent.session._build_chat_llm")
    def test_model_unavailable_shows_error(self, mock_build, mock_llm, background, speech):
        mock_build.return_value = mock_llm(ConnectionError("offline"))
        assistant = VoiceAssistant(background=background, speech_output=speech)

        result = assistant.handle_utterance("Hello")

        assert result.error
        assert result.reply == ERROR_REPLY
        assert result.status == STATUS_API_ERROR
        assert assistant.status == STATUS_API_ERROR
        speech.speak.assert_called_once_with(ERROR_REPLY.speech_text, assistant.language)
        assert [e.speaker for e in assistant.transcript] == [Speaker.USER]

    @patch("hospital_agent.session._build_chat_llm")
    def test_next_turn_recovers_after_error(self, mock_build, mock_llm, background):
        mock_build.return_value = mock_llm(
            ConnectionError("offline"),
            _json_reply("I'm here now."),
        )
        assistant = VoiceAssistant(background=background)

        assistant.handle_utterance("Hello")
        result = assistant.handle_utterance("Hello again")

        assert not result.error
        assert result.status == STATUS_READY
        assert result.reply.display_text == "I'm here now."

    @patch("hospital_agent.assistant.decode_reply")
    @patch("hospital_agent.session._build_chat_llm")
    def test_unexpected_error_does_not_leave_thinking_status(
        self, mock_build, mock_decode, mock_llm, background
    ):
        mock_build.return_value = mock_llm(_json_reply("Hello!"))
        mock_decode.side_effect = RuntimeError("decoder bug")
        assistant = VoiceAssistant(background=background)

        with pytest.raises(RuntimeError):
            assistant.handle_utterance("Hi")
        assert assistant.status == STATUS_API_ERROR
        assert not assistant.busy

    @patch("hospital_agent.session._build_chat_llm")
    def test_concurrent_turn_is_rejected(self, mock_build, background):
        entered = threading.Event()
        release = threading.Event()

        def _slow_invoke(messages):
            entered.set()
            release.wait(timeout=5)
            return _json_reply("done")

        llm = MagicMock()
        llm.invoke.side_effect = _slow_invoke
        mock_build.return_value = llm
        assistant = VoiceAssistant(background=background)

        worker = threading.Thread(target=assistant.handle_utterance, args=("first",))
        worker.start()
        assert entered.wait(timeout=5)
        try:
            assert assistant.busy
            with pytest.raises(SessionBusy):
                assistant.handle_utterance("second")
        finally:
            release.set()
            worker.join(timeout=5)
        assert not assistant.busy
        assert llm.invoke.call_count == 1


# ── Language ─────────────────────────────────────────────────────────


class TestLanguage:
    @patch("hospital_agent.session._build_chat_llm")
    def test_switch_discards_transcript_and_history(self, mock_build, mock_llm, background):
        llm = mock_llm(_json_reply("Hello!"), _json_reply("Namaskaram!"))
        mock_build.return_value = llm
        assistant = VoiceAssistant(background=background)

        assistant.handle_utterance("Hi")
        old_session = assistant.session
        assistant.switch_language("ml-IN")

        assert assistant.transcript == ()
        assert old_session.closed

        assistant.handle_utterance("Namaskaram")
        sent = llm.invoke.call_args_list[1][0][0]
        assert "Manglish" in sent[0].content
        assert [m.content for m in sent[1:]] == ["Namaskaram"]

    def test_toggle_and_listening_status(self, background, speech):
        assistant = VoiceAssistant(background=background, speech_output=speech)
        assert assistant.start_listening() == "Listening..."
        speech.cancel.assert_called_once()

        assistant.toggle_language()
        assert assistant.language.tag == "ml-IN"
        assert assistant.start_listening() == "ശ്രദ്ധിക്കുന്നു..."

        assistant.toggle_language()
        assert assistant.language.tag == "en-US"


# ── Registry ─────────────────────────────────────────────────────────


class TestRegistry:
    def test_assistants_are_per_client(self, background):
        registry = AssistantRegistry(background)
        first = registry.get_or_create("alice")
        assert registry.get_or_create("alice") is first
        assert registry.get_or_create("bob") is not first
        assert registry.get("carol") is None
        assert registry.background is background

    def test_least_recently_used_client_is_evicted(self, background):
        registry = AssistantRegistry(background, max_assistants=2)
        alice = registry.get_or_create("alice")
        registry.get_or_create("bob")
        registry.get("alice")
        registry.get_or_create("carol")

        assert len(registry) == 2
        assert registry.get("alice") is alice
        assert registry.get("bob") is None
        assert registry.get("carol") is not None

    def test_remove_forgets_client(self, background):
        registry = AssistantRegistry(background)
        registry.get_or_create("alice")
        assert registry.remove("alice")
        assert registry.get("alice") is None
        assert not registry.remove("alice")


# ── Confirmation latency ─────────────────────────────────────────────


@patch("hospital_agent.sentiment._build_analysis_llm")
@patch("hospital_agent.session._build_chat_llm")
def test_confirmation_does_not_wait_for_sentiment_analysis(
    mock_build, mock_analysis, mock_llm, background, persistence
):
    mock_build.return_value = mock_llm(_tool_call("confirm_appointment", BOOKING_ARGS))
    release = threading.Event()

    def _slow_analysis(messages):
        release.wait(timeout=5)
        return AIMessage(content='{"sentiment": "Anxious", "confidence": 0.7}')

    analysis = MagicMock()
    analysis.invoke.side_effect = _slow_analysis
    mock_analysis.return_value = analysis
    assistant = VoiceAssistant(background=background)

    try:
        result = assistant.handle_utterance("Yes, book it")
        assert result.reply.display_text == (
            "Appointment Confirmed for John Doe. Details have been saved."
        )
        assert result.status == STATUS_READY
        assert not result.recording.done()
        persistence.log_appointment.assert_not_called()
    finally:
        release.set()

    outcome = result.recording.result(timeout=5)
    assert outcome.sentiment.sentiment is Sentiment.ANXIOUS
    persistence.log_appointment.assert_called_once()
