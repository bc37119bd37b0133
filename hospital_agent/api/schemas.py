"""Pydantic schemas for the assistant API and the persistence sink."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from hospital_agent.models import AppointmentDetails, Sentiment

# ── Assistant API ────────────────────────────────────────────────────


class ChatRequest(BaseModel):
    """A finalized utterance from the frontend's speech recogniser."""

    message: str = Field(..., min_length=1, max_length=2000, description="The patient's utterance")
    session_id: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Client identifier for conversation continuity",
    )


class ChatResponse(BaseModel):
    display_text: str = Field(..., description="Text for the scrollback")
    speech_text: str = Field(..., description="Text for speech synthesis")
    status: str = Field(..., description="Status indicator shown under the talk button")
    error: bool = False
    session_id: str
    language: str


class LanguageRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=100)
    language: str = Field(..., description="BCP-47 tag, e.g. 'en-US' or 'ml-IN'")


class TranscriptItem(BaseModel):
    speaker: str
    text: str


class TranscriptResponse(BaseModel):
    session_id: str
    language: str
    display_name: str
    entries: list[TranscriptItem] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str = "hospital-voice-agent"


# ── Persistence sink ─────────────────────────────────────────────────


class LogAppointmentRequest(AppointmentDetails):
    """Body of ``POST /log-appointment``: booking details plus sentiment."""

    model_config = ConfigDict(extra="allow")

    sentiment: str = Sentiment.UNKNOWN.value
    confidence: float = Field(0.0, ge=0.0, le=1.0)


class LogAppointmentResponse(BaseModel):
    success: bool
    id: int | None = None
