"""Core data types that flow through a conversation turn."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from hospital_agent.errors import InvalidToolCall

ASSISTANT_NAME = "Puck"


# ── Transcript ───────────────────────────────────────────────────────


class Speaker(str, Enum):
    USER = "User"
    ASSISTANT = "Assistant"


@dataclass(frozen=True)
class TranscriptEntry:
    speaker: Speaker
    text: str

    def render(self) -> str:
        """Format the entry the way it appears in the scrollback."""
        label = "You" if self.speaker is Speaker.USER else ASSISTANT_NAME
        return f"{label}: {self.text}"


# ── Model output ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class ToolCall:
    """A single tool request emitted by the model."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)
    id: str | None = None


@dataclass(frozen=True)
class RawModelResponse:
    text: str = ""
    tool_calls: tuple[ToolCall, ...] = ()

    @property
    def has_tool_call(self) -> bool:
        return bool(self.tool_calls)


@dataclass(frozen=True)
class Reply:
    """What the patient sees on screen and what the assistant says aloud."""

    display_text: str
    speech_text: str


# ── Booking ──────────────────────────────────────────────────────────

REQUIRED_BOOKING_FIELDS = ("patientName", "department", "symptoms", "timeSlot")
DEFAULT_DOCTOR = "General"


class AppointmentDetails(BaseModel):
    """Booking data taken from a ``confirm_appointment`` tool call.

    Field aliases are the camelCase names used by the tool declaration and
    the persistence sink's JSON body.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    patient_name: str = Field(..., alias="patientName")
    department: str
    doctor_name: str = Field(DEFAULT_DOCTOR, alias="doctorName")
    symptoms: str
    time_slot: str = Field(..., alias="timeSlot")

    @classmethod
    def from_tool_args(cls, args: dict[str, Any]) -> AppointmentDetails:
        """Build details from raw tool arguments, rejecting blank required fields."""
        cleaned = {
            key: str(value).strip()
            for key, value in args.items()
            if value is not None and str(value).strip()
        }
        missing = tuple(f for f in REQUIRED_BOOKING_FIELDS if f not in cleaned)
        if missing:
            raise InvalidToolCall(
                f"confirm_appointment is missing required fields: {', '.join(missing)}",
                missing=missing,
            )
        return cls(
            patientName=cleaned["patientName"],
            department=cleaned["department"],
            doctorName=cleaned.get("doctorName", DEFAULT_DOCTOR),
            symptoms=cleaned["symptoms"],
            timeSlot=cleaned["timeSlot"],
        )

    def to_payload(self) -> dict[str, str]:
        return self.model_dump(by_alias=True)


# ── Sentiment ────────────────────────────────────────────────────────


class Sentiment(str, Enum):
    HAPPY = "Happy"
    NEUTRAL = "Neutral"
    ANXIOUS = "Anxious"
    ANGRY = "Angry"
    UNKNOWN = "Unknown"


class SentimentResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    sentiment: Sentiment
    confidence: float = Field(..., ge=0.0, le=1.0)

    @classmethod
    def unknown(cls) -> SentimentResult:
        """Fallback used whenever analysis fails."""
        return cls(sentiment=Sentiment.UNKNOWN, confidence=0.0)
