"""Failure taxonomy for the booking agent.

Only ``ModelUnavailable`` on the primary conversational turn is ever visible
to the patient.  Everything else is recovered where it is raised: malformed
replies fall back to the raw text, invalid tool calls become an apology,
analysis failures become ``Unknown/0`` and persistence failures are logged.
"""

from __future__ import annotations


class HospitalAgentError(Exception):
    """Base class for every error raised by this package."""


class ModelUnavailable(HospitalAgentError):
    """The remote model could not be reached, timed out or returned an error."""


class MalformedModelOutput(HospitalAgentError):
    """A model reply did not match the expected JSON structure."""


class InvalidToolCall(HospitalAgentError):
    """A tool call was unknown or lacked required arguments."""

    def __init__(self, message: str, missing: tuple[str, ...] = ()):
        self.missing = missing
        super().__init__(message)


class AnalysisFailure(HospitalAgentError):
    """Sentiment analysis of a transcript failed."""


class PersistenceFailure(HospitalAgentError):
    """The persistence sink rejected a record or was unreachable."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class SessionBusy(HospitalAgentError):
    """A turn was submitted while the previous one was still in flight."""


class UnsupportedLanguage(HospitalAgentError):
    """The requested language tag has no configuration."""
