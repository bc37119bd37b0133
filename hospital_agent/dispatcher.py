"""Executes the tool call a model response asks for.

Only the first tool call of a response is honoured; any further calls are
logged and left unexecuted (the session answers them with a "not executed"
result before the next turn).

The two tools behave differently on purpose:

* ``get_doctor_availability`` is answered synchronously.  Its result goes
  back to the model, whose follow-up reply is then decoded for the patient.
* ``confirm_appointment`` replies to the patient immediately with a canned
  confirmation and hands sentiment scoring and persistence to the
  ``BackgroundRecorder``, so the booking feels instant even when that
  work is slow or fails.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import Future
from dataclasses import dataclass

from hospital_agent.errors import InvalidToolCall
from hospital_agent.models import AppointmentDetails, RawModelResponse, Reply, ToolCall
from hospital_agent.sentiment import BackgroundRecorder
from hospital_agent.session import ConversationSession
from hospital_agent.tools.hospital import confirm_appointment, get_doctor_availability

logger = logging.getLogger(__name__)

APOLOGY_REPLY = Reply(
    display_text="I'm sorry, I couldn't complete that request. Could you repeat your details?",
    speech_text="I'm sorry, I couldn't complete that. Could you repeat your details?",
)
CONFIRMATION_DISPLAY = "Appointment Confirmed for {patient_name}. Details have been saved."
CONFIRMATION_SPEECH = "Your appointment is confirmed. I have saved your details."


@dataclass(frozen=True)
class DispatchResult:
    """Either a final ``reply`` or a ``follow_up`` model response to decode."""

    reply: Reply | None = None
    follow_up: RawModelResponse | None = None
    recording: Future | None = None


class ToolDispatcher:
    def __init__(self, background: BackgroundRecorder):
        self._background = background

    def dispatch(self, response: RawModelResponse, session: ConversationSession) -> DispatchResult:
        """Execute the first tool call in *response*.

        Raises:
            ModelUnavailable: the availability follow-up could not be fetched.
        """
        if not response.tool_calls:
            return DispatchResult(follow_up=response)

        call = response.tool_calls[0]
        if len(response.tool_calls) > 1:
            logger.warning(
                "Model requested %d tool calls; executing only %s",
                len(response.tool_calls), call.name,
            )

        try:
            if call.name == get_doctor_availability.name:
                return self._check_availability(call, session)
            if call.name == confirm_appointment.name:
                return self._confirm(call, session)
            raise InvalidToolCall(f"Unknown tool {call.name!r}")
        except InvalidToolCall as exc:
            logger.warning("Rejected tool call %s: %s", call.name, exc)
            session.record_tool_result(call, f"Error: {exc}")
            return DispatchResult(reply=APOLOGY_REPLY)

    def _check_availability(self, call: ToolCall, session: ConversationSession) -> DispatchResult:
        args = {
            key: str(call.args[key])
            for key in ("department", "doctorName", "date")
            if call.args.get(key) not in (None, "")
        }
        args.setdefault("department", "the requested department")
        result = get_doctor_availability.invoke(args)
        logger.info("Availability lookup for %s", args["department"])

        follow_up = session.submit_tool_result(call, json.dumps({"result": result}))
        return DispatchResult(follow_up=follow_up)

    def _confirm(self, call: ToolCall, session: ConversationSession) -> DispatchResult:
        details = AppointmentDetails.from_tool_args(call.args)
        transcript = session.transcript
        session.record_tool_result(call, confirm_appointment.invoke(details.to_payload()))

        recording = self._background.submit(details, transcript)
        logger.info(
            "Appointment confirmed for %s (%s, %s)",
            details.patient_name, details.department, details.time_slot,
        )
        return DispatchResult(
            reply=Reply(
                display_text=CONFIRMATION_DISPLAY.format(patient_name=details.patient_name),
                speech_text=CONFIRMATION_SPEECH,
            ),
            recording=recording,
        )
