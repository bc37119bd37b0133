"""LangChain tools the booking model may call.

The argument names are camelCase because they are the contract the model
sees in the tool declaration and the keys it sends back.  The dispatcher
(``hospital_agent.dispatcher``) decides which call is executed and what
happens around it; these functions only produce the tool-result text.
"""

from __future__ import annotations

import logging

from langchain_core.tools import tool

logger = logging.getLogger(__name__)

AVAILABILITY_TEMPLATE = (
    "Available slots for {department}: Tomorrow 10 AM with Dr. Smith "
    "or 2 PM with Dr. Jones."
)


# ── Tool 1: Check availability ──────────────────────────────────────


@tool
def get_doctor_availability(
    department: str,
    doctorName: str | None = None,  # noqa: N803
    date: str | None = None,
) -> str:
    """Check if a doctor/department is available. Call this when user asks for a slot.

    Args:
        department: Medical department (e.g. "Cardiology").
        doctorName: Doctor name (optional).
        date: Requested date (optional).
    """
    # Stand-in availability source: always the same two candidate slots.
    logger.debug(
        "Availability lookup: department=%s doctor=%s date=%s",
        department, doctorName, date,
    )
    return AVAILABILITY_TEMPLATE.format(department=department)


# ── Tool 2: Confirm & book ──────────────────────────────────────────


@tool
def confirm_appointment(
    patientName: str,  # noqa: N803
    department: str,
    symptoms: str,
    timeSlot: str,  # noqa: N803
    doctorName: str = "General",  # noqa: N803
) -> str:
    """Call this ONLY when the user explicitly agrees to book the appointment.

    Args:
        patientName: Name of patient.
        department: Department booked.
        symptoms: Patient symptoms.
        timeSlot: Confirmed time slot.
        doctorName: Doctor name.
    """
    return (
        f"Appointment confirmed for {patientName} in {department} "
        f"with {doctorName} at {timeSlot}."
    )


ALL_TOOLS = [get_doctor_availability, confirm_appointment]
