"""Routes for the appointment persistence sink."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from hospital_agent.api.schemas import HealthResponse, LogAppointmentRequest, LogAppointmentResponse
from hospital_agent.services.appointment_store import AppointmentStore

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_store(request: Request) -> AppointmentStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="The appointment store is not ready.")
    return store


@router.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse(service="appointment-sink")


@router.post("/log-appointment", response_model=LogAppointmentResponse)
async def log_appointment(entry: LogAppointmentRequest, request: Request):
    """Append one appointment record; the store assigns ``id`` and ``timestamp``."""
    store = _get_store(request)
    try:
        record = await asyncio.to_thread(store.append, entry.model_dump(by_alias=True))
    except (OSError, ValueError):
        logger.exception("Failed to save appointment for %s", entry.patient_name)
        return JSONResponse(status_code=500, content={"success": False})

    logger.info("[SAVED] Appointment for %s", record["patientName"])
    return LogAppointmentResponse(success=True, id=record["id"])


@router.get("/appointments")
async def list_appointments(request: Request) -> list[dict]:
    store = _get_store(request)
    try:
        return await asyncio.to_thread(store.all_records)
    except (OSError, ValueError) as e:
        logger.exception("Failed to read appointment store")
        raise HTTPException(status_code=500, detail="Could not read appointments.") from e
