"""FastAPI server for the appointment persistence sink.

Run with:
    uvicorn hospital_agent.sink_server:app --host 0.0.0.0 --port 4000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hospital_agent.api.middleware import add_request_id
from hospital_agent.api.sink_routes import router
from hospital_agent.config import APPOINTMENTS_FILE, CORS_ORIGINS, SERVER_HOST, SINK_PORT
from hospital_agent.services.appointment_store import AppointmentStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    application.state.store = AppointmentStore(APPOINTMENTS_FILE)
    logger.info("Appointment store: %s", APPOINTMENTS_FILE)
    yield


app = FastAPI(
    title="Appointment Sink",
    description="Append-only JSON store for confirmed appointments.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(add_request_id)

app.include_router(router)


if __name__ == "__main__":
    logger.info("Starting appointment sink on %s:%d", SERVER_HOST, SINK_PORT)
    uvicorn.run("hospital_agent.sink_server:app", host=SERVER_HOST, port=SINK_PORT)
