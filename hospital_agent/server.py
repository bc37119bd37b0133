"""FastAPI server for the hospital voice booking assistant.

Run with:
    uvicorn hospital_agent.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hospital_agent.api.middleware import add_request_id
from hospital_agent.api.routes import router
from hospital_agent.assistant import AssistantRegistry
from hospital_agent.config import CORS_ORIGINS, SERVER_HOST, SERVER_PORT

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Create the assistant registry on start-up and drain recordings on shutdown."""
    application.state.registry = AssistantRegistry()
    logger.info("Assistant registry ready.")
    yield
    logger.info("Waiting for background recordings to finish…")
    application.state.registry.shutdown()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Hospital Voice Booking Assistant",
    description="Voice-driven hospital appointment booking with sentiment enrichment.",
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

app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Hospital Voice Booking Assistant",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


if __name__ == "__main__":
    logger.info("Starting assistant API on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "hospital_agent.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
