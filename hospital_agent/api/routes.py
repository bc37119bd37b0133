"""FastAPI route definitions for the assistant API."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request

from hospital_agent.api.schemas import (
    ChatRequest,
    ChatResponse,
    HealthResponse,
    LanguageRequest,
    TranscriptItem,
    TranscriptResponse,
)
from hospital_agent.assistant import AssistantRegistry, VoiceAssistant
from hospital_agent.errors import SessionBusy, UnsupportedLanguage

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_registry(request: Request) -> AssistantRegistry:
    """Retrieve the assistant registry created during the app lifespan."""
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(
            status_code=503,
            detail="The assistant is still starting up. Please try again in a moment.",
        )
    return registry


def _transcript_response(session_id: str, assistant: VoiceAssistant) -> TranscriptResponse:
    return TranscriptResponse(
        session_id=session_id,
        language=assistant.language.tag,
        display_name=assistant.language.display_name,
        entries=[
            TranscriptItem(speaker=e.speaker.value, text=e.text)
            for e in assistant.transcript
        ],
    )


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse()


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, http_request: Request):
    """Run one conversational turn for the client identified by ``session_id``.

    ``handle_utterance`` blocks on the model API, so it runs in a worker
    thread.  A turn sent while the previous one is still running gets 409.
    """
    assistant = _get_registry(http_request).get_or_create(request.session_id)
    request_id = getattr(http_request.state, "request_id", "?")

    try:
        result = await asyncio.to_thread(assistant.handle_utterance, request.message)
    except SessionBusy as e:
        raise HTTPException(
            status_code=409,
            detail="Still working on your previous message. Please wait.",
        ) from e
    except Exception as e:
        logger.exception("[%s] Error processing chat request", request_id)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from e

    if result is None:
        raise HTTPException(status_code=422, detail="The message was empty.")

    return ChatResponse(
        display_text=result.reply.display_text,
        speech_text=result.reply.speech_text,
        status=result.status,
        error=result.error,
        session_id=request.session_id,
        language=assistant.language.tag,
    )


@router.post("/language", response_model=TranscriptResponse)
async def switch_language(request: LanguageRequest, http_request: Request):
    """Select a language; the conversation starts over with an empty transcript."""
    assistant = _get_registry(http_request).get_or_create(request.session_id)
    try:
        assistant.switch_language(request.language)
    except UnsupportedLanguage as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return _transcript_response(request.session_id, assistant)


@router.get("/transcript/{session_id}", response_model=TranscriptResponse)
async def get_transcript(session_id: str, http_request: Request):
    assistant = _get_registry(http_request).get(session_id)
    if assistant is None:
        raise HTTPException(status_code=404, detail="Unknown session.")
    return _transcript_response(session_id, assistant)


@router.delete("/session/{session_id}", status_code=204)
async def end_session(session_id: str, http_request: Request):
    """Forget a client's assistant, its transcript and model history."""
    if not _get_registry(http_request).remove(session_id):
        raise HTTPException(status_code=404, detail="Unknown session.")
