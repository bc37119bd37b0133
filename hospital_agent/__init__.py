"""Hospital Voice Assistant — books hospital appointments by voice.

Architecture Overview
=====================

Each patient utterance runs through one sequential turn pipeline (a small
**LangGraph** ``StateGraph``):

1. **model** — the ``ConversationSession`` sends the utterance, with the full
   history and two bound tools, to the Anthropic model.
2. **tools** — if the model asked for a tool, the ``ToolDispatcher`` runs the
   first call: an availability lookup is fed back to the model for a
   follow-up reply; a booking confirmation answers the patient at once and
   schedules sentiment enrichment in the background.
3. **decode** — the reply decoder turns the model's ``{"text", "speech"}``
   JSON into screen and speech text, falling back to the raw text.

Key Design Decisions
--------------------
- **Session per language**: switching language discards the session, its
  model history and its transcript.  The session's transcript is the source
  of truth; the UI scrollback is a read-only projection of it.
- **Instant confirmation**: sentiment analysis and the POST to the
  persistence sink run on a ``BackgroundRecorder`` thread pool and can never
  block or fail a booking reply.
- **Tolerant decoding**: a model that breaks the output contract degrades to
  verbatim text rather than an error.
- **Persistence sink**: a separate FastAPI app appends records to a JSON
  array file, serialising writes behind a lock.

Package Structure
-----------------
- ``hospital_agent/assistant.py`` — turn graph and ``VoiceAssistant`` facade
- ``hospital_agent/session.py`` — conversation session and language-keyed manager
- ``hospital_agent/dispatcher.py`` — tool-call execution
- ``hospital_agent/decoder.py`` — reply decoding
- ``hospital_agent/sentiment.py`` — sentiment recorder and background runner
- ``hospital_agent/config.py`` — configuration from environment variables
- ``hospital_agent/server.py`` / ``sink_server.py`` — FastAPI applications
- ``hospital_agent/main.py`` — CLI chat loop
- ``hospital_agent/services/`` — sink client, JSON store, metrics
- ``hospital_agent/tools/`` — LangChain tool declarations
- ``hospital_agent/api/`` — FastAPI routes and Pydantic schemas
"""
