"""HTTP middleware shared by the assistant API and the persistence sink."""

from __future__ import annotations

import logging
import uuid

from fastapi import Request, Response

logger = logging.getLogger(__name__)


async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID for log correlation and echo it as ``X-Request-ID``."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response
