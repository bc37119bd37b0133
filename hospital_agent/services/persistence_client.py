"""HTTP client for the appointment persistence sink.

Posts one JSON record per confirmed booking to ``POST /log-appointment``.
Unlike a read API there is no retry loop here: a record is posted exactly
once, and a failure is reported to the caller as ``PersistenceFailure``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from hospital_agent.config import PERSISTENCE_TIMEOUT_SECONDS, PERSISTENCE_URL
from hospital_agent.errors import PersistenceFailure
from hospital_agent.services.metrics import metrics

logger = logging.getLogger(__name__)

LOG_APPOINTMENT_PATH = "/log-appointment"


class PersistenceClient:
    """Thin wrapper around the sink's HTTP API."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self._base_url = base_url or PERSISTENCE_URL
        self._client = httpx.Client(
            base_url=self._base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout or PERSISTENCE_TIMEOUT_SECONDS,
            transport=transport,
        )

    def log_appointment(self, payload: dict[str, Any]) -> int:
        """POST *payload* and return the id assigned by the sink.

        Raises:
            PersistenceFailure: the sink was unreachable, returned an error
                status, or answered ``success: false``.
        """
        try:
            with metrics.timed("sink", "log_appointment"):
                response = self._client.post(LOG_APPOINTMENT_PATH, json=payload)
        except httpx.HTTPError as exc:
            raise PersistenceFailure(
                f"Persistence sink unreachable at {self._base_url}: {type(exc).__name__}"
            ) from exc

        if response.status_code >= 400:
            raise PersistenceFailure(
                f"Persistence sink error {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise PersistenceFailure("Persistence sink returned a non-JSON body") from exc

        if not isinstance(body, dict):
            raise PersistenceFailure("Persistence sink returned a non-object body")
        if not body.get("success"):
            raise PersistenceFailure(
                "Persistence sink reported failure", status_code=response.status_code,
            )
        record_id = body.get("id")
        if isinstance(record_id, bool) or not isinstance(record_id, int):
            raise PersistenceFailure(f"Persistence sink returned no record id: {record_id!r}")
        return record_id

    def close(self) -> None:
        self._client.close()
