"""Append-only JSON-file store behind the persistence sink.

Records live in a single JSON array.  Appending is a read → append → write
cycle, so it is serialised with a lock and the file is replaced atomically
(write to a temp file, then ``os.replace``).  Ids are time-derived
milliseconds, bumped when needed so they stay strictly increasing even for
appends inside the same millisecond.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def _iso_timestamp(now: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


class AppointmentStore:
    def __init__(self, path: Path | str):
        self._path = Path(path)
        self._lock = threading.Lock()
        self._last_id = 0
        self.ensure_initialized()

    @property
    def path(self) -> Path:
        return self._path

    def ensure_initialized(self) -> None:
        """Create the store as an empty array if the file does not exist."""
        with self._lock:
            if not self._path.exists():
                self._path.parent.mkdir(parents=True, exist_ok=True)
                self._write([])
                logger.info("Initialised appointment store at %s", self._path)

    def _read(self) -> list[dict[str, Any]]:
        content = self._path.read_text(encoding="utf-8")
        data = json.loads(content or "[]")
        if not isinstance(data, list):
            raise ValueError(f"{self._path} does not hold a JSON array")
        return data

    def _write(self, records: list[dict[str, Any]]) -> None:
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".appointments-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(records, fh, indent=2, ensure_ascii=False)
            os.replace(tmp, self._path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _next_id(self, records: list[dict[str, Any]]) -> int:
        last_stored = max((r.get("id", 0) for r in records if isinstance(r.get("id"), int)), default=0)
        self._last_id = max(int(time.time() * 1000), self._last_id + 1, last_stored + 1)
        return self._last_id

    def append(self, entry: dict[str, Any]) -> dict[str, Any]:
        """Stamp *entry* with ``id`` and ``timestamp`` and append it.

        Raises:
            OSError / ValueError: the store could not be read or written.
        """
        with self._lock:
            records = self._read()
            record = {
                "id": self._next_id(records),
                "timestamp": _iso_timestamp(datetime.now(UTC)),
                **{k: v for k, v in entry.items() if k not in ("id", "timestamp")},
            }
            records.append(record)
            self._write(records)
        return record

    def all_records(self) -> list[dict[str, Any]]:
        with self._lock:
            return self._read()
