"""Abstract store interface.

Any storage backend (memory, SQLite, S3) implements this interface. The CLI
and the orchestrator depend on BaseStore's methods, not on a concrete
backend, so backends are swappable without touching either.

Writes are upserts keyed by review id and are last-writer-wins. The merge
rules live here so every backend applies them identically:

  - identity fields (review_id, created_at, source_type, filename) are never
    overwritten once set
  - processing_started_at is stamped on the first `processing` write
  - processing_completed_at is stamped on the first terminal write

Backends supply _load / _write / list_reviews only.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import fields

from contentlens_store.models import (
    COMPLETED,
    FAILED,
    IMMUTABLE_FIELDS,
    PROCESSING,
    QUEUED,
    TERMINAL_STATUSES,
    ReviewRecord,
    utc_now,
)

logger = logging.getLogger(__name__)

_RECORD_FIELDS = {f.name for f in fields(ReviewRecord)}


class BaseStore(ABC):
    """Pluggable persistence layer for review state.

    Implementations must be safe to call from worker threads: the
    orchestrator calls the store through asyncio.to_thread.
    """

    def __init__(self):
        self._lock = threading.RLock()

    # ------------------------------------------------------------------ #
    # Backend hooks                                                        #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _load(self, review_id: str) -> ReviewRecord | None:
        """Return the stored record or None."""

    @abstractmethod
    def _write(self, record: ReviewRecord) -> None:
        """Persist ``record``, replacing any previous version."""

    @abstractmethod
    def list_reviews(self, status: str | None = None, limit: int = 50) -> list[ReviewRecord]:
        """Return up to ``limit`` reviews, newest first, optionally filtered by status.

        Returns an empty list if no reviews exist; never raises for that.
        """

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional: subclasses that need cleanup should override this.
        Default is a no-op so callers can always call close() safely.
        """

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def get_review(self, review_id: str) -> ReviewRecord | None:
        return self._load(review_id)

    def create_review(
        self,
        review_id: str,
        source_type: str | None = None,
        filename: str | None = None,
        content_type: str | None = None,
        file_size: int | None = None,
    ) -> ReviewRecord:
        """Record a newly submitted review in the `queued` state."""
        return self._upsert(
            review_id,
            QUEUED,
            {
                "source_type": source_type,
                "filename": filename,
                "content_type": content_type,
                "file_size": file_size,
            },
        )

    def update_status(self, review_id: str, status: str, extra: dict | None = None) -> ReviewRecord:
        return self._upsert(review_id, status, extra or {})

    def save_result(self, review_id: str, result: dict, usage: dict | None = None) -> ReviewRecord:
        """Store a completed review and mark it `completed`. Clears any earlier error."""
        return self._upsert(review_id, COMPLETED, {"result": result, "usage": usage, "error": None})

    def save_error(self, review_id: str, error: dict) -> ReviewRecord:
        """Store the user-facing error and mark the review `failed`."""
        return self._upsert(review_id, FAILED, {"error": error})

    # ------------------------------------------------------------------ #
    # Merge                                                                #
    # ------------------------------------------------------------------ #

    def _upsert(self, review_id: str, status: str, changes: dict) -> ReviewRecord:
        with self._lock:
            now = utc_now()
            record = self._load(review_id)
            if record is None:
                record = ReviewRecord(review_id=review_id, status=status, created_at=now, updated_at=now)
                is_new = True
            else:
                is_new = False

            for key, value in changes.items():
                if key not in _RECORD_FIELDS:
                    record.metadata[key] = value
                elif key in IMMUTABLE_FIELDS and not is_new and getattr(record, key) is not None:
                    if value is not None and value != getattr(record, key):
                        logger.warning("Ignoring attempt to overwrite %s of review %s", key, review_id)
                else:
                    setattr(record, key, value)

            previous = record.status
            record.status = status
            record.updated_at = now
            if status == PROCESSING and not record.processing_started_at:
                record.processing_started_at = now
            if status in TERMINAL_STATUSES and not record.processing_completed_at:
                record.processing_completed_at = now

            self._write(record)

        logger.debug("Review %s: %s -> %s", review_id, previous if not is_new else "new", status)
        return record
