"""SQLiteStore: local file-based store for single-host deployments.

Schema:
  reviews : one row per review id. Structured parts of the record (result,
             error, usage, metadata) are JSON columns; nothing queries inside
             them, so there are no sub-tables.
"""

from __future__ import annotations

import json
import logging
import sqlite3

from contentlens_store.base import BaseStore
from contentlens_store.models import ReviewRecord

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS reviews (
    review_id               TEXT PRIMARY KEY,
    status                  TEXT NOT NULL,
    created_at              TEXT NOT NULL,
    updated_at              TEXT NOT NULL,
    source_type             TEXT,
    filename                TEXT,
    content_type            TEXT,
    file_size               INTEGER,
    result_json             TEXT,
    error_json              TEXT,
    usage_json              TEXT,
    processing_started_at   TEXT,
    processing_completed_at TEXT,
    metadata_json           TEXT DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_reviews_status  ON reviews (status);
CREATE INDEX IF NOT EXISTS idx_reviews_created ON reviews (created_at);
"""

_JSON_COLUMNS = {"result": "result_json", "error": "error_json", "usage": "usage_json", "metadata": "metadata_json"}


def _dumps(value) -> str | None:
    return json.dumps(value) if value is not None else None


class SQLiteStore(BaseStore):
    """Stores review state in a local SQLite database file.

    The database file path defaults to `.contentlens.db` in the current
    working directory. Configure via .contentlens.yml:
    `store_path: /path/to/contentlens.db`.
    """

    def __init__(self, db_path: str = ".contentlens.db"):
        super().__init__()
        # Calls arrive from asyncio.to_thread workers; BaseStore's lock serialises them.
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def _load(self, review_id: str) -> ReviewRecord | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM reviews WHERE review_id=?", (review_id,)).fetchone()
        return self._row_to_record(row) if row is not None else None

    def _write(self, record: ReviewRecord) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO reviews
                  (review_id, status, created_at, updated_at, source_type, filename,
                   content_type, file_size, result_json, error_json, usage_json,
                   processing_started_at, processing_completed_at, metadata_json)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.review_id,
                    record.status,
                    record.created_at,
                    record.updated_at,
                    record.source_type,
                    record.filename,
                    record.content_type,
                    record.file_size,
                    _dumps(record.result),
                    _dumps(record.error),
                    _dumps(record.usage),
                    record.processing_started_at,
                    record.processing_completed_at,
                    json.dumps(record.metadata),
                ),
            )
            self._conn.commit()

    def list_reviews(self, status: str | None = None, limit: int = 50) -> list[ReviewRecord]:
        with self._lock:
            if status is not None:
                rows = self._conn.execute(
                    "SELECT * FROM reviews WHERE status=? ORDER BY created_at DESC LIMIT ?",
                    (status, limit),
                ).fetchall()
            else:
                rows = self._conn.execute(
                    "SELECT * FROM reviews ORDER BY created_at DESC LIMIT ?",
                    (limit,),
                ).fetchall()

        return [self._row_to_record(r) for r in rows]

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> ReviewRecord:
        decoded = {field: json.loads(row[column]) if row[column] else None for field, column in _JSON_COLUMNS.items()}
        return ReviewRecord(
            review_id=row["review_id"],
            status=row["status"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            source_type=row["source_type"],
            filename=row["filename"],
            content_type=row["content_type"],
            file_size=row["file_size"],
            result=decoded["result"],
            error=decoded["error"],
            usage=decoded["usage"],
            processing_started_at=row["processing_started_at"],
            processing_completed_at=row["processing_completed_at"],
            metadata=decoded["metadata"] or {},
        )
