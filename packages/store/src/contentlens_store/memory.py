"""MemoryStore: process-local store, the default when nothing is configured.

State is lost when the process exits, so this suits tests and single-process
runs of `contentlens worker` only. Records are copied in and out so callers
never hold a reference into the store.
"""

from __future__ import annotations

import copy

from contentlens_store.base import BaseStore
from contentlens_store.models import ReviewRecord


class MemoryStore(BaseStore):
    def __init__(self):
        super().__init__()
        self._records: dict[str, ReviewRecord] = {}

    def _load(self, review_id: str) -> ReviewRecord | None:
        record = self._records.get(review_id)
        return copy.deepcopy(record) if record is not None else None

    def _write(self, record: ReviewRecord) -> None:
        self._records[record.review_id] = copy.deepcopy(record)

    def list_reviews(self, status: str | None = None, limit: int = 50) -> list[ReviewRecord]:
        with self._lock:
            records = [r for r in self._records.values() if status is None or r.status == status]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return [copy.deepcopy(r) for r in records[:limit]]
