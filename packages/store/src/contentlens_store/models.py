"""Review state data models.

Decoupled from contentlens_core so the store layer can be used independently
and contentlens_core has no knowledge of persistence concerns. Statuses are
plain strings here for the same reason.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone

QUEUED = "queued"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"
TERMINAL_STATUSES = (COMPLETED, FAILED)

# Fields that identify a review and never change after creation.
IMMUTABLE_FIELDS = frozenset({"review_id", "created_at", "source_type", "filename"})


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ReviewRecord:
    """The current state of one review, keyed by review_id."""

    review_id: str
    status: str
    created_at: str  # ISO-8601 UTC timestamp
    updated_at: str
    source_type: str | None = None  # "file_review" | "text_review"
    filename: str | None = None
    content_type: str | None = None
    file_size: int | None = None
    result: dict | None = None  # {reviewData, rawResponse, guardrailAssessment, stopReason, completedAt}
    error: dict | None = None  # {message, disposition} or the generic double-fault marker
    usage: dict | None = None  # {inputTokens, outputTokens, totalTokens}
    processing_started_at: str | None = None
    processing_completed_at: str | None = None
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> ReviewRecord:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})
