"""Domain models shared by the parser, orchestrator and worker.

Every container field defaults to an empty value so consumers never have to
check for a missing section of a parsed review.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from contentlens_core.errors import InvalidMessageError

FILE_REVIEW = "file_review"
TEXT_REVIEW = "text_review"


def _coerce_size(value: Any) -> int | None:
    """Return ``value`` as an int when it is a finite number, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return None


class ReviewStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Used for diagnostics only; stores are last-writer-wins and accept any write.
VALID_TRANSITIONS: dict[ReviewStatus, set[ReviewStatus]] = {
    ReviewStatus.QUEUED: {ReviewStatus.PROCESSING},
    ReviewStatus.PROCESSING: {ReviewStatus.PROCESSING, ReviewStatus.COMPLETED, ReviewStatus.FAILED},
    ReviewStatus.FAILED: {ReviewStatus.PROCESSING, ReviewStatus.COMPLETED},
    ReviewStatus.COMPLETED: {ReviewStatus.PROCESSING},
}


class Disposition(str, Enum):
    FATAL = "fatal"
    RETRYABLE = "retryable"


@dataclass(frozen=True)
class ReviewRequest:
    """One accepted queue message, immutable for the duration of an attempt."""

    review_id: str
    upload_id: str | None = None
    message_type: str | None = None
    s3_bucket: str | None = None
    s3_key: str | None = None
    filename: str | None = None
    content_type: str | None = None
    file_size: int | None = None
    text_content: str | None = None
    user_id: str | None = None
    session_id: str | None = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @classmethod
    def from_message_body(cls, body: str | None) -> ReviewRequest:
        """Build a request from a raw queue message body.

        Raises InvalidMessageError when the body is missing, is not a JSON
        object, or carries neither ``reviewId`` nor ``uploadId``.
        """
        if not body:
            raise InvalidMessageError("Message has no body")
        try:
            data = json.loads(body)
        except (TypeError, ValueError) as e:
            raise InvalidMessageError(f"Message body is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise InvalidMessageError("Message body is not a JSON object")

        review_id = data.get("reviewId") or data.get("uploadId")
        if not review_id:
            raise InvalidMessageError("Message has neither reviewId nor uploadId")

        file_size = data.get("fileSize")
        return cls(
            review_id=str(review_id),
            upload_id=data.get("uploadId"),
            message_type=data.get("messageType"),
            s3_bucket=data.get("s3Bucket"),
            s3_key=data.get("s3Key"),
            filename=data.get("filename"),
            content_type=data.get("contentType"),
            file_size=_coerce_size(file_size),
            text_content=data.get("textContent"),
            user_id=data.get("userId"),
            session_id=data.get("sessionId"),
        )


@dataclass
class ScoreEntry:
    score: int
    note: str = ""


@dataclass
class Issue:
    """An inline issue span; ``position`` is the opener's offset in the block."""

    category: str
    text: str
    position: int


@dataclass
class ReviewedContent:
    plain_text: str = ""
    issues: list[Issue] = field(default_factory=list)


@dataclass
class Improvement:
    severity: str
    category: str
    issue: str
    why: str
    current: str = ""
    suggested: str = ""


@dataclass
class ParsedReview:
    """Structured form of one model response."""

    scores: dict[str, ScoreEntry] = field(default_factory=dict)
    reviewed_content: ReviewedContent = field(default_factory=ReviewedContent)
    improvements: list[Improvement] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.scores and not self.reviewed_content.issues and not self.improvements

    def to_dict(self) -> dict[str, Any]:
        """Render the persisted wire shape (camelCase keys)."""
        return {
            "scores": {label: {"score": s.score, "note": s.note} for label, s in self.scores.items()},
            "reviewedContent": {
                "plainText": self.reviewed_content.plain_text,
                "issues": [
                    {"category": i.category, "text": i.text, "position": i.position}
                    for i in self.reviewed_content.issues
                ],
            },
            "improvements": [
                {
                    "severity": imp.severity,
                    "category": imp.category,
                    "issue": imp.issue,
                    "why": imp.why,
                    "current": imp.current,
                    "suggested": imp.suggested,
                }
                for imp in self.improvements
            ],
        }


@dataclass
class ErrorRecord:
    user_message: str
    disposition: Disposition
    original_message: str = ""

    def to_dict(self) -> dict[str, str]:
        # original_message stays in the logs and is never persisted
        return {"message": self.user_message, "disposition": self.disposition.value}


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass
class InferenceResult:
    """What an inference provider returns for one review call.

    ``content`` is the primary text; ``raw_content`` is every text block of
    the response joined and is only used as parser fallback input.
    """

    success: bool
    blocked: bool = False
    reason: str = ""
    content: str = ""
    raw_content: str = ""
    usage: TokenUsage | None = None
    guardrail_assessment: Any = None
    stop_reason: str | None = None


@dataclass
class ProcessOutcome:
    review_id: str
    status: ReviewStatus
    message: str = ""


@dataclass
class QueueMessage:
    message_id: str
    receipt_handle: str | None
    body: str | None
    receive_count: int = 1
