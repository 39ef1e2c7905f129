"""Exception hierarchy for review processing.

Each type carries a class-level ``disposition`` that tells the worker loop
whether redelivering the message could change the outcome.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from contentlens_core.models import ErrorRecord

# Plain strings so this module has no import cycle with models.Disposition,
# which is a str Enum and compares equal to them.
FATAL = "fatal"
RETRYABLE = "retryable"


class ContentLensError(Exception):
    disposition = RETRYABLE


class InvalidMessageError(ContentLensError):
    """The queue message cannot be turned into a review request."""

    disposition = FATAL


class ContentResolutionError(ContentLensError):
    """Fetching or extracting the text to review failed."""


class UnsupportedContentError(ContentResolutionError):
    disposition = FATAL


class UnknownMessageTypeError(ContentResolutionError):
    disposition = FATAL


class InferenceError(ContentLensError):
    """The inference provider failed or returned an unusable response."""


class ContentBlockedError(InferenceError):
    """The provider's content policy blocked the request.

    Redelivery would hit the same policy, so this is never retried.
    """

    disposition = FATAL


class ReviewFailedError(ContentLensError):
    """Raised by the orchestrator once a failed attempt has been handled.

    ``persisted`` is False when the failure could not be recorded in the
    state store (double fault).
    """

    def __init__(self, review_id: str, record: ErrorRecord, persisted: bool):
        super().__init__(f"Review {review_id} failed: {record.user_message}")
        self.review_id = review_id
        self.record = record
        self.persisted = persisted

    @property
    def disposition(self):  # type: ignore[override]
        return self.record.disposition


class QueueError(ContentLensError):
    pass


class QueueUnavailableError(QueueError):
    """The queue is missing or access is denied. Retrying cannot help."""

    disposition = FATAL


class TransientQueueError(QueueError):
    """Throttling or network failure talking to the queue."""
