"""Content sources resolve a review request into the text to review.

Message-type dispatch lives here so every backend resolves requests the same
way; a backend only supplies ``fetch_object``.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

from contentlens_core.errors import ContentResolutionError, UnknownMessageTypeError
from contentlens_core.models import FILE_REVIEW, TEXT_REVIEW, ReviewRequest
from contentlens_core.utils.text import extract_text

logger = logging.getLogger(__name__)


class BaseContentSource(ABC):
    @abstractmethod
    def fetch_object(self, bucket: str | None, key: str | None) -> bytes:
        """Return the raw bytes stored at ``bucket``/``key``. Raise on failure."""

    def resolve_text(self, request: ReviewRequest) -> str:
        if request.message_type == FILE_REVIEW:
            return self._resolve_file(request)
        if request.message_type == TEXT_REVIEW:
            return self._resolve_text(request)
        raise UnknownMessageTypeError(f"Unknown message type: {request.message_type}")

    def _fetch(self, request: ReviewRequest) -> bytes:
        if not request.s3_key:
            raise ContentResolutionError(f"Review {request.review_id} has no content location")
        start = time.monotonic()
        try:
            data = self.fetch_object(request.s3_bucket, request.s3_key)
        except ContentResolutionError:
            raise
        except Exception as e:
            raise ContentResolutionError(f"Failed to fetch content for {request.review_id}: {e}") from e
        logger.info(
            "Fetched %d bytes for review %s in %dms",
            len(data),
            request.review_id,
            (time.monotonic() - start) * 1000,
        )
        return data

    def _resolve_file(self, request: ReviewRequest) -> str:
        data = self._fetch(request)
        return extract_text(data, request.content_type, request.filename or "unknown")

    def _resolve_text(self, request: ReviewRequest) -> str:
        if request.text_content:
            return request.text_content
        data = self._fetch(request)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ContentResolutionError(f"Text content for {request.review_id} is not valid UTF-8") from e
