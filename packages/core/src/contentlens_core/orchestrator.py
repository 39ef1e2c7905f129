"""Review orchestration: drives one review request from `processing` to a terminal state.

    process(request)
      1. mark processing            (failure logged, review continues)
      2. resolve text               (content source)
      3. request the review         (inference client, priming history + prompt)
      4. parse the response         (primary text, raw text as fallback)
      5. save result                (→ completed)
      on error: classify → save error (→ failed) → double-fault handling
                → raise ReviewFailedError for the worker to dispose of the message

Adapters are blocking SDK wrappers; every call into them runs on a worker
thread via asyncio.to_thread so several reviews can be in flight at once.

The state store is reached through the ReviewStateStore protocol, so
contentlens_core never imports contentlens_store.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Protocol

from contentlens_core.classifier import classify
from contentlens_core.errors import ContentBlockedError, InferenceError, ReviewFailedError
from contentlens_core.models import InferenceResult, ParsedReview, ProcessOutcome, ReviewRequest, ReviewStatus
from contentlens_core.parser import parse_review
from contentlens_core.providers.base import BaseInferenceClient
from contentlens_core.sources.base import BaseContentSource

logger = logging.getLogger(__name__)

USER_PROMPT_TEMPLATE = (
    "Please review the following content:\n\n---\n{content}\n---\n\n"
    "Provide a comprehensive content review following the guidelines in your system prompt."
)
PRIMING_ACKNOWLEDGEMENT = (
    "I understand. I will review content according to GOV.UK standards "
    "and provide structured feedback as specified."
)
GENERIC_FAILURE = {
    "message": "Processing failed - error details unavailable",
    "code": "SAVE_ERROR_FAILED",
}


class ReviewStateStore(Protocol):
    def update_status(self, review_id: str, status: str, extra: dict | None = None) -> Any: ...

    def save_result(self, review_id: str, result: dict, usage: dict | None = None) -> Any: ...

    def save_error(self, review_id: str, error: dict) -> Any: ...


def _elapsed_ms(start: float) -> int:
    return round((time.monotonic() - start) * 1000)


def build_priming_history(system_prompt: str) -> list[dict]:
    """The instructions turn and the model's acknowledgement that precede every review."""
    return [
        {"role": "user", "content": system_prompt},
        {"role": "assistant", "content": PRIMING_ACKNOWLEDGEMENT},
    ]


def build_user_prompt(text: str) -> str:
    return USER_PROMPT_TEMPLATE.format(content=text)


class ReviewOrchestrator:
    def __init__(
        self,
        store: ReviewStateStore,
        content_source: BaseContentSource,
        inference: BaseInferenceClient,
        system_prompt: str,
    ):
        self.store = store
        self.content_source = content_source
        self.inference = inference
        self.system_prompt = system_prompt

    async def process(self, request: ReviewRequest) -> ProcessOutcome:
        """Run one review attempt.

        Returns a ProcessOutcome on success. Any failure is recorded against
        the review and re-raised as ReviewFailedError chained to the cause.
        """
        review_id = request.review_id
        start = time.monotonic()
        logger.info(
            "Review %s started (type=%s, file=%s, size=%s)",
            review_id,
            request.message_type,
            request.filename,
            request.file_size,
        )

        await self._mark_processing(review_id)

        try:
            text = await self._resolve_text(request)
            result = await self._request_review(review_id, text)
            parsed, parsed_text = self.parse_with_fallback(result.content, result.raw_content, review_id)
            await self._save_result(review_id, parsed, parsed_text, result)
        except Exception as e:
            record, persisted = await self._record_failure(review_id, e, start)
            raise ReviewFailedError(review_id, record, persisted) from e

        logger.info("Review %s completed in %dms", review_id, _elapsed_ms(start))
        return ProcessOutcome(
            review_id=review_id,
            status=ReviewStatus.COMPLETED,
            message="Review completed successfully",
        )

    # ------------------------------------------------------------------ #
    # Steps                                                                #
    # ------------------------------------------------------------------ #

    async def _mark_processing(self, review_id: str) -> None:
        step = time.monotonic()
        try:
            await asyncio.to_thread(self.store.update_status, review_id, ReviewStatus.PROCESSING.value)
        except Exception:
            logger.critical(
                "Failed to update review %s status to processing - attempting to continue",
                review_id,
                exc_info=True,
            )
            return
        logger.debug("Review %s marked processing in %dms", review_id, _elapsed_ms(step))

    async def _resolve_text(self, request: ReviewRequest) -> str:
        step = time.monotonic()
        text = await asyncio.to_thread(self.content_source.resolve_text, request)
        logger.info(
            "Review %s: resolved %d characters in %dms",
            request.review_id,
            len(text),
            _elapsed_ms(step),
        )
        return text

    async def _request_review(self, review_id: str, text: str) -> InferenceResult:
        step = time.monotonic()
        result = await asyncio.to_thread(
            self.inference.send_message,
            build_user_prompt(text),
            build_priming_history(self.system_prompt),
        )
        logger.info("Review %s: inference finished in %dms", review_id, _elapsed_ms(step))

        if not result.success:
            if result.blocked:
                raise ContentBlockedError("Content blocked by guardrails")
            raise InferenceError(f"Inference review failed: {result.reason or 'unknown reason'}")
        return result

    def parse_with_fallback(self, primary: str, fallback: str = "", review_id: str = "") -> tuple[ParsedReview, str]:
        """Parse ``primary``; parse ``fallback`` instead when that yields nothing.

        Returns the parsed review together with the text it was parsed from.
        """
        step = time.monotonic()
        parsed = parse_review(primary)
        used = primary

        if (not primary or parsed.is_empty()) and fallback and fallback != primary:
            logger.warning(
                "Review %s: primary response %s, parsing raw response instead",
                review_id,
                "was empty" if not primary else "contained no structured review",
            )
            parsed = parse_review(fallback)
            used = fallback
        elif parsed.is_empty():
            logger.warning("Review %s: response contained no structured review", review_id)

        logger.info(
            "Review %s: parsed %d scores, %d issues, %d improvements in %dms",
            review_id,
            len(parsed.scores),
            len(parsed.reviewed_content.issues),
            len(parsed.improvements),
            _elapsed_ms(step),
        )
        return parsed, used

    async def _save_result(self, review_id: str, parsed: ParsedReview, raw: str, result: InferenceResult) -> None:
        step = time.monotonic()
        payload = {
            "reviewData": parsed.to_dict(),
            "rawResponse": raw,
            "guardrailAssessment": result.guardrail_assessment,
            "stopReason": result.stop_reason,
            "completedAt": datetime.now(timezone.utc).isoformat(),
        }
        usage = result.usage.to_dict() if result.usage else None
        await asyncio.to_thread(self.store.save_result, review_id, payload, usage)
        logger.info("Review %s: result saved in %dms", review_id, _elapsed_ms(step))

    # ------------------------------------------------------------------ #
    # Failure handling                                                     #
    # ------------------------------------------------------------------ #

    async def _record_failure(self, review_id: str, error: Exception, start: float):
        """Persist the classified error. Never raises.

        Returns ``(record, persisted)``.
        """
        record = classify(error)
        logger.error(
            "Review %s failed after %dms: %s",
            review_id,
            _elapsed_ms(start),
            record.original_message,
        )

        try:
            await asyncio.to_thread(self.store.save_error, review_id, record.to_dict())
        except Exception as save_error:
            persisted = await self._handle_double_fault(review_id, save_error)
            return record, persisted

        logger.info("Review %s marked failed: %s", review_id, record.user_message)
        return record, True

    async def _handle_double_fault(self, review_id: str, save_error: Exception) -> bool:
        logger.critical(
            "Failed to save error for review %s (%s) - review will be stuck in processing",
            review_id,
            save_error,
        )
        try:
            await asyncio.to_thread(
                self.store.update_status,
                review_id,
                ReviewStatus.FAILED.value,
                {"error": dict(GENERIC_FAILURE)},
            )
        except Exception as retry_error:
            logger.critical(
                "Review %s is permanently stuck - manual intervention required (%s)",
                review_id,
                retry_error,
            )
            return False
        logger.warning("Review %s marked failed on retry with a generic error", review_id)
        return True
