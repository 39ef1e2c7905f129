"""Tests for ReviewOrchestrator.

The state store, content source and inference client are replaced with
small in-memory fakes so each failure path can be triggered directly.
"""

import logging

import pytest

from contentlens_core.errors import ReviewFailedError, UnsupportedContentError
from contentlens_core.models import (
    Disposition,
    InferenceResult,
    ReviewRequest,
    ReviewStatus,
    TokenUsage,
)
from contentlens_core.orchestrator import (
    GENERIC_FAILURE,
    PRIMING_ACKNOWLEDGEMENT,
    ReviewOrchestrator,
    build_priming_history,
    build_user_prompt,
)
from contentlens_core.providers.base import BaseInferenceClient
from contentlens_core.sources.base import BaseContentSource

STRUCTURED = "[SCORES]\nClarity: 4/5 - Clear\n[/SCORES]"


class FakeStore:
    def __init__(self, fail_status=False, fail_save_error=False, fail_retry=False, fail_save_result=False):
        self.fail_status = fail_status
        self.fail_save_error = fail_save_error
        self.fail_retry = fail_retry
        self.fail_save_result = fail_save_result
        self.status_calls = []
        self.results = []
        self.errors = []

    def update_status(self, review_id, status, extra=None):
        self.status_calls.append((review_id, status, extra))
        if status == "processing" and self.fail_status:
            raise ConnectionError("store down")
        if status == "failed" and self.fail_retry:
            raise ConnectionError("store still down")

    def save_result(self, review_id, result, usage=None):
        if self.fail_save_result:
            raise ConnectionError("write failed")
        self.results.append((review_id, result, usage))

    def save_error(self, review_id, error):
        if self.fail_save_error:
            raise ConnectionError("cannot save error")
        self.errors.append((review_id, error))


class FakeSource(BaseContentSource):
    def __init__(self, text="Some content to review.", error=None):
        self.text = text
        self.error = error
        self.requests = []

    def fetch_object(self, bucket, key):
        raise AssertionError("not used")

    def resolve_text(self, request):
        self.requests.append(request)
        if self.error:
            raise self.error
        return self.text


class FakeInference(BaseInferenceClient):
    def __init__(self, result):
        self.result = result
        self.messages = []

    def _call_api(self, messages):
        self.messages.append(messages)
        return self.result


def _ok(content=STRUCTURED, raw=None):
    return InferenceResult(
        success=True,
        content=content,
        raw_content=content if raw is None else raw,
        usage=TokenUsage(10, 20, 30),
        stop_reason="end_turn",
    )


def _orchestrator(store=None, source=None, result=None):
    return ReviewOrchestrator(
        store=store or FakeStore(),
        content_source=source or FakeSource(),
        inference=FakeInference(result or _ok()),
        system_prompt="Review rules",
    )


REQUEST = ReviewRequest(review_id="r-1", message_type="text_review", text_content="Some content to review.")


# ---------------------------------------------------------------------------
# Prompt assembly
# ---------------------------------------------------------------------------


class TestPrompts:
    def test_priming_history(self):
        assert build_priming_history("Rules") == [
            {"role": "user", "content": "Rules"},
            {"role": "assistant", "content": PRIMING_ACKNOWLEDGEMENT},
        ]

    def test_user_prompt_wraps_content(self):
        prompt = build_user_prompt("Body text")
        assert "---\nBody text\n---" in prompt

    @pytest.mark.asyncio
    async def test_inference_receives_priming_then_prompt(self):
        orch = _orchestrator()
        await orch.process(REQUEST)
        messages = orch.inference.messages[0]
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert messages[0]["content"] == "Review rules"
        assert "Some content to review." in messages[2]["content"]


# ---------------------------------------------------------------------------
# Success path
# ---------------------------------------------------------------------------


class TestSuccess:
    @pytest.mark.asyncio
    async def test_completed_outcome_and_saved_result(self):
        store = FakeStore()
        outcome = await _orchestrator(store=store).process(REQUEST)

        assert outcome.status == ReviewStatus.COMPLETED
        assert outcome.message == "Review completed successfully"
        assert store.status_calls[0] == ("r-1", "processing", None)

        review_id, payload, usage = store.results[0]
        assert review_id == "r-1"
        assert payload["reviewData"]["scores"] == {"Clarity": {"score": 4, "note": "Clear"}}
        assert payload["rawResponse"] == STRUCTURED
        assert payload["stopReason"] == "end_turn"
        assert "completedAt" in payload
        assert usage == {"inputTokens": 10, "outputTokens": 20, "totalTokens": 30}
        assert store.errors == []

    @pytest.mark.asyncio
    async def test_status_update_failure_does_not_stop_review(self, caplog):
        store = FakeStore(fail_status=True)
        with caplog.at_level(logging.CRITICAL, logger="contentlens_core.orchestrator"):
            outcome = await _orchestrator(store=store).process(REQUEST)
        assert outcome.status == ReviewStatus.COMPLETED
        assert len(store.results) == 1
        assert "attempting to continue" in caplog.text

    @pytest.mark.asyncio
    async def test_unstructured_response_still_completes(self):
        store = FakeStore()
        await _orchestrator(store=store, result=_ok(content="Looks fine to me.")).process(REQUEST)
        payload = store.results[0][1]
        assert payload["reviewData"]["scores"] == {}
        assert payload["reviewData"]["reviewedContent"]["plainText"] == "Looks fine to me."


class TestParseFallback:
    def test_empty_primary_uses_fallback(self):
        parsed, used = _orchestrator().parse_with_fallback("", STRUCTURED, "r-1")
        assert used == STRUCTURED
        assert parsed.scores["Clarity"].score == 4

    def test_unstructured_primary_uses_fallback(self):
        parsed, used = _orchestrator().parse_with_fallback("Preamble only", "Preamble only\n" + STRUCTURED)
        assert "Clarity" in parsed.scores
        assert used.startswith("Preamble only\n")

    def test_structured_primary_kept(self):
        _, used = _orchestrator().parse_with_fallback(STRUCTURED, "other text")
        assert used == STRUCTURED

    def test_no_fallback_keeps_primary(self):
        parsed, used = _orchestrator().parse_with_fallback("plain words", "")
        assert used == "plain words"
        assert parsed.reviewed_content.plain_text == "plain words"


# ---------------------------------------------------------------------------
# Failure path
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.asyncio
    async def test_blocked_content_is_fatal_and_distinct(self):
        store = FakeStore()
        blocked = InferenceResult(success=False, blocked=True, reason="guardrail")
        with pytest.raises(ReviewFailedError) as exc_info:
            await _orchestrator(store=store, result=blocked).process(REQUEST)

        assert exc_info.value.disposition == Disposition.FATAL
        assert exc_info.value.persisted
        assert store.errors == [("r-1", {"message": "Content blocked by guardrails", "disposition": "fatal"})]

    @pytest.mark.asyncio
    async def test_unsuccessful_inference_is_retryable(self):
        store = FakeStore()
        failed = InferenceResult(success=False, reason="max_tokens")
        with pytest.raises(ReviewFailedError) as exc_info:
            await _orchestrator(store=store, result=failed).process(REQUEST)

        assert exc_info.value.disposition == Disposition.RETRYABLE
        assert store.errors[0][1]["message"] == "Inference review failed: max_tokens"

    @pytest.mark.asyncio
    async def test_unsupported_content_recorded(self):
        store = FakeStore()
        source = FakeSource(error=UnsupportedContentError("Unsupported file type: image/png"))
        with pytest.raises(ReviewFailedError) as exc_info:
            await _orchestrator(store=store, source=source).process(REQUEST)

        assert isinstance(exc_info.value.__cause__, UnsupportedContentError)
        assert store.errors[0][1] == {"message": "Unsupported file type: image/png", "disposition": "fatal"}
        assert store.results == []

    @pytest.mark.asyncio
    async def test_save_result_failure_is_recorded_as_failure(self):
        store = FakeStore(fail_save_result=True)
        with pytest.raises(ReviewFailedError):
            await _orchestrator(store=store).process(REQUEST)
        assert store.errors[0][1]["disposition"] == "retryable"

    @pytest.mark.asyncio
    async def test_double_fault_retries_with_generic_error(self):
        store = FakeStore(fail_save_error=True)
        source = FakeSource(error=RuntimeError("fetch exploded"))
        with pytest.raises(ReviewFailedError) as exc_info:
            await _orchestrator(store=store, source=source).process(REQUEST)

        assert exc_info.value.persisted
        failed_calls = [c for c in store.status_calls if c[1] == "failed"]
        assert failed_calls == [("r-1", "failed", {"error": GENERIC_FAILURE})]

    @pytest.mark.asyncio
    async def test_stuck_review_when_retry_also_fails(self, caplog):
        store = FakeStore(fail_save_error=True, fail_retry=True)
        source = FakeSource(error=RuntimeError("fetch exploded"))
        with caplog.at_level(logging.CRITICAL, logger="contentlens_core.orchestrator"):
            with pytest.raises(ReviewFailedError) as exc_info:
                await _orchestrator(store=store, source=source).process(REQUEST)

        assert not exc_info.value.persisted
        # Exactly one retry, and the store error never escapes.
        assert len([c for c in store.status_calls if c[1] == "failed"]) == 1
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert "permanently stuck" in caplog.text
