"""Tests for the error classifier."""

import pytest

from contentlens_core.classifier import classify, format_error_for_user
from contentlens_core.errors import (
    ContentBlockedError,
    ContentResolutionError,
    InferenceError,
    InvalidMessageError,
    UnknownMessageTypeError,
    UnsupportedContentError,
)
from contentlens_core.models import Disposition


class ReadTimeoutish(Exception):
    pass


ReadTimeoutish.__name__ = "ReadTimeoutError"


# ---------------------------------------------------------------------------
# format_error_for_user
# ---------------------------------------------------------------------------


class TestTimeoutRule:
    def test_timeout_error_instance(self):
        assert format_error_for_user(TimeoutError()) == "TIMEOUT"

    def test_timeout_by_class_name(self):
        assert format_error_for_user(ReadTimeoutish("socket closed")) == "TIMEOUT"

    @pytest.mark.parametrize("message", ["request timed out", "connect timeout", "read ETIMEDOUT"])
    def test_timeout_phrases(self, message):
        assert format_error_for_user(RuntimeError(message)) == "TIMEOUT"

    def test_timeout_wins_over_keywords(self):
        assert format_error_for_user(RuntimeError("rate limit timeout")) == "TIMEOUT"


class TestKeywordRule:
    @pytest.mark.parametrize(
        "message, expected",
        [
            ("token quota reached for model", "Token Quota Exceeded"),
            ("too many tokens per minute", "Token Quota Exceeded"),
            ("Bedrock API rate limit exceeded. Please try again later.", "Rate Limit Exceeded"),
            ("Bedrock service temporarily unavailable. Please retry.", "Service Temporarily Unavailable"),
            ("Access denied to Bedrock. Ensure IAM role has permission.", "Access Denied"),
            ("Bedrock resource not found. Check ARN", "Resource Not Found"),
            ("AWS credentials not found.", "Resource Not Found"),
            ("Invalid credentials supplied", "Authentication Error"),
            ("Bedrock validation error: bad input", "Invalid Request"),
        ],
    )
    def test_canonical_messages(self, message, expected):
        assert format_error_for_user(RuntimeError(message)) == expected

    def test_first_row_wins(self):
        # Both the quota row and the rate-limit row match; quota comes first.
        assert format_error_for_user(RuntimeError("rate limit: tokens per minute")) == "Token Quota Exceeded"

    def test_keywords_are_case_sensitive(self):
        assert format_error_for_user(RuntimeError("access denied")) == "access denied"


class TestProviderRule:
    def test_prefix_is_stripped(self):
        err = InferenceError("Inference API error: model overloaded")
        assert format_error_for_user(err) == "model overloaded"

    def test_bedrock_prefix_is_stripped(self):
        assert format_error_for_user(RuntimeError("Bedrock API error: boom")) == "boom"

    def test_provider_message_truncated_without_ellipsis(self):
        err = InferenceError("Inference API error: " + "x" * 150)
        assert format_error_for_user(err) == "x" * 100

    def test_blocked_and_failed_are_distinct(self):
        blocked = format_error_for_user(ContentBlockedError("Content blocked by guardrails"))
        failed = format_error_for_user(InferenceError("Inference review failed: max_tokens"))
        assert blocked == "Content blocked by guardrails"
        assert failed == "Inference review failed: max_tokens"
        assert blocked != failed


class TestLengthRule:
    def test_long_message_truncated_with_ellipsis(self):
        result = format_error_for_user(RuntimeError("y" * 150))
        assert result == "y" * 97 + "..."
        assert len(result) == 100

    def test_exactly_100_chars_unchanged(self):
        assert format_error_for_user(RuntimeError("z" * 100)) == "z" * 100

    def test_short_message_unchanged(self):
        assert format_error_for_user(ValueError("Unknown message type: pdf_review")) == "Unknown message type: pdf_review"

    def test_empty_message_uses_type_name(self):
        assert format_error_for_user(KeyError()) == "KeyError"


class TestTotality:
    def test_unprintable_error_falls_back(self):
        class Unprintable(Exception):
            def __str__(self):
                raise RuntimeError("cannot render")

        assert format_error_for_user(Unprintable()) == "Processing failed"


# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------


class TestClassify:
    @pytest.mark.parametrize(
        "error, disposition",
        [
            (InvalidMessageError("bad"), Disposition.FATAL),
            (UnknownMessageTypeError("Unknown message type: x"), Disposition.FATAL),
            (UnsupportedContentError("Unsupported file type: image/png"), Disposition.FATAL),
            (ContentBlockedError("Content blocked by guardrails"), Disposition.FATAL),
            (ContentResolutionError("fetch failed"), Disposition.RETRYABLE),
            (InferenceError("Inference API error: x"), Disposition.RETRYABLE),
            (RuntimeError("anything else"), Disposition.RETRYABLE),
        ],
    )
    def test_disposition(self, error, disposition):
        assert classify(error).disposition == disposition

    def test_original_message_kept_for_logs_only(self):
        record = classify(RuntimeError("y" * 150))
        assert record.original_message == "RuntimeError: " + "y" * 150
        assert record.to_dict() == {"message": "y" * 97 + "...", "disposition": "retryable"}
