"""Turn raw failures into short, user-safe messages.

The rules are a priority list, checked in order, first match wins:

1. timeouts                  -> "TIMEOUT"
2. known failure keywords    -> canonical message from _KEYWORD_MESSAGES
3. inference provider errors -> provider prefix stripped, cut to 100 chars
4. long messages             -> first 97 chars + "..."
5. anything else             -> unchanged
"""

from __future__ import annotations

import logging

from contentlens_core.errors import RETRYABLE, InferenceError
from contentlens_core.models import Disposition, ErrorRecord

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 100
TRUNCATED_LENGTH = 97
TIMEOUT_MESSAGE = "TIMEOUT"
FALLBACK_MESSAGE = "Processing failed"

_TIMEOUT_PHRASES = ("timed out", "timeout", "ETIMEDOUT")

_KEYWORD_MESSAGES: list[tuple[tuple[str, ...], str]] = [
    (("token quota", "tokens per minute"), "Token Quota Exceeded"),
    (("rate limit",), "Rate Limit Exceeded"),
    (("temporarily unavailable",), "Service Temporarily Unavailable"),
    (("Access denied",), "Access Denied"),
    (("not found",), "Resource Not Found"),
    (("credentials",), "Authentication Error"),
    (("validation error",), "Invalid Request"),
]

_PROVIDER_TAGS = ("Inference", "Bedrock")
_PROVIDER_PREFIXES = ("Inference API error: ", "Bedrock API error: ")


def _is_timeout(error: BaseException, message: str) -> bool:
    if isinstance(error, TimeoutError) or "Timeout" in type(error).__name__:
        return True
    return any(phrase in message for phrase in _TIMEOUT_PHRASES)


def _is_provider_error(error: BaseException, message: str) -> bool:
    return isinstance(error, InferenceError) or any(tag in message for tag in _PROVIDER_TAGS)


def _strip_provider_prefix(message: str) -> str:
    for prefix in _PROVIDER_PREFIXES:
        if prefix in message:
            return message.replace(prefix, "", 1)
    return message


def format_error_for_user(error: BaseException) -> str:
    """Return a message of at most 100 characters that is safe to show users."""
    try:
        message = str(error) or type(error).__name__

        if _is_timeout(error, message):
            return TIMEOUT_MESSAGE

        for keywords, canonical in _KEYWORD_MESSAGES:
            if any(keyword in message for keyword in keywords):
                return canonical

        if _is_provider_error(error, message):
            return _strip_provider_prefix(message)[:MAX_MESSAGE_LENGTH]

        if len(message) > MAX_MESSAGE_LENGTH:
            return message[:TRUNCATED_LENGTH] + "..."

        return message
    except Exception:
        logger.exception("Failed to format error for display")
        return FALLBACK_MESSAGE


def classify(error: BaseException) -> ErrorRecord:
    """Build the ErrorRecord persisted for a failed review attempt."""
    try:
        disposition = Disposition(getattr(error, "disposition", RETRYABLE))
    except ValueError:
        disposition = Disposition.RETRYABLE
    return ErrorRecord(
        user_message=format_error_for_user(error),
        disposition=disposition,
        original_message=f"{type(error).__name__}: {error}",
    )
