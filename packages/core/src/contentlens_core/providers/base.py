"""Base inference client implementing the Template Method pattern.

All providers share the same call sequence:
    send_message() → build message list from priming history + user prompt
                   → _call_with_retry() → _call_api()   ← only this differs per provider

Subclasses implement:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return an InferenceResult

and may override:
  - _is_retryable: which SDK errors are worth another attempt
  - _describe_error: the message carried by the InferenceError raised after
    the last attempt (the error classifier matches on this text)
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

from contentlens_core.errors import InferenceError
from contentlens_core.models import InferenceResult

logger = logging.getLogger(__name__)

# Shared defaults: subclasses may override as class attributes if needed.
_MAX_RETRIES = 3
_MAX_TOKENS = 4096
_TEMPERATURE = 0.3


class BaseInferenceClient(ABC):
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS
    TEMPERATURE: float = _TEMPERATURE

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def send_message(self, user_prompt: str, history: list[dict] | None = None) -> InferenceResult:
        """Send ``history`` followed by ``user_prompt`` and return the result.

        ``history`` is a list of ``{"role": "user"|"assistant", "content": str}``
        turns. A blocked or refused response is returned, not raised; SDK
        failures surviving every retry raise InferenceError.
        """
        messages = [*(history or []), {"role": "user", "content": user_prompt}]
        logger.info(
            "%s: sending %d characters with %d history turns",
            self.__class__.__name__,
            len(user_prompt),
            len(history or []),
        )
        result = self._call_with_retry(messages)
        if result.blocked:
            logger.warning("%s: request blocked (%s)", self.__class__.__name__, result.reason)
        elif result.usage is not None:
            logger.info(
                "%s: received %d characters, %d tokens used",
                self.__class__.__name__,
                len(result.content),
                result.usage.total_tokens,
            )
        return result

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, messages: list[dict]) -> InferenceResult:
        """Make a single API call and return the parsed response.

        This is the only method subclasses must implement. It should raise
        on failure: _call_with_retry handles retries and logging.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _is_retryable(self, exc: Exception) -> bool:
        return True

    def _describe_error(self, exc: Exception) -> str:
        return f"Inference API error: {exc}"

    def _call_with_retry(self, messages: list[dict]) -> InferenceResult:
        """Retry _call_api up to MAX_RETRIES times with exponential backoff."""
        for attempt in range(self.MAX_RETRIES):
            try:
                return self._call_api(messages)
            except Exception as e:
                if attempt == self.MAX_RETRIES - 1 or not self._is_retryable(e):
                    logger.error(
                        "%s API failed after %d attempt(s): %s",
                        self.__class__.__name__,
                        attempt + 1,
                        e,
                    )
                    raise InferenceError(self._describe_error(e)) from e
                delay = 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                time.sleep(delay)
        raise InferenceError("Inference API error: no attempts were made")
