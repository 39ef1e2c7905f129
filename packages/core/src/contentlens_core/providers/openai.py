from __future__ import annotations

try:
    from openai import OpenAI as _OpenAI
except ImportError:
    _OpenAI = None  # type: ignore[assignment,misc]

from contentlens_core.models import InferenceResult, TokenUsage
from contentlens_core.providers.base import BaseInferenceClient


class OpenAIClient(BaseInferenceClient):
    MODEL = "gpt-4o"
    TEMPERATURE = 0.2

    def __init__(self, api_key: str, max_tokens: int | None = None, temperature: float | None = None):
        if _OpenAI is None:
            raise ImportError(
                "The 'openai' package is required for this provider. "
                "Install it with: pip install 'contentlens[openai]'"
            )
        if max_tokens is not None:
            self.MAX_TOKENS = max_tokens
        if temperature is not None:
            self.TEMPERATURE = temperature
        self.client = _OpenAI(api_key=api_key)

    def _call_api(self, messages: list[dict]) -> InferenceResult:
        response = self.client.chat.completions.create(
            model=self.MODEL,
            messages=messages,
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        choice = response.choices[0]

        if choice.finish_reason == "content_filter":
            return InferenceResult(
                success=False,
                blocked=True,
                reason="Content was blocked by the provider's content filter",
                stop_reason=choice.finish_reason,
            )

        content = choice.message.content or ""
        usage = response.usage
        return InferenceResult(
            success=True,
            content=content,
            raw_content=content,
            usage=TokenUsage(
                input_tokens=usage.prompt_tokens,
                output_tokens=usage.completion_tokens,
                total_tokens=usage.total_tokens,
            )
            if usage is not None
            else None,
            stop_reason=choice.finish_reason,
        )
