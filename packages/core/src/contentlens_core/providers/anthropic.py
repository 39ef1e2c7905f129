from __future__ import annotations

from contentlens_core.models import InferenceResult, TokenUsage
from contentlens_core.providers.base import BaseInferenceClient


class AnthropicClient(BaseInferenceClient):
    MODEL = "claude-sonnet-4-20250514"

    def __init__(self, api_key: str, max_tokens: int | None = None, temperature: float | None = None):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install 'contentlens[anthropic]'"
            )
        if max_tokens is not None:
            self.MAX_TOKENS = max_tokens
        if temperature is not None:
            self.TEMPERATURE = temperature
        self.client = Anthropic(api_key=api_key)

    def _call_api(self, messages: list[dict]) -> InferenceResult:
        response = self.client.messages.create(
            model=self.MODEL,
            messages=messages,
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        # The anthropic package is optional, so blocks are matched on their type tag
        # rather than with isinstance against anthropic.types.TextBlock.
        texts = [block.text for block in response.content if getattr(block, "type", None) == "text"]

        if response.stop_reason == "refusal":
            return InferenceResult(
                success=False,
                blocked=True,
                reason="The model declined to review this content",
                stop_reason=response.stop_reason,
            )

        usage = response.usage
        return InferenceResult(
            success=True,
            content=texts[0].strip() if texts else "",
            raw_content="".join(texts).strip(),
            usage=TokenUsage(
                input_tokens=usage.input_tokens,
                output_tokens=usage.output_tokens,
                total_tokens=usage.input_tokens + usage.output_tokens,
            ),
            stop_reason=response.stop_reason,
        )
