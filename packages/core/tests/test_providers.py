"""Tests for inference provider implementations.

Shared behaviour (message assembly, _call_with_retry) lives in
BaseInferenceClient and is tested once via a lightweight stub. Provider
tests cover only what differs: request shape, response mapping and error
descriptions.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, NoCredentialsError, ReadTimeoutError

from contentlens_core.errors import InferenceError
from contentlens_core.models import InferenceResult, TokenUsage
from contentlens_core.providers.anthropic import AnthropicClient
from contentlens_core.providers.base import BaseInferenceClient
from contentlens_core.providers.bedrock import BedrockClient
from contentlens_core.providers.openai import OpenAIClient

OK = InferenceResult(success=True, content="Clarity: 4/5 - ok", raw_content="Clarity: 4/5 - ok", usage=TokenUsage(1, 2, 3))


def _client_error(code: str, message: str = "boom") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, "Converse")


class _StubClient(BaseInferenceClient):
    def __init__(self, outcomes=None):
        self.outcomes = list(outcomes or [OK])
        self.calls = []

    def _call_api(self, messages):
        self.calls.append(messages)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


# ---------------------------------------------------------------------------
# Shared behaviour, tested once through the stub
# ---------------------------------------------------------------------------


class TestSendMessage:
    def test_history_precedes_user_prompt(self):
        client = _StubClient()
        history = [{"role": "user", "content": "rules"}, {"role": "assistant", "content": "ack"}]
        result = client.send_message("review this", history)
        assert result is OK
        assert client.calls[0] == [*history, {"role": "user", "content": "review this"}]

    def test_no_history(self):
        client = _StubClient()
        client.send_message("only prompt")
        assert client.calls[0] == [{"role": "user", "content": "only prompt"}]

    def test_blocked_result_is_returned_not_raised(self):
        blocked = InferenceResult(success=False, blocked=True, reason="policy")
        assert _StubClient([blocked]).send_message("x") is blocked


class TestRetry:
    def test_raises_inference_error_after_max_retries(self):
        client = _StubClient([RuntimeError("network error")] * 3)
        with patch("contentlens_core.providers.base.time.sleep") as sleep:
            with pytest.raises(InferenceError, match="Inference API error: network error"):
                client.send_message("x")
        assert len(client.calls) == 3
        assert [c.args[0] for c in sleep.call_args_list] == [1, 2]

    def test_retries_on_transient_failure(self):
        client = _StubClient([RuntimeError("transient"), OK])
        with patch("contentlens_core.providers.base.time.sleep"):
            assert client.send_message("x") is OK
        assert len(client.calls) == 2

    def test_non_retryable_error_fails_immediately(self):
        class _NoRetry(_StubClient):
            def _is_retryable(self, exc):
                return False

        client = _NoRetry([RuntimeError("bad request"), OK])
        with patch("contentlens_core.providers.base.time.sleep") as sleep:
            with pytest.raises(InferenceError):
                client.send_message("x")
        assert len(client.calls) == 1
        sleep.assert_not_called()

    def test_original_exception_is_chained(self):
        cause = RuntimeError("root cause")
        with patch("contentlens_core.providers.base.time.sleep"):
            with pytest.raises(InferenceError) as exc_info:
                _StubClient([cause] * 3).send_message("x")
        assert exc_info.value.__cause__ is cause


# ---------------------------------------------------------------------------
# Bedrock
# ---------------------------------------------------------------------------


def _bedrock(**kwargs):
    kwargs.setdefault("inference_profile_arn", "arn:aws:bedrock:eu-west-2:1:inference-profile/x")
    kwargs.setdefault("region", "eu-west-2")
    kwargs.setdefault("client", MagicMock())
    return BedrockClient(**kwargs)


def _converse_response(texts=("Review",), stop_reason="end_turn", action="NONE"):
    return {
        "output": {"message": {"content": [{"text": t} for t in texts]}},
        "usage": {"inputTokens": 100, "outputTokens": 50, "totalTokens": 150},
        "stopReason": stop_reason,
        "trace": {"guardrail": {"action": action}},
    }


class TestBedrockClient:
    def test_requires_inference_profile(self):
        with pytest.raises(ValueError):
            BedrockClient(inference_profile_arn="", region="eu-west-2", client=MagicMock())

    def test_request_shape_without_guardrail(self):
        client = _bedrock()
        client.client.converse.return_value = _converse_response()
        client.send_message("text", [{"role": "assistant", "content": "ack"}])

        kwargs = client.client.converse.call_args.kwargs
        assert kwargs["modelId"] == client.inference_profile_arn
        assert kwargs["messages"] == [
            {"role": "assistant", "content": [{"text": "ack"}]},
            {"role": "user", "content": [{"text": "text"}]},
        ]
        assert kwargs["inferenceConfig"] == {"maxTokens": 4096, "temperature": 0.3}
        assert "guardrailConfig" not in kwargs

    def test_guardrail_attached_when_configured(self):
        client = _bedrock(guardrail_arn="arn:guardrail", guardrail_version="3")
        client.client.converse.return_value = _converse_response()
        client.send_message("text")
        assert client.client.converse.call_args.kwargs["guardrailConfig"] == {
            "guardrailIdentifier": "arn:guardrail",
            "guardrailVersion": "3",
            "trace": "enabled",
        }

    def test_success_maps_content_and_usage(self):
        client = _bedrock()
        client.client.converse.return_value = _converse_response(texts=("first", "second"))
        result = client.send_message("text")
        assert result.success
        assert result.content == "first"
        assert result.raw_content == "first\nsecond"
        assert result.usage == TokenUsage(100, 50, 150)
        assert result.stop_reason == "end_turn"

    @pytest.mark.parametrize(
        "stop_reason, action",
        [("guardrail_intervened", "NONE"), ("end_turn", "BLOCKED")],
    )
    def test_guardrail_block(self, stop_reason, action):
        client = _bedrock()
        client.client.converse.return_value = _converse_response(stop_reason=stop_reason, action=action)
        result = client.send_message("text")
        assert result.blocked
        assert not result.success
        assert result.reason == "Content was blocked by content safety guardrails"

    def test_overrides_from_config(self):
        client = _bedrock(max_tokens=1000, temperature=0.0)
        assert client.MAX_TOKENS == 1000
        assert client.TEMPERATURE == 0.0
        assert BedrockClient.MAX_TOKENS == 4096

    def test_throttling_is_retried(self):
        client = _bedrock()
        client.client.converse.side_effect = [_client_error("ThrottlingException"), _converse_response()]
        with patch("contentlens_core.providers.base.time.sleep"):
            assert client.send_message("text").success
        assert client.client.converse.call_count == 2

    def test_access_denied_is_not_retried(self):
        client = _bedrock()
        client.client.converse.side_effect = _client_error("AccessDeniedException")
        with patch("contentlens_core.providers.base.time.sleep"):
            with pytest.raises(InferenceError, match="Access denied to Bedrock"):
                client.send_message("text")
        assert client.client.converse.call_count == 1

    @pytest.mark.parametrize(
        "error, message",
        [
            (NoCredentialsError(), "AWS credentials not found"),
            (ReadTimeoutError(endpoint_url="https://bedrock"), "Bedrock API request timed out"),
            (_client_error("ResourceNotFoundException"), "Bedrock resource not found"),
            (_client_error("ThrottlingException"), "Bedrock API rate limit exceeded"),
            (_client_error("ValidationException", "Input is too long"), "Bedrock validation error: Input is too long"),
            (_client_error("ServiceUnavailableException"), "Bedrock service temporarily unavailable"),
            (_client_error("InternalServerException"), "Bedrock API error:"),
        ],
    )
    def test_describe_error(self, error, message):
        assert _bedrock()._describe_error(error).startswith(message)


# ---------------------------------------------------------------------------
# Anthropic and OpenAI: only what differs between them
# ---------------------------------------------------------------------------


class TestAnthropicClient:
    def test_raises_import_error_without_sdk(self):
        with patch.dict("sys.modules", {"anthropic": None}):
            with pytest.raises(ImportError):
                AnthropicClient(api_key="key")

    def test_model_is_claude(self):
        assert "claude" in AnthropicClient.MODEL

    def _client(self, response):
        client = object.__new__(AnthropicClient)
        client.client = MagicMock()
        client.client.messages.create.return_value = response
        return client

    def test_maps_text_blocks_and_usage(self):
        response = SimpleNamespace(
            content=[SimpleNamespace(type="text", text=" review "), SimpleNamespace(type="tool_use")],
            stop_reason="end_turn",
            usage=SimpleNamespace(input_tokens=7, output_tokens=3),
        )
        result = self._client(response).send_message("x")
        assert result.content == "review"
        assert result.usage == TokenUsage(7, 3, 10)

    def test_refusal_is_blocked(self):
        response = SimpleNamespace(content=[], stop_reason="refusal", usage=None)
        assert self._client(response).send_message("x").blocked


class TestOpenAIClient:
    def test_raises_import_error_without_sdk(self):
        import contentlens_core.providers.openai as openai_mod

        with patch.object(openai_mod, "_OpenAI", None):
            with pytest.raises(ImportError):
                OpenAIClient(api_key="key")

    def test_model_is_gpt(self):
        assert "gpt" in OpenAIClient.MODEL

    def test_temperature_is_set(self):
        assert OpenAIClient.TEMPERATURE == 0.2

    def _client(self, finish_reason, content="review", usage=None):
        client = object.__new__(OpenAIClient)
        client.client = MagicMock()
        choice = SimpleNamespace(finish_reason=finish_reason, message=SimpleNamespace(content=content))
        client.client.chat.completions.create.return_value = SimpleNamespace(choices=[choice], usage=usage)
        return client

    def test_maps_content_and_usage(self):
        usage = SimpleNamespace(prompt_tokens=5, completion_tokens=4, total_tokens=9)
        result = self._client("stop", usage=usage).send_message("x")
        assert result.content == "review"
        assert result.usage == TokenUsage(5, 4, 9)

    def test_content_filter_is_blocked(self):
        assert self._client("content_filter").send_message("x").blocked
