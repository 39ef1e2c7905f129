"""AWS Bedrock provider using the Converse API.

Calls go to an inference profile ARN rather than a bare model id, with an
optional guardrail attached to every request.
"""

from __future__ import annotations

import logging

import boto3
from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    NoCredentialsError,
    PartialCredentialsError,
    ReadTimeoutError,
)

from contentlens_core.models import InferenceResult, TokenUsage
from contentlens_core.providers.base import BaseInferenceClient

logger = logging.getLogger(__name__)

_RETRYABLE_CODES = {"ThrottlingException", "ServiceUnavailableException"}
_GUARDRAIL_STOP_REASON = "guardrail_intervened"


def _error_code(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code", "")
    return ""


class BedrockClient(BaseInferenceClient):
    def __init__(
        self,
        inference_profile_arn: str,
        region: str,
        guardrail_arn: str | None = None,
        guardrail_version: str = "DRAFT",
        endpoint_url: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        client=None,
    ):
        if not inference_profile_arn:
            raise ValueError("A Bedrock inference profile ARN is required.")
        self.inference_profile_arn = inference_profile_arn
        self.guardrail_arn = guardrail_arn
        self.guardrail_version = guardrail_version
        if max_tokens is not None:
            self.MAX_TOKENS = max_tokens
        if temperature is not None:
            self.TEMPERATURE = temperature
        self.client = client or boto3.client("bedrock-runtime", region_name=region, endpoint_url=endpoint_url)

    def _call_api(self, messages: list[dict]) -> InferenceResult:
        request = {
            "modelId": self.inference_profile_arn,
            "messages": [{"role": m["role"], "content": [{"text": m["content"]}]} for m in messages],
            "inferenceConfig": {"maxTokens": self.MAX_TOKENS, "temperature": self.TEMPERATURE},
        }
        if self.guardrail_arn:
            request["guardrailConfig"] = {
                "guardrailIdentifier": self.guardrail_arn,
                "guardrailVersion": self.guardrail_version,
                "trace": "enabled",
            }

        response = self.client.converse(**request)

        blocks = response.get("output", {}).get("message", {}).get("content", [])
        texts = [block["text"] for block in blocks if "text" in block]
        usage = response.get("usage", {})
        guardrail = response.get("trace", {}).get("guardrail", {})
        assessment = {
            "action": guardrail.get("action", "NONE"),
            "assessments": guardrail.get("assessments", []),
        }
        stop_reason = response.get("stopReason")

        if assessment["action"] == "BLOCKED" or stop_reason == _GUARDRAIL_STOP_REASON:
            return InferenceResult(
                success=False,
                blocked=True,
                reason="Content was blocked by content safety guardrails",
                guardrail_assessment=assessment,
                stop_reason=stop_reason,
            )

        return InferenceResult(
            success=True,
            content=texts[0] if texts else "",
            raw_content="\n".join(texts),
            usage=TokenUsage(
                input_tokens=usage.get("inputTokens", 0),
                output_tokens=usage.get("outputTokens", 0),
                total_tokens=usage.get("totalTokens", 0),
            ),
            guardrail_assessment=assessment,
            stop_reason=stop_reason,
        )

    def _is_retryable(self, exc: Exception) -> bool:
        if isinstance(exc, (ReadTimeoutError, ConnectTimeoutError)):
            return True
        return _error_code(exc) in _RETRYABLE_CODES

    def _describe_error(self, exc: Exception) -> str:
        if isinstance(exc, (NoCredentialsError, PartialCredentialsError)):
            return "AWS credentials not found. Ensure the worker has an IAM role with Bedrock permissions."
        if isinstance(exc, (ReadTimeoutError, ConnectTimeoutError)):
            return "Bedrock API request timed out. The request took too long to process."

        code = _error_code(exc)
        if code == "AccessDeniedException":
            return "Access denied to Bedrock. Ensure IAM role has bedrock:InvokeModel permission."
        if code == "ResourceNotFoundException":
            return f"Bedrock resource not found. Check inference profile ARN: {self.inference_profile_arn}"
        if code == "ThrottlingException":
            return "Bedrock API rate limit exceeded. Please try again later."
        if code == "ValidationException":
            return f"Bedrock validation error: {exc.response['Error'].get('Message', exc)}"
        if code == "ServiceUnavailableException":
            return "Bedrock service temporarily unavailable. Please retry."
        return f"Bedrock API error: {exc}"
