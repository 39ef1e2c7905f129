import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "provider": "bedrock",  # bedrock | anthropic | openai
    "store": "memory",  # memory | sqlite | s3
    "store_path": ".contentlens.db",
    "store_prefix": "reviews/",
    "system_prompt": None,  # None = use built-in prompt; set to a path string to override
    "aws_region": "eu-west-2",
    "aws_endpoint": None,  # e.g. http://localhost:4566 for LocalStack
    "s3_bucket": None,
    "queue_url": None,
    "max_messages": 10,
    "wait_time_seconds": 20,
    "visibility_timeout": 300,
    "poll_error_delay": 5,
    "max_poll_error_delay": 60,
    "max_receive_count": None,  # None = leave failing messages to the queue's own redrive policy
    "max_tokens": 4096,
    "temperature": 0.3,
}

BUILTIN_PROMPTS_DIR = Path(__file__).parent / "guidelines"
_BUILTIN_DEFAULT = BUILTIN_PROMPTS_DIR / "content_review.md"

# config key -> environment variable
_ENV_OVERRIDES = {
    "aws_region": "AWS_REGION",
    "aws_endpoint": "AWS_ENDPOINT_URL",
    "queue_url": "SQS_QUEUE_URL",
    "s3_bucket": "CONTENTLENS_S3_BUCKET",
}


def load_config(config_path: str = ".contentlens.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .contentlens.yml in the current directory
      3. Environment variables (AWS_REGION, SQS_QUEUE_URL, ...)
      4. CLI argument overrides
    """
    config = dict(DEFAULT_CONFIG)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    for key, env_var in _ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            config[key] = value

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Credentials and model identifiers are only ever read from the environment
    config["bedrock_inference_profile_arn"] = os.environ.get("BEDROCK_INFERENCE_PROFILE_ARN")
    config["bedrock_guardrail_arn"] = os.environ.get("BEDROCK_GUARDRAIL_ARN")
    config["bedrock_guardrail_version"] = os.environ.get("BEDROCK_GUARDRAIL_VERSION", "DRAFT")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    return config


def load_system_prompt(config: dict) -> str:
    """
    Load the review instructions sent ahead of every review.

    If ``system_prompt`` is set in config, loads from that path (relative to cwd).
    Otherwise falls back to the built-in prompt.
    """
    custom_path = config.get("system_prompt")
    if custom_path:
        p = Path(custom_path)
        if not p.exists():
            raise FileNotFoundError(f"System prompt file not found: {custom_path}")
        return p.read_text()

    if _BUILTIN_DEFAULT.exists():
        return _BUILTIN_DEFAULT.read_text()

    raise FileNotFoundError("No system prompt configured and built-in default is missing.")
