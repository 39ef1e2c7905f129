"""worker command: poll the review queue and process reviews."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict

import click
from rich.console import Console
from rich.table import Table

from contentlens_core.errors import QueueUnavailableError

console = Console()
logger = logging.getLogger(__name__)


def _build_inference_client(config: dict):
    provider = config["provider"]
    tuning = {"max_tokens": config.get("max_tokens"), "temperature": config.get("temperature")}

    if provider == "bedrock":
        from contentlens_core.providers.bedrock import BedrockClient

        if not config.get("bedrock_inference_profile_arn"):
            raise click.UsageError("BEDROCK_INFERENCE_PROFILE_ARN environment variable is not set.")
        return BedrockClient(
            inference_profile_arn=config["bedrock_inference_profile_arn"],
            region=config["aws_region"],
            guardrail_arn=config.get("bedrock_guardrail_arn"),
            guardrail_version=config.get("bedrock_guardrail_version") or "DRAFT",
            endpoint_url=config.get("aws_endpoint"),
            **tuning,
        )
    if provider == "anthropic":
        from contentlens_core.providers.anthropic import AnthropicClient

        if not config.get("anthropic_api_key"):
            raise click.UsageError("ANTHROPIC_API_KEY environment variable is not set.")
        return AnthropicClient(api_key=config["anthropic_api_key"], **tuning)
    if provider == "openai":
        from contentlens_core.providers.openai import OpenAIClient

        if not config.get("openai_api_key"):
            raise click.UsageError("OPENAI_API_KEY environment variable is not set.")
        return OpenAIClient(api_key=config["openai_api_key"], **tuning)
    raise click.UsageError(f"Unknown provider: {provider!r}. Choose 'bedrock', 'anthropic' or 'openai'.")


def _build_worker(config: dict, store):
    from contentlens_core.config import load_system_prompt
    from contentlens_core.orchestrator import ReviewOrchestrator
    from contentlens_core.queue.sqs import SQSQueue
    from contentlens_core.sources.s3 import S3ContentSource
    from contentlens_core.worker import QueueWorker

    if not config.get("queue_url"):
        raise click.UsageError("No queue configured. Set SQS_QUEUE_URL or queue_url in .contentlens.yml.")

    orchestrator = ReviewOrchestrator(
        store=store,
        content_source=S3ContentSource(
            region=config["aws_region"],
            endpoint_url=config.get("aws_endpoint"),
            default_bucket=config.get("s3_bucket"),
        ),
        inference=_build_inference_client(config),
        system_prompt=load_system_prompt(config),
    )
    queue = SQSQueue(
        queue_url=config["queue_url"],
        region=config["aws_region"],
        endpoint_url=config.get("aws_endpoint"),
    )
    return QueueWorker(
        queue=queue,
        orchestrator=orchestrator,
        max_messages=int(config["max_messages"]),
        wait_time_seconds=int(config["wait_time_seconds"]),
        visibility_timeout=int(config["visibility_timeout"]),
        error_backoff=float(config["poll_error_delay"]),
        max_error_backoff=float(config["max_poll_error_delay"]),
        max_receive_count=config.get("max_receive_count"),
    )


def _print_summary(summary) -> None:
    table = Table(title="Worker Summary", show_header=True, header_style="bold cyan")
    table.add_column("Counter", style="bold")
    table.add_column("Value", justify="right")
    for name, value in asdict(summary).items():
        table.add_row(name.replace("_", " "), str(value))
    console.print(table)


@click.command("worker")
@click.option(
    "--provider",
    type=click.Choice(["bedrock", "anthropic", "openai"]),
    default=None,
    help="Inference provider. Overrides config file.",
)
@click.option(
    "--max-receive-count",
    type=int,
    default=None,
    help="Delete a message that keeps failing after this many deliveries.",
)
@click.pass_context
def worker_cmd(ctx, provider: str | None, max_receive_count: int | None):
    """Poll the review queue and process reviews until interrupted.

    \b
    Required environment variables:
      SQS_QUEUE_URL                  Queue to poll (or queue_url in config)
      BEDROCK_INFERENCE_PROFILE_ARN  Required when using --provider bedrock
      ANTHROPIC_API_KEY              Required when using --provider anthropic
      OPENAI_API_KEY                 Required when using --provider openai
    """
    config = dict(ctx.obj["config"])
    if provider is not None:
        config["provider"] = provider
    if max_receive_count is not None:
        config["max_receive_count"] = max_receive_count

    worker = _build_worker(config, ctx.obj["store"])
    console.print(f"[bold]Polling[/bold] {config['queue_url']} with provider [cyan]{config['provider']}[/cyan]")

    try:
        asyncio.run(worker.run())
    except KeyboardInterrupt:
        worker.stop()
        console.print("[yellow]Interrupted - worker stopped.[/yellow]")
    except QueueUnavailableError as e:
        console.print(f"[red]Worker stopped: {e}[/red]")
        _print_summary(worker.summary)
        ctx.exit(1)

    _print_summary(worker.summary)
