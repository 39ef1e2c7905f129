"""submit command: queue a piece of text for review."""

from __future__ import annotations

import uuid
from pathlib import Path

import click
from rich.console import Console

console = Console()


@click.command("submit")
@click.option("--text", default=None, help="Text to review.")
@click.option(
    "--file",
    "file_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="UTF-8 text file to review.",
)
@click.option("--review-id", default=None, help="Review identifier. A random UUID is used if omitted.")
@click.pass_context
def submit_cmd(ctx, text: str | None, file_path: Path | None, review_id: str | None):
    """Queue text for review.

    Creates a `queued` review record in the configured store and sends a
    text_review message carrying the text inline. Run `contentlens worker`
    to process it.
    """
    from contentlens_core.models import TEXT_REVIEW
    from contentlens_core.queue.sqs import SQSQueue

    if (text is None) == (file_path is None):
        raise click.UsageError("Provide exactly one of --text or --file.")

    filename = None
    if file_path is not None:
        try:
            text = file_path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            raise click.UsageError(f"{file_path} is not a UTF-8 text file.")
        filename = file_path.name

    if not text or not text.strip():
        raise click.UsageError("Nothing to review: the text is empty.")

    config = ctx.obj["config"]
    if not config.get("queue_url"):
        raise click.UsageError("No queue configured. Set SQS_QUEUE_URL or queue_url in .contentlens.yml.")

    review_id = review_id or str(uuid.uuid4())
    size = len(text.encode("utf-8"))

    store = ctx.obj["store"]
    store.create_review(
        review_id,
        source_type=TEXT_REVIEW,
        filename=filename,
        content_type="text/plain",
        file_size=size,
    )

    queue = SQSQueue(
        queue_url=config["queue_url"],
        region=config["aws_region"],
        endpoint_url=config.get("aws_endpoint"),
    )
    message_id = queue.send_message(
        {
            "reviewId": review_id,
            "messageType": TEXT_REVIEW,
            "textContent": text,
            "filename": filename,
            "contentType": "text/plain",
            "fileSize": size,
        }
    )

    console.print(f"[green]Queued review[/green] [bold]{review_id}[/bold] (message {message_id})")
