"""history command: display recent reviews from the store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()

STATUS_STYLE = {
    "queued": "dim",
    "processing": "yellow",
    "completed": "green",
    "failed": "red",
}


def require_persistent_store(ctx):
    """Return the configured store, refusing the process-local default.

    A MemoryStore is empty in a fresh CLI process, so querying it would
    always report nothing.
    """
    from contentlens_store.memory import MemoryStore

    store = ctx.obj.get("store") if ctx.obj else None
    if store is None or isinstance(store, MemoryStore):
        raise click.UsageError(
            "No persistent store configured. Add 'store: sqlite' or 'store: s3' to .contentlens.yml."
        )
    return store


@click.command("history")
@click.option(
    "--status",
    type=click.Choice(list(STATUS_STYLE)),
    default=None,
    help="Only show reviews in this status.",
)
@click.option("--limit", default=20, show_default=True, help="Maximum number of records to show.")
@click.pass_context
def history_cmd(ctx, status: str | None, limit: int):
    """Show recent reviews, newest first."""
    store = require_persistent_store(ctx)

    records = store.list_reviews(status=status, limit=limit)
    if not records:
        console.print("[yellow]No review records found.[/yellow]")
        return

    table = Table(title="Review History", show_header=True, header_style="bold cyan")
    table.add_column("Review", style="bold", max_width=36)
    table.add_column("Status", width=11)
    table.add_column("File", max_width=30)
    table.add_column("Avg score", justify="right", width=9)
    table.add_column("Improvements", justify="right", width=12)
    table.add_column("Created At", width=20)

    for r in records:
        style = STATUS_STYLE.get(r.status, "white")
        review = (r.result or {}).get("reviewData") or {}
        scores = [entry["score"] for entry in review.get("scores", {}).values()]
        avg = f"{sum(scores) / len(scores):.1f}" if scores else "-"
        table.add_row(
            r.review_id,
            f"[{style}]{r.status}[/{style}]",
            (r.filename or "")[:30],
            avg,
            str(len(review.get("improvements", []))) if review else "-",
            r.created_at[:19].replace("T", " "),
        )

    console.print(table)
