"""show command: display one review."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from contentlens_cli.commands.history import STATUS_STYLE, require_persistent_store

console = Console()

SEVERITY_STYLE = {"critical": "red", "high": "yellow", "medium": "blue", "low": "dim"}


@click.command("show")
@click.argument("review_id")
@click.option("--raw", is_flag=True, help="Also print the model's raw response.")
@click.pass_context
def show_cmd(ctx, review_id: str, raw: bool):
    """Show the status, scores and improvements of one review."""
    store = require_persistent_store(ctx)

    record = store.get_review(review_id)
    if record is None:
        raise click.ClickException(f"Review not found: {review_id}")

    style = STATUS_STYLE.get(record.status, "white")
    console.print(f"\n[bold]Review {record.review_id}[/bold]  [{style}]{record.status}[/{style}]")
    if record.filename:
        console.print(f"  File:      {record.filename} ({record.content_type or 'unknown type'})")
    console.print(f"  Created:   {record.created_at[:19].replace('T', ' ')}")
    if record.processing_completed_at:
        console.print(f"  Finished:  {record.processing_completed_at[:19].replace('T', ' ')}")
    if record.usage:
        console.print(f"  Tokens:    {record.usage.get('totalTokens', 0)}")

    if record.error:
        console.print(f"\n[red]Error:[/red] {record.error.get('message', 'unknown error')}")

    review = (record.result or {}).get("reviewData")
    if not review:
        return

    scores = review.get("scores", {})
    if scores:
        table = Table(title="Scores", show_header=True, header_style="bold cyan")
        table.add_column("Category", style="bold")
        table.add_column("Score", justify="right", width=6)
        table.add_column("Note")
        for label, entry in scores.items():
            table.add_row(label, f"{entry['score']}/5", entry.get("note", ""))
        console.print(table)

    issues = review.get("reviewedContent", {}).get("issues", [])
    if issues:
        console.print(f"\n[bold]{len(issues)} issue(s) highlighted[/bold]")
        for issue in issues:
            console.print(f"  [yellow]{issue['category']}[/yellow]: {issue['text']}")

    improvements = review.get("improvements", [])
    if improvements:
        table = Table(title="Improvements", show_header=True, header_style="bold cyan")
        table.add_column("Priority", width=9)
        table.add_column("Category", max_width=20)
        table.add_column("Issue", max_width=40)
        table.add_column("Suggested", max_width=40)
        for imp in improvements:
            sev_style = SEVERITY_STYLE.get(imp["severity"], "white")
            table.add_row(
                f"[{sev_style}]{imp['severity']}[/{sev_style}]",
                imp["category"],
                imp["issue"],
                imp.get("suggested", ""),
            )
        console.print(table)

    if raw:
        console.print("\n[bold]Raw response[/bold]")
        console.print(record.result.get("rawResponse", ""), markup=False)
