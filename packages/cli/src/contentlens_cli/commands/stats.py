"""stats command: aggregate patterns across stored reviews."""

from __future__ import annotations

from collections import Counter, defaultdict

import click
from rich.console import Console
from rich.table import Table

from contentlens_cli.commands.history import STATUS_STYLE, require_persistent_store
from contentlens_cli.commands.show import SEVERITY_STYLE

console = Console()


@click.command("stats")
@click.option("--limit", default=500, show_default=True, help="Number of most recent reviews to aggregate.")
@click.option("--top", default=10, show_default=True, help="Number of top improvement categories to show.")
@click.pass_context
def stats_cmd(ctx, limit: int, top: int):
    """Show aggregated review statistics.

    Reports the status distribution, the average score per category and the
    most frequent improvement categories, which helps when spotting systemic
    writing problems and tuning the review prompt.
    """
    store = require_persistent_store(ctx)

    records = store.list_reviews(limit=limit)
    if not records:
        console.print("[yellow]No review records found.[/yellow]")
        return

    status_counter: Counter[str] = Counter()
    severity_counter: Counter[str] = Counter()
    category_counter: Counter[str] = Counter()
    scores_by_label: defaultdict[str, list[int]] = defaultdict(list)

    for record in records:
        status_counter[record.status] += 1
        review = (record.result or {}).get("reviewData") or {}
        for label, entry in review.get("scores", {}).items():
            scores_by_label[label].append(entry["score"])
        for imp in review.get("improvements", []):
            severity_counter[imp["severity"]] += 1
            category_counter[imp["category"]] += 1

    total = len(records)

    # --- Summary ---
    console.print("\n[bold]Review stats[/bold]")
    console.print(f"  Total reviews: {total}")
    for status, count in status_counter.most_common():
        style = STATUS_STYLE.get(status, "white")
        console.print(f"  [{style}]{status:<11}[/{style}] {count} ({count / total * 100:.1f}%)")

    # --- Average scores ---
    if scores_by_label:
        score_table = Table(title="Average Score by Category", show_header=True)
        score_table.add_column("Category", style="bold")
        score_table.add_column("Reviews", justify="right")
        score_table.add_column("Average", justify="right")
        for label, values in sorted(scores_by_label.items()):
            score_table.add_row(label, str(len(values)), f"{sum(values) / len(values):.2f}")
        console.print(score_table)

    # --- Severity breakdown ---
    total_improvements = sum(severity_counter.values())
    if severity_counter:
        sev_table = Table(title="Improvement Priorities", show_header=True)
        sev_table.add_column("Priority", style="bold")
        sev_table.add_column("Count", justify="right")
        sev_table.add_column("% of total", justify="right")
        # Severity is free text; known levels first, then anything else the model used.
        known = [s for s in SEVERITY_STYLE if s in severity_counter]
        others = sorted(s for s in severity_counter if s not in SEVERITY_STYLE)
        for sev in known + others:
            count = severity_counter[sev]
            style = SEVERITY_STYLE.get(sev, "white")
            sev_table.add_row(f"[{style}]{sev}[/{style}]", str(count), f"{count / total_improvements * 100:.1f}%")
        console.print(sev_table)

    # --- Most common categories ---
    if category_counter:
        cat_table = Table(title=f"Top {top} Improvement Categories", show_header=True)
        cat_table.add_column("Category")
        cat_table.add_column("Improvements", justify="right")
        for category, count in category_counter.most_common(top):
            cat_table.add_row(category, str(count))
        console.print(cat_table)
