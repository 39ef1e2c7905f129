"""CLI entry point for contentlens.

Commands:
  worker  : poll the review queue and process reviews until stopped
  submit  : queue a piece of text for review
  show    : display one review's status, scores and improvements
  history : list recent reviews from the configured store
  stats   : aggregate scores and improvement patterns across reviews
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from contentlens_cli.commands.history import history_cmd
from contentlens_cli.commands.show import show_cmd
from contentlens_cli.commands.stats import stats_cmd
from contentlens_cli.commands.submit import submit_cmd
from contentlens_cli.commands.worker import worker_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured store from .contentlens.yml settings.

    Store selection hierarchy:
      store: s3     → S3Store     (requires s3_bucket)
      store: sqlite → SQLiteStore (requires store_path or uses .contentlens.db)
      (default)     → MemoryStore (process-local, lost on exit)

    This factory lives in cli.py so neither contentlens_core nor
    contentlens_store know about the CLI config format.
    """
    from contentlens_store.memory import MemoryStore

    store_type = config.get("store", "memory")

    if store_type == "s3":
        from contentlens_store.s3 import S3Store

        bucket = config.get("s3_bucket")
        if not bucket:
            console.print("[yellow]S3Store requires s3_bucket. Falling back to the in-memory store.[/yellow]")
            return MemoryStore()
        return S3Store(
            bucket=bucket,
            prefix=config.get("store_prefix", "reviews/"),
            region=config.get("aws_region"),
            endpoint_url=config.get("aws_endpoint"),
        )

    if store_type == "sqlite":
        from contentlens_store.sqlite import SQLiteStore

        db_path = config.get("store_path", ".contentlens.db")
        return SQLiteStore(db_path=db_path)

    return MemoryStore()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
    )
    # boto's own debug output drowns everything else
    for noisy in ("botocore", "boto3", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


@click.group()
@click.version_option(
    version=importlib.metadata.version("contentlens"),
    prog_name="contentlens",
)
@click.option(
    "--config",
    "config_path",
    default=".contentlens.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="CONTENTLENS_CONFIG",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    show_default=True,
    help="Logging verbosity.",
)
@click.pass_context
def main(ctx: click.Context, config_path: str, log_level: str):
    """AI-assisted content review: queue worker and review history."""
    from contentlens_core.config import load_config

    _configure_logging(log_level)
    ctx.ensure_object(dict)

    config = load_config(config_path)

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(worker_cmd)
main.add_command(submit_cmd)
main.add_command(show_cmd)
main.add_command(history_cmd)
main.add_command(stats_cmd)
