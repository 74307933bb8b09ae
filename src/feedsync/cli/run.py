"""
feedsync run-once / process - Reconcile without the long-running worker.
"""

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from feedsync.cli.common import load_runtime
from feedsync.exceptions import FeedSyncError
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.cli.run")

console = Console()


def print_summary(summary: dict) -> None:
    table = Table(title="Reconciliation", show_header=True)
    table.add_column("Outcome", style="cyan")
    table.add_column("Records", style="green", justify="right")
    for outcome, count in summary.items():
        table.add_row(outcome, str(count))
    console.print(table)


def run_once(
    file_name: str | None = typer.Option(None, "--file-name", help="Remote file name (default: feed.file_name)"),
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
) -> None:
    """
    Download the feed and reconcile it inline, bypassing the queue.
    """
    runtime = load_runtime(project_dir, env, verbose)

    async def _run() -> dict:
        try:
            return await runtime.pipeline.run_once(file_name)
        finally:
            await runtime.close()

    try:
        result = asyncio.run(_run())
    except FeedSyncError as e:
        logger.error(f"Run failed: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    download = result["download"]
    console.print(f"Downloaded [bold]{download['file_name']}[/bold] ({download['size']} bytes)")
    print_summary(result["reconcile"])


def process(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Feed XML file"),
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
) -> None:
    """
    Reconcile a local feed file into the catalog. The file is kept.
    """
    runtime = load_runtime(project_dir, env, verbose)

    async def _run() -> dict:
        try:
            summary = await runtime.pipeline.process_file(path, keep_file=True)
            return summary.to_dict()
        finally:
            await runtime.close()

    try:
        summary = asyncio.run(_run())
    except FeedSyncError as e:
        logger.error(f"Processing {path} failed: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    print_summary(summary)
