"""
feedsync enqueue / jobs - Submit and inspect queue jobs.

Both talk to the configured queue backend; with the in-memory backend the
queue only lives as long as the command, so use Redis to share jobs with a
running worker.
"""

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from feedsync.cli.common import load_runtime
from feedsync.exceptions import FeedSyncError
from feedsync.jobs.redis_queue import RedisJobQueue
from feedsync.jobs.types import Job, JobKind, JobStatus
from feedsync.runtime import Runtime

console = Console()


def _warn_if_ephemeral(runtime: Runtime) -> None:
    if not isinstance(runtime.queue, RedisJobQueue):
        console.print("[yellow]queue.backend is 'memory': jobs are not shared with other processes[/yellow]")


def enqueue(
    kind: JobKind = typer.Argument(..., help="Job kind: download or process"),
    file_name: str | None = typer.Option(None, "--file-name", help="Feed file name (default: feed.file_name)"),
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
) -> None:
    """
    Manually (re-)submit a job.
    """
    runtime = load_runtime(project_dir, env, verbose=False)
    _warn_if_ephemeral(runtime)
    scheduler = runtime.pipeline.scheduler

    async def _submit() -> Job:
        try:
            if kind == JobKind.DOWNLOAD:
                return await scheduler.enqueue_download(file_name)
            return await scheduler.enqueue_process(file_name)
        finally:
            await runtime.close()

    try:
        job = asyncio.run(_submit())
    except FeedSyncError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    console.print(f"Enqueued [bold]{job.kind}[/bold] job [cyan]{job.id}[/cyan]")


def jobs(
    status: JobStatus | None = typer.Option(None, "--status", "-s", help="Only jobs with this status"),
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
) -> None:
    """
    List jobs the queue still retains, newest first.
    """
    runtime = load_runtime(project_dir, env, verbose=False)
    _warn_if_ephemeral(runtime)

    async def _list() -> list[Job]:
        try:
            return await runtime.queue.list_jobs(status)
        finally:
            await runtime.close()

    try:
        found = asyncio.run(_list())
    except FeedSyncError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    if not found:
        console.print("[dim]No jobs[/dim]")
        return

    table = Table(title="Jobs", show_header=True)
    table.add_column("ID", style="cyan")
    table.add_column("Kind")
    table.add_column("Status", style="green")
    table.add_column("Created", style="dim")
    table.add_column("Finished", style="dim")
    table.add_column("Error", style="red")
    for job in found:
        table.add_row(
            job.id,
            job.kind,
            job.status.value,
            job.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            job.finished_at.strftime("%Y-%m-%d %H:%M:%S") if job.finished_at else "",
            job.failed_reason or "",
        )
    console.print(table)
