"""
feedsync worker - Run the scheduler and worker until interrupted.
"""

import asyncio
import signal
from pathlib import Path

import typer

from feedsync.cli.common import load_runtime
from feedsync.jobs.redis_queue import RedisJobQueue
from feedsync.jobs.worker import Worker
from feedsync.runtime import Runtime
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.cli.worker")

app = typer.Typer(name="worker", help="Run the feed scheduler and job worker", invoke_without_command=True)


async def serve(runtime: Runtime, stop_event: asyncio.Event | None = None) -> None:
    """Register the recurring download, then fire schedules and process jobs until stopped."""
    stop = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform / outside the main thread
            pass

    settings = runtime.settings
    pipeline = runtime.pipeline
    try:
        if isinstance(runtime.queue, RedisJobQueue):
            await runtime.queue.connect()
        await pipeline.scheduler.ensure_recurring_download(settings.feed.schedule, settings.feed.file_name)

        worker = Worker(
            runtime.queue,
            pipeline.handlers(),
            concurrency=settings.worker.concurrency,
            poll_interval_s=settings.worker.poll_interval_s,
        )
        await asyncio.gather(
            pipeline.scheduler.run_forever(stop, settings.worker.poll_interval_s),
            worker.run(stop),
        )
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        await runtime.close()


@app.callback()
def worker(
    ctx: typer.Context,
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
) -> None:
    """
    Run the scheduler and worker.

    Registers the recurring download job if missing (safe on every start).
    """
    if ctx.invoked_subcommand is None:
        runtime = load_runtime(project_dir, env, verbose)
        asyncio.run(serve(runtime))
