"""
Shared CLI bootstrap.
"""

from pathlib import Path

import typer

from feedsync.exceptions import FeedSyncError
from feedsync.runtime import Runtime, initialize
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.cli")


def load_runtime(project_dir: Path, env: str | None, verbose: bool) -> Runtime:
    """Initialize feedsync for a CLI command, exiting with status 1 on configuration errors."""
    try:
        return initialize(project_dir, env=env, verbose=verbose)
    except FeedSyncError as e:
        logger.error(f"Initialization failed: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
