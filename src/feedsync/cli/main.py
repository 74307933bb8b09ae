"""
Main CLI entry point.
"""

import typer

from feedsync import __version__
from feedsync.cli import jobs, run, worker


def version_callback(value: bool):
    """Callback to display version and exit."""
    if value:
        typer.echo(f"feedsync version {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="feedsync",
    help="feedsync - scheduled tobacco catalog feed download and reconciliation",
    add_completion=True,
)

# Register subcommands
app.add_typer(worker.app, name="worker")
app.command("run-once")(run.run_once)
app.command("process")(run.process)
app.command("enqueue")(jobs.enqueue)
app.command("jobs")(jobs.jobs)


@app.callback(invoke_without_command=True)
def entrypoint(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
):
    """
    feedsync - scheduled tobacco catalog feed download and reconciliation.

    Run 'feedsync <command> --help' for help on a specific command.
    """
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
