"""
Main CLI entry point.
"""

import typer

from volume_syncer import __version__
from volume_syncer.cli import serve, sync


def version_callback(value: bool):
    """Callback to display version and exit."""
    if value:
        typer.echo(f"volume-syncer version {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="volume-syncer",
    help="volume-syncer - sync ssh, git, http and s3 sources into local volumes",
    add_completion=False,
)

# Register subcommands
app.command(name="serve")(serve.serve)
app.command(name="sync")(sync.sync)


@app.callback(invoke_without_command=True)
def entrypoint(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
):
    """
    volume-syncer - sync ssh, git, http and s3 sources into local volumes.

    Run 'volume-syncer <command> --help' for help on a specific command.
    """
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
