"""
mcbridge unified CLI entry point.

Usage:
    mcbridge [OPTIONS] COMMAND [ARGS]...

Commands:
    relay     Run the public relay
    origin    Run the origin agent
    status    Query a game port for its status
    version   Show version information
"""

import typer

from mcbridge.cli.commands import origin, relay, status
from mcbridge.cli.output import console

app = typer.Typer(
    name="mcbridge",
    help="Minecraft and voice chat relay for servers without a public address",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Register command groups
app.add_typer(relay.app, name="relay", help="Run the public relay")
app.add_typer(origin.app, name="origin", help="Run the origin agent")
app.add_typer(status.app, name="status", help="Query a game port for its status")


@app.command("version")
def version():
    """Show version information."""
    from mcbridge import __version__

    console.print(f"mcbridge v{__version__}")


def run():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
