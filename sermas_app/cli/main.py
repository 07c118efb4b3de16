"""
sermas-app CLI - Main entry point.

Commands:
    sermas-app run       - Connect and log forwarded platform events
    sermas-app app       - Fetch and print the application descriptor
    sermas-app version   - Show the version
"""

import typer

from .commands import connect

app = typer.Typer(
    name="sermas-app",
    help="sermas-app CLI - Connect a local process to a SERMAS platform application.",
    no_args_is_help=True,
)

# Register commands
app.command(name="run", help="Connect and log forwarded platform events until interrupted.")(connect.run_app)
app.command(name="app", help="Fetch the application descriptor and print it as JSON.")(connect.show_app)


@app.command()
def version():
    """
    Show the sermas-app version.
    """
    from sermas_app import __version__
    typer.echo(f"sermas-app v{__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
