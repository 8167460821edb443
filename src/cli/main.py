"""Main CLI entry point for the form intake pipeline."""

import logging
from typing import Annotated

import typer
from rich.logging import RichHandler

from src.cli.display import console
from src.cli.forms import app as forms_app
from src.cli.process import (
    dead_letters_command,
    status_command,
    submit_command,
    work_command,
)

# Create main Typer app
app = typer.Typer(
    name="intake",
    help="Form intake pipeline: security, validation, enrichment and routing.",
    no_args_is_help=True,
)


@app.callback()
def configure(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


# Register commands
app.command("submit")(submit_command)
app.command("status")(status_command)
app.command("dead-letters")(dead_letters_command)
app.command("work")(work_command)
app.add_typer(forms_app, name="forms")


def main() -> None:
    """Entry point for the intake CLI."""
    app()


if __name__ == "__main__":
    main()
