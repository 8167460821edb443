"""CLI commands for form definitions."""

from typing import Annotated

import typer

from src.cli.display import (
    console,
    create_forms_table,
    print_error,
    print_success,
    print_warning,
)
from src.config.forms import DirectoryFormLoader, FormConfigCache
from src.config.settings import PipelineSettings
from src.models.errors import ConfigurationError
from src.models.forms import FormDefinition

app = typer.Typer(
    name="forms",
    help="Inspect and validate form definitions.",
    no_args_is_help=True,
)


@app.command("validate")
def validate_command(
    form_id: Annotated[
        str | None,
        typer.Argument(help="Form ID to validate (default: every form)"),
    ] = None,
) -> None:
    """Load and validate form definitions.

    Example:
        intake forms validate contact-sales
    """
    try:
        settings = PipelineSettings.from_env()
    except ValueError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(code=1) from None

    loader = DirectoryFormLoader(settings.forms_dir)
    cache = FormConfigCache(loader)
    form_ids = [form_id] if form_id else loader.available()

    if not form_ids:
        print_warning(f"No form definitions found in {settings.forms_dir}")
        raise typer.Exit(code=0)

    valid: list[FormDefinition] = []
    failures = 0
    for fid in form_ids:
        try:
            valid.append(cache.get(fid))
        except ConfigurationError as e:
            failures += 1
            print_error(str(e))

    if valid:
        console.print()
        console.print(create_forms_table(valid))
        console.print()

    if failures:
        raise typer.Exit(code=1)
    print_success(f"{len(valid)} form definition(s) valid.")
