"""Rich display utilities for CLI output."""

from datetime import datetime

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from src.models.enums import ClassificationFlag, SubmissionState
from src.models.forms import FormDefinition
from src.pipeline.models import IntakeResult, IntakeStatus, SubmissionRecord

console = Console()

FLAG_STYLES = {
    ClassificationFlag.GREEN: "green",
    ClassificationFlag.YELLOW: "yellow",
    ClassificationFlag.RED: "red",
}

STATE_STYLES = {
    SubmissionState.RECEIVED: "blue",
    SubmissionState.VALIDATED: "blue",
    SubmissionState.QUEUED: "cyan",
    SubmissionState.ENRICHING: "cyan",
    SubmissionState.CLASSIFIED: "magenta",
    SubmissionState.DISPATCHED: "green",
    SubmissionState.BLOCKED: "red",
    SubmissionState.DEAD_LETTERED: "bold red",
}


def format_flag(flag: ClassificationFlag | None) -> Text:
    """Format a classification flag with color coding."""
    if flag is None:
        return Text("-", style="dim")
    return Text(flag.value.upper(), style=FLAG_STYLES[flag])


def format_state(state: SubmissionState) -> Text:
    """Format a workflow state with color coding."""
    return Text(state.value.upper(), style=STATE_STYLES.get(state, "white"))


def format_datetime(dt: datetime | None) -> str:
    """Format a datetime for display.

    Args:
        dt: Datetime to format.

    Returns:
        Formatted string or 'N/A'.
    """
    if dt is None:
        return "N/A"
    return dt.strftime("%Y-%m-%d %H:%M:%S UTC")


def create_record_panel(record: SubmissionRecord) -> Panel:
    """Create a panel displaying a submission record.

    Args:
        record: Submission record to display.

    Returns:
        Rich Panel object.
    """
    lines = [
        f"[bold]Submission ID:[/bold] {record.submission_id}",
        f"[bold]Form:[/bold] {record.form_id}",
        f"[bold]State:[/bold] {format_state(record.state)}",
        f"[bold]Flag:[/bold] {format_flag(record.flag)}",
        f"[bold]Action:[/bold] {record.action.value if record.action else 'N/A'}",
        f"[bold]Matched rule:[/bold] {record.matched_rule or 'default'}",
        f"[bold]Received:[/bold] {format_datetime(record.submission.received_at)}",
        f"[bold]Attempts:[/bold] {record.attempts}",
    ]
    if record.dispatched_targets:
        lines.append(
            f"[bold]Dispatched to:[/bold] {', '.join(record.dispatched_targets)}"
        )
    if record.last_error:
        lines.append(f"[bold]Last error:[/bold] [red]{record.last_error}[/red]")
    if record.reasons:
        lines.extend(["", "[bold cyan]Reasons[/bold cyan]"])
        lines.extend(f"  {r.signal}: {r.reason}" for r in record.reasons)

    return Panel(
        "\n".join(lines),
        title=f"[bold]Submission: {record.submission_id}[/bold]",
        border_style=FLAG_STYLES[record.flag] if record.flag else "blue",
    )


def create_history_table(record: SubmissionRecord) -> Table:
    """Create a table of a record's state transitions."""
    table = Table(title="State History", show_header=True)
    table.add_column("At", style="dim")
    table.add_column("From")
    table.add_column("To")
    table.add_column("Reason", style="white")

    for transition in record.history:
        table.add_row(
            format_datetime(transition.at),
            format_state(transition.from_state) if transition.from_state else "-",
            format_state(transition.to_state),
            transition.reason or "",
        )
    return table


def create_records_table(records: list[SubmissionRecord], title: str) -> Table:
    """Create a table listing submission records."""
    table = Table(title=title, show_header=True)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Form", style="white")
    table.add_column("Flag", justify="center")
    table.add_column("Attempts", justify="right")
    table.add_column("Last error", style="white")
    table.add_column("Updated", style="dim")

    for record in records:
        error = record.last_error or ""
        table.add_row(
            record.submission_id,
            record.form_id,
            format_flag(record.flag),
            str(record.attempts),
            error[:50] + "..." if len(error) > 50 else error,
            format_datetime(record.updated_at),
        )
    return table


def create_forms_table(definitions: list[FormDefinition]) -> Table:
    """Create a table summarizing loaded form definitions."""
    table = Table(title="Form Definitions", show_header=True)
    table.add_column("Form ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("Version", justify="center")
    table.add_column("Fields", justify="right")
    table.add_column("Rules (R/Y/G)", justify="center")

    for definition in definitions:
        rules = definition.classification
        table.add_row(
            definition.form_id,
            definition.name,
            definition.version,
            str(len(definition.fields)),
            f"{len(rules.red)}/{len(rules.yellow)}/{len(rules.green)}",
        )
    return table


def display_intake_result(result: IntakeResult) -> None:
    """Display the synchronous result of a submission."""
    color = {
        IntakeStatus.ACCEPTED: "green",
        IntakeStatus.DUPLICATE: "yellow",
        IntakeStatus.BLOCKED: "red",
    }[result.status]

    console.print()
    console.print(
        Panel(
            f"[bold {color}]Status: {result.status.value.upper()}[/bold {color}]\n"
            f"Submission ID: {result.submission_id}\n"
            f"State: {result.state.value}\n"
            f"Flag: {result.flag.value if result.flag else 'N/A'}",
            title="[bold]Intake Result[/bold]",
            border_style=color,
        )
    )
    if result.reasons:
        console.print("[bold red]Reasons:[/bold red]")
        for reason in result.reasons:
            console.print(f"  - {reason.signal}: {reason.reason}")
    console.print()


def print_error(message: str) -> None:
    """Print an error message.

    Args:
        message: Error message to display.
    """
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message.

    Args:
        message: Success message to display.
    """
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message.

    Args:
        message: Warning message to display.
    """
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message.

    Args:
        message: Info message to display.
    """
    console.print(f"[bold blue]Info:[/bold blue] {message}")
