"""CLI commands for submitting forms and inspecting processing state.

This module provides Typer-based CLI commands that run the intake
pipeline on JSON payloads, drain the work queue in-process, and query
stored submission records.
"""

import json
import logging
from pathlib import Path
from typing import Annotated

import typer

from src.cli.display import (
    console,
    create_history_table,
    create_record_panel,
    create_records_table,
    display_intake_result,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from src.config.settings import PipelineSettings
from src.models.enums import SubmissionState
from src.models.errors import ConfigurationError
from src.pipeline.factory import build_pipeline
from src.pipeline.models import IntakeStatus
from src.pipeline.store import FileSubmissionStore
from src.pipeline.worker import run_workers

logger = logging.getLogger(__name__)


def _load_settings() -> PipelineSettings:
    try:
        return PipelineSettings.from_env()
    except ValueError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(code=1) from None


def submit_command(
    file_path: Annotated[
        Path,
        typer.Argument(
            help="Path to JSON file containing the form submission",
            exists=True,
            readable=True,
        ),
    ],
    drain: Annotated[
        bool,
        typer.Option(
            "--drain",
            "-d",
            help="Process queued work in-process after intake",
        ),
    ] = False,
    output_json: Annotated[
        bool,
        typer.Option(
            "--json",
            "-j",
            help="Output result as JSON instead of formatted display",
        ),
    ] = False,
) -> None:
    """Run intake on a form submission.

    Security checks and business validation run synchronously. An accepted
    submission is stored as queued; with --drain it is also enriched,
    classified and dispatched before the command returns.

    Example:
        intake submit payloads/contact-sales.json --drain
    """
    try:
        with open(file_path, encoding="utf-8") as f:
            payload = json.load(f)
    except json.JSONDecodeError as e:
        print_error(f"Invalid JSON file: {e}")
        raise typer.Exit(code=1) from None

    pipeline = build_pipeline(_load_settings())
    try:
        result = pipeline.coordinator.submit(payload)
        summary = result.summary()

        if drain and result.enqueued:
            processed = pipeline.worker.drain()
            record = pipeline.store.get(result.submission_id)
            if record is not None:
                summary["processed"] = processed
                summary["state"] = record.state.value
                summary["flag"] = record.flag.value if record.flag else None
    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(code=1) from None
    except ValueError as e:
        print_error(f"Invalid submission: {e}")
        raise typer.Exit(code=1) from None
    finally:
        pipeline.close()

    if output_json:
        console.print_json(json.dumps(summary, default=str))
    else:
        display_intake_result(result)
        if drain and "processed" in summary:
            print_info(
                f"Processed {summary['processed']} item(s); "
                f"submission is now {summary['state']}"
            )

    if result.status == IntakeStatus.BLOCKED:
        if not output_json:
            print_warning("Submission was rejected.")
        raise typer.Exit(code=1)
    if not output_json:
        print_success(f"Submission {result.submission_id} {result.status.value}.")


def status_command(
    submission_id: Annotated[
        str,
        typer.Argument(help="Submission ID to look up"),
    ],
    output_json: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output the record as JSON"),
    ] = False,
) -> None:
    """Show a stored submission record and its state history.

    Example:
        intake status SUB-20240115143052-a1b2c3d4
    """
    store = FileSubmissionStore(_load_settings().store_dir)
    record = store.get(submission_id)
    if record is None:
        print_error(f"Submission not found: {submission_id}")
        raise typer.Exit(code=1)

    if output_json:
        console.print_json(json.dumps(record.summary(), default=str))
        return

    console.print()
    console.print(create_record_panel(record))
    console.print()
    console.print(create_history_table(record))
    console.print()


def dead_letters_command(
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum records to show"),
    ] = 50,
) -> None:
    """List dead-lettered submissions.

    Example:
        intake dead-letters --limit 10
    """
    store = FileSubmissionStore(_load_settings().store_dir)
    records = store.list_by_state(SubmissionState.DEAD_LETTERED)

    if not records:
        print_info("No dead-lettered submissions.")
        return

    console.print()
    console.print(
        create_records_table(records[:limit], title="Dead-Lettered Submissions")
    )
    console.print()
    if len(records) > limit:
        print_info(f"Showing {limit} of {len(records)} dead-lettered submissions.")


def work_command(
    concurrency: Annotated[
        int,
        typer.Option(
            "--concurrency",
            "-c",
            min=1,
            help="Number of worker threads",
        ),
    ] = 1,
) -> None:
    """Re-enqueue stored queued submissions and process them.

    Picks up submissions left queued by an earlier run (for example after a
    retryable dispatch failure) and works the queue until nothing is ready.

    Example:
        intake work --concurrency 4
    """
    pipeline = build_pipeline(_load_settings())
    try:
        requeued = pipeline.coordinator.requeue_stranded()
        processed = run_workers(pipeline.worker, concurrency)
    finally:
        pipeline.close()

    print_success(f"Re-enqueued {requeued} and processed {processed} item(s).")
