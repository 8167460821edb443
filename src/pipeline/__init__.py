"""Submission workflow: intake, durable state, queue and workers.

This module provides the orchestration layer that takes a submission from
intake through enrichment, classification and dispatch, persisting every
state change so processing survives restarts and redelivery.
"""

from src.pipeline.factory import Pipeline, build_pipeline
from src.pipeline.intake import IntakeCoordinator
from src.pipeline.models import (
    IntakeResult,
    IntakeStatus,
    InvalidTransitionError,
    StateTransition,
    SubmissionRecord,
    WorkItem,
)
from src.pipeline.queue import DeadLetter, InMemoryWorkQueue, WorkQueue
from src.pipeline.store import (
    FileSubmissionStore,
    InMemorySubmissionStore,
    SubmissionStore,
)
from src.pipeline.worker import SubmissionWorker, run_workers

__all__ = [
    "DeadLetter",
    "FileSubmissionStore",
    "InMemorySubmissionStore",
    "InMemoryWorkQueue",
    "IntakeCoordinator",
    "IntakeResult",
    "IntakeStatus",
    "InvalidTransitionError",
    "Pipeline",
    "StateTransition",
    "SubmissionRecord",
    "SubmissionStore",
    "SubmissionWorker",
    "WorkItem",
    "WorkQueue",
    "build_pipeline",
    "run_workers",
]
