"""Durable workflow models for submission processing."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from src.models.enums import ClassificationFlag, RoutingAction, SubmissionState
from src.models.outcomes import FailureReason
from src.models.submission import Submission


def _utc_now() -> datetime:
    return datetime.now(UTC)


# Allowed state transitions; terminal states have none
TRANSITIONS: dict[SubmissionState, frozenset[SubmissionState]] = {
    SubmissionState.RECEIVED: frozenset(
        {SubmissionState.VALIDATED, SubmissionState.BLOCKED}
    ),
    SubmissionState.VALIDATED: frozenset(
        {SubmissionState.QUEUED, SubmissionState.BLOCKED}
    ),
    SubmissionState.QUEUED: frozenset(
        {SubmissionState.ENRICHING, SubmissionState.DEAD_LETTERED}
    ),
    SubmissionState.ENRICHING: frozenset(
        {
            SubmissionState.CLASSIFIED,
            SubmissionState.QUEUED,
            SubmissionState.DEAD_LETTERED,
        }
    ),
    SubmissionState.CLASSIFIED: frozenset(
        {
            SubmissionState.DISPATCHED,
            SubmissionState.BLOCKED,
            SubmissionState.QUEUED,
            SubmissionState.DEAD_LETTERED,
        }
    ),
    SubmissionState.DISPATCHED: frozenset(),
    SubmissionState.BLOCKED: frozenset(),
    SubmissionState.DEAD_LETTERED: frozenset(),
}


class InvalidTransitionError(ValueError):
    """A state change not permitted by the workflow."""

    def __init__(self, current: SubmissionState, new_state: SubmissionState):
        super().__init__(
            f"Cannot transition from {current.value} to {new_state.value}"
        )
        self.current = current
        self.new_state = new_state


class StateTransition(BaseModel):
    """One entry in a submission's state history."""

    from_state: SubmissionState | None = Field(default=None)
    to_state: SubmissionState
    at: datetime = Field(default_factory=_utc_now)
    reason: str | None = Field(default=None)


class WorkItem(BaseModel):
    """A unit of queued backend work for one submission."""

    submission_id: str = Field(..., description="Submission to process")
    dedup_key: str = Field(..., description="Deduplication key")
    attempts: int = Field(default=0, ge=0, description="Completed attempts")
    enqueued_at: datetime = Field(default_factory=_utc_now)
    available_at: datetime = Field(
        default_factory=_utc_now, description="Earliest delivery time"
    )
    last_error: str | None = Field(default=None)


class SubmissionRecord(BaseModel):
    """Durable record of a submission and its workflow state."""

    submission: Submission
    state: SubmissionState = Field(default=SubmissionState.RECEIVED)
    flag: ClassificationFlag | None = Field(default=None)
    action: RoutingAction | None = Field(default=None)
    matched_rule: str | None = Field(
        default=None, description="Rule that decided the current flag"
    )
    reasons: list[FailureReason] = Field(
        default_factory=list, description="Why the submission was blocked"
    )
    dispatched_targets: list[str] = Field(
        default_factory=list, description="Targets that accepted the submission"
    )
    attempts: int = Field(default=0, ge=0, description="Dispatch attempts made")
    last_error: str | None = Field(default=None)
    history: list[StateTransition] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @classmethod
    def new(cls, submission: Submission) -> "SubmissionRecord":
        """Create a record in the received state."""
        return cls(
            submission=submission,
            history=[StateTransition(to_state=SubmissionState.RECEIVED)],
        )

    @property
    def submission_id(self) -> str:
        return self.submission.submission_id

    @property
    def form_id(self) -> str:
        return self.submission.form_id

    @property
    def dedup_key(self) -> str:
        return self.submission.dedup_key

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def transition(self, new_state: SubmissionState, reason: str | None = None) -> None:
        """Move to a new state, appending to the history.

        Raises:
            InvalidTransitionError: If the workflow does not allow the change.
        """
        if new_state not in TRANSITIONS[self.state]:
            raise InvalidTransitionError(self.state, new_state)
        now = _utc_now()
        self.history.append(
            StateTransition(
                from_state=self.state, to_state=new_state, at=now, reason=reason
            )
        )
        self.state = new_state
        self.updated_at = now

    def summary(self) -> dict[str, Any]:
        """Return a summary of the record for display."""
        return {
            "submission_id": self.submission_id,
            "form_id": self.form_id,
            "state": self.state.value,
            "flag": self.flag.value if self.flag else None,
            "action": self.action.value if self.action else None,
            "matched_rule": self.matched_rule,
            "dispatched_targets": list(self.dispatched_targets),
            "attempts": self.attempts,
            "last_error": self.last_error,
            "reasons": [f"{r.signal}: {r.reason}" for r in self.reasons],
        }


class IntakeStatus(str, Enum):
    """Outcome of an intake request as seen by the submitter."""

    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"
    BLOCKED = "blocked"


class IntakeResult(BaseModel):
    """Synchronous response to a form submission."""

    status: IntakeStatus = Field(..., description="Accepted, duplicate or blocked")
    submission_id: str = Field(..., description="Submission the request maps to")
    state: SubmissionState = Field(..., description="Record state after intake")
    flag: ClassificationFlag | None = Field(default=None)
    reasons: list[FailureReason] = Field(default_factory=list)
    enqueued: bool = Field(default=False, description="Whether work was queued")

    @property
    def accepted(self) -> bool:
        return self.status in (IntakeStatus.ACCEPTED, IntakeStatus.DUPLICATE)

    def summary(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "submission_id": self.submission_id,
            "state": self.state.value,
            "flag": self.flag.value if self.flag else None,
            "reasons": [f"{r.signal}: {r.reason}" for r in self.reasons],
            "enqueued": self.enqueued,
        }
