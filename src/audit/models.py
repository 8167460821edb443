"""Audit event models for submission processing.

All models are immutable once created (Pydantic frozen=True) and include
UTC timestamps so every state change of a submission can be traced.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


def _utc_now() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class AuditAction(str, Enum):
    """Types of actions that can be audited."""

    SUBMISSION_RECEIVED = "submission_received"
    SUBMISSION_BLOCKED = "submission_blocked"
    STATE_CHANGED = "state_changed"
    SUBMISSION_CLASSIFIED = "submission_classified"
    SUBMISSION_DISPATCHED = "submission_dispatched"
    SUBMISSION_DEAD_LETTERED = "submission_dead_lettered"


class AuditEvent(BaseModel):
    """Base audit event model.

    All audit events are converted to this shape for storage.

    Attributes:
        event_id: Unique identifier for this event.
        timestamp: UTC timestamp when event occurred.
        action: Type of action being logged.
        resource_type: Type of resource affected (always "submission" today).
        resource_id: ID of the resource affected.
        actor: Component that performed the action (intake, worker name).
        details: Additional action-specific details.
        metadata: Optional metadata for extensibility.
    """

    model_config = {"frozen": True}

    event_id: str = Field(..., description="Unique event identifier")
    timestamp: datetime = Field(
        default_factory=_utc_now,
        description="UTC timestamp of the event",
    )
    action: AuditAction = Field(..., description="Type of action performed")
    resource_type: str = Field(..., description="Type of resource affected")
    resource_id: str = Field(..., description="ID of the affected resource")
    actor: str = Field(default="system", description="Component that acted")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Action-specific details",
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Optional metadata",
    )


class _SubmissionEvent(BaseModel):
    """Fields shared by every submission event."""

    model_config = {"frozen": True}

    event_id: str = Field(..., description="Unique event identifier")
    timestamp: datetime = Field(default_factory=_utc_now)
    resource_type: Literal["submission"] = Field(default="submission")
    resource_id: str = Field(..., description="Submission ID")
    actor: str = Field(default="system")
    metadata: dict[str, Any] = Field(default_factory=dict)

    def _details(self) -> dict[str, Any]:
        return self.model_dump(
            mode="json",
            exclude={
                "event_id",
                "timestamp",
                "action",
                "resource_type",
                "resource_id",
                "actor",
                "metadata",
            },
        )

    def to_base_event(self) -> AuditEvent:
        """Convert to base AuditEvent for storage."""
        return AuditEvent(
            event_id=self.event_id,
            timestamp=self.timestamp,
            action=self.action,  # type: ignore[attr-defined]
            resource_type=self.resource_type,
            resource_id=self.resource_id,
            actor=self.actor,
            details=self._details(),
            metadata=self.metadata,
        )


class SubmissionReceivedEvent(_SubmissionEvent):
    """Event logged when a submission enters intake."""

    action: Literal[AuditAction.SUBMISSION_RECEIVED] = Field(
        default=AuditAction.SUBMISSION_RECEIVED
    )
    form_id: str = Field(..., description="Form the submission targets")
    dedup_key: str = Field(..., description="Deduplication key")
    client_ip: str | None = Field(default=None)


class SubmissionBlockedEvent(_SubmissionEvent):
    """Event logged when a submission is rejected.

    Captures the stage that blocked it and every failing signal.
    """

    action: Literal[AuditAction.SUBMISSION_BLOCKED] = Field(
        default=AuditAction.SUBMISSION_BLOCKED
    )
    stage: str = Field(..., description="security, validation or classification")
    flag: str | None = Field(default=None, description="Flag, when classified")
    reasons: list[dict[str, Any]] = Field(
        default_factory=list, description="Failing signals with reason codes"
    )


class StateChangedEvent(_SubmissionEvent):
    """Event logged on every workflow state transition."""

    action: Literal[AuditAction.STATE_CHANGED] = Field(
        default=AuditAction.STATE_CHANGED
    )
    from_state: str | None = Field(default=None)
    to_state: str = Field(...)
    reason: str | None = Field(default=None)


class SubmissionClassifiedEvent(_SubmissionEvent):
    """Event logged for each classification pass."""

    action: Literal[AuditAction.SUBMISSION_CLASSIFIED] = Field(
        default=AuditAction.SUBMISSION_CLASSIFIED
    )
    flag: str = Field(..., description="Assigned flag")
    routing_action: str = Field(..., description="Routing implied by the flag")
    matched_rule: str | None = Field(default=None)
    classification_pass: Literal["intake", "enrichment"] = Field(...)
    spam_score: float | None = Field(default=None, ge=0.0, le=1.0)
    enrichment_status: str | None = Field(default=None)


class SubmissionDispatchedEvent(_SubmissionEvent):
    """Event logged once every routed target accepted the submission."""

    action: Literal[AuditAction.SUBMISSION_DISPATCHED] = Field(
        default=AuditAction.SUBMISSION_DISPATCHED
    )
    flag: str = Field(...)
    targets: list[str] = Field(default_factory=list)
    attempts: int = Field(default=1, ge=1)


class SubmissionDeadLetteredEvent(_SubmissionEvent):
    """Event logged when processing is abandoned."""

    action: Literal[AuditAction.SUBMISSION_DEAD_LETTERED] = Field(
        default=AuditAction.SUBMISSION_DEAD_LETTERED
    )
    reason: str = Field(..., description="Why the submission was dead-lettered")
    attempts: int = Field(default=0, ge=0)
    last_error: str | None = Field(default=None)
