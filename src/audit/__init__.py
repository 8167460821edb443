"""Audit logging module.

This module provides append-only audit logging of every submission
received, blocked, classified, dispatched or dead-lettered.

All events are stored with UTC timestamps and are immutable once created.
"""

from src.audit.logger import AuditLogger, EventType, generate_event_id
from src.audit.models import (
    AuditAction,
    AuditEvent,
    StateChangedEvent,
    SubmissionBlockedEvent,
    SubmissionClassifiedEvent,
    SubmissionDeadLetteredEvent,
    SubmissionDispatchedEvent,
    SubmissionReceivedEvent,
)

__all__ = [
    "AuditAction",
    "AuditEvent",
    "AuditLogger",
    "EventType",
    "StateChangedEvent",
    "SubmissionBlockedEvent",
    "SubmissionClassifiedEvent",
    "SubmissionDeadLetteredEvent",
    "SubmissionDispatchedEvent",
    "SubmissionReceivedEvent",
    "generate_event_id",
]
