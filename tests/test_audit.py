"""Tests for audit logging module."""

import json
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from pydantic import ValidationError

from src.audit.logger import AuditLogger, generate_event_id
from src.audit.models import (
    AuditAction,
    AuditEvent,
    StateChangedEvent,
    SubmissionBlockedEvent,
    SubmissionClassifiedEvent,
    SubmissionDeadLetteredEvent,
    SubmissionReceivedEvent,
)


class TestGenerateEventId:
    """Tests for event ID generation."""

    def test_generates_unique_ids(self) -> None:
        """Each call generates a unique ID."""
        ids = [generate_event_id() for _ in range(100)]
        assert len(set(ids)) == 100

    def test_id_format(self) -> None:
        """ID follows expected format."""
        event_id = generate_event_id()
        assert event_id.startswith("EVT-")
        parts = event_id.split("-")
        assert len(parts) == 3
        assert len(parts[1]) == 14  # YYYYMMDDHHMMSS
        assert len(parts[2]) == 8  # Short UUID


class TestAuditEventModels:
    """Tests for audit event models."""

    def test_audit_event_immutable(self) -> None:
        """AuditEvent is immutable once created."""
        event = AuditEvent(
            event_id="EVT-001",
            action=AuditAction.SUBMISSION_RECEIVED,
            resource_type="submission",
            resource_id="SUB-001",
        )

        with pytest.raises(ValidationError):
            event.action = AuditAction.SUBMISSION_BLOCKED  # type: ignore

    def test_audit_event_default_timestamp(self) -> None:
        """AuditEvent gets UTC timestamp by default."""
        before = datetime.now(UTC)
        event = AuditEvent(
            event_id="EVT-001",
            action=AuditAction.SUBMISSION_RECEIVED,
            resource_type="submission",
            resource_id="SUB-001",
        )
        after = datetime.now(UTC)

        assert event.timestamp.tzinfo is not None
        assert before <= event.timestamp <= after

    def test_received_event_to_base(self) -> None:
        """Event-specific fields move into details."""
        event = SubmissionReceivedEvent(
            event_id="EVT-001",
            resource_id="SUB-001",
            actor="intake",
            form_id="contact-sales",
            dedup_key="contact-sales:abc",
            client_ip="203.0.113.7",
        )

        base = event.to_base_event()

        assert base.action == AuditAction.SUBMISSION_RECEIVED
        assert base.resource_type == "submission"
        assert base.actor == "intake"
        assert base.details == {
            "form_id": "contact-sales",
            "dedup_key": "contact-sales:abc",
            "client_ip": "203.0.113.7",
        }

    def test_blocked_event_to_base(self) -> None:
        event = SubmissionBlockedEvent(
            event_id="EVT-002",
            resource_id="SUB-001",
            stage="validation",
            reasons=[{"signal": "validation.email", "reason": "format"}],
        )

        base = event.to_base_event()

        assert base.details["stage"] == "validation"
        assert base.details["flag"] is None
        assert base.details["reasons"][0]["reason"] == "format"

    def test_classified_event_validates_score(self) -> None:
        """Spam scores outside [0, 1] are rejected."""
        with pytest.raises(ValidationError):
            SubmissionClassifiedEvent(
                event_id="EVT-003",
                resource_id="SUB-001",
                flag="green",
                routing_action="eloqua+builder",
                classification_pass="enrichment",
                spam_score=1.5,
            )

    def test_classified_event_pass_name(self) -> None:
        """Only the two classification passes are valid."""
        with pytest.raises(ValidationError):
            SubmissionClassifiedEvent(
                event_id="EVT-003",
                resource_id="SUB-001",
                flag="green",
                routing_action="eloqua+builder",
                classification_pass="manual",
            )

    def test_dead_lettered_event(self) -> None:
        event = SubmissionDeadLetteredEvent(
            event_id="EVT-004",
            resource_id="SUB-001",
            reason="max attempts (5) exhausted",
            attempts=5,
            last_error="crm_sync: HTTP 503",
        )

        base = event.to_base_event()

        assert base.action == AuditAction.SUBMISSION_DEAD_LETTERED
        assert base.details["attempts"] == 5
        assert base.details["last_error"] == "crm_sync: HTTP 503"


class TestAuditLogger:
    """Tests for AuditLogger."""

    @pytest.fixture
    def temp_log_dir(self) -> Path:
        """Create a temporary directory for audit logs."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    def test_creates_log_directory(self, temp_log_dir: Path) -> None:
        """Logger creates log directory if it doesn't exist."""
        log_dir = temp_log_dir / "audit_logs"
        assert not log_dir.exists()

        AuditLogger(log_dir=log_dir)

        assert log_dir.exists()

    def test_log_event_creates_dated_file(self, temp_log_dir: Path) -> None:
        """Events are written to a JSONL file named for their UTC date."""
        logger = AuditLogger(log_dir=temp_log_dir)
        event = StateChangedEvent(
            event_id=generate_event_id(),
            resource_id="SUB-001",
            from_state="validated",
            to_state="queued",
        )

        assert logger.log_event(event) == event.event_id

        log_file = temp_log_dir / f"{event.timestamp:%Y-%m-%d}.jsonl"
        lines = log_file.read_text().splitlines()
        assert len(lines) == 1
        data = json.loads(lines[0])
        assert data["action"] == "state_changed"
        assert data["details"]["to_state"] == "queued"

    def test_log_multiple_events_appends(self, temp_log_dir: Path) -> None:
        """Multiple events are appended to the same file."""
        logger = AuditLogger(log_dir=temp_log_dir)
        for i in range(3):
            logger.log_event(
                StateChangedEvent(
                    event_id=f"EVT-{i}", resource_id="SUB-001", to_state="queued"
                )
            )

        [log_file] = list(temp_log_dir.glob("*.jsonl"))
        assert len(log_file.read_text().splitlines()) == 3

    def test_get_events_by_resource_id(self, temp_log_dir: Path) -> None:
        """Retrieve only events for one submission, in time order."""
        logger = AuditLogger(log_dir=temp_log_dir)
        now = datetime.now(UTC)
        logger.log_event(
            StateChangedEvent(
                event_id="EVT-2",
                resource_id="SUB-001",
                to_state="enriching",
                timestamp=now,
            )
        )
        logger.log_event(
            StateChangedEvent(
                event_id="EVT-1",
                resource_id="SUB-001",
                to_state="queued",
                timestamp=now - timedelta(seconds=5),
            )
        )
        logger.log_event(
            StateChangedEvent(
                event_id="EVT-3", resource_id="SUB-002", to_state="queued"
            )
        )

        events = logger.get_events("SUB-001")
        assert [e.event_id for e in events] == ["EVT-1", "EVT-2"]

    def test_get_events_by_action(self, temp_log_dir: Path) -> None:
        logger = AuditLogger(log_dir=temp_log_dir)
        logger.log_event(
            StateChangedEvent(
                event_id="EVT-1", resource_id="SUB-001", to_state="queued"
            )
        )
        logger.log_event(
            SubmissionBlockedEvent(
                event_id="EVT-2", resource_id="SUB-002", stage="security"
            )
        )

        blocked = logger.get_events_by_action(AuditAction.SUBMISSION_BLOCKED)
        assert [e.resource_id for e in blocked] == ["SUB-002"]
        assert len(logger.get_all_events()) == 2

    def test_malformed_lines_skipped(self, temp_log_dir: Path) -> None:
        """A corrupt line does not hide the valid events around it."""
        logger = AuditLogger(log_dir=temp_log_dir)
        event = StateChangedEvent(
            event_id="EVT-1", resource_id="SUB-001", to_state="queued"
        )
        logger.log_event(event)
        log_file = temp_log_dir / f"{event.timestamp:%Y-%m-%d}.jsonl"
        with open(log_file, "a", encoding="utf-8") as f:
            f.write("{truncated\n")

        assert [e.event_id for e in logger.get_all_events()] == ["EVT-1"]

    def test_date_range_filter(self, temp_log_dir: Path) -> None:
        logger = AuditLogger(log_dir=temp_log_dir)
        logger.log_event(
            StateChangedEvent(
                event_id="EVT-old",
                resource_id="SUB-001",
                to_state="queued",
                timestamp=datetime(2024, 1, 15, tzinfo=UTC),
            )
        )
        logger.log_event(
            StateChangedEvent(
                event_id="EVT-new", resource_id="SUB-001", to_state="queued"
            )
        )

        recent = logger.get_events(
            "SUB-001", start_date=datetime.now(UTC) - timedelta(days=1)
        )
        assert [e.event_id for e in recent] == ["EVT-new"]
