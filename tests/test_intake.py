"""Tests for synchronous intake.

Security and validation run in-line; accepted submissions are persisted
as queued and enqueued, rejected ones are persisted as blocked only.
"""

import copy
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from src.audit.logger import AuditLogger
from src.audit.models import AuditAction
from src.classification.engine import SECURITY_FAILURE_RULE
from src.config.forms import FormConfigCache
from src.models.enums import ClassificationFlag, DispatchStatus, SubmissionState
from src.models.errors import UnknownFormError
from src.pipeline.intake import IntakeCoordinator
from src.pipeline.models import IntakeStatus
from src.pipeline.queue import InMemoryWorkQueue
from src.pipeline.store import InMemorySubmissionStore
from src.pipeline.worker import SubmissionWorker
from src.routing.dispatch import DispatchResult
from src.security.stage import SecurityCheckStage


def with_fields(payload: dict, **fields) -> dict:
    payload = copy.deepcopy(payload)
    payload["fields"].update(fields)
    return payload


def with_metadata(payload: dict, **metadata) -> dict:
    payload = copy.deepcopy(payload)
    payload["metadata"].update(metadata)
    return payload


class TestAccepted:
    """Tests for submissions that pass intake."""

    def test_company_email_queued(
        self,
        coordinator: IntakeCoordinator,
        store: InMemorySubmissionStore,
        queue: InMemoryWorkQueue,
        contact_payload: dict,
    ) -> None:
        """A clean submission is stored queued with a provisional Yellow."""
        result = coordinator.submit(contact_payload)

        assert result.status == IntakeStatus.ACCEPTED
        assert result.state == SubmissionState.QUEUED
        assert result.flag == ClassificationFlag.YELLOW
        assert result.enqueued
        assert len(queue) == 1

        record = store.get(result.submission_id)
        assert record.state == SubmissionState.QUEUED
        assert [t.to_state for t in record.history] == [
            SubmissionState.RECEIVED,
            SubmissionState.VALIDATED,
            SubmissionState.QUEUED,
        ]
        context = record.submission.context
        assert context.lookup("security.phone.detail.e164") == "+16502530000"
        assert context.lookup("validation.email") == "passed"

    def test_free_email_yellow(
        self, coordinator: IntakeCoordinator, contact_payload: dict
    ) -> None:
        """Free webmail is accepted and provisionally Yellow by rule."""
        result = coordinator.submit(
            with_fields(contact_payload, email="jane.doe@gmail.com")
        )
        assert result.status == IntakeStatus.ACCEPTED
        assert result.flag == ClassificationFlag.YELLOW

    def test_geolocation_fails_open(
        self,
        coordinator: IntakeCoordinator,
        store: InMemorySubmissionStore,
        contact_payload: dict,
    ) -> None:
        """An unresolvable country does not block a fail-open check."""
        payload = copy.deepcopy(contact_payload)
        del payload["metadata"]["country"]

        result = coordinator.submit(payload)

        assert result.status == IntakeStatus.ACCEPTED
        record = store.get(result.submission_id)
        assert record.submission.context.lookup("security.geolocation") == "errored"


class TestBlocked:
    """Tests for rejected submissions."""

    def test_country_not_allowed(
        self,
        coordinator: IntakeCoordinator,
        store: InMemorySubmissionStore,
        queue: InMemoryWorkQueue,
        contact_payload: dict,
    ) -> None:
        """A disallowed country is blocked Red and never enqueued."""
        result = coordinator.submit(with_metadata(contact_payload, country="RU"))

        assert result.status == IntakeStatus.BLOCKED
        assert result.flag == ClassificationFlag.RED
        assert [(r.signal, r.reason) for r in result.reasons] == [
            ("security.geolocation", "country_not_allowed")
        ]
        assert len(queue) == 0

        record = store.get(result.submission_id)
        assert record.state == SubmissionState.BLOCKED
        assert record.matched_rule == SECURITY_FAILURE_RULE
        # Later checks never ran
        assert "security.emailDomain" not in record.submission.context

    def test_captcha_reported_before_rate_limit(
        self,
        coordinator: IntakeCoordinator,
        store: InMemorySubmissionStore,
        rate_limiter,
        contact_payload: dict,
    ) -> None:
        """Only the first failing check is reported."""
        for _ in range(5):
            rate_limiter.hit("jane@acme.io", 5, 3600)
        payload = with_metadata(contact_payload, captcha_token=None)

        result = coordinator.submit(payload)

        assert [r.reason for r in result.reasons] == ["captcha_missing"]
        context = store.get(result.submission_id).submission.context
        assert "security.rateLimit" not in context

    def test_rate_limit(
        self, coordinator: IntakeCoordinator, contact_payload: dict
    ) -> None:
        """The sixth submission within the window is rejected."""
        results = [
            coordinator.submit(with_fields(contact_payload, message=f"Request {i}"))
            for i in range(6)
        ]
        assert [r.status for r in results[:5]] == [IntakeStatus.ACCEPTED] * 5
        assert results[5].status == IntakeStatus.BLOCKED
        assert results[5].reasons[0].reason == "rate_limited"

    def test_validation_reports_all_errors(
        self,
        coordinator: IntakeCoordinator,
        store: InMemorySubmissionStore,
        queue: InMemoryWorkQueue,
        contact_payload: dict,
    ) -> None:
        """Business validation failures are blocked without a flag."""
        result = coordinator.submit(
            with_fields(contact_payload, company="", team_size="5000", consent=False)
        )

        assert result.status == IntakeStatus.BLOCKED
        assert result.flag is None
        assert {(r.signal, r.reason) for r in result.reasons} == {
            ("validation.company", "required"),
            ("validation.team_size", "invalid_option"),
            ("validation.consent", "required"),
        }
        assert store.get(result.submission_id).state == SubmissionState.BLOCKED
        assert len(queue) == 0

    def test_disposable_email(
        self, coordinator: IntakeCoordinator, contact_payload: dict
    ) -> None:
        result = coordinator.submit(
            with_fields(contact_payload, email="jane@mailinator.com")
        )
        assert result.reasons[0].reason == "email_domain_disposable"


class TestDuplicates:
    """Tests for duplicate detection at intake."""

    def test_same_payload_twice(
        self,
        coordinator: IntakeCoordinator,
        queue: InMemoryWorkQueue,
        contact_payload: dict,
    ) -> None:
        """A resubmission points at the original and queues nothing."""
        first = coordinator.submit(contact_payload)
        second = coordinator.submit(copy.deepcopy(contact_payload))

        assert second.status == IntakeStatus.DUPLICATE
        assert second.submission_id == first.submission_id
        assert second.accepted
        assert len(queue) == 1

    def test_idempotency_key(
        self, coordinator: IntakeCoordinator, contact_payload: dict
    ) -> None:
        """Different payloads with the same client token are duplicates."""
        first = coordinator.submit({**contact_payload, "idempotency_key": "tok-1"})
        second = coordinator.submit(
            {
                **with_fields(contact_payload, message="changed"),
                "idempotency_key": "tok-1",
            }
        )
        assert second.status == IntakeStatus.DUPLICATE
        assert second.submission_id == first.submission_id

    def test_blocked_original_not_a_duplicate(
        self, coordinator: IntakeCoordinator, contact_payload: dict
    ) -> None:
        """A fixed resubmission after a rejection is processed normally."""
        blocked = coordinator.submit(with_metadata(contact_payload, country="RU"))
        retried = coordinator.submit(contact_payload)

        assert blocked.status == IntakeStatus.BLOCKED
        assert retried.status == IntakeStatus.ACCEPTED
        assert retried.submission_id != blocked.submission_id

    def test_resubmission_after_dead_letter_is_processed(
        self,
        coordinator: IntakeCoordinator,
        worker: SubmissionWorker,
        store: InMemorySubmissionStore,
        crm_target: MagicMock,
        clock,
        contact_payload: dict,
    ) -> None:
        """A dead-lettered original does not swallow the same content later."""
        crm_target.submit.return_value = DispatchResult(
            target="crm_sync",
            status=DispatchStatus.PERMANENT_ERROR,
            message="HTTP 422: rejected",
        )
        original = coordinator.submit(contact_payload)
        worker.drain()
        assert store.get(original.submission_id).state == (
            SubmissionState.DEAD_LETTERED
        )

        crm_target.submit.return_value = DispatchResult(
            target="crm_sync", status=DispatchStatus.SUCCESS, status_code=200
        )
        clock.advance(10)
        retried = coordinator.submit(copy.deepcopy(contact_payload))

        assert retried.status == IntakeStatus.ACCEPTED
        assert retried.submission_id != original.submission_id
        assert retried.enqueued
        assert worker.drain() == 1
        assert store.get(retried.submission_id).state == SubmissionState.DISPATCHED


class TestConfiguration:
    """Tests for configuration failures and recovery."""

    def test_unknown_form_raises(
        self, coordinator: IntakeCoordinator, contact_payload: dict
    ) -> None:
        with pytest.raises(UnknownFormError):
            coordinator.submit({**contact_payload, "form_id": "missing-form"})

    def test_requeue_stranded(
        self,
        forms: FormConfigCache,
        security_stage: SecurityCheckStage,
        store: InMemorySubmissionStore,
        coordinator: IntakeCoordinator,
        clock,
        contact_payload: dict,
    ) -> None:
        """Queued records lost with an old queue are enqueued again."""
        coordinator.submit(contact_payload)
        fresh_queue = InMemoryWorkQueue(clock=clock)
        restarted = IntakeCoordinator(
            forms=forms, security=security_stage, store=store, queue=fresh_queue
        )

        assert restarted.requeue_stranded() == 1
        assert restarted.requeue_stranded() == 0
        assert len(fresh_queue) == 1


class TestIntakeAudit:
    """Tests for audit events written at intake."""

    def test_events_logged(
        self,
        forms: FormConfigCache,
        security_stage: SecurityCheckStage,
        store: InMemorySubmissionStore,
        queue: InMemoryWorkQueue,
        contact_payload: dict,
        tmp_path: Path,
    ) -> None:
        audit = AuditLogger(tmp_path / "audit")
        coordinator = IntakeCoordinator(
            forms=forms, security=security_stage, store=store, queue=queue, audit=audit
        )

        accepted = coordinator.submit(contact_payload)
        blocked = coordinator.submit(with_metadata(contact_payload, country="RU"))

        actions = [e.action for e in audit.get_events(accepted.submission_id)]
        assert actions == [
            AuditAction.SUBMISSION_RECEIVED,
            AuditAction.SUBMISSION_CLASSIFIED,
            AuditAction.STATE_CHANGED,
        ]
        [event] = audit.get_events_by_action(AuditAction.SUBMISSION_BLOCKED)
        assert event.resource_id == blocked.submission_id
        assert event.details["stage"] == "security"
        assert event.details["flag"] == "red"
