"""Synchronous intake of form submissions.

Handles one submission per call:

1. Resolve the form definition (configuration errors propagate)
2. Security checks, then business validation
3. First classification pass
4. Duplicate detection against active submissions
5. Persist, mark queued, then enqueue backend work

A rejected submission is stored as ``blocked`` and never enqueued.
"""

import logging
import threading
from typing import Any

from src.audit.logger import AuditLogger, generate_event_id
from src.audit.models import (
    StateChangedEvent,
    SubmissionBlockedEvent,
    SubmissionClassifiedEvent,
    SubmissionReceivedEvent,
)
from src.classification.engine import (
    SECURITY_FAILURE_RULE,
    ClassificationEngine,
    routing_action,
)
from src.config.forms import FormConfigCache
from src.intake.forms import parse_submission
from src.intake.validation import validate_fields
from src.models.enums import ACTIVE_STATES, ClassificationFlag, SubmissionState
from src.models.outcomes import FailureReason
from src.models.submission import Submission
from src.pipeline.models import (
    IntakeResult,
    IntakeStatus,
    SubmissionRecord,
    WorkItem,
)
from src.pipeline.queue import WorkQueue
from src.pipeline.store import SubmissionStore
from src.security.stage import SecurityCheckStage

logger = logging.getLogger(__name__)


class IntakeCoordinator:
    """Runs the synchronous half of the pipeline for each submission."""

    def __init__(
        self,
        forms: FormConfigCache,
        security: SecurityCheckStage,
        store: SubmissionStore,
        queue: WorkQueue,
        engine: ClassificationEngine | None = None,
        audit: AuditLogger | None = None,
    ):
        self.forms = forms
        self.security = security
        self.store = store
        self.queue = queue
        self.engine = engine or ClassificationEngine()
        self.audit = audit
        # Serializes the duplicate check with the write that follows it
        self._dedup_lock = threading.Lock()

    def _audit(self, event: Any) -> None:
        if self.audit is not None:
            self.audit.log_event(event)

    def _block(
        self,
        record: SubmissionRecord,
        stage: str,
        reasons: list[FailureReason],
        flag: ClassificationFlag | None = None,
        matched_rule: str | None = None,
    ) -> IntakeResult:
        """Persist a rejected submission and build the rejection result."""
        record.flag = flag
        record.action = routing_action(flag) if flag else None
        record.matched_rule = matched_rule
        record.reasons = list(reasons)
        record.transition(SubmissionState.BLOCKED, reason=stage)
        self.store.put(record)

        logger.warning(
            "Submission %s blocked at %s: %s",
            record.submission_id,
            stage,
            ", ".join(f"{r.signal}={r.reason}" for r in reasons),
        )
        self._audit(
            SubmissionBlockedEvent(
                event_id=generate_event_id(),
                resource_id=record.submission_id,
                actor="intake",
                stage=stage,
                flag=flag.value if flag else None,
                reasons=[r.model_dump(mode="json") for r in reasons],
            )
        )
        return IntakeResult(
            status=IntakeStatus.BLOCKED,
            submission_id=record.submission_id,
            state=record.state,
            flag=flag,
            reasons=list(reasons),
        )

    def submit(self, payload: dict[str, Any] | Submission) -> IntakeResult:
        """Accept or reject a form submission.

        Args:
            payload: Raw submission payload or an already parsed Submission.

        Returns:
            IntakeResult: accepted (work queued), duplicate (points at the
            active submission with the same dedup key) or blocked.

        Raises:
            ValueError: If the payload is not structurally a submission.
            ConfigurationError: If the form is unknown or its definition is
                invalid.
        """
        submission = (
            payload if isinstance(payload, Submission) else parse_submission(payload)
        )
        definition = self.forms.get(submission.form_id)

        record = SubmissionRecord.new(submission)
        self._audit(
            SubmissionReceivedEvent(
                event_id=generate_event_id(),
                resource_id=submission.submission_id,
                actor="intake",
                form_id=submission.form_id,
                dedup_key=submission.dedup_key,
                client_ip=submission.metadata.client_ip,
            )
        )

        security = self.security.run(submission, definition.security)
        if security.is_blocked:
            return self._block(
                record,
                "security",
                security.failures,
                flag=ClassificationFlag.RED,
                matched_rule=SECURITY_FAILURE_RULE,
            )

        validation = validate_fields(submission, definition)
        if validation.is_blocked:
            return self._block(record, "validation", validation.failures)

        classification = self.engine.classify(definition, submission.context)
        self._audit(
            SubmissionClassifiedEvent(
                event_id=generate_event_id(),
                resource_id=submission.submission_id,
                actor="intake",
                flag=classification.flag.value,
                routing_action=classification.action.value,
                matched_rule=classification.matched_rule,
                classification_pass="intake",
            )
        )
        if classification.flag == ClassificationFlag.RED:
            return self._block(
                record,
                "classification",
                [
                    FailureReason(
                        signal="classification", reason=classification.matched_rule
                    )
                ],
                flag=ClassificationFlag.RED,
                matched_rule=classification.matched_rule,
            )

        record.flag = classification.flag
        record.action = classification.action
        record.matched_rule = classification.matched_rule
        record.transition(SubmissionState.VALIDATED)

        with self._dedup_lock:
            existing = self.store.find_by_dedup_key(
                submission.dedup_key, states=ACTIVE_STATES
            )
            if existing:
                original = existing[0]
                logger.info(
                    "Submission %s duplicates active submission %s",
                    submission.submission_id,
                    original.submission_id,
                )
                return IntakeResult(
                    status=IntakeStatus.DUPLICATE,
                    submission_id=original.submission_id,
                    state=original.state,
                    flag=original.flag,
                )

            self.store.put(record)
            record = self.store.update_state(
                record.submission_id,
                SubmissionState.QUEUED,
                expected_state=SubmissionState.VALIDATED,
            )

        self._audit(
            StateChangedEvent(
                event_id=generate_event_id(),
                resource_id=record.submission_id,
                actor="intake",
                from_state=SubmissionState.VALIDATED.value,
                to_state=SubmissionState.QUEUED.value,
            )
        )
        enqueued = self.queue.enqueue(
            WorkItem(submission_id=record.submission_id, dedup_key=record.dedup_key),
            record.dedup_key,
        )
        if not enqueued:
            logger.warning(
                "Work for submission %s was not enqueued; left queued for requeue",
                record.submission_id,
            )
        logger.info(
            "Accepted submission %s for form %s (provisional flag %s)",
            record.submission_id,
            record.form_id,
            record.flag.value if record.flag else None,
        )
        return IntakeResult(
            status=IntakeStatus.ACCEPTED,
            submission_id=record.submission_id,
            state=record.state,
            flag=record.flag,
            enqueued=enqueued,
        )

    def requeue_stranded(self) -> int:
        """Enqueue work for queued records that are not in the queue.

        The queue discards items whose dedup key is already pending or in
        flight, so this is safe to run at any time.

        Returns:
            Number of items newly enqueued.
        """
        count = 0
        for record in self.store.list_by_state(SubmissionState.QUEUED):
            item = WorkItem(
                submission_id=record.submission_id,
                dedup_key=record.dedup_key,
                attempts=record.attempts,
                last_error=record.last_error,
            )
            if self.queue.enqueue(item, record.dedup_key):
                count += 1
        if count:
            logger.info("Re-enqueued %d stranded submission(s)", count)
        return count
