"""Backend processing of queued submissions.

A worker takes one WorkItem at a time through enrichment, the second
classification pass and dispatch. Every step is safe to repeat: terminal
records are acknowledged without work, enrichment recorded on an earlier
attempt is reused, and each target that already accepted the submission
is skipped.
"""

import logging
import random
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from typing import Any

from src.audit.logger import AuditLogger, generate_event_id
from src.audit.models import (
    StateChangedEvent,
    SubmissionClassifiedEvent,
    SubmissionDeadLetteredEvent,
    SubmissionDispatchedEvent,
)
from src.classification.engine import ClassificationEngine
from src.config.forms import FormConfigCache
from src.config.settings import (
    DEFAULT_MAX_AGE_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_RETRY_MAX_DELAY,
    PipelineSettings,
)
from src.enrichment.orchestrator import EnrichmentOrchestrator
from src.enrichment.spam import COMPANY_SIGNAL, SPAM_SCORE_SIGNAL, spam_signal
from src.models.enrichment import EnrichmentResult
from src.models.enums import (
    ClassificationFlag,
    DispatchStatus,
    SecurityCheckKind,
    SubmissionState,
)
from src.models.errors import (
    ConcurrentUpdateError,
    ConfigurationError,
    DispatchPermanentError,
    DispatchRetryableError,
)
from src.models.forms import FormDefinition
from src.models.outcomes import CheckOutcome, FailureReason
from src.models.submission import Submission
from src.pipeline.models import SubmissionRecord, WorkItem
from src.pipeline.queue import WorkQueue
from src.pipeline.store import SubmissionStore
from src.routing.dispatch import DispatchResult, DispatchTarget
from src.routing.routes import targets_for

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class SubmissionWorker:
    """Processes work items from the queue.

    Attributes:
        name: Worker name used in logs and audit events.
        max_attempts: Dispatch attempts before a submission is dead-lettered.
    """

    def __init__(
        self,
        forms: FormConfigCache,
        store: SubmissionStore,
        queue: WorkQueue,
        enrichment: EnrichmentOrchestrator,
        targets: dict[str, DispatchTarget],
        engine: ClassificationEngine | None = None,
        audit: AuditLogger | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        retry_max_delay: float = DEFAULT_RETRY_MAX_DELAY,
        retry_jitter: bool = True,
        max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
        clock: Callable[[], datetime] | None = None,
        name: str = "worker",
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.forms = forms
        self.store = store
        self.queue = queue
        self.enrichment = enrichment
        self.targets = targets
        self.engine = engine or ClassificationEngine()
        self.audit = audit
        self.max_attempts = max_attempts
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self.retry_jitter = retry_jitter
        self.max_age = timedelta(seconds=max_age_seconds)
        self._clock = clock or _utc_now
        self.name = name

    @classmethod
    def from_settings(
        cls,
        settings: PipelineSettings,
        forms: FormConfigCache,
        store: SubmissionStore,
        queue: WorkQueue,
        enrichment: EnrichmentOrchestrator,
        targets: dict[str, DispatchTarget],
        audit: AuditLogger | None = None,
    ) -> "SubmissionWorker":
        """Create a worker with retry policy taken from settings."""
        return cls(
            forms=forms,
            store=store,
            queue=queue,
            enrichment=enrichment,
            targets=targets,
            audit=audit,
            max_attempts=settings.max_attempts,
            retry_base_delay=settings.retry_base_delay,
            retry_max_delay=settings.retry_max_delay,
            retry_jitter=settings.retry_jitter,
            max_age_seconds=settings.max_age_seconds,
        )

    def _audit(self, event: Any) -> None:
        if self.audit is not None:
            self.audit.log_event(event)

    def _audit_transition(
        self,
        record: SubmissionRecord,
        from_state: SubmissionState,
        reason: str | None = None,
    ) -> None:
        self._audit(
            StateChangedEvent(
                event_id=generate_event_id(),
                resource_id=record.submission_id,
                actor=self.name,
                from_state=from_state.value,
                to_state=record.state.value,
                reason=reason,
            )
        )

    def _calculate_backoff(self, attempt: int) -> float:
        """Calculate retry delay with exponential increase and jitter.

        Args:
            attempt: Attempt number that just failed (1-indexed).

        Returns:
            Delay in seconds before the next attempt.
        """
        delay = self.retry_base_delay * (2 ** (attempt - 1))
        if self.retry_jitter:
            # Add jitter (up to 25% of delay)
            delay += delay * 0.25 * random.random()
        return float(min(delay, self.retry_max_delay))

    def _enrichment_domain(
        self, submission: Submission, definition: FormDefinition
    ) -> str | None:
        """Domain to enrich: the one the email check saw, else the email field."""
        outcome = submission.context.get(SecurityCheckKind.EMAIL_DOMAIN.signal)
        if isinstance(outcome, CheckOutcome) and outcome.detail.get("domain"):
            return outcome.detail["domain"]
        return submission.email_domain(definition.email_field)

    def _enrich_and_classify(
        self, record: SubmissionRecord, definition: FormDefinition
    ) -> SubmissionRecord:
        """Enrich, re-classify and persist the record as classified or blocked."""
        context = record.submission.context
        if COMPANY_SIGNAL not in context:
            domain = self._enrichment_domain(record.submission, definition)
            context.record(COMPANY_SIGNAL, self.enrichment.enrich(domain))
        if SPAM_SCORE_SIGNAL not in context:
            context.record(SPAM_SCORE_SIGNAL, spam_signal(context))

        result = self.engine.classify(definition, context, previous=record.flag)
        record.flag = result.flag
        record.action = result.action
        record.matched_rule = result.matched_rule
        record.transition(SubmissionState.CLASSIFIED, reason=result.matched_rule)

        if result.flag == ClassificationFlag.RED:
            record.reasons.append(
                FailureReason(signal="classification", reason=result.matched_rule)
            )
            record.transition(SubmissionState.BLOCKED, reason=result.matched_rule)

        record = self.store.update(record, expected_state=SubmissionState.ENRICHING)

        enrichment = context.get(COMPANY_SIGNAL)
        score = context.lookup(SPAM_SCORE_SIGNAL)
        self._audit(
            SubmissionClassifiedEvent(
                event_id=generate_event_id(),
                resource_id=record.submission_id,
                actor=self.name,
                flag=result.flag.value,
                routing_action=result.action.value,
                matched_rule=result.matched_rule,
                classification_pass="enrichment",
                spam_score=score if isinstance(score, float) else None,
                enrichment_status=(
                    enrichment.status.value
                    if isinstance(enrichment, EnrichmentResult)
                    else None
                ),
            )
        )
        self._audit_transition(record, SubmissionState.ENRICHING, result.matched_rule)
        logger.info(
            "Submission %s classified %s (%s)",
            record.submission_id,
            result.flag.value,
            result.matched_rule or "default",
        )
        return record

    def _call_target(self, name: str, record: SubmissionRecord) -> DispatchResult:
        target = self.targets.get(name)
        if target is None:
            return DispatchResult(
                target=name,
                status=DispatchStatus.PERMANENT_ERROR,
                message="target not configured",
            )
        try:
            return target.submit(record)
        except DispatchRetryableError as e:
            return DispatchResult(
                target=name, status=DispatchStatus.RETRYABLE_ERROR, message=str(e)
            )
        except DispatchPermanentError as e:
            return DispatchResult(
                target=name, status=DispatchStatus.PERMANENT_ERROR, message=str(e)
            )

    def _dead_letter(
        self, record: SubmissionRecord, item: WorkItem, reason: str
    ) -> SubmissionRecord:
        from_state = record.state
        record.transition(SubmissionState.DEAD_LETTERED, reason=reason)
        record = self.store.update(record, expected_state=from_state)
        self.queue.dead_letter(item, reason)
        logger.error(
            "Submission %s dead-lettered after %d attempt(s): %s",
            record.submission_id,
            record.attempts,
            reason,
        )
        self._audit(
            SubmissionDeadLetteredEvent(
                event_id=generate_event_id(),
                resource_id=record.submission_id,
                actor=self.name,
                reason=reason,
                attempts=record.attempts,
                last_error=record.last_error,
            )
        )
        self._audit_transition(record, from_state, reason)
        return record

    def _dispatch(self, record: SubmissionRecord, item: WorkItem) -> SubmissionRecord:
        """Send a classified record to each routed target not yet reached."""
        if record.flag is None:
            raise ValueError(f"Submission {record.submission_id} has no flag")
        attempt = max(record.attempts, item.attempts) + 1
        failure: DispatchResult | None = None

        for name in targets_for(record.flag):
            if name in record.dispatched_targets:
                continue
            result = self._call_target(name, record)
            if not result.is_success:
                failure = result
                break
            record.dispatched_targets.append(name)
            record = self.store.update(
                record, expected_state=SubmissionState.CLASSIFIED
            )
            logger.info("Submission %s accepted by %s", record.submission_id, name)

        record.attempts = attempt

        if failure is None:
            record.last_error = None
            record.transition(SubmissionState.DISPATCHED)
            record = self.store.update(
                record, expected_state=SubmissionState.CLASSIFIED
            )
            self.queue.ack(item)
            self._audit(
                SubmissionDispatchedEvent(
                    event_id=generate_event_id(),
                    resource_id=record.submission_id,
                    actor=self.name,
                    flag=record.flag.value,
                    targets=list(record.dispatched_targets),
                    attempts=attempt,
                )
            )
            self._audit_transition(record, SubmissionState.CLASSIFIED)
            return record

        record.last_error = f"{failure.target}: {failure.message}"
        if failure.status == DispatchStatus.PERMANENT_ERROR:
            return self._dead_letter(
                record, item, f"permanent dispatch error from {failure.target}"
            )
        if attempt >= self.max_attempts:
            return self._dead_letter(
                record, item, f"max attempts ({self.max_attempts}) exhausted"
            )
        if self._clock() - record.created_at > self.max_age:
            return self._dead_letter(record, item, "max age exceeded")

        delay = self._calculate_backoff(attempt)
        record.transition(SubmissionState.QUEUED, reason="retry")
        record = self.store.update(record, expected_state=SubmissionState.CLASSIFIED)
        self.queue.nack(
            item.model_copy(
                update={"attempts": attempt, "last_error": record.last_error}
            ),
            delay,
        )
        logger.warning(
            "Dispatch of %s failed (attempt %d/%d), retrying in %.1fs: %s",
            record.submission_id,
            attempt,
            self.max_attempts,
            delay,
            record.last_error,
        )
        self._audit_transition(record, SubmissionState.CLASSIFIED, "retry")
        return record

    def process(self, item: WorkItem) -> SubmissionState | None:
        """Process one work item.

        Args:
            item: Item taken from the queue.

        Returns:
            The record's state after this attempt, or None if the attempt
            was abandoned (record missing or lost a concurrent update).
        """
        record = self.store.get(item.submission_id)
        if record is None:
            logger.error("No stored record for work item %s", item.submission_id)
            self.queue.dead_letter(item, "record missing")
            return None

        if record.is_terminal:
            logger.debug(
                "Submission %s already %s; acknowledging",
                record.submission_id,
                record.state.value,
            )
            self.queue.ack(item, remember=record.state == SubmissionState.DISPATCHED)
            return record.state

        try:
            definition = self.forms.get(record.form_id)

            if record.state == SubmissionState.QUEUED:
                record = self.store.update_state(
                    record.submission_id,
                    SubmissionState.ENRICHING,
                    expected_state=SubmissionState.QUEUED,
                )
                self._audit_transition(record, SubmissionState.QUEUED)

            if record.state == SubmissionState.ENRICHING:
                record = self._enrich_and_classify(record, definition)
                if record.state == SubmissionState.BLOCKED:
                    self.queue.ack(item, remember=False)
                    return record.state

            if record.state == SubmissionState.CLASSIFIED:
                record = self._dispatch(record, item)
                return record.state

            logger.warning(
                "Submission %s is %s and cannot be processed yet",
                record.submission_id,
                record.state.value,
            )
            self.queue.nack(item, self.retry_base_delay)
            return record.state

        except ConfigurationError as e:
            self._dead_letter(record, item, f"configuration error: {e}")
            return SubmissionState.DEAD_LETTERED
        except ConcurrentUpdateError as e:
            logger.warning(
                "Abandoning %s: lost concurrent update (%s)", item.submission_id, e
            )
            return None

    def run_once(self) -> bool:
        """Process the next available item.

        Returns:
            True if an item was taken from the queue, False if none was ready.
        """
        item = self.queue.dequeue()
        if item is None:
            return False
        try:
            self.process(item)
        except Exception:
            # Left in flight; the visibility timeout redelivers it
            logger.exception("Worker %s failed on %s", self.name, item.submission_id)
        return True

    def drain(self, max_items: int | None = None) -> int:
        """Process items until none is ready.

        Args:
            max_items: Optional cap on items processed.

        Returns:
            Number of items processed.
        """
        processed = 0
        while max_items is None or processed < max_items:
            if not self.run_once():
                break
            processed += 1
        return processed


def run_workers(
    worker: SubmissionWorker,
    concurrency: int,
    stop_event: threading.Event | None = None,
    poll_interval: float = 0.5,
) -> int:
    """Run a worker on several threads over its shared queue.

    Without a ``stop_event`` each thread stops once the queue has nothing
    ready; with one, threads keep polling until it is set.

    Returns:
        Total number of items processed.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be at least 1")

    def loop() -> int:
        processed = 0
        while stop_event is None or not stop_event.is_set():
            if worker.run_once():
                processed += 1
            elif stop_event is None:
                break
            else:
                stop_event.wait(poll_interval)
        return processed

    with ThreadPoolExecutor(
        max_workers=concurrency, thread_name_prefix=worker.name
    ) as executor:
        futures = [executor.submit(loop) for _ in range(concurrency)]
        total = sum(f.result() for f in futures)
    logger.info("Workers processed %d item(s)", total)
    return total
