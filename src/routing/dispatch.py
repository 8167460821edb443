"""Downstream dispatch targets (CRM sync, account provisioning)."""

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

import httpx
from pydantic import BaseModel, Field

from src.models.enums import DispatchStatus

if TYPE_CHECKING:
    from src.pipeline.models import SubmissionRecord

logger = logging.getLogger(__name__)

DEFAULT_DISPATCH_TIMEOUT = 10.0

# Non-2xx statuses worth retrying; every other 4xx is permanent
RETRYABLE_STATUS_CODES = frozenset({408, 429})


class TargetName(str, Enum):
    """Known downstream systems."""

    CRM_SYNC = "crm_sync"
    PROVISIONING = "provisioning"


class DispatchResult(BaseModel):
    """Outcome of one dispatch call."""

    target: str
    status: DispatchStatus
    status_code: int | None = Field(default=None, description="HTTP status, if any")
    message: str | None = Field(default=None)

    @property
    def is_success(self) -> bool:
        return self.status == DispatchStatus.SUCCESS


class DispatchTarget(Protocol):
    """A downstream system that accepts classified submissions."""

    name: str

    def submit(self, record: "SubmissionRecord") -> DispatchResult:
        """Send the submission. Must not raise for HTTP-level failures."""
        ...


def dispatch_payload(record: "SubmissionRecord") -> dict[str, Any]:
    """Build the JSON body sent to downstream targets."""
    submission = record.submission
    company_signal = submission.context.get("enrichment.company")
    company = getattr(company_signal, "company", None)
    score = submission.context.lookup("enrichment.spamScore")
    return {
        "submission_id": record.submission_id,
        "form_id": record.form_id,
        "flag": record.flag.value if record.flag else None,
        "action": record.action.value if record.action else None,
        "received_at": submission.received_at.isoformat(),
        "fields": submission.fields,
        "company": company.model_dump(mode="json", exclude={"raw"})
        if company
        else None,
        "spam_score": score if isinstance(score, float) else None,
    }


def classify_status(status_code: int) -> DispatchStatus:
    """Map an HTTP status code to a dispatch status."""
    if 200 <= status_code < 300:
        return DispatchStatus.SUCCESS
    if status_code in RETRYABLE_STATUS_CODES or status_code >= 500:
        return DispatchStatus.RETRYABLE_ERROR
    return DispatchStatus.PERMANENT_ERROR


class HttpDispatchTarget:
    """Posts submissions as JSON to an HTTP endpoint.

    Each request carries an ``Idempotency-Key`` header of submission id and
    target name, so a receiver can discard a redelivery.
    """

    def __init__(
        self,
        name: str,
        url: str,
        api_key: str | None = None,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_DISPATCH_TIMEOUT,
    ):
        self.name = name
        self.url = url
        self.api_key = api_key
        self._client = client or httpx.Client(timeout=timeout)

    def _headers(self, record: "SubmissionRecord") -> dict[str, str]:
        headers = {"Idempotency-Key": f"{record.submission_id}:{self.name}"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def submit(self, record: "SubmissionRecord") -> DispatchResult:
        try:
            response = self._client.post(
                self.url, json=dispatch_payload(record), headers=self._headers(record)
            )
        except httpx.HTTPError as e:
            logger.warning(
                "Dispatch of %s to %s failed: %s", record.submission_id, self.name, e
            )
            return DispatchResult(
                target=self.name,
                status=DispatchStatus.RETRYABLE_ERROR,
                message=f"{type(e).__name__}: {e}",
            )

        status = classify_status(response.status_code)
        message = None
        if status != DispatchStatus.SUCCESS:
            message = f"HTTP {response.status_code}: {response.text[:200]}"
        return DispatchResult(
            target=self.name,
            status=status,
            status_code=response.status_code,
            message=message,
        )

    def close(self) -> None:
        self._client.close()
