"""Submission and processing context models."""

import hashlib
import json
import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, Field, model_validator

from src.models.enrichment import EnrichmentResult
from src.models.outcomes import CheckOutcome, ScoreSignal

Signal = Annotated[
    CheckOutcome | ScoreSignal | EnrichmentResult, Field(discriminator="kind")
]


class _Missing:
    """Marker for a signal path that does not resolve."""

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def _utc_now() -> datetime:
    return datetime.now(UTC)


def generate_submission_id() -> str:
    """Generate a unique submission ID.

    Format: SUB-{timestamp}-{uuid4_short}
    Example: SUB-20240115143052-a1b2c3d4
    """
    timestamp = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
    short_uuid = uuid.uuid4().hex[:8]
    return f"SUB-{timestamp}-{short_uuid}"


def compute_dedup_key(
    form_id: str, fields: dict[str, Any], idempotency_key: str | None = None
) -> str:
    """Derive a stable deduplication key for a submission.

    A client-supplied idempotency token wins. Otherwise the key is a hash
    of the form id and the canonical JSON of the field values, so the same
    payload submitted twice maps to the same key.
    """
    if idempotency_key:
        return f"{form_id}:{idempotency_key}"
    normalized = {
        key: value.strip() if isinstance(value, str) else value
        for key, value in fields.items()
    }
    canonical = json.dumps(
        normalized, sort_keys=True, separators=(",", ":"), default=str
    )
    digest = hashlib.sha256(f"{form_id}\n{canonical}".encode()).hexdigest()
    return f"{form_id}:{digest[:32]}"


class ProcessingContext(BaseModel):
    """Named signals accumulated while a submission is processed.

    Append-only: a signal name can be recorded once per submission.
    """

    signals: dict[str, Signal] = Field(default_factory=dict)

    def __contains__(self, name: object) -> bool:
        return name in self.signals

    def record(
        self, name: str, signal: CheckOutcome | ScoreSignal | EnrichmentResult
    ) -> None:
        """Record a signal.

        Raises:
            ValueError: If the signal was already recorded.
        """
        if name in self.signals:
            raise ValueError(f"Signal already recorded: {name}")
        self.signals[name] = signal

    def get(self, name: str) -> CheckOutcome | ScoreSignal | EnrichmentResult | None:
        return self.signals.get(name)

    def outcomes(self, prefix: str) -> dict[str, CheckOutcome]:
        """Return check outcomes whose signal name starts with ``prefix``."""
        return {
            name: signal
            for name, signal in self.signals.items()
            if name.startswith(prefix) and isinstance(signal, CheckOutcome)
        }

    def lookup(self, path: str) -> Any:
        """Resolve a dotted signal path to a plain value.

        The longest recorded signal name that prefixes ``path`` is used. A
        bare signal resolves to its primary value (check status, score,
        enrichment status); any remaining segments walk into the signal's
        attributes and detail mappings.

        Returns:
            The resolved value, or ``MISSING`` if any segment is absent.
        """
        parts = path.split(".")
        for cut in range(len(parts), 0, -1):
            name = ".".join(parts[:cut])
            if name in self.signals:
                signal = self.signals[name]
                remainder = parts[cut:]
                break
        else:
            return MISSING

        if not remainder:
            return signal.primary_value

        value: Any = signal
        for part in remainder:
            if isinstance(value, BaseModel):
                if part not in type(value).model_fields:
                    return MISSING
                value = getattr(value, part)
            elif isinstance(value, dict):
                if part not in value:
                    return MISSING
                value = value[part]
            else:
                return MISSING
            if value is None:
                return MISSING

        if isinstance(value, Enum):
            return value.value
        return value


class SubmissionMetadata(BaseModel):
    """Request metadata captured alongside the form fields."""

    client_ip: str | None = Field(default=None, description="Submitter IP address")
    country: str | None = Field(
        default=None, description="Country resolved at the edge (ISO 3166 alpha-2)"
    )
    captcha_token: str | None = Field(default=None, description="Turnstile token")
    user_agent: str | None = Field(default=None)
    idempotency_key: str | None = Field(
        default=None, description="Client-supplied idempotency token"
    )


class Submission(BaseModel):
    """One form payload plus its accumulated processing signals."""

    submission_id: str = Field(default_factory=generate_submission_id)
    form_id: str = Field(..., description="Form definition identifier")
    fields: dict[str, Any] = Field(
        default_factory=dict, description="Field id to raw submitted value"
    )
    received_at: datetime = Field(default_factory=_utc_now)
    dedup_key: str = Field(default="", description="Stable deduplication key")
    metadata: SubmissionMetadata = Field(default_factory=SubmissionMetadata)
    context: ProcessingContext = Field(default_factory=ProcessingContext)

    @model_validator(mode="after")
    def _fill_dedup_key(self) -> "Submission":
        if not self.dedup_key:
            self.dedup_key = compute_dedup_key(
                self.form_id, self.fields, self.metadata.idempotency_key
            )
        return self

    def field_value(self, field_id: str) -> Any:
        """Return a submitted value with surrounding whitespace stripped."""
        value = self.fields.get(field_id)
        if isinstance(value, str):
            value = value.strip()
        return value

    def email_domain(self, field_id: str = "email") -> str | None:
        """Return the lowercased domain part of an email field, if any."""
        email = self.field_value(field_id)
        if not isinstance(email, str) or "@" not in email:
            return None
        domain = email.rsplit("@", 1)[1].lower().strip(".")
        return domain or None
