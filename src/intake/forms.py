"""Form submission payload parsing."""

import logging
from datetime import UTC, datetime
from typing import Any

from src.models.submission import Submission, SubmissionMetadata

logger = logging.getLogger(__name__)

# Metadata keys accepted at the top level of a payload as well as under "metadata"
METADATA_KEYS = ("client_ip", "country", "captcha_token", "user_agent")


def parse_received_at(value: Any) -> datetime:
    """Parse a submission timestamp from various formats.

    Naive timestamps are assumed to be UTC.

    Raises:
        ValueError: If the value cannot be parsed.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, str):
        # Try ISO format first
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
        except ValueError:
            pass
        # Try common formats
        for fmt in ["%Y-%m-%d %H:%M:%S", "%Y-%m-%d"]:
            try:
                return datetime.strptime(value, fmt).replace(tzinfo=UTC)
            except ValueError:
                continue
    raise ValueError(f"Cannot parse submission timestamp: {value}")


def parse_submission(raw_data: dict[str, Any]) -> Submission:
    """Parse a raw payload into a Submission.

    Args:
        raw_data: Dictionary containing the submission.
            Expected structure:
            {
                "form_id": "contact-sales",
                "submitted_at": "2024-01-15T14:30:00Z",
                "idempotency_key": "optional-client-token",
                "fields": {
                    "email": "...",
                    "company": "...",
                    ...
                },
                "metadata": {
                    "client_ip": "203.0.113.7",
                    "country": "US",
                    "captcha_token": "..."
                }
            }

    Returns:
        Parsed Submission with an empty processing context.

    Raises:
        ValueError: If the payload is not structurally a submission.
    """
    if not isinstance(raw_data, dict):
        raise ValueError("Submission payload must be a JSON object")

    form_id = raw_data.get("form_id")
    if not form_id or not isinstance(form_id, str):
        raise ValueError("form_id is required")

    fields = raw_data.get("fields")
    if not isinstance(fields, dict):
        raise ValueError("fields must be an object of field id to value")

    raw_metadata = raw_data.get("metadata") or {}
    if not isinstance(raw_metadata, dict):
        raise ValueError("metadata must be an object")
    metadata_values = {
        key: raw_data[key] for key in METADATA_KEYS if raw_data.get(key) is not None
    }
    metadata_values.update(
        {k: v for k, v in raw_metadata.items() if k in METADATA_KEYS and v is not None}
    )
    idempotency_key = raw_data.get("idempotency_key") or raw_metadata.get(
        "idempotency_key"
    )
    metadata = SubmissionMetadata(
        **{k: str(v) for k, v in metadata_values.items()},
        idempotency_key=str(idempotency_key) if idempotency_key else None,
    )

    kwargs: dict[str, Any] = {
        "form_id": form_id.strip(),
        "fields": fields,
        "metadata": metadata,
    }
    submitted_at = raw_data.get("submitted_at")
    if submitted_at:
        kwargs["received_at"] = parse_received_at(submitted_at)

    submission = Submission(**kwargs)
    logger.debug(
        "Parsed submission %s for form %s (%d fields)",
        submission.submission_id,
        submission.form_id,
        len(fields),
    )
    return submission
