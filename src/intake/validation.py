"""Business validation of submitted fields.

Every declared field is validated independently so the submitter sees all
errors at once. Submitted fields the form does not declare are ignored
here and kept on the stored submission untouched.
"""

import logging
import re
from typing import Any
from urllib.parse import urlparse

import phonenumbers

from src.models.enums import FieldType
from src.models.forms import FieldSpec, FormDefinition
from src.models.outcomes import CheckOutcome, StageResult
from src.models.submission import Submission

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

TRUE_VALUES = {"true", "on", "yes", "1"}
FALSE_VALUES = {"false", "off", "no", "0"}


def validation_signal(field_id: str) -> str:
    return f"validation.{field_id}"


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def _check_format(
    field_spec: FieldSpec, value: Any, default_region: str
) -> str | None:
    """Return a reason code if ``value`` is not valid for the field type."""
    if field_spec.type == FieldType.EMAIL:
        if not isinstance(value, str) or not EMAIL_RE.match(value):
            return "format"

    elif field_spec.type == FieldType.PHONE:
        try:
            parsed = phonenumbers.parse(str(value), default_region)
        except phonenumbers.NumberParseException:
            return "format"
        if not phonenumbers.is_possible_number(parsed):
            return "format"

    elif field_spec.type == FieldType.URL:
        candidate = str(value)
        if not candidate.startswith(("http://", "https://")):
            candidate = "https://" + candidate
        parsed_url = urlparse(candidate)
        if not parsed_url.hostname or "." not in parsed_url.hostname:
            return "format"

    elif field_spec.type == FieldType.NUMBER:
        if isinstance(value, bool):
            return "format"
        try:
            number = float(value)
        except (TypeError, ValueError):
            return "format"
        if field_spec.min_value is not None and number < field_spec.min_value:
            return "min_value"
        if field_spec.max_value is not None and number > field_spec.max_value:
            return "max_value"

    elif field_spec.type == FieldType.CHECKBOX:
        if not isinstance(value, bool) and str(value).lower() not in (
            TRUE_VALUES | FALSE_VALUES
        ):
            return "format"

    elif field_spec.type == FieldType.SELECT:
        values = value if isinstance(value, list) else [value]
        if any(str(v) not in field_spec.options for v in values):
            return "invalid_option"

    return None


def validate_field(
    field_spec: FieldSpec, value: Any, default_region: str
) -> CheckOutcome:
    """Validate one field value against its field definition.

    Rules run in order: required, type format, length, pattern. The first
    failing rule determines the reason code.
    """
    if isinstance(value, str):
        value = value.strip()

    empty = _is_empty(value)
    if field_spec.type == FieldType.CHECKBOX and field_spec.required:
        # A required checkbox (consent) must be ticked, not merely present
        ticked = value is True or str(value).lower() in TRUE_VALUES
        if not ticked:
            return CheckOutcome.failed("required")
    if empty:
        if field_spec.required:
            return CheckOutcome.failed("required")
        return CheckOutcome.passed(empty=True)

    reason = _check_format(field_spec, value, default_region)
    if reason:
        return CheckOutcome.failed(reason)

    if isinstance(value, str):
        if field_spec.min_length is not None and len(value) < field_spec.min_length:
            return CheckOutcome.failed("min_length", min_length=field_spec.min_length)
        if field_spec.max_length is not None and len(value) > field_spec.max_length:
            return CheckOutcome.failed("max_length", max_length=field_spec.max_length)

    pattern = field_spec.pattern
    if pattern is not None and not re.fullmatch(pattern, str(value)):
        return CheckOutcome.failed("pattern")

    return CheckOutcome.passed()


def validate_fields(submission: Submission, definition: FormDefinition) -> StageResult:
    """Run business validation for every declared field.

    Args:
        submission: Submission to validate; one ``validation.<fieldId>``
            outcome per declared field is recorded into its context.
        definition: The form definition declaring the fields.

    Returns:
        StageResult blocked if any field failed, listing every failure.
    """
    result = StageResult(stage="validation")
    default_region = definition.security.phone.default_region

    for field_spec in definition.fields:
        value = submission.fields.get(field_spec.id)
        outcome = validate_field(field_spec, value, default_region)
        signal = validation_signal(field_spec.id)
        submission.context.record(signal, outcome)
        result.outcomes[signal] = outcome
        if outcome.is_failed:
            result.add_failure(signal, outcome.reason)

    if result.is_blocked:
        logger.info(
            "Submission %s failed validation: %s",
            submission.submission_id,
            ", ".join(f"{f.signal}={f.reason}" for f in result.failures),
        )
    return result
