"""Exception taxonomy for the intake pipeline.

Rejections (a submission failing security or validation) are not
exceptions: they are recovered into a blocked result. Everything here is
either a configuration problem or an infrastructure failure.
"""

from typing import Any


class IntakeError(Exception):
    """Base exception for pipeline errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize the error.

        Args:
            message: Error message.
            details: Additional structured details.
        """
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(IntakeError):
    """A form definition is missing or malformed."""

    pass


class UnknownFormError(ConfigurationError):
    """No form definition exists for the requested form id."""

    def __init__(self, form_id: str):
        super().__init__(f"Unknown form: {form_id}", {"form_id": form_id})
        self.form_id = form_id


class InvalidFormDefinitionError(ConfigurationError):
    """A form definition failed structural validation."""

    def __init__(self, form_id: str, message: str):
        super().__init__(
            f"Invalid form definition '{form_id}': {message}", {"form_id": form_id}
        )
        self.form_id = form_id


class TransientInfrastructureError(IntakeError):
    """A dependency failed in a way expected to self-resolve."""

    pass


class VerifierUnavailableError(TransientInfrastructureError):
    """A security verifier could not reach its dependency."""

    pass


class ProviderError(TransientInfrastructureError):
    """An enrichment provider call failed."""

    pass


class DispatchRetryableError(TransientInfrastructureError):
    """A downstream target asked for the request to be retried."""

    def __init__(self, target: str, message: str):
        super().__init__(f"{target}: {message}", {"target": target})
        self.target = target


class PermanentInfrastructureError(IntakeError):
    """A dependency reported the request can never succeed."""

    pass


class DispatchPermanentError(PermanentInfrastructureError):
    """A downstream target permanently rejected the submission."""

    def __init__(self, target: str, message: str):
        super().__init__(f"{target}: {message}", {"target": target})
        self.target = target


class ConcurrentUpdateError(IntakeError):
    """A conditional store update found an unexpected current state."""

    def __init__(self, submission_id: str, expected: str, actual: str | None):
        super().__init__(
            f"Submission {submission_id} is in state {actual}, expected {expected}",
            {"submission_id": submission_id, "expected": expected, "actual": actual},
        )
        self.submission_id = submission_id
        self.expected = expected
        self.actual = actual


class SubmissionNotFoundError(IntakeError):
    """No stored record exists for the submission id."""

    def __init__(self, submission_id: str):
        super().__init__(
            f"Submission not found: {submission_id}", {"submission_id": submission_id}
        )
        self.submission_id = submission_id
