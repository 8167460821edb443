"""Enumerations for the form intake pipeline."""

from enum import Enum


class CheckStatus(str, Enum):
    """Outcome of a single security check or field validation."""

    PASSED = "passed"
    FAILED = "failed"
    ERRORED = "errored"  # Dependency unavailable
    NOT_APPLICABLE = "not_applicable"  # Disabled by policy or nothing to check


class StageVerdict(str, Enum):
    """Verdict of an intake stage."""

    CONTINUE = "continue"
    BLOCKED = "blocked"


class SecurityCheckKind(str, Enum):
    """Security checks, declared in execution order."""

    TURNSTILE = "turnstile"
    RATE_LIMIT = "rateLimit"
    GEOLOCATION = "geolocation"
    EMAIL_DOMAIN = "emailDomain"
    PHONE = "phone"

    @property
    def signal(self) -> str:
        """Context signal name the check records under."""
        return f"security.{self.value}"


class ErrorPolicy(str, Enum):
    """How an errored check is interpreted."""

    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"


class FieldType(str, Enum):
    """Type of a declared form field."""

    TEXT = "text"
    TEXTAREA = "textarea"
    EMAIL = "email"
    PHONE = "phone"
    URL = "url"
    NUMBER = "number"
    SELECT = "select"
    CHECKBOX = "checkbox"


class ConditionOperator(str, Enum):
    """Closed set of comparisons available to classification rules."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NOT_IN = "not_in"
    EXISTS = "exists"


class ClassificationFlag(str, Enum):
    """Automation tier assigned to a submission."""

    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


class RoutingAction(str, Enum):
    """Downstream routing implied by a classification flag."""

    ELOQUA_AND_BUILDER = "eloqua+builder"
    ELOQUA_ONLY = "eloqua_only"
    BLOCK = "block"


class EnrichmentStatus(str, Enum):
    """Outcome of the enrichment waterfall."""

    FOUND = "found"
    NO_MATCH = "no_match"  # Providers answered, nothing matched
    UNAVAILABLE = "unavailable"  # No provider could answer
    SKIPPED = "skipped"  # Nothing worth looking up (free email, no domain)


class SubmissionState(str, Enum):
    """Workflow state of a submission."""

    RECEIVED = "received"
    VALIDATED = "validated"
    QUEUED = "queued"
    ENRICHING = "enriching"
    CLASSIFIED = "classified"
    DISPATCHED = "dispatched"
    BLOCKED = "blocked"
    DEAD_LETTERED = "dead_lettered"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition is possible."""
        return self in TERMINAL_STATES

    @property
    def is_active(self) -> bool:
        """Whether a record in this state holds its dedup key."""
        return self in ACTIVE_STATES


TERMINAL_STATES = frozenset(
    {
        SubmissionState.DISPATCHED,
        SubmissionState.BLOCKED,
        SubmissionState.DEAD_LETTERED,
    }
)

ACTIVE_STATES = frozenset(
    {
        SubmissionState.QUEUED,
        SubmissionState.ENRICHING,
        SubmissionState.CLASSIFIED,
        SubmissionState.DISPATCHED,
    }
)


class DispatchStatus(str, Enum):
    """Result of submitting to a downstream target."""

    SUCCESS = "success"
    RETRYABLE_ERROR = "retryable_error"
    PERMANENT_ERROR = "permanent_error"
