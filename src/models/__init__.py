"""Data models for the form intake pipeline."""

from src.models.enrichment import CompanyData, EnrichmentResult, ProviderAttempt
from src.models.enums import (
    CheckStatus,
    ClassificationFlag,
    ConditionOperator,
    DispatchStatus,
    EnrichmentStatus,
    ErrorPolicy,
    FieldType,
    RoutingAction,
    SecurityCheckKind,
    StageVerdict,
    SubmissionState,
)
from src.models.forms import (
    ClassificationRule,
    ClassificationRules,
    Condition,
    FieldSpec,
    FormDefinition,
    SecurityPolicy,
)
from src.models.outcomes import CheckOutcome, FailureReason, ScoreSignal, StageResult
from src.models.submission import (
    MISSING,
    ProcessingContext,
    Submission,
    SubmissionMetadata,
    compute_dedup_key,
)

__all__ = [
    # Enums
    "CheckStatus",
    "ClassificationFlag",
    "ConditionOperator",
    "DispatchStatus",
    "EnrichmentStatus",
    "ErrorPolicy",
    "FieldType",
    "RoutingAction",
    "SecurityCheckKind",
    "StageVerdict",
    "SubmissionState",
    # Form configuration
    "ClassificationRule",
    "ClassificationRules",
    "Condition",
    "FieldSpec",
    "FormDefinition",
    "SecurityPolicy",
    # Outcomes and signals
    "CheckOutcome",
    "FailureReason",
    "ScoreSignal",
    "StageResult",
    "CompanyData",
    "EnrichmentResult",
    "ProviderAttempt",
    # Submissions
    "MISSING",
    "ProcessingContext",
    "Submission",
    "SubmissionMetadata",
    "compute_dedup_key",
]
