"""Check outcomes and stage results shared by security and validation."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from src.models.enums import CheckStatus, StageVerdict


class CheckOutcome(BaseModel):
    """Tagged result of a security check or field validation."""

    model_config = {"frozen": True}

    kind: Literal["check"] = "check"
    status: CheckStatus = Field(..., description="Outcome of the check")
    reason: str | None = Field(default=None, description="Reason code")
    detail: dict[str, Any] = Field(
        default_factory=dict, description="Structured detail (country, counts, ...)"
    )

    @classmethod
    def passed(cls, **detail: Any) -> "CheckOutcome":
        return cls(status=CheckStatus.PASSED, detail=detail)

    @classmethod
    def failed(cls, reason: str, **detail: Any) -> "CheckOutcome":
        return cls(status=CheckStatus.FAILED, reason=reason, detail=detail)

    @classmethod
    def errored(cls, reason: str, **detail: Any) -> "CheckOutcome":
        return cls(status=CheckStatus.ERRORED, reason=reason, detail=detail)

    @classmethod
    def not_applicable(cls, reason: str = "disabled") -> "CheckOutcome":
        return cls(status=CheckStatus.NOT_APPLICABLE, reason=reason)

    @property
    def primary_value(self) -> str:
        """Value a bare signal reference compares against."""
        return self.status.value

    @property
    def is_failed(self) -> bool:
        return self.status == CheckStatus.FAILED


class ScoreSignal(BaseModel):
    """A numeric signal such as the spam score."""

    model_config = {"frozen": True}

    kind: Literal["score"] = "score"
    value: float = Field(..., description="Score value")
    detail: dict[str, Any] = Field(
        default_factory=dict, description="Contributing factors"
    )

    @property
    def primary_value(self) -> float:
        return self.value


class FailureReason(BaseModel):
    """A single reason a stage blocked a submission."""

    model_config = {"frozen": True}

    signal: str = Field(..., description="Signal that failed")
    reason: str | None = Field(default=None, description="Reason code")


class StageResult(BaseModel):
    """Verdict and outcomes of one intake stage."""

    stage: str = Field(..., description="Stage name (security, validation)")
    verdict: StageVerdict = Field(default=StageVerdict.CONTINUE)
    outcomes: dict[str, CheckOutcome] = Field(
        default_factory=dict, description="Outcome per executed check, in order"
    )
    failures: list[FailureReason] = Field(default_factory=list)

    @property
    def is_blocked(self) -> bool:
        return self.verdict == StageVerdict.BLOCKED

    def add_failure(self, signal: str, reason: str | None) -> None:
        """Record a failure and mark the stage blocked."""
        self.failures.append(FailureReason(signal=signal, reason=reason))
        self.verdict = StageVerdict.BLOCKED
