"""Form definition models.

A form definition is the resolved, immutable configuration for one form
type: its fields, security policy and classification rules. The pipeline
has no per-form code paths; everything form-specific lives here.
"""

import re
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from src.models.enums import (
    ClassificationFlag,
    ConditionOperator,
    ErrorPolicy,
    FieldType,
)

_FROZEN = {"frozen": True, "extra": "forbid"}


class FieldSpec(BaseModel):
    """A declared form field and its validation rules."""

    model_config = _FROZEN

    id: str = Field(..., min_length=1, description="Field identifier")
    label: str | None = Field(default=None, description="Human-readable label")
    type: FieldType = Field(default=FieldType.TEXT)
    required: bool = Field(default=False)
    min_length: int | None = Field(default=None, ge=0)
    max_length: int | None = Field(default=None, ge=1)
    pattern: str | None = Field(default=None, description="Regex the value must match")
    options: tuple[str, ...] = Field(
        default=(), description="Allowed values for select fields"
    )
    min_value: float | None = Field(default=None)
    max_value: float | None = Field(default=None)

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str | None) -> str | None:
        """Reject patterns that do not compile."""
        if v is not None:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"Invalid pattern {v!r}: {e}") from e
        return v

    @model_validator(mode="after")
    def check_bounds(self) -> "FieldSpec":
        if (
            self.min_length is not None
            and self.max_length is not None
            and self.min_length > self.max_length
        ):
            raise ValueError(f"Field {self.id}: min_length exceeds max_length")
        if self.type == FieldType.SELECT and not self.options:
            raise ValueError(f"Field {self.id}: select fields need options")
        return self


class CheckPolicy(BaseModel):
    """Settings shared by every security check."""

    model_config = _FROZEN

    enabled: bool = Field(default=True)
    on_error: ErrorPolicy = Field(default=ErrorPolicy.FAIL_OPEN)


class TurnstilePolicy(CheckPolicy):
    """CAPTCHA verification."""

    on_error: ErrorPolicy = Field(default=ErrorPolicy.FAIL_CLOSED)


class RateLimitPolicy(CheckPolicy):
    """Per-identity submission rate limit."""

    on_error: ErrorPolicy = Field(default=ErrorPolicy.FAIL_CLOSED)
    max_submissions: int = Field(default=5, ge=1)
    window_seconds: int = Field(default=3600, ge=1)
    identity_field: str = Field(default="email")


class GeolocationPolicy(CheckPolicy):
    """Country allow-listing."""

    allowed_countries: frozenset[str] = Field(
        default=frozenset(), description="Empty means every country is allowed"
    )
    high_risk_countries: frozenset[str] = Field(default=frozenset())

    @field_validator("allowed_countries", "high_risk_countries", mode="before")
    @classmethod
    def normalize_countries(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple, set, frozenset)):
            return frozenset(str(c).strip().upper() for c in v)
        return v


class EmailDomainPolicy(CheckPolicy):
    """Email domain blocklist and free-webmail detection."""

    field: str = Field(default="email")
    blocked_domains: frozenset[str] = Field(default=frozenset())
    block_free_email: bool = Field(default=False)
    block_disposable: bool = Field(default=True)

    @field_validator("blocked_domains", mode="before")
    @classmethod
    def normalize_domains(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple, set, frozenset)):
            return frozenset(str(d).strip().lower() for d in v)
        return v


class PhonePolicy(CheckPolicy):
    """Phone number format and geo matching."""

    field: str = Field(default="phone")
    default_region: str = Field(
        default="US",
        min_length=2,
        max_length=2,
        description="Region used to parse numbers without a country code",
    )
    require_country_match: bool = Field(default=False)


class SecurityPolicy(BaseModel):
    """Security checks configured for a form."""

    model_config = _FROZEN

    turnstile: TurnstilePolicy = Field(default_factory=TurnstilePolicy)
    rate_limit: RateLimitPolicy = Field(default_factory=RateLimitPolicy)
    geolocation: GeolocationPolicy = Field(default_factory=GeolocationPolicy)
    email_domain: EmailDomainPolicy = Field(default_factory=EmailDomainPolicy)
    phone: PhonePolicy = Field(default_factory=PhonePolicy)


class Condition(BaseModel):
    """One comparison against a named context signal."""

    model_config = _FROZEN

    signal: str = Field(..., min_length=1, description="Dotted signal path")
    operator: ConditionOperator = Field(default=ConditionOperator.EQ)
    value: Any = Field(default=None)

    @model_validator(mode="after")
    def check_operand(self) -> "Condition":
        if self.operator in (ConditionOperator.IN, ConditionOperator.NOT_IN):
            if not isinstance(self.value, (list, tuple, set, frozenset)):
                raise ValueError(
                    f"Operator {self.operator.value} on {self.signal} needs a list"
                )
        elif self.operator in (
            ConditionOperator.GT,
            ConditionOperator.GTE,
            ConditionOperator.LT,
            ConditionOperator.LTE,
        ):
            if isinstance(self.value, bool) or not isinstance(
                self.value, (int, float)
            ):
                raise ValueError(
                    f"Operator {self.operator.value} on {self.signal} needs a number"
                )
        return self


class ClassificationRule(BaseModel):
    """A named rule: every condition must hold for the rule to match."""

    model_config = _FROZEN

    name: str = Field(..., min_length=1)
    conditions: tuple[Condition, ...] = Field(..., min_length=1)
    description: str | None = Field(default=None)


class ClassificationRules(BaseModel):
    """Ordered rule sets per flag."""

    model_config = _FROZEN

    red: tuple[ClassificationRule, ...] = Field(default=())
    yellow: tuple[ClassificationRule, ...] = Field(default=())
    green: tuple[ClassificationRule, ...] = Field(default=())

    def for_flag(self, flag: ClassificationFlag) -> tuple[ClassificationRule, ...]:
        return getattr(self, flag.value)


class FormDefinition(BaseModel):
    """Resolved configuration for one form type."""

    model_config = _FROZEN

    form_id: str = Field(..., min_length=1, pattern=r"^[A-Za-z0-9_.-]+$")
    name: str | None = Field(default=None)
    version: str = Field(default="1")
    fields: tuple[FieldSpec, ...] = Field(default=())
    security: SecurityPolicy = Field(default_factory=SecurityPolicy)
    classification: ClassificationRules = Field(default_factory=ClassificationRules)
    email_field: str = Field(
        default="email", description="Field whose domain identifies the company"
    )

    @model_validator(mode="after")
    def check_fields(self) -> "FormDefinition":
        seen: set[str] = set()
        for field_spec in self.fields:
            if field_spec.id in seen:
                raise ValueError(f"Duplicate field id: {field_spec.id}")
            seen.add(field_spec.id)
        rule_names = [
            rule.name
            for flag in ClassificationFlag
            for rule in self.classification.for_flag(flag)
        ]
        duplicates = {name for name in rule_names if rule_names.count(name) > 1}
        if duplicates:
            raise ValueError(f"Duplicate rule names: {sorted(duplicates)}")
        return self

    def get_field(self, field_id: str) -> FieldSpec | None:
        for field_spec in self.fields:
            if field_spec.id == field_id:
                return field_spec
        return None
