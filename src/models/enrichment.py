"""Company enrichment models."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from src.models.enums import EnrichmentStatus


class CompanyData(BaseModel):
    """Company attributes returned by an enrichment provider."""

    name: str | None = Field(default=None, description="Company name")
    domain: str | None = Field(default=None, description="Primary domain")
    industry: str | None = Field(default=None, description="Industry")
    employee_count: int | None = Field(default=None, description="Headcount")
    annual_revenue: float | None = Field(default=None, description="Annual revenue")
    country: str | None = Field(default=None, description="HQ country (ISO 3166)")
    raw: dict[str, Any] = Field(
        default_factory=dict, description="Provider payload as returned"
    )


class ProviderAttempt(BaseModel):
    """One provider call in the waterfall."""

    provider: str
    outcome: Literal["found", "no_match", "timeout", "error"]
    latency_ms: float = 0.0
    error: str | None = None


class EnrichmentResult(BaseModel):
    """Outcome of the enrichment waterfall for one domain."""

    model_config = {"frozen": True}

    kind: Literal["enrichment"] = "enrichment"
    status: EnrichmentStatus = Field(..., description="Waterfall outcome")
    domain: str | None = Field(default=None, description="Domain looked up")
    provider: str | None = Field(
        default=None, description="Provider that returned the company"
    )
    company: CompanyData | None = Field(default=None)
    attempts: list[ProviderAttempt] = Field(default_factory=list)
    reason: str | None = Field(default=None, description="Why lookup was skipped")

    @property
    def primary_value(self) -> str:
        return self.status.value

    @property
    def is_available(self) -> bool:
        """Whether at least one provider gave an answer."""
        return self.status in (EnrichmentStatus.FOUND, EnrichmentStatus.NO_MATCH)
