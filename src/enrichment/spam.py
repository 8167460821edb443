"""Spam scoring over accumulated submission signals."""

from src.models.enrichment import EnrichmentResult
from src.models.enums import CheckStatus, EnrichmentStatus, SecurityCheckKind
from src.models.outcomes import ScoreSignal
from src.models.submission import ProcessingContext

COMPANY_SIGNAL = "enrichment.company"
SPAM_SCORE_SIGNAL = "enrichment.spamScore"

# Score weights
FREE_EMAIL_WEIGHT = 0.4
NO_MATCH_WEIGHT = 0.25
UNAVAILABLE_WEIGHT = 0.15
HIGH_RISK_COUNTRY_WEIGHT = 0.3
GEO_UNKNOWN_WEIGHT = 0.1
RATE_PROXIMITY_WEIGHT = 0.2
RATE_PROXIMITY_THRESHOLD = 0.5


def spam_factors(context: ProcessingContext) -> dict[str, float]:
    """Return the individual contributions to the spam score."""
    factors: dict[str, float] = {}

    email = context.get(SecurityCheckKind.EMAIL_DOMAIN.signal)
    if email is not None and email.kind == "check" and email.detail.get("free_email"):
        factors["free_email"] = FREE_EMAIL_WEIGHT

    enrichment = context.get(COMPANY_SIGNAL)
    if isinstance(enrichment, EnrichmentResult):
        if enrichment.status == EnrichmentStatus.NO_MATCH:
            factors["enrichment_no_match"] = NO_MATCH_WEIGHT
        elif enrichment.status == EnrichmentStatus.UNAVAILABLE:
            factors["enrichment_unavailable"] = UNAVAILABLE_WEIGHT
        elif (
            enrichment.status == EnrichmentStatus.SKIPPED
            and enrichment.reason == "domain_missing"
        ):
            factors["domain_missing"] = NO_MATCH_WEIGHT

    geo = context.get(SecurityCheckKind.GEOLOCATION.signal)
    if geo is not None and geo.kind == "check":
        if geo.detail.get("high_risk"):
            factors["high_risk_country"] = HIGH_RISK_COUNTRY_WEIGHT
        elif geo.status == CheckStatus.ERRORED:
            factors["country_unknown"] = GEO_UNKNOWN_WEIGHT

    rate = context.get(SecurityCheckKind.RATE_LIMIT.signal)
    if rate is not None and rate.kind == "check":
        count = rate.detail.get("count")
        limit = rate.detail.get("limit")
        if isinstance(count, int) and isinstance(limit, int) and limit > 0:
            ratio = min(count / limit, 1.0)
            if ratio >= RATE_PROXIMITY_THRESHOLD:
                factors["rate_proximity"] = round(RATE_PROXIMITY_WEIGHT * ratio, 4)

    return factors


def compute_spam_score(context: ProcessingContext) -> float:
    """Compute a deterministic spam score in [0.0, 1.0]."""
    total = sum(spam_factors(context).values())
    return round(min(max(total, 0.0), 1.0), 2)


def spam_signal(context: ProcessingContext) -> ScoreSignal:
    """Build the spam score signal with its contributing factors."""
    return ScoreSignal(value=compute_spam_score(context), detail=spam_factors(context))
