"""Company enrichment: provider waterfall and spam scoring."""

from src.enrichment.orchestrator import EnrichmentOrchestrator
from src.enrichment.providers import (
    EnrichmentProvider,
    HttpEnrichmentProvider,
    parse_company,
)
from src.enrichment.spam import (
    COMPANY_SIGNAL,
    SPAM_SCORE_SIGNAL,
    compute_spam_score,
    spam_factors,
    spam_signal,
)

__all__ = [
    "COMPANY_SIGNAL",
    "EnrichmentOrchestrator",
    "EnrichmentProvider",
    "HttpEnrichmentProvider",
    "SPAM_SCORE_SIGNAL",
    "compute_spam_score",
    "parse_company",
    "spam_factors",
    "spam_signal",
]
