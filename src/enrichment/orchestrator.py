"""Provider waterfall for company enrichment.

Providers are tried one at a time in priority order and the first one
that returns company data wins. A provider that times out, errors or has
no match never stops the waterfall, and enrichment never raises: when no
provider could answer the result is ``unavailable``.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from src.config.settings import DEFAULT_PROVIDER_TIMEOUT
from src.enrichment.providers import EnrichmentProvider
from src.models.enrichment import CompanyData, EnrichmentResult, ProviderAttempt
from src.models.enums import EnrichmentStatus
from src.models.errors import ProviderError
from src.security.domains import is_free_email_domain

logger = logging.getLogger(__name__)


class EnrichmentOrchestrator:
    """Runs the enrichment provider waterfall.

    Example:
        >>> orchestrator = EnrichmentOrchestrator([clearbit, apollo])
        >>> result = orchestrator.enrich("acme.com")
        >>> result.status, result.provider
        (<EnrichmentStatus.FOUND: 'found'>, 'clearbit')
    """

    def __init__(
        self,
        providers: list[EnrichmentProvider],
        timeout: float = DEFAULT_PROVIDER_TIMEOUT,
    ):
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.providers = list(providers)
        self.timeout = timeout

    def _call(
        self, provider: EnrichmentProvider, domain: str
    ) -> tuple[CompanyData | None, ProviderAttempt]:
        """Call one provider under the orchestrator's timeout.

        Each call runs on its own thread and the timeout starts with the call.
        """
        start = time.perf_counter()
        executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"enrichment-{provider.name}"
        )
        future = executor.submit(provider.lookup, domain, self.timeout)
        executor.shutdown(wait=False)

        def attempt(outcome: str, error: str | None = None) -> ProviderAttempt:
            return ProviderAttempt(
                provider=provider.name,
                outcome=outcome,
                latency_ms=(time.perf_counter() - start) * 1000,
                error=error,
            )

        try:
            company = future.result(timeout=self.timeout)
        except FutureTimeoutError:
            future.cancel()
            logger.warning(
                "Provider %s timed out after %.1fs for %s",
                provider.name,
                self.timeout,
                domain,
            )
            return None, attempt("timeout", f"timed out after {self.timeout}s")
        except ProviderError as e:
            logger.warning("Provider %s failed for %s: %s", provider.name, domain, e)
            return None, attempt("error", str(e))
        except Exception as e:
            # Provider bugs are contained to the provider
            logger.exception("Provider %s raised unexpectedly", provider.name)
            return None, attempt("error", f"{type(e).__name__}: {e}")

        if company is None:
            return None, attempt("no_match")
        return company, attempt("found")

    def enrich(self, domain: str | None) -> EnrichmentResult:
        """Look up company data for a domain.

        Args:
            domain: Email domain of the submitter.

        Returns:
            EnrichmentResult. ``skipped`` for a missing or free-email
            domain without calling any provider.
        """
        if not domain:
            return EnrichmentResult(
                status=EnrichmentStatus.SKIPPED, reason="domain_missing"
            )
        domain = domain.lower()
        if is_free_email_domain(domain):
            return EnrichmentResult(
                status=EnrichmentStatus.SKIPPED, domain=domain, reason="free_email"
            )

        attempts: list[ProviderAttempt] = []
        for provider in self.providers:
            company, attempt = self._call(provider, domain)
            attempts.append(attempt)
            if company is not None:
                logger.info("Enriched %s via %s", domain, provider.name)
                return EnrichmentResult(
                    status=EnrichmentStatus.FOUND,
                    domain=domain,
                    provider=provider.name,
                    company=company,
                    attempts=attempts,
                )

        if any(a.outcome == "no_match" for a in attempts):
            status = EnrichmentStatus.NO_MATCH
        else:
            status = EnrichmentStatus.UNAVAILABLE
            logger.warning(
                "Enrichment unavailable for %s: %d provider(s) failed",
                domain,
                len(attempts),
            )
        return EnrichmentResult(status=status, domain=domain, attempts=attempts)

    def close(self) -> None:
        """Close every provider that holds a client."""
        for provider in self.providers:
            close = getattr(provider, "close", None)
            if callable(close):
                close()
