"""Company enrichment providers."""

import logging
from typing import Any, Protocol

import httpx

from src.models.enrichment import CompanyData
from src.models.errors import ProviderError

logger = logging.getLogger(__name__)

# Provider payload keys accepted for each CompanyData attribute
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "name": ("name", "company_name", "companyName"),
    "domain": ("domain", "website"),
    "industry": ("industry", "sector"),
    "employee_count": ("employee_count", "employees", "employeeCount"),
    "annual_revenue": ("annual_revenue", "revenue", "annualRevenue"),
    "country": ("country", "country_code", "countryCode"),
}


class EnrichmentProvider(Protocol):
    """A source of company data keyed by email domain."""

    name: str

    def lookup(self, domain: str, timeout: float) -> CompanyData | None:
        """Look up a company by domain.

        Returns:
            CompanyData, or None when the provider has no match.

        Raises:
            ProviderError: If the provider call failed.
        """
        ...


def _first(data: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if data.get(key) not in (None, ""):
            return data[key]
    return None


def parse_company(data: dict[str, Any], domain: str) -> CompanyData:
    """Map a provider payload onto CompanyData.

    Unparseable numeric attributes are dropped rather than failing the
    whole lookup.
    """
    values: dict[str, Any] = {
        attr: _first(data, keys) for attr, keys in FIELD_ALIASES.items()
    }
    for attr, cast in (("employee_count", int), ("annual_revenue", float)):
        if values[attr] is not None:
            try:
                values[attr] = cast(values[attr])
            except (TypeError, ValueError):
                logger.debug("Dropping unparseable %s: %r", attr, values[attr])
                values[attr] = None
    if isinstance(values["country"], str):
        values["country"] = values["country"].upper()
    values["domain"] = values["domain"] or domain
    return CompanyData(**values, raw=data)


class HttpEnrichmentProvider:
    """Enrichment provider backed by a JSON HTTP API.

    The URL template must contain ``{domain}``. A 404 is a no-match; any
    other non-2xx status or transport failure raises ``ProviderError``.
    """

    def __init__(
        self,
        name: str,
        url_template: str,
        api_key: str | None = None,
        client: httpx.Client | None = None,
    ):
        if "{domain}" not in url_template:
            raise ValueError(
                f"Provider {name} URL template must contain {{domain}}: {url_template}"
            )
        self.name = name
        self.url_template = url_template
        self.api_key = api_key
        self._client = client or httpx.Client()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def lookup(self, domain: str, timeout: float) -> CompanyData | None:
        url = self.url_template.format(domain=domain)
        try:
            response = self._client.get(url, headers=self._headers(), timeout=timeout)
        except httpx.HTTPError as e:
            raise ProviderError(
                f"{self.name} request failed: {e}", {"provider": self.name}
            ) from e

        if response.status_code == 404:
            return None
        if not response.is_success:
            raise ProviderError(
                f"{self.name} returned HTTP {response.status_code}",
                {"provider": self.name, "status_code": response.status_code},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(
                f"{self.name} returned invalid JSON", {"provider": self.name}
            ) from e

        if not data:
            return None
        if not isinstance(data, dict):
            raise ProviderError(
                f"{self.name} returned unexpected payload type "
                f"{type(data).__name__}",
                {"provider": self.name},
            )
        return parse_company(data, domain)

    def close(self) -> None:
        self._client.close()
