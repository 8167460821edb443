"""Security verifiers, one per check kind.

A verifier returns a ``CheckOutcome`` for every expected result, including
rejections caused by bad input. It raises ``VerifierUnavailableError`` only
when its own dependency is down; the security stage decides per policy
whether that blocks the submission.
"""

import logging
from collections.abc import Callable
from typing import Any, Protocol

import httpx
import phonenumbers

from src.models.enums import CheckStatus, SecurityCheckKind
from src.models.errors import VerifierUnavailableError
from src.models.forms import (
    CheckPolicy,
    EmailDomainPolicy,
    GeolocationPolicy,
    PhonePolicy,
    RateLimitPolicy,
)
from src.models.outcomes import CheckOutcome
from src.models.submission import Submission
from src.security.domains import is_disposable_domain, is_free_email_domain, is_listed
from src.security.rate_limit import RateLimitBackend

logger = logging.getLogger(__name__)

TURNSTILE_VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"
TURNSTILE_RESPONSE_FIELD = "cf-turnstile-response"
DEFAULT_VERIFY_TIMEOUT = 5.0


class SecurityVerifier(Protocol):
    """One security check."""

    kind: SecurityCheckKind

    def check(self, submission: Submission, policy: Any) -> CheckOutcome:
        """Evaluate the check.

        Raises:
            VerifierUnavailableError: If the check's dependency is unavailable.
        """
        ...


class TurnstileVerifier:
    """Verifies a Cloudflare Turnstile token against the siteverify API."""

    kind = SecurityCheckKind.TURNSTILE

    def __init__(
        self,
        secret_key: str | None,
        client: httpx.Client | None = None,
        verify_url: str = TURNSTILE_VERIFY_URL,
        timeout: float = DEFAULT_VERIFY_TIMEOUT,
    ):
        self.secret_key = secret_key
        self.verify_url = verify_url
        self._client = client or httpx.Client(timeout=timeout)

    def _get_token(self, submission: Submission) -> str | None:
        token = submission.metadata.captcha_token or submission.fields.get(
            TURNSTILE_RESPONSE_FIELD
        )
        return token.strip() if isinstance(token, str) and token.strip() else None

    def check(self, submission: Submission, policy: CheckPolicy) -> CheckOutcome:
        token = self._get_token(submission)
        if token is None:
            return CheckOutcome.failed("captcha_missing")

        if not self.secret_key:
            raise VerifierUnavailableError("Turnstile secret key is not configured")

        payload = {"secret": self.secret_key, "response": token}
        if submission.metadata.client_ip:
            payload["remoteip"] = submission.metadata.client_ip

        try:
            response = self._client.post(self.verify_url, data=payload)
        except httpx.HTTPError as e:
            raise VerifierUnavailableError(f"Turnstile request failed: {e}") from e

        if response.status_code >= 500:
            raise VerifierUnavailableError(
                f"Turnstile returned HTTP {response.status_code}"
            )
        try:
            data = response.json()
        except ValueError as e:
            raise VerifierUnavailableError("Turnstile returned invalid JSON") from e

        if data.get("success") is True:
            return CheckOutcome.passed(hostname=data.get("hostname"))
        return CheckOutcome.failed(
            "captcha_rejected", error_codes=list(data.get("error-codes", []))
        )


class RateLimitVerifier:
    """Admits a bounded number of submissions per identity per window."""

    kind = SecurityCheckKind.RATE_LIMIT

    def __init__(self, backend: RateLimitBackend):
        self.backend = backend

    def check(self, submission: Submission, policy: RateLimitPolicy) -> CheckOutcome:
        identity = submission.field_value(policy.identity_field)
        if not identity or not isinstance(identity, str):
            return CheckOutcome.not_applicable("identity_missing")

        decision = self.backend.hit(
            identity, policy.max_submissions, policy.window_seconds
        )
        detail = {
            "count": decision.count,
            "limit": decision.limit,
            "window_seconds": decision.window_seconds,
        }
        if decision.allowed:
            return CheckOutcome.passed(**detail)
        logger.warning(
            "Rate limit exhausted for submission %s (%d/%d)",
            submission.submission_id,
            decision.count,
            decision.limit,
        )
        return CheckOutcome.failed("rate_limited", **detail)


CountryResolver = Callable[[str], str | None]


class GeolocationVerifier:
    """Checks the submitter's country against the form's allow-list.

    The country comes from the edge (a CDN country header captured in the
    submission metadata); failing that, from an optional IP resolver.
    """

    kind = SecurityCheckKind.GEOLOCATION

    def __init__(self, resolver: CountryResolver | None = None):
        self.resolver = resolver

    def _resolve_country(self, submission: Submission) -> str | None:
        if submission.metadata.country:
            return submission.metadata.country
        if self.resolver is None or not submission.metadata.client_ip:
            return None
        try:
            return self.resolver(submission.metadata.client_ip)
        except Exception as e:
            raise VerifierUnavailableError(f"Country lookup failed: {e}") from e

    def check(
        self, submission: Submission, policy: GeolocationPolicy
    ) -> CheckOutcome:
        country = self._resolve_country(submission)
        if not country:
            raise VerifierUnavailableError("Country could not be resolved")

        country = country.strip().upper()
        high_risk = country in policy.high_risk_countries
        if policy.allowed_countries and country not in policy.allowed_countries:
            return CheckOutcome.failed("country_not_allowed", country=country)
        return CheckOutcome.passed(country=country, high_risk=high_risk)


class EmailDomainVerifier:
    """Rejects blocked and disposable email domains, flags free webmail."""

    kind = SecurityCheckKind.EMAIL_DOMAIN

    def check(
        self, submission: Submission, policy: EmailDomainPolicy
    ) -> CheckOutcome:
        domain = submission.email_domain(policy.field)
        if domain is None:
            return CheckOutcome.not_applicable("email_missing")

        free_email = is_free_email_domain(domain)
        if is_listed(domain, policy.blocked_domains):
            return CheckOutcome.failed("email_domain_blocked", domain=domain)
        if policy.block_disposable and is_disposable_domain(domain):
            return CheckOutcome.failed("email_domain_disposable", domain=domain)
        if policy.block_free_email and free_email:
            return CheckOutcome.failed(
                "email_domain_free", domain=domain, free_email=True
            )
        return CheckOutcome.passed(domain=domain, free_email=free_email)


class PhoneVerifier:
    """Validates the phone number and optionally matches it to the country."""

    kind = SecurityCheckKind.PHONE

    def _geolocated_country(self, submission: Submission) -> str | None:
        outcome = submission.context.get(SecurityCheckKind.GEOLOCATION.signal)
        if isinstance(outcome, CheckOutcome) and outcome.status == CheckStatus.PASSED:
            return outcome.detail.get("country")
        return None

    def check(self, submission: Submission, policy: PhonePolicy) -> CheckOutcome:
        raw = submission.field_value(policy.field)
        if not raw:
            return CheckOutcome.not_applicable("phone_missing")

        country = self._geolocated_country(submission)
        try:
            parsed = phonenumbers.parse(str(raw), country or policy.default_region)
        except phonenumbers.NumberParseException:
            return CheckOutcome.failed("phone_invalid")
        if not phonenumbers.is_valid_number(parsed):
            return CheckOutcome.failed("phone_invalid")

        region = phonenumbers.region_code_for_number(parsed)
        e164 = phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)
        if policy.require_country_match and country and region != country:
            return CheckOutcome.failed(
                "phone_country_mismatch", region=region, country=country
            )
        return CheckOutcome.passed(e164=e164, region=region)
