"""Security check stage.

Runs the configured checks in a fixed order (CAPTCHA, rate limit,
geolocation, email domain, phone) and stops at the first failure, so a
rejected submission never pays for the checks after it.
"""

import logging

from src.models.enums import CheckStatus, ErrorPolicy, SecurityCheckKind
from src.models.errors import VerifierUnavailableError
from src.models.forms import CheckPolicy, SecurityPolicy
from src.models.outcomes import CheckOutcome, StageResult
from src.models.submission import Submission
from src.security.rate_limit import InMemoryRateLimiter, RateLimitBackend
from src.security.verifiers import (
    CountryResolver,
    EmailDomainVerifier,
    GeolocationVerifier,
    PhoneVerifier,
    RateLimitVerifier,
    SecurityVerifier,
    TurnstileVerifier,
)

logger = logging.getLogger(__name__)

# Policy attribute on SecurityPolicy for each check kind
POLICY_ATTRIBUTES = {
    SecurityCheckKind.TURNSTILE: "turnstile",
    SecurityCheckKind.RATE_LIMIT: "rate_limit",
    SecurityCheckKind.GEOLOCATION: "geolocation",
    SecurityCheckKind.EMAIL_DOMAIN: "email_domain",
    SecurityCheckKind.PHONE: "phone",
}

CHECK_ORDER = tuple(SecurityCheckKind)


class SecurityCheckStage:
    """Applies a form's security policy to a submission."""

    def __init__(self, verifiers: dict[SecurityCheckKind, SecurityVerifier]):
        """Initialize the stage.

        Args:
            verifiers: Verifier per check kind. A check enabled by policy
                with no verifier registered is a configuration mistake and
                is treated as errored.
        """
        self.verifiers = verifiers

    def _run_check(
        self,
        kind: SecurityCheckKind,
        submission: Submission,
        policy: CheckPolicy,
    ) -> tuple[CheckOutcome, bool]:
        """Run one check.

        Returns:
            The outcome to record and whether it blocks the submission.
        """
        if not policy.enabled:
            return CheckOutcome.not_applicable(), False

        verifier = self.verifiers.get(kind)
        try:
            if verifier is None:
                raise VerifierUnavailableError(
                    f"No verifier registered for {kind.value}"
                )
            outcome = verifier.check(submission, policy)
        except VerifierUnavailableError as e:
            fail_closed = policy.on_error == ErrorPolicy.FAIL_CLOSED
            logger.warning(
                "Security check %s errored for %s (%s): %s",
                kind.value,
                submission.submission_id,
                policy.on_error.value,
                e,
            )
            outcome = CheckOutcome.errored(
                f"{kind.value}_unavailable",
                policy=policy.on_error.value,
                error=str(e),
            )
            return outcome, fail_closed

        return outcome, outcome.status == CheckStatus.FAILED

    def run(self, submission: Submission, policy: SecurityPolicy) -> StageResult:
        """Run every configured check in order, recording into the context.

        Args:
            submission: Submission to check; its context receives one
                outcome per executed check.
            policy: The form's security policy.

        Returns:
            StageResult with verdict ``blocked`` on the first failure.
        """
        result = StageResult(stage="security")

        for kind in CHECK_ORDER:
            check_policy: CheckPolicy = getattr(policy, POLICY_ATTRIBUTES[kind])
            outcome, blocks = self._run_check(kind, submission, check_policy)
            submission.context.record(kind.signal, outcome)
            result.outcomes[kind.signal] = outcome

            if blocks:
                result.add_failure(kind.signal, outcome.reason)
                logger.warning(
                    "Submission %s blocked by %s (%s)",
                    submission.submission_id,
                    kind.value,
                    outcome.reason,
                )
                break

        return result


def build_security_stage(
    rate_limiter: RateLimitBackend | None = None,
    turnstile_secret: str | None = None,
    country_resolver: CountryResolver | None = None,
    turnstile: TurnstileVerifier | None = None,
) -> SecurityCheckStage:
    """Create a stage wired with the standard verifiers."""
    return SecurityCheckStage(
        {
            SecurityCheckKind.TURNSTILE: (
                turnstile or TurnstileVerifier(turnstile_secret)
            ),
            SecurityCheckKind.RATE_LIMIT: RateLimitVerifier(
                rate_limiter or InMemoryRateLimiter()
            ),
            SecurityCheckKind.GEOLOCATION: GeolocationVerifier(country_resolver),
            SecurityCheckKind.EMAIL_DOMAIN: EmailDomainVerifier(),
            SecurityCheckKind.PHONE: PhoneVerifier(),
        }
    )
