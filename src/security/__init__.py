"""Security check stage: bot and abuse checks run before validation."""

from src.security.rate_limit import (
    InMemoryRateLimiter,
    RateLimitBackend,
    RateLimitDecision,
)
from src.security.stage import CHECK_ORDER, SecurityCheckStage, build_security_stage
from src.security.verifiers import (
    EmailDomainVerifier,
    GeolocationVerifier,
    PhoneVerifier,
    RateLimitVerifier,
    SecurityVerifier,
    TurnstileVerifier,
)

__all__ = [
    "CHECK_ORDER",
    "EmailDomainVerifier",
    "GeolocationVerifier",
    "InMemoryRateLimiter",
    "PhoneVerifier",
    "RateLimitBackend",
    "RateLimitDecision",
    "RateLimitVerifier",
    "SecurityCheckStage",
    "SecurityVerifier",
    "TurnstileVerifier",
    "build_security_stage",
]
