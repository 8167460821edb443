"""Runtime settings loaded from the environment."""

import os
from dataclasses import dataclass, field
from pathlib import Path

# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_RETRY_BASE_DELAY = 30.0
DEFAULT_RETRY_MAX_DELAY = 3600.0
DEFAULT_MAX_AGE_SECONDS = 86400.0

# Default queue and provider configuration
DEFAULT_PROVIDER_TIMEOUT = 5.0
DEFAULT_DEDUP_WINDOW_SECONDS = 300.0
DEFAULT_VISIBILITY_TIMEOUT = 300.0

DEFAULT_FORMS_DIR = Path("config/forms")
DEFAULT_STORE_DIR = Path("data/submissions")
DEFAULT_AUDIT_DIR = Path("audit_logs")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _parse_providers(raw: str) -> list[tuple[str, str]]:
    """Parse ``name=url,name=url`` into ordered (name, url) pairs."""
    providers: list[tuple[str, str]] = []
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        name, sep, url = entry.partition("=")
        if not sep or not name.strip() or not url.strip():
            raise ValueError(
                f"ENRICHMENT_PROVIDERS entry must look like name=url, got {entry!r}"
            )
        providers.append((name.strip(), url.strip()))
    return providers


@dataclass
class PipelineSettings:
    """Configuration for the intake pipeline and its collaborators."""

    forms_dir: Path = DEFAULT_FORMS_DIR
    store_dir: Path = DEFAULT_STORE_DIR
    audit_dir: Path = DEFAULT_AUDIT_DIR
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY
    retry_max_delay: float = DEFAULT_RETRY_MAX_DELAY
    retry_jitter: bool = True
    max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS
    provider_timeout: float = DEFAULT_PROVIDER_TIMEOUT
    dedup_window_seconds: float = DEFAULT_DEDUP_WINDOW_SECONDS
    visibility_timeout: float = DEFAULT_VISIBILITY_TIMEOUT
    turnstile_secret_key: str | None = None
    enrichment_providers: list[tuple[str, str]] = field(default_factory=list)
    enrichment_api_keys: dict[str, str] = field(default_factory=dict)
    crm_sync_url: str | None = None
    provisioning_url: str | None = None
    dispatch_api_key: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.retry_base_delay < 0 or self.retry_max_delay < 0:
            raise ValueError("retry delays must not be negative")
        if self.provider_timeout <= 0:
            raise ValueError("provider_timeout must be positive")

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        """Create settings from environment variables.

        Optional environment variables:
            FORMS_CONFIG_DIR: Directory of <form_id>.json definitions
            STORE_DIR: Directory for the file-backed submission store
            AUDIT_LOG_DIR: Directory for audit JSONL files
            MAX_ATTEMPTS: Dispatch attempts before dead-lettering (default: 5)
            RETRY_BASE_DELAY / RETRY_MAX_DELAY: Backoff bounds in seconds
            RETRY_JITTER: "false" disables backoff jitter
            MAX_AGE_SECONDS: Age after which work is dead-lettered
            PROVIDER_TIMEOUT: Per-provider enrichment timeout in seconds
            DEDUP_WINDOW_SECONDS / VISIBILITY_TIMEOUT: Queue tuning
            TURNSTILE_SECRET_KEY: Cloudflare Turnstile secret
            ENRICHMENT_PROVIDERS: Ordered "name=url" list, comma separated
            ENRICHMENT_<NAME>_API_KEY: API key per enrichment provider
            CRM_SYNC_URL / PROVISIONING_URL / DISPATCH_API_KEY: Dispatch targets

        Raises:
            ValueError: If a variable holds an invalid value.
        """
        providers = _parse_providers(os.getenv("ENRICHMENT_PROVIDERS", ""))
        api_keys: dict[str, str] = {}
        for name, _url in providers:
            key = os.getenv(f"ENRICHMENT_{name.upper()}_API_KEY")
            if key:
                api_keys[name] = key

        return cls(
            forms_dir=Path(os.getenv("FORMS_CONFIG_DIR", str(DEFAULT_FORMS_DIR))),
            store_dir=Path(os.getenv("STORE_DIR", str(DEFAULT_STORE_DIR))),
            audit_dir=Path(os.getenv("AUDIT_LOG_DIR", str(DEFAULT_AUDIT_DIR))),
            max_attempts=_env_int("MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS),
            retry_base_delay=_env_float("RETRY_BASE_DELAY", DEFAULT_RETRY_BASE_DELAY),
            retry_max_delay=_env_float("RETRY_MAX_DELAY", DEFAULT_RETRY_MAX_DELAY),
            retry_jitter=os.getenv("RETRY_JITTER", "true").lower() != "false",
            max_age_seconds=_env_float("MAX_AGE_SECONDS", DEFAULT_MAX_AGE_SECONDS),
            provider_timeout=_env_float("PROVIDER_TIMEOUT", DEFAULT_PROVIDER_TIMEOUT),
            dedup_window_seconds=_env_float(
                "DEDUP_WINDOW_SECONDS", DEFAULT_DEDUP_WINDOW_SECONDS
            ),
            visibility_timeout=_env_float(
                "VISIBILITY_TIMEOUT", DEFAULT_VISIBILITY_TIMEOUT
            ),
            turnstile_secret_key=os.getenv("TURNSTILE_SECRET_KEY") or None,
            enrichment_providers=providers,
            enrichment_api_keys=api_keys,
            crm_sync_url=os.getenv("CRM_SYNC_URL") or None,
            provisioning_url=os.getenv("PROVISIONING_URL") or None,
            dispatch_api_key=os.getenv("DISPATCH_API_KEY") or None,
        )
