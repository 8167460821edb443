"""Pytest configuration and fixtures."""

from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest

from src.config.forms import DirectoryFormLoader, FormConfigCache
from src.enrichment.orchestrator import EnrichmentOrchestrator
from src.models.enrichment import CompanyData
from src.models.enums import DispatchStatus
from src.models.forms import FormDefinition
from src.pipeline.intake import IntakeCoordinator
from src.pipeline.queue import InMemoryWorkQueue
from src.pipeline.store import InMemorySubmissionStore
from src.pipeline.worker import SubmissionWorker
from src.routing.dispatch import DispatchResult
from src.security.rate_limit import InMemoryRateLimiter
from src.security.stage import SecurityCheckStage, build_security_stage
from src.security.verifiers import TurnstileVerifier


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime.now(UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def forms_dir(project_root: Path) -> Path:
    """Return the shipped form definitions directory."""
    return project_root / "config" / "forms"


@pytest.fixture
def forms(forms_dir: Path) -> FormConfigCache:
    """Return a form cache over the shipped definitions."""
    return FormConfigCache(DirectoryFormLoader(forms_dir))


@pytest.fixture
def contact_form(forms: FormConfigCache) -> FormDefinition:
    """Return the contact-sales form definition."""
    return forms.get("contact-sales")


@pytest.fixture
def clock() -> FakeClock:
    """Return a fake clock starting now."""
    return FakeClock()


@pytest.fixture
def turnstile_client() -> httpx.Client:
    """Return an HTTP client whose siteverify calls always succeed."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "hostname": "forms.test"})

    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def rate_limiter(clock: FakeClock) -> InMemoryRateLimiter:
    """Return a rate limiter on the fake clock."""
    return InMemoryRateLimiter(clock=clock)


@pytest.fixture
def security_stage(
    turnstile_client: httpx.Client, rate_limiter: InMemoryRateLimiter
) -> SecurityCheckStage:
    """Return a security stage with a passing Turnstile backend."""
    return build_security_stage(
        rate_limiter=rate_limiter,
        turnstile=TurnstileVerifier("test-secret", client=turnstile_client),
    )


@pytest.fixture
def store() -> InMemorySubmissionStore:
    """Return an empty in-memory submission store."""
    return InMemorySubmissionStore()


@pytest.fixture
def queue(clock: FakeClock) -> InMemoryWorkQueue:
    """Return an empty work queue on the fake clock."""
    return InMemoryWorkQueue(
        dedup_window_seconds=60, visibility_timeout=300, clock=clock
    )


@pytest.fixture
def provider() -> MagicMock:
    """Return an enrichment provider that finds Acme."""
    mock = MagicMock()
    mock.name = "primary"
    mock.lookup.return_value = CompanyData(
        name="Acme Inc", domain="acme.io", employee_count=120, country="US"
    )
    return mock


@pytest.fixture
def enrichment(provider: MagicMock):
    """Return an orchestrator over the single fake provider."""
    orchestrator = EnrichmentOrchestrator([provider], timeout=2.0)
    yield orchestrator
    orchestrator.close()


def make_target(name: str) -> MagicMock:
    target = MagicMock()
    target.name = name
    target.submit.return_value = DispatchResult(
        target=name, status=DispatchStatus.SUCCESS, status_code=200
    )
    return target


@pytest.fixture
def crm_target() -> MagicMock:
    """Return a CRM sync target that accepts everything."""
    return make_target("crm_sync")


@pytest.fixture
def provisioning_target() -> MagicMock:
    """Return a provisioning target that accepts everything."""
    return make_target("provisioning")


@pytest.fixture
def coordinator(
    forms: FormConfigCache,
    security_stage: SecurityCheckStage,
    store: InMemorySubmissionStore,
    queue: InMemoryWorkQueue,
) -> IntakeCoordinator:
    """Return an intake coordinator over the in-memory store and queue."""
    return IntakeCoordinator(
        forms=forms, security=security_stage, store=store, queue=queue
    )


@pytest.fixture
def worker(
    forms: FormConfigCache,
    store: InMemorySubmissionStore,
    queue: InMemoryWorkQueue,
    enrichment: EnrichmentOrchestrator,
    crm_target: MagicMock,
    provisioning_target: MagicMock,
    clock: FakeClock,
) -> SubmissionWorker:
    """Return a worker with three attempts and a deterministic 1s backoff."""
    return SubmissionWorker(
        forms=forms,
        store=store,
        queue=queue,
        enrichment=enrichment,
        targets={"crm_sync": crm_target, "provisioning": provisioning_target},
        max_attempts=3,
        retry_base_delay=1.0,
        retry_max_delay=60.0,
        retry_jitter=False,
        clock=clock,
    )


@pytest.fixture
def contact_payload() -> dict:
    """Return a valid contact-sales submission from a company address."""
    return {
        "form_id": "contact-sales",
        "submitted_at": "2024-01-15T14:30:00Z",
        "fields": {
            "first_name": "Jane",
            "last_name": "Doe",
            "email": "jane@acme.io",
            "phone": "+16502530000",
            "company": "Acme Inc",
            "website": "acme.io",
            "team_size": "11-50",
            "message": "We would like a demo.",
            "consent": True,
        },
        "metadata": {
            "client_ip": "203.0.113.7",
            "country": "US",
            "captcha_token": "token-abc",
        },
    }
